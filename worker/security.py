"""
Pipeline Worker — Identity Context

Acquires the privileged identity of the process and attaches it to
every pipeline-affecting call.

The identity is passed explicitly: run_as() binds it to the current
execution context for the duration of one call, and IdentityThread
captures it when the thread object is created. Nothing inherits an
identity implicitly, so a privileged operation reached from a thread
that was never given one fails in require_identity().

Usage:
    from worker.security import SecurityContext, run_as, IdentityThread

    ctx = SecurityContext(SecurityConfiguration(), process_id="w1")
    identity = ctx.login()
    run_as(identity, task.init)

    watcher = IdentityThread(identity, target=task.wait_while_running)
    watcher.start()
"""

from __future__ import annotations

import getpass
import logging
import os
import threading
from contextvars import ContextVar
from typing import Any, Callable, TypeVar

from worker.errors import AuthenticationError
from worker.types import ProcessIdentity, SecurityConfiguration

logger = logging.getLogger("pipeline_worker.security")

T = TypeVar("T")

_current_identity: ContextVar[ProcessIdentity | None] = ContextVar(
    "pipeline_worker_identity", default=None
)


# ═══════════════════════════════════════════════════════════════════
# Login
# ═══════════════════════════════════════════════════════════════════

class SecurityContext:
    """
    Resolves the process identity once at init.

    Kerberos credentials are acquired from the configured keytab through
    gssapi (pip install pipeline-worker[kerberos]). Without Kerberos the
    identity is the OS login user.
    """

    def __init__(self, security: SecurityConfiguration, process_id: str = ""):
        self.security = security
        self.process_id = process_id or f"pid-{os.getpid()}"
        self._identity: ProcessIdentity | None = None

    @staticmethod
    def from_config(config: dict[str, Any], process_id: str = "") -> SecurityContext:
        return SecurityContext(SecurityConfiguration.from_config(config), process_id=process_id)

    @property
    def identity(self) -> ProcessIdentity:
        if self._identity is None:
            raise AuthenticationError("login() has not been called")
        return self._identity

    def login(self) -> ProcessIdentity:
        if self._identity is not None:
            return self._identity

        if self.security.kerberos_enabled:
            principal_name, credentials = self._kerberos_login()
        else:
            try:
                principal_name = getpass.getuser()
            except (KeyError, OSError) as e:
                raise AuthenticationError(f"Cannot determine the OS login user: {e}") from e
            credentials = None

        self._identity = ProcessIdentity(
            process_id=self.process_id,
            security=self.security,
            principal_name=principal_name,
            credentials=credentials,
        )
        logger.info("Logged in as %s", self._identity.describe())
        return self._identity

    def _kerberos_login(self) -> tuple[str, Any]:
        principal = self.security.principal
        keytab = self.security.keytab
        if not principal:
            raise AuthenticationError("Kerberos is enabled but no principal is configured")
        if not keytab or not os.path.isfile(keytab):
            raise AuthenticationError(f"Kerberos keytab doesn't exist at '{keytab}'")

        try:
            import gssapi
        except ImportError:
            raise AuthenticationError(
                "gssapi not installed. pip install pipeline-worker[kerberos]"
            ) from None

        try:
            name = gssapi.Name(principal, gssapi.NameType.kerberos_principal)
            credentials = gssapi.Credentials(
                name=name,
                usage="initiate",
                store={"client_keytab": keytab},
            )
        except gssapi.exceptions.GSSError as e:
            raise AuthenticationError(f"Kerberos login failed for '{principal}': {e}") from e

        logger.debug("Kerberos credentials acquired from keytab %s", keytab)
        return str(credentials.name), credentials


# ═══════════════════════════════════════════════════════════════════
# Scoped Attachment
# ═══════════════════════════════════════════════════════════════════

def run_as(identity: ProcessIdentity, fn: Callable[..., T], *args, **kwargs) -> T:
    """
    Run fn with identity attached to the current execution context.

    Exceptions from fn propagate as the same object; a note naming the
    identity is added for diagnostics.
    """
    if identity is None:
        raise AuthenticationError("No privileged identity to attach")

    token = _current_identity.set(identity)
    try:
        return fn(*args, **kwargs)
    except Exception as e:
        note = f"while running as {identity.describe()}"
        if note not in getattr(e, "__notes__", ()):
            e.add_note(note)
        raise
    finally:
        _current_identity.reset(token)


def current_identity() -> ProcessIdentity | None:
    return _current_identity.get()


def require_identity() -> ProcessIdentity:
    """Return the attached identity, or fail if the caller runs unprivileged."""
    identity = _current_identity.get()
    if identity is None:
        raise AuthenticationError(
            f"No privileged identity attached to thread '{threading.current_thread().name}'"
        )
    return identity


class IdentityThread(threading.Thread):
    """Thread that runs its target under an identity captured at creation."""

    def __init__(
        self,
        identity: ProcessIdentity,
        target: Callable[..., Any],
        name: str | None = None,
        args: tuple = (),
        kwargs: dict[str, Any] | None = None,
        daemon: bool | None = None,
    ):
        if identity is None:
            raise AuthenticationError("IdentityThread requires an identity")
        super().__init__(name=name, daemon=daemon)
        self.identity = identity
        self._identity_target = target
        self._identity_args = args
        self._identity_kwargs = kwargs or {}

    def run(self):
        run_as(self.identity, self._identity_target,
               *self._identity_args, **self._identity_kwargs)
