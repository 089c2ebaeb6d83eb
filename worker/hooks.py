"""
Pipeline Worker — Shutdown Hooks

Process-level shutdown hooks, run when the process receives SIGTERM
(or SIGINT) or exits normally.

Registration returns a HookRegistration token. Removing a token is a
best-effort operation: once shutdown has begun the registry is frozen
and remove() raises ShutdownInProgressError, which callers racing the
shutdown are expected to swallow.

Each hook runs in its own thread, under the identity captured at
registration time, and run_hooks() waits for all of them. run_hooks()
is idempotent: the first caller (signal handler or atexit) runs the
hooks, later callers return immediately. A signal hands run_hooks()
to a separate thread and returns without waiting for it.

Usage:
    from worker.hooks import get_shutdown_hooks

    hooks = get_shutdown_hooks()
    hooks.install()
    registration = hooks.add("Main.shutdownHook", task.stop, identity=identity)
    ...
    try:
        hooks.remove(registration)
    except ShutdownInProgressError:
        pass
"""

from __future__ import annotations

import atexit
import logging
import signal
import threading
from typing import Callable

from worker.errors import ShutdownInProgressError
from worker.security import IdentityThread
from worker.types import ProcessIdentity

logger = logging.getLogger("pipeline_worker.hooks")


class HookRegistration:
    """Cancellable token for one registered hook."""

    def __init__(self, name: str, fn: Callable[[], None],
                 registry: ShutdownHooks, identity: ProcessIdentity | None = None):
        self.name = name
        self.fn = fn
        self.identity = identity
        self._registry = registry
        self.removed = False
        self.started = False

    def cancel(self) -> bool:
        """Deregister; see ShutdownHooks.remove()."""
        return self._registry.remove(self)

    def _invoke(self):
        try:
            self.fn()
        except Exception:
            logger.exception("Shutdown hook '%s' failed", self.name)

    def _thread(self) -> threading.Thread:
        if self.identity is not None:
            return IdentityThread(self.identity, target=self._invoke, name=self.name)
        return threading.Thread(target=self._invoke, name=self.name)


class ShutdownHooks:
    """
    Thread-safe hook registry.

    The shutting_down flag flips exactly once, under the lock, in
    run_hooks(). add() and remove() check it under the same lock, so a
    hook is either removed before shutdown or guaranteed to run.
    """

    def __init__(self, exit_on_signal: bool = True):
        self.exit_on_signal = exit_on_signal
        self._lock = threading.Lock()
        self._hooks: list[HookRegistration] = []
        self._shutting_down = False
        self._installed = False
        self._previous_handlers: dict[int, object] = {}
        self.signal_thread: threading.Thread | None = None

    @property
    def shutting_down(self) -> bool:
        with self._lock:
            return self._shutting_down

    def registered(self) -> list[HookRegistration]:
        with self._lock:
            return list(self._hooks)

    def add(self, name: str, fn: Callable[[], None],
            identity: ProcessIdentity | None = None) -> HookRegistration:
        registration = HookRegistration(name, fn, self, identity=identity)
        with self._lock:
            if self._shutting_down:
                raise ShutdownInProgressError(f"Cannot add hook '{name}': shutdown in progress")
            self._hooks.append(registration)
        logger.debug("Registered shutdown hook '%s'", name)
        return registration

    def remove(self, registration: HookRegistration) -> bool:
        """
        Deregister a hook.

        Returns False if it was not registered (already removed).
        Raises ShutdownInProgressError once the hooks have started.
        """
        with self._lock:
            if self._shutting_down:
                raise ShutdownInProgressError(
                    f"Cannot remove hook '{registration.name}': shutdown in progress"
                )
            if registration not in self._hooks:
                return False
            self._hooks.remove(registration)
            registration.removed = True
        logger.debug("Removed shutdown hook '%s'", registration.name)
        return True

    def run_hooks(self, reason: str = "process exit") -> bool:
        """Run every registered hook once. Returns False if already run."""
        with self._lock:
            if self._shutting_down:
                return False
            self._shutting_down = True
            hooks = list(self._hooks)
            for registration in hooks:
                registration.started = True

        logger.info("Running %d shutdown hook(s), reason: %s", len(hooks), reason)
        threads = [registration._thread() for registration in hooks]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return True

    # ── OS wiring ────────────────────────────────────────────

    def install(self, install_signals: bool = True,
                signals: tuple[int, ...] = (signal.SIGTERM, signal.SIGINT)) -> None:
        """Run hooks at interpreter exit and, from the main thread, on signals."""
        with self._lock:
            if self._installed:
                return
            self._installed = True

        atexit.register(self.run_hooks, "process exit")
        if not install_signals:
            return
        if threading.current_thread() is not threading.main_thread():
            logger.warning("Signal handlers not installed: not on the main thread")
            return
        for sig in signals:
            self._previous_handlers[sig] = signal.signal(sig, self._on_signal)

    def uninstall(self) -> None:
        with self._lock:
            if not self._installed:
                return
            self._installed = False
        atexit.unregister(self.run_hooks)
        for sig, previous in self._previous_handlers.items():
            if previous is not None:
                signal.signal(sig, previous)
        self._previous_handlers.clear()

    def _on_signal(self, signum, frame):
        # The interrupted main thread may hold a lock a hook needs, so
        # the hooks run elsewhere and the handler never joins them.
        # Interpreter shutdown waits for the non-daemon runner thread.
        name = signal.Signals(signum).name
        logger.info("Received %s", name)
        runner = threading.Thread(target=self.run_hooks, args=(name,),
                                  name="ShutdownHookRunner")
        self.signal_thread = runner
        runner.start()
        if self.exit_on_signal:
            raise SystemExit(128 + signum)


# ═══════════════════════════════════════════════════════════════════
# Singleton
# ═══════════════════════════════════════════════════════════════════

_instance: ShutdownHooks | None = None
_instance_lock = threading.Lock()


def get_shutdown_hooks() -> ShutdownHooks:
    """Get the process-wide ShutdownHooks registry."""
    global _instance
    with _instance_lock:
        if _instance is None:
            _instance = ShutdownHooks()
    return _instance


def reset_shutdown_hooks():
    """Reset global instance (for testing)."""
    global _instance
    with _instance_lock:
        if _instance is not None:
            _instance.uninstall()
        _instance = None
