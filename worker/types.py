"""
Pipeline Worker — Type Definitions

Identity records, bootstrap data, worker endpoints and the lifecycle
state enum shared across the worker package.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


# ─── Identity ───────────────────────────────────────────────────────

@dataclass(frozen=True)
class SecurityConfiguration:
    """Kerberos settings read from the worker configuration."""
    kerberos_enabled: bool = False
    principal: str | None = None
    keytab: str | None = None

    @staticmethod
    def from_config(config: dict[str, Any]) -> SecurityConfiguration:
        kerberos = (config.get("security") or {}).get("kerberos") or {}
        return SecurityConfiguration(
            kerberos_enabled=bool(kerberos.get("enabled", False)),
            principal=kerberos.get("principal") or None,
            keytab=kerberos.get("keytab") or None,
        )


@dataclass(frozen=True)
class ProcessIdentity:
    """
    The privileged identity of this process.
    Created once by SecurityContext.login(); never shared across processes.
    """
    process_id: str
    security: SecurityConfiguration
    principal_name: str
    credentials: Any = field(default=None, repr=False, compare=False)

    def describe(self) -> str:
        mode = "kerberos" if self.security.kerberos_enabled else "local"
        return f"{self.principal_name} ({mode}, process {self.process_id})"


# ─── Bootstrap ──────────────────────────────────────────────────────

@dataclass(frozen=True)
class PipelineIdentity:
    """Which pipeline definition and revision this worker runs."""
    owner: str
    name: str
    revision: str


@dataclass(frozen=True)
class BootstrapConfig:
    """Parsed contents of sdc.properties."""
    process_id: str
    pipeline: PipelineIdentity
    source: Path


# ─── Worker Directory ───────────────────────────────────────────────

@dataclass
class CallbackInfo:
    """Status callback reported by a sibling worker process."""
    sdc_url: str
    sdc_id: str = ""
    pipeline: str = ""
    reported_at: float = 0.0


@dataclass(frozen=True)
class WorkerEndpoint:
    """Network address of a sibling worker, parsed from its callback URL."""
    url: str
    scheme: str
    host: str
    port: int | None = None


# ─── Lifecycle ──────────────────────────────────────────────────────

class LifecycleState(str, enum.Enum):
    """Process-wide lifecycle of the embedded worker."""
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


# Allowed transitions: from_state → set of valid to_states
LIFECYCLE_TRANSITIONS: dict[LifecycleState, set[LifecycleState]] = {
    LifecycleState.UNINITIALIZED: {LifecycleState.INITIALIZING},
    LifecycleState.INITIALIZING: {LifecycleState.RUNNING, LifecycleState.STOPPING},
    LifecycleState.RUNNING: {LifecycleState.STOPPING},
    LifecycleState.STOPPING: {LifecycleState.STOPPED},
}
