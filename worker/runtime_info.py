"""
Pipeline Worker — Runtime Info

Process-wide runtime metadata: the config directory, the master id
recorded from the bootstrap file, and the shutdown handler other
components use to request a structured shutdown.

Usage:
    from worker.runtime_info import get_runtime_info

    info = get_runtime_info()
    info.set_master_id("w1")
    info.shutdown(exit_code=0, reason="job finished")
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from worker.collaborators import Task

logger = logging.getLogger("pipeline_worker.runtime")


@dataclass
class ShutdownStatus:
    """Outcome recorded by ShutdownHandler when it stops the task."""
    exit_code: int = 0
    reason: str = ""
    requested: bool = False


class ShutdownHandler:
    """Stops the task on request and records why."""

    def __init__(self, task: Task, status: ShutdownStatus | None = None,
                 log: logging.Logger | None = None):
        self.task = task
        self.status = status or ShutdownStatus()
        self._log = log or logger

    def __call__(self, exit_code: int = 0, reason: str = "shutdown requested") -> ShutdownStatus:
        self.status.exit_code = exit_code
        self.status.reason = reason
        self.status.requested = True
        self._log.info("Stopping, reason: %s (exit code %d)", reason, exit_code)
        self.task.stop()
        return self.status


class RuntimeInfo:
    """
    Shared process-wide runtime metadata.

    The master id is single-writer (the bootstrap resolver), read-many.
    """

    def __init__(self, config_dir: str | Path = "etc", runtime_id: str = ""):
        self.config_dir = Path(config_dir)
        self.id = runtime_id or uuid.uuid4().hex[:12]
        self._master_id: str | None = None
        self._shutdown_handler: ShutdownHandler | None = None
        self._lock = threading.Lock()

    @staticmethod
    def from_config(config: dict[str, Any]) -> RuntimeInfo:
        runtime = config.get("runtime") or {}
        return RuntimeInfo(config_dir=runtime.get("config_dir") or "etc")

    @property
    def master_id(self) -> str | None:
        with self._lock:
            return self._master_id

    def set_master_id(self, master_id: str) -> None:
        with self._lock:
            self._master_id = master_id
        logger.info("Master sdc id is: '%s'", master_id)

    @property
    def shutdown_handler(self) -> ShutdownHandler | None:
        with self._lock:
            return self._shutdown_handler

    def set_shutdown_handler(self, handler: ShutdownHandler) -> None:
        with self._lock:
            self._shutdown_handler = handler

    def shutdown(self, exit_code: int = 0, reason: str = "shutdown requested") -> ShutdownStatus | None:
        """Invoke the installed handler; no-op before the coordinator installs one."""
        handler = self.shutdown_handler
        if handler is None:
            logger.warning("Shutdown requested before a handler was installed: %s", reason)
            return None
        return handler(exit_code=exit_code, reason=reason)


# ═══════════════════════════════════════════════════════════════════
# Singleton
# ═══════════════════════════════════════════════════════════════════

_instance: RuntimeInfo | None = None
_instance_lock = threading.Lock()


def get_runtime_info(config_dir: str | Path | None = None) -> RuntimeInfo:
    """Get the process-wide RuntimeInfo, creating it on first use."""
    global _instance
    with _instance_lock:
        if _instance is None:
            _instance = RuntimeInfo(config_dir=config_dir or "etc")
    return _instance


def reset_runtime_info():
    """Reset global instance (for testing)."""
    global _instance
    with _instance_lock:
        _instance = None
