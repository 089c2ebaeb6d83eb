"""
Pipeline Worker — Runtime Diagnostics

Startup banner logged during init(): build info, interpreter, import
path, isolation mode and Kerberos settings. Observability only.
"""

from __future__ import annotations

import logging
import platform
import sys
from importlib import metadata
from typing import Any

from worker.types import SecurityConfiguration

SEPARATOR = "-" * 65


def build_info(distribution: str = "pipeline-worker") -> dict[str, Any]:
    try:
        version = metadata.version(distribution)
    except metadata.PackageNotFoundError:
        version = "unknown"
    return {
        "distribution": distribution,
        "version": version,
        "python": platform.python_version(),
        "implementation": platform.python_implementation(),
    }


def log_runtime_diagnostics(
    log: logging.Logger,
    info: dict[str, Any] | None = None,
    security: SecurityConfiguration | None = None,
) -> None:
    info = info or build_info()

    log.info("Entering worker with interpreter: %s", sys.executable)
    log.info("Python path")
    for entry in sys.path:
        if entry:
            log.info(entry)

    log.info(SEPARATOR)
    for key, value in info.items():
        log.info("  %-15s: %s", key, value)
    log.info(SEPARATOR)
    if sys.flags.isolated:
        log.info("  Isolated mode  : ENABLED")
    else:
        log.warning("  Isolated mode  : DISABLED")

    if security is not None:
        log.info(SEPARATOR)
        log.info("  Kerberos enabled: %s", security.kerberos_enabled)
        if security.kerberos_enabled:
            log.info("  Kerberos principal: %s", security.principal)
            log.info("  Kerberos keytab: %s", security.keytab)
    log.info(SEPARATOR)
