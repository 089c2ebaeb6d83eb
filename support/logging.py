"""
Pipeline Worker — Structured Logging

JSON log lines for every lifecycle event of the hosting process. Each
lifecycle entry carries the coordinator's trace_id, so lines written by
the shutdown hook thread and the completion watcher can be correlated
with the main thread.

Design decisions:
  - Transport: Python logging with JSON formatter
  - Schema: OTel-compatible field names (trace_id, service.name)
  - Lifecycle events at INFO, hook bookkeeping at DEBUG

Usage:
    from support.logging import LifecycleLogger, configure_logging

    configure_logging(level="INFO")
    events = LifecycleLogger(pipeline="p1")
    events.on_state_change("uninitialized", "initializing")
"""

from __future__ import annotations

import json
import logging
import os
import sys
import uuid
from datetime import datetime, timezone
from typing import IO, Any


ROOT_LOGGER = "pipeline_worker"
EVENTS_LOGGER = f"{ROOT_LOGGER}.lifecycle.events"


# ═══════════════════════════════════════════════════════════════════
# JSON Formatter
# ═══════════════════════════════════════════════════════════════════

class JSONFormatter(logging.Formatter):
    """
    One JSON object per record.

    Resource attributes: service.name, service.version (PW_VERSION) and
    the emitting thread, which tells main, hook and watcher lines apart.
    Structured fields attached as record.structured are merged in.
    """

    def __init__(self, service_name: str = ROOT_LOGGER):
        super().__init__()
        self.resource = {
            "service.name": service_name,
            "service.version": os.environ.get("PW_VERSION", "0.1.0"),
        }

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry: dict[str, Any] = {
            "timestamp": created.isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
            **self.resource,
        }
        entry.update(getattr(record, "structured", None) or {})

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            entry["exception.type"] = type(exc).__name__
            entry["exception.message"] = str(exc)
            notes = getattr(exc, "__notes__", None)
            if notes:
                entry["exception.notes"] = list(notes)

        return json.dumps(entry, default=str)


# ═══════════════════════════════════════════════════════════════════
# Log Configuration
# ═══════════════════════════════════════════════════════════════════

def _level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    return logging.getLevelNamesMapping().get(str(level).upper(), logging.INFO)


def configure_logging(
    level: str | int = "INFO",
    stream: IO[str] | None = None,
    service_name: str = ROOT_LOGGER,
) -> logging.Logger:
    """
    Send everything under the pipeline_worker namespace to one JSON
    handler on stream (default: sys.stderr). Calling it again replaces
    the previous handler.
    """
    numeric = _level(level)
    root = logging.getLogger(ROOT_LOGGER)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JSONFormatter(service_name=service_name))
    handler.setLevel(numeric)
    root.addHandler(handler)
    root.setLevel(numeric)
    root.propagate = False
    return root


def get_logger(name: str = "") -> logging.Logger:
    """Logger under the pipeline_worker namespace ("" for the root)."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}" if name else ROOT_LOGGER)


def generate_trace_id() -> str:
    """Generate an OTel-compatible trace ID (32 hex chars)."""
    return uuid.uuid4().hex


# ═══════════════════════════════════════════════════════════════════
# Lifecycle Event Logger
# ═══════════════════════════════════════════════════════════════════

class LifecycleLogger:
    """
    Structured lifecycle events for one coordinator.

    The pipeline name is filled in once the task graph is known, so
    events before that carry an empty pipeline field.
    """

    def __init__(self, pipeline: str = "", trace_id: str | None = None):
        self.pipeline = pipeline
        self.trace_id = trace_id or generate_trace_id()
        self._logger = logging.getLogger(EVENTS_LOGGER)

    def _emit(self, level: int, action: str, **fields):
        if not self._logger.isEnabledFor(level):
            return
        self._logger.log(level, action, extra={"structured": {
            "trace_id": self.trace_id,
            "pipeline": self.pipeline,
            "action": action,
            **fields,
        }})

    def on_state_change(self, from_state: str, to_state: str) -> None:
        self._emit(logging.INFO, "state_change", from_state=from_state, to_state=to_state)

    def on_hook_registered(self, hook_name: str) -> None:
        self._emit(logging.DEBUG, "hook_registered", hook=hook_name)

    def on_hook_deregistered(self, hook_name: str, removed: bool) -> None:
        self._emit(logging.DEBUG, "hook_deregistered", hook=hook_name, removed=removed)

    def on_shutdown(self, reason: str) -> None:
        self._emit(logging.INFO, "shutdown", reason=reason)

    def on_pipeline_start(self, owner: str, name: str, revision: str, process_id: str) -> None:
        self._emit(logging.INFO, "pipeline_start",
                   owner=owner, name=name, revision=revision, process_id=process_id)

    def on_workers_listed(self, count: int) -> None:
        self._emit(logging.DEBUG, "workers_listed", count=count)
