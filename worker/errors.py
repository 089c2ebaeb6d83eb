"""
Pipeline Worker — Error Taxonomy

Fatal startup errors (bootstrap, identity) abort initialization.
ServerNotReadyError is the only one a caller is expected to retry.
Errors raised by the pipeline manager are never converted.
"""

from __future__ import annotations


class WorkerError(Exception):
    """Base class for errors raised by the worker core."""


class ConfigMissingError(WorkerError):
    """The bootstrap properties file does not exist."""
    def __init__(self, path: str):
        self.path = path
        super().__init__(f"sdc property file doesn't exist at '{path}'")


class ConfigFieldMissingError(WorkerError):
    """A required bootstrap key is absent or blank."""
    def __init__(self, field_name: str, path: str = ""):
        self.field_name = field_name
        self.path = path
        super().__init__(
            f"Required property '{field_name}' is missing"
            + (f" in '{path}'" if path else "")
        )


class AuthenticationError(WorkerError):
    """The privileged identity could not be established or is not attached."""


class ServerNotReadyError(WorkerError, RuntimeError):
    """The embedded web endpoint has not bound its socket yet."""


class MalformedEndpointError(WorkerError, ValueError):
    """A worker callback reported a URL that cannot be parsed."""
    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Malformed worker URL '{url}': {reason}")


class UnsupportedOperationError(WorkerError, NotImplementedError):
    """The operation is deliberately rejected in embedded mode."""
    def __init__(self, operation: str, entry_point: str = ""):
        self.operation = operation
        self.entry_point = entry_point
        message = f"'{operation}' is not supported in embedded mode."
        if entry_point:
            message += f' Use "{entry_point}" method'
        super().__init__(message)


class InvalidTransition(WorkerError):
    """Raised when a lifecycle state transition is not allowed."""


class ShutdownInProgressError(WorkerError):
    """Hook registry refuses changes once shutdown has begun."""


class PipelineNotStartedError(WorkerError):
    """An operation needs the runner, but start_pipeline() has not run."""


class ConfigUnreadableError(WorkerError, ValueError):
    """The bootstrap properties file is not valid UTF-8."""
    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"sdc property file '{path}' cannot be decoded: {reason}")
