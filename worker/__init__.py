"""
Pipeline Worker — Embedded Worker Core

Hosts a single data pipeline inside a worker process of a cluster job:
acquires the privileged identity, reads the bootstrap properties,
starts the pipeline runner, and supervises the task until it finishes
or the process is told to stop.

Usage:
    from worker import EmbeddedWorker

    worker = EmbeddedWorker(factory)
    worker.init()
    worker.start_pipeline()
    worker.await_completion()
"""

from worker.types import (
    BootstrapConfig,
    CallbackInfo,
    LifecycleState,
    PipelineIdentity,
    ProcessIdentity,
    SecurityConfiguration,
    WorkerEndpoint,
)
from worker.errors import (
    AuthenticationError,
    ConfigFieldMissingError,
    ConfigMissingError,
    InvalidTransition,
    MalformedEndpointError,
    PipelineNotStartedError,
    ServerNotReadyError,
    ShutdownInProgressError,
    UnsupportedOperationError,
    WorkerError,
)
from worker.collaborators import WorkerComponents, WorkerFactory
from worker.lifecycle import EmbeddedWorker

__all__ = [
    "EmbeddedWorker",
    "WorkerComponents",
    "WorkerFactory",
    "BootstrapConfig",
    "CallbackInfo",
    "LifecycleState",
    "PipelineIdentity",
    "ProcessIdentity",
    "SecurityConfiguration",
    "WorkerEndpoint",
    "AuthenticationError",
    "ConfigFieldMissingError",
    "ConfigMissingError",
    "InvalidTransition",
    "MalformedEndpointError",
    "PipelineNotStartedError",
    "ServerNotReadyError",
    "ShutdownInProgressError",
    "UnsupportedOperationError",
    "WorkerError",
]
