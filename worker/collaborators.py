"""
Pipeline Worker — Collaborator Interfaces

The coordinator drives these objects but never implements pipeline
execution itself. Concrete task, manager and runner classes come from
the hosting framework through a WorkerFactory.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from worker.runtime_info import RuntimeInfo
    from worker.types import CallbackInfo


@runtime_checkable
class Task(Protocol):
    """Lifecycle contract of the hosted task. stop() must be idempotent."""

    def init(self) -> None: ...

    def run(self) -> None: ...

    def stop(self) -> None: ...

    def wait_while_running(self) -> None: ...


class Runner(Protocol):
    """Handle for one running pipeline revision, owned by the manager."""

    def start(self) -> None: ...

    def get_callback_list(self) -> list[CallbackInfo]: ...


class PipelineManager(Protocol):
    """Authority on pipeline state; raises LookupError for unknown pipelines."""

    def get_runner(self, user: str, name: str, revision: str) -> Runner: ...


class WebServerTask(Protocol):
    """Embedded web endpoint. server_uri raises until the socket is bound."""

    @property
    def server_uri(self) -> str: ...


class PipelineTask(Protocol):
    name: str
    manager: PipelineManager
    web_server_task: WebServerTask


@dataclass
class WorkerComponents:
    """Objects produced by the dependency graph for one worker process."""
    task: Task
    pipeline_task: PipelineTask
    runtime_info: RuntimeInfo
    build_info: dict[str, Any] | None = None

    @property
    def manager(self) -> PipelineManager:
        return self.pipeline_task.manager

    @property
    def pipeline_name(self) -> str:
        return self.pipeline_task.name


class WorkerFactory(Protocol):
    """Builds the task graph. The coordinator only consumes the result."""

    def create(self) -> WorkerComponents: ...
