"""
Pipeline Worker — Capability Surface

The DataCollector contract shared by every hosting mode, and the table
of operations the embedded worker deliberately rejects. A rejected
operation always raises UnsupportedOperationError naming the entry
point to use instead; it never silently does nothing.
"""

from __future__ import annotations

import abc
import enum
from dataclasses import dataclass

from worker.errors import UnsupportedOperationError
from worker.types import WorkerEndpoint


class Capability(str, enum.Enum):
    INIT = "init"
    START_PIPELINE = "start_pipeline"
    DESTROY = "destroy"
    SERVER_URI = "get_server_uri"
    WORKER_LIST = "get_worker_list"
    CREATE_PIPELINE = "create_pipeline"
    STOP_PIPELINE = "stop_pipeline"
    START_PIPELINE_INLINE = "start_pipeline(pipeline_json)"
    STORE_RULES = "store_rules"


@dataclass(frozen=True)
class CapabilitySpec:
    capability: Capability
    supported: bool
    entry_point: str = ""


EMBEDDED_CAPABILITIES: dict[Capability, CapabilitySpec] = {
    spec.capability: spec for spec in (
        CapabilitySpec(Capability.INIT, True),
        CapabilitySpec(Capability.START_PIPELINE, True),
        CapabilitySpec(Capability.DESTROY, True),
        CapabilitySpec(Capability.SERVER_URI, True),
        CapabilitySpec(Capability.WORKER_LIST, True),
        CapabilitySpec(Capability.CREATE_PIPELINE, False, "start_pipeline"),
        CapabilitySpec(Capability.STOP_PIPELINE, False, "start_pipeline"),
        CapabilitySpec(Capability.START_PIPELINE_INLINE, False, "start_pipeline()"),
        CapabilitySpec(Capability.STORE_RULES, False),
    )
}


def is_supported(capability: Capability) -> bool:
    return EMBEDDED_CAPABILITIES[capability].supported


def reject(capability: Capability) -> None:
    """Raise UnsupportedOperationError for an operation rejected in embedded mode."""
    spec = EMBEDDED_CAPABILITIES[capability]
    raise UnsupportedOperationError(capability.value, spec.entry_point)


class DataCollector(abc.ABC):
    """Operations a hosting framework may call on a pipeline worker."""

    @abc.abstractmethod
    def init(self) -> None: ...

    @abc.abstractmethod
    def start_pipeline(self, pipeline_json: str | None = None) -> None: ...

    @abc.abstractmethod
    def create_pipeline(self, pipeline_json: str) -> None: ...

    @abc.abstractmethod
    def stop_pipeline(self) -> None: ...

    @abc.abstractmethod
    def store_rules(self, name: str, tag: str, rule_definitions_json: str) -> str: ...

    @abc.abstractmethod
    def get_server_uri(self) -> str: ...

    @abc.abstractmethod
    def get_worker_list(self) -> list[WorkerEndpoint]: ...

    @abc.abstractmethod
    def destroy(self) -> None: ...
