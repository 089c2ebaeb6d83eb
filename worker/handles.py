"""
Pipeline Worker — Pipeline Handle Resolver

Looks up the runner for the bootstrap pipeline revision. The manager
is authoritative: unknown pipelines surface as whatever it raises
(typically LookupError), unchanged and not retried.
"""

from __future__ import annotations

import logging

from worker.collaborators import PipelineManager, Runner
from worker.types import PipelineIdentity

logger = logging.getLogger("pipeline_worker.handles")


def resolve_runner(manager: PipelineManager, identity: PipelineIdentity) -> Runner:
    logger.debug("Resolving runner for %s/%s rev %s",
                 identity.owner, identity.name, identity.revision)
    return manager.get_runner(identity.owner, identity.name, identity.revision)
