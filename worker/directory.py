"""
Pipeline Worker — Worker Directory

Turns the status callbacks reported by sibling workers into a list of
endpoints. The listing is complete-or-nothing: one unparseable URL
fails the whole call, since a partial worker set would mislead the
distributed status aggregation downstream.

The list is rebuilt on every call because workers keep reporting in
while the pipeline runs.
"""

from __future__ import annotations

import logging
from urllib.parse import urlsplit

from worker.collaborators import Runner
from worker.errors import MalformedEndpointError
from worker.types import WorkerEndpoint

logger = logging.getLogger("pipeline_worker.directory")


def parse_endpoint(url: str) -> WorkerEndpoint:
    """Parse one callback URL; requires a scheme and a host."""
    if not isinstance(url, str) or not url.strip():
        raise MalformedEndpointError(str(url), "empty URL")
    if any(ch.isspace() for ch in url):
        raise MalformedEndpointError(url, "URL contains whitespace")

    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError as e:
        raise MalformedEndpointError(url, str(e)) from e

    if not parts.scheme:
        raise MalformedEndpointError(url, "missing scheme")
    if not parts.hostname:
        raise MalformedEndpointError(url, "missing host")

    return WorkerEndpoint(url=url, scheme=parts.scheme, host=parts.hostname, port=port)


def list_workers(runner: Runner) -> list[WorkerEndpoint]:
    """Endpoints of every worker that reported in, in report order."""
    endpoints = [parse_endpoint(info.sdc_url) for info in runner.get_callback_list()]
    logger.debug("Known workers: %s", [e.url for e in endpoints])
    return endpoints
