"""
Pipeline Worker — Health Checks & Embedded Web Endpoint

The worker process exposes a small HTTP endpoint so the cluster
framework can probe it. Its bound address is what the coordinator
reports from get_server_uri().

Implementation uses stdlib http.server for zero-dependency operation.

Probes:
  /health  — process alive (always 200)
  /ready   — readiness checks (pipeline task running, ...)
  /startup — one-time checks (bootstrap file present, identity acquired)

Usage:
    from support.health import HealthChecker, HealthServer, Probe

    checker = HealthChecker(worker_id="w1")
    checker.register("pipeline", lambda: (task.is_running(), task.status.value))
    checker.register("bootstrap", lambda: (path.is_file(), str(path)), probe=Probe.STARTUP)

    server = HealthServer(checker, host="127.0.0.1", port=0)
    server.start()
    server.server_uri   # "http://127.0.0.1:49321"
"""

from __future__ import annotations

import enum
import json
import logging
import threading
import time
from dataclasses import dataclass
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Callable

logger = logging.getLogger("pipeline_worker.health")

# () -> (passed, detail)
CheckFn = Callable[[], tuple[bool, str]]

_MAX_ERROR_LEN = 200


class ServerNotYetRunningError(Exception):
    """Raised when the endpoint address is requested before the socket is bound."""


class Probe(str, enum.Enum):
    READY = "ready"
    STARTUP = "startup"


@dataclass
class CheckResult:
    name: str
    passed: bool
    latency_ms: float
    detail: str = ""
    error: str = ""

    @property
    def status(self) -> str:
        return "ok" if self.passed else "fail"

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"status": self.status, "latency_ms": round(self.latency_ms, 1)}
        if self.detail:
            d["detail"] = self.detail
        if self.error:
            d["error"] = self.error
        return d


def _utc_now() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


# ═══════════════════════════════════════════════════════════════════
# Health Checker
# ═══════════════════════════════════════════════════════════════════

class HealthChecker:
    """
    Named checks grouped by probe. A check that raises counts as a
    failure; the exception text is reported, truncated.
    """

    def __init__(self, worker_id: str = ""):
        self.worker_id = worker_id
        self._checks: dict[Probe, dict[str, CheckFn]] = {probe: {} for probe in Probe}
        self._lock = threading.Lock()

    def register(self, name: str, check_fn: CheckFn, probe: Probe = Probe.READY) -> None:
        with self._lock:
            self._checks[probe][name] = check_fn

    def register_startup(self, name: str, check_fn: CheckFn) -> None:
        self.register(name, check_fn, probe=Probe.STARTUP)

    def unregister(self, name: str, probe: Probe = Probe.READY) -> None:
        with self._lock:
            self._checks[probe].pop(name, None)

    @staticmethod
    def _run_check(name: str, fn: CheckFn) -> CheckResult:
        started = time.perf_counter()
        try:
            passed, detail = fn()
        except Exception as e:
            elapsed = (time.perf_counter() - started) * 1000
            logger.debug("Check '%s' raised: %s", name, e)
            return CheckResult(name, False, elapsed, error=str(e)[:_MAX_ERROR_LEN])
        elapsed = (time.perf_counter() - started) * 1000
        return CheckResult(name, bool(passed), elapsed, detail=detail)

    def _envelope(self, status: str, **extra) -> dict[str, Any]:
        body: dict[str, Any] = {"status": status, "timestamp": _utc_now()}
        if self.worker_id:
            body["worker_id"] = self.worker_id
        body.update(extra)
        return body

    def run_probe(self, probe: Probe) -> dict[str, Any]:
        with self._lock:
            checks = list(self._checks[probe].items())
        results = [self._run_check(name, fn) for name, fn in checks]
        overall = "ok" if all(r.passed for r in results) else "fail"
        return self._envelope(overall, checks={r.name: r.to_dict() for r in results})

    def check_health(self) -> dict[str, Any]:
        """Liveness: answering at all means alive."""
        return self._envelope("ok")

    def check_ready(self) -> dict[str, Any]:
        return self.run_probe(Probe.READY)

    def check_startup(self) -> dict[str, Any]:
        return self.run_probe(Probe.STARTUP)


# ═══════════════════════════════════════════════════════════════════
# HTTP Endpoint
# ═══════════════════════════════════════════════════════════════════

class _HealthHandler(BaseHTTPRequestHandler):
    checker: HealthChecker = None  # bound per server by HealthServer

    def do_GET(self):
        routes = {
            "/health": self.checker.check_health,
            "/ready": self.checker.check_ready,
            "/startup": self.checker.check_startup,
        }
        probe = routes.get(self.path.split("?", 1)[0])
        if probe is None:
            self._send(HTTPStatus.NOT_FOUND, {"error": f"No probe at {self.path}"})
            return
        body = probe()
        ok = body["status"] == "ok"
        self._send(HTTPStatus.OK if ok else HTTPStatus.SERVICE_UNAVAILABLE, body)

    def _send(self, status: HTTPStatus, body: dict[str, Any]):
        payload = json.dumps(body).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)

    def log_message(self, format, *args):
        logger.debug("%s - %s", self.address_string(), format % args)


class HealthServer:
    """
    Probe endpoint served from a background daemon thread.

    Port 0 binds an ephemeral port; the real address is only known
    after start(), which is why server_uri raises until then.
    """

    def __init__(self, checker: HealthChecker, host: str = "127.0.0.1", port: int = 0):
        self.checker = checker
        self.host = host
        self.port = port
        self._server: ThreadingHTTPServer | None = None
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()

    def start(self) -> None:
        with self._lock:
            if self._server is not None:
                return
            handler = type("BoundHealthHandler", (_HealthHandler,), {"checker": self.checker})
            self._server = ThreadingHTTPServer((self.host, self.port), handler)
            self._server.daemon_threads = True
            self._thread = threading.Thread(
                target=self._server.serve_forever, name="WebServer", daemon=True,
            )
            self._thread.start()
        logger.info("Web endpoint started on %s", self.server_uri)

    def stop(self) -> None:
        with self._lock:
            server, self._server = self._server, None
            thread, self._thread = self._thread, None
        if server is None:
            return
        server.shutdown()
        server.server_close()
        if thread is not None:
            thread.join(timeout=5)
        logger.info("Web endpoint stopped")

    @property
    def running(self) -> bool:
        return self._server is not None

    @property
    def server_uri(self) -> str:
        server = self._server
        if server is None:
            raise ServerNotYetRunningError("Web endpoint is not bound yet")
        host, port = server.server_address[:2]
        return f"http://{host}:{port}"
