"""
Pipeline Worker — Lifecycle Coordinator

Hosts a single pipeline inside a worker process of a cluster job.

Lifecycle:
  init()            login → build task graph → diagnostics → task.init()
                    → register shutdown hook → install shutdown handler
                    → task.run() → start completion watcher
  start_pipeline()  read sdc.properties → resolve runner → runner.start()
  await_completion  block until the task finishes on its own or is stopped
  destroy()         task.stop()

Two background threads can stop the task outside the main call stack:
the shutdown hook (process termination) and the completion watcher
(task finished on its own). They never wait on each other. The hook
calls task.stop(), which is idempotent; the watcher removes the hook
and treats ShutdownInProgressError as the expected outcome of losing
that race. Both run under the identity captured at init().

Usage:
    from worker.lifecycle import EmbeddedWorker

    worker = EmbeddedWorker(factory, config=load_config())
    worker.init()
    worker.start_pipeline()
    worker.await_completion()
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable

from support.config import get_config_value, load_config
from support.health import ServerNotYetRunningError
from support.logging import LifecycleLogger
from worker.bootstrap import load_identity
from worker.capabilities import Capability, DataCollector, reject
from worker.collaborators import Runner, Task, WorkerComponents, WorkerFactory
from worker.diagnostics import log_runtime_diagnostics
from worker.directory import list_workers
from worker.errors import (
    InvalidTransition,
    PipelineNotStartedError,
    ServerNotReadyError,
    ShutdownInProgressError,
    UnsupportedOperationError,
)
from worker.handles import resolve_runner
from worker.hooks import HookRegistration, ShutdownHooks, get_shutdown_hooks
from worker.runtime_info import ShutdownHandler, ShutdownStatus
from worker.security import IdentityThread, SecurityContext, require_identity, run_as
from worker.types import (
    LIFECYCLE_TRANSITIONS,
    LifecycleState,
    ProcessIdentity,
    WorkerEndpoint,
)

logger = logging.getLogger("pipeline_worker.lifecycle")

HOOK_NAME = "Main.shutdownHook"


# ═══════════════════════════════════════════════════════════════════
# Completion Watcher
# ═══════════════════════════════════════════════════════════════════

class CompletionWatcher:
    """
    Daemon thread blocked on task.wait_while_running().

    When the task ends it deregisters the shutdown hook. Nobody waits
    on this thread synchronously, so every failure is logged and kept
    on .error instead of being raised.
    """

    def __init__(
        self,
        identity: ProcessIdentity,
        task: Task,
        hooks: ShutdownHooks,
        registration: HookRegistration,
        on_complete: Callable[[], None],
        name: str,
        events: LifecycleLogger | None = None,
    ):
        self.task = task
        self.hooks = hooks
        self.registration = registration
        self.on_complete = on_complete
        self.events = events
        self.completed = threading.Event()
        self.hook_removed = False
        self.error: BaseException | None = None
        self._thread = IdentityThread(identity, target=self._watch, name=name, daemon=True)

    @property
    def name(self) -> str:
        return self._thread.name

    def start(self) -> None:
        self._thread.start()

    def wait(self, timeout: float | None = None) -> bool:
        return self.completed.wait(timeout)

    def _watch(self):
        try:
            self.task.wait_while_running()
            try:
                self.hook_removed = self.hooks.remove(self.registration)
                if self.events:
                    self.events.on_hook_deregistered(self.registration.name, self.hook_removed)
            except ShutdownInProgressError:
                # hook is already running, the process is going down
                logger.debug("Shutdown hook already running, not removed")
            logger.debug("Stopping, reason: programmatic stop()")
        except BaseException as e:
            self.error = e
            logger.error("Error running pipeline: %s", e, exc_info=True)
        finally:
            try:
                self.on_complete()
            except Exception:
                logger.exception("Completion callback failed")
            self.completed.set()


# ═══════════════════════════════════════════════════════════════════
# Embedded Worker
# ═══════════════════════════════════════════════════════════════════

class EmbeddedWorker(DataCollector):
    """
    Lifecycle coordinator for one embedded pipeline.

    init() is called exactly once and start_pipeline() at most once.
    The task graph comes from the factory; this class never builds it.
    """

    def __init__(
        self,
        factory: WorkerFactory,
        config: dict[str, Any] | None = None,
        hooks: ShutdownHooks | None = None,
        security_context: SecurityContext | None = None,
    ):
        self.factory = factory
        self.config = config if config is not None else load_config()
        self.hooks = hooks or get_shutdown_hooks()
        self.security_context = security_context or SecurityContext.from_config(self.config)
        self.events = LifecycleLogger()

        self.identity: ProcessIdentity | None = None
        self.components: WorkerComponents | None = None
        self.runner: Runner | None = None
        self.watcher: CompletionWatcher | None = None
        self.hook_registration: HookRegistration | None = None

        self._state = LifecycleState.UNINITIALIZED
        self._state_lock = threading.Lock()

    # ── State machine ────────────────────────────────────────

    @property
    def state(self) -> LifecycleState:
        with self._state_lock:
            return self._state

    def _transition(self, to: LifecycleState) -> None:
        with self._state_lock:
            allowed = LIFECYCLE_TRANSITIONS.get(self._state, set())
            if to not in allowed:
                raise InvalidTransition(
                    f"{self._state.value} → {to.value} is not allowed. "
                    f"Valid transitions: {sorted(s.value for s in allowed)}"
                )
            from_state, self._state = self._state, to
        self.events.on_state_change(from_state.value, to.value)

    def _enter_running(self) -> None:
        # A shutdown hook may already have moved us to STOPPING
        with self._state_lock:
            if self._state is not LifecycleState.INITIALIZING:
                logger.info("Stopped during initialization, not entering running state")
                return
            self._state = LifecycleState.RUNNING
        self.events.on_state_change(LifecycleState.INITIALIZING.value, LifecycleState.RUNNING.value)

    def _enter_stopping(self) -> None:
        with self._state_lock:
            if self._state not in (LifecycleState.RUNNING, LifecycleState.INITIALIZING):
                return
            from_state, self._state = self._state, LifecycleState.STOPPING
        self.events.on_state_change(from_state.value, LifecycleState.STOPPING.value)

    def _enter_stopped(self) -> None:
        with self._state_lock:
            if self._state is not LifecycleState.STOPPING:
                return
            self._state = LifecycleState.STOPPED
        self.events.on_state_change(LifecycleState.STOPPING.value, LifecycleState.STOPPED.value)

    # ── Init ─────────────────────────────────────────────────

    def init(self) -> None:
        self._transition(LifecycleState.INITIALIZING)
        try:
            self._initialize()
        except Exception:
            logger.error("Initialization failed, tearing down")
            self._abort_init()
            raise

    def _initialize(self):
        self.identity = self.security_context.login()

        self.components = self.factory.create()
        self.events.pipeline = self.components.pipeline_name

        log_runtime_diagnostics(logger, self.components.build_info, self.security_context.security)
        logger.info("Starting ...")

        if get_config_value("hooks.install", self.config, True):
            self.hooks.install(
                install_signals=get_config_value("hooks.install_signals", self.config, True)
            )
        run_as(self.identity, self._start_task)

    def _start_task(self):
        require_identity()
        task = self.components.task
        task.init()

        self.hook_registration = self.hooks.add(HOOK_NAME, self._on_shutdown_hook,
                                                identity=self.identity)
        self.events.on_hook_registered(HOOK_NAME)
        self.components.runtime_info.set_shutdown_handler(
            ShutdownHandler(task, ShutdownStatus(), log=logger)
        )
        task.run()
        self._enter_running()

        self.watcher = CompletionWatcher(
            identity=self.identity,
            task=task,
            hooks=self.hooks,
            registration=self.hook_registration,
            on_complete=self._on_natural_completion,
            name=f"Pipeline-{self.components.pipeline_name}",
            events=self.events,
        )
        self.watcher.start()

    def _abort_init(self):
        if self.hook_registration is not None:
            try:
                self.hooks.remove(self.hook_registration)
            except ShutdownInProgressError:
                pass
        if self.components is not None and self.identity is not None:
            try:
                run_as(self.identity, self.components.task.stop)
            except Exception:
                logger.exception("Failed to stop task after initialization error")
        self._enter_stopping()
        self._enter_stopped()

    # ── Stop paths ───────────────────────────────────────────

    def _on_shutdown_hook(self):
        logger.debug("Stopping, reason: SIGTERM (kill)")
        self.events.on_shutdown("SIGTERM (kill)")
        self._stop()

    def _on_natural_completion(self):
        self._enter_stopping()
        self._enter_stopped()

    def _stop(self):
        require_identity()
        self._enter_stopping()
        self.components.task.stop()
        self._enter_stopped()

    def destroy(self) -> None:
        """Stop the task. Safe to call repeatedly and after the shutdown hook ran."""
        if self.components is None or self.identity is None:
            logger.debug("destroy() before init(), nothing to stop")
            return
        self.events.on_shutdown("destroy()")
        run_as(self.identity, self._stop)

    def await_completion(self, timeout: float | None = None) -> bool:
        """Block until the task has ended. Returns False on timeout."""
        if self.watcher is None:
            if self.state is LifecycleState.UNINITIALIZED:
                raise InvalidTransition("await_completion() requires init()")
            return self.state is LifecycleState.STOPPED
        return self.watcher.wait(timeout)

    # ── Pipeline ─────────────────────────────────────────────

    def start_pipeline(self, pipeline_json: str | None = None) -> None:
        if pipeline_json is not None:
            reject(Capability.START_PIPELINE_INLINE)
        if self.components is None or self.identity is None:
            raise InvalidTransition("start_pipeline() requires init()")
        run_as(self.identity, self._start_pipeline)

    def _start_pipeline(self):
        runtime_info = self.components.runtime_info
        bootstrap = load_identity(runtime_info.config_dir, runtime_info)
        pipeline = bootstrap.pipeline

        self.runner = resolve_runner(self.components.manager, pipeline)
        self.events.on_pipeline_start(pipeline.owner, pipeline.name, pipeline.revision,
                                      bootstrap.process_id)
        self.runner.start()

    def get_pipeline(self) -> Any:
        if self.runner is None:
            raise PipelineNotStartedError("get_pipeline() requires start_pipeline()")
        if not hasattr(self.runner, "pipeline"):
            raise UnsupportedOperationError("get_pipeline")
        return self.runner.pipeline

    def get_server_uri(self) -> str:
        if self.components is None:
            raise ServerNotReadyError("Cannot retrieve URI of server: worker not initialized")
        try:
            return self.components.pipeline_task.web_server_task.server_uri
        except ServerNotYetRunningError as e:
            raise ServerNotReadyError(f"Cannot retrieve URI of server: {e}") from e

    def get_worker_list(self) -> list[WorkerEndpoint]:
        if self.runner is None:
            raise PipelineNotStartedError("get_worker_list() requires start_pipeline()")
        endpoints = list_workers(self.runner)
        self.events.on_workers_listed(len(endpoints))
        return endpoints

    # ── Rejected in embedded mode ────────────────────────────

    def create_pipeline(self, pipeline_json: str) -> None:
        reject(Capability.CREATE_PIPELINE)

    def stop_pipeline(self) -> None:
        reject(Capability.STOP_PIPELINE)

    def store_rules(self, name: str, tag: str, rule_definitions_json: str) -> str:
        reject(Capability.STORE_RULES)
