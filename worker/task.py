"""
Pipeline Worker — Task Base Classes

Reference implementations of the Task collaborator the coordinator
drives. Factories may use them to assemble the task graph; the
coordinator itself only relies on init/run/stop/wait_while_running.

Task lifecycle:
  CREATED → INITIALIZED → RUNNING → STOPPED
  Any state → STOPPED via stop(), which is idempotent.
  A failed init_task() leaves the task in ERROR and releases waiters.
"""

from __future__ import annotations

import enum
import logging
import threading
from typing import Any

from support.health import HealthChecker, HealthServer
from worker.collaborators import PipelineManager
from worker.errors import InvalidTransition

logger = logging.getLogger("pipeline_worker.task")


class TaskStatus(str, enum.Enum):
    CREATED = "created"
    INITIALIZED = "initialized"
    RUNNING = "running"
    STOPPED = "stopped"
    ERROR = "error"


class AbstractTask:
    """
    Task with an enforced lifecycle. Subclasses override init_task,
    run_task and stop_task. A task that finishes its work on its own
    calls self.stop() to release wait_while_running().
    """

    def __init__(self, name: str):
        self.name = name
        self._status = TaskStatus.CREATED
        self._lock = threading.Lock()
        self._stopped = threading.Event()

    @property
    def status(self) -> TaskStatus:
        with self._lock:
            return self._status

    def is_running(self) -> bool:
        return self.status is TaskStatus.RUNNING

    def _require(self, expected: TaskStatus, action: str):
        with self._lock:
            if self._status is not expected:
                raise InvalidTransition(
                    f"Task '{self.name}': cannot {action} in state {self._status.value}"
                )

    def init(self) -> None:
        self._require(TaskStatus.CREATED, "init")
        logger.debug("Task '%s' initializing", self.name)
        try:
            self.init_task()
        except Exception:
            with self._lock:
                self._status = TaskStatus.ERROR
            self._stopped.set()
            raise
        with self._lock:
            if self._status is TaskStatus.CREATED:
                self._status = TaskStatus.INITIALIZED

    def run(self) -> None:
        self._require(TaskStatus.INITIALIZED, "run")
        logger.debug("Task '%s' running", self.name)
        self.run_task()
        with self._lock:
            if self._status is TaskStatus.INITIALIZED:
                self._status = TaskStatus.RUNNING

    def stop(self) -> None:
        with self._lock:
            if self._status in (TaskStatus.STOPPED, TaskStatus.ERROR):
                return
            previous, self._status = self._status, TaskStatus.STOPPED
        logger.debug("Task '%s' stopping", self.name)
        try:
            if previous is not TaskStatus.CREATED:
                self.stop_task()
        finally:
            self._stopped.set()

    def wait_while_running(self) -> None:
        self._stopped.wait()

    def init_task(self) -> None:
        pass

    def run_task(self) -> None:
        pass

    def stop_task(self) -> None:
        pass


class CompositeTask(AbstractTask):
    """
    Runs subtasks in order and stops them in reverse.

    When monitor_subtasks is set, any subtask ending on its own stops
    the whole composite.
    """

    def __init__(self, name: str, subtasks: list[AbstractTask], monitor_subtasks: bool = True):
        super().__init__(name)
        self.subtasks = list(subtasks)
        self.monitor_subtasks = monitor_subtasks
        self._initialized: list[AbstractTask] = []

    def init_task(self) -> None:
        for subtask in self.subtasks:
            try:
                subtask.init()
            except Exception:
                logger.error("Subtask '%s' failed to initialize", subtask.name)
                self._stop_subtasks(self._initialized)
                raise
            self._initialized.append(subtask)

    def run_task(self) -> None:
        for subtask in self.subtasks:
            subtask.run()
        if self.monitor_subtasks:
            for subtask in self.subtasks:
                threading.Thread(
                    target=self._watch_subtask,
                    args=(subtask,),
                    name=f"{self.name}-{subtask.name}-monitor",
                    daemon=True,
                ).start()

    def _watch_subtask(self, subtask: AbstractTask):
        subtask.wait_while_running()
        if self.status is not TaskStatus.STOPPED:
            logger.info("Subtask '%s' ended, stopping '%s'", subtask.name, self.name)
            self.stop()

    def stop_task(self) -> None:
        self._stop_subtasks(self.subtasks)

    def _stop_subtasks(self, subtasks: list[AbstractTask]):
        for subtask in reversed(subtasks):
            try:
                subtask.stop()
            except Exception:
                logger.exception("Subtask '%s' failed to stop", subtask.name)


class WebServerTask(AbstractTask):
    """The embedded web endpoint as a task."""

    def __init__(self, checker: HealthChecker | None = None,
                 host: str = "127.0.0.1", port: int = 0):
        super().__init__("webserver")
        self.checker = checker or HealthChecker()
        self.server = HealthServer(self.checker, host=host, port=port)

    @staticmethod
    def from_config(config: dict[str, Any], checker: HealthChecker | None = None) -> WebServerTask:
        web = config.get("web") or {}
        return WebServerTask(checker, host=web.get("host") or "127.0.0.1", port=int(web.get("port") or 0))

    @property
    def server_uri(self) -> str:
        return self.server.server_uri

    def run_task(self) -> None:
        self.server.start()

    def stop_task(self) -> None:
        self.server.stop()


class PipelineWorkerTask(CompositeTask):
    """
    Task graph of a worker process: the pipeline manager's own task
    (if it has one) followed by the web endpoint.
    """

    def __init__(
        self,
        name: str,
        manager: PipelineManager,
        web_server_task: WebServerTask,
        manager_task: AbstractTask | None = None,
    ):
        subtasks = [t for t in (manager_task, web_server_task) if t is not None]
        super().__init__(name, subtasks)
        self.manager = manager
        self.web_server_task = web_server_task

    def init_task(self) -> None:
        super().init_task()
        self.web_server_task.checker.register(
            "pipeline", lambda: (self.is_running(), self.status.value)
        )
