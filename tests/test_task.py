"""
Pipeline Worker — Task Base Class Tests
"""

import json
import os
import sys
import threading
import unittest
import urllib.request

_base = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _base)

from support.health import ServerNotYetRunningError
from tests.fakes import FakeManager
from worker.errors import InvalidTransition
from worker.task import AbstractTask, CompositeTask, PipelineWorkerTask, TaskStatus, WebServerTask


class RecordingTask(AbstractTask):
    def __init__(self, name, log, fail_init=False):
        super().__init__(name)
        self.log = log
        self.fail_init = fail_init

    def init_task(self):
        if self.fail_init:
            raise RuntimeError(f"{self.name} init failed")
        self.log.append(f"init:{self.name}")

    def run_task(self):
        self.log.append(f"run:{self.name}")

    def stop_task(self):
        self.log.append(f"stop:{self.name}")


class TestAbstractTask(unittest.TestCase):

    def test_lifecycle(self):
        log = []
        task = RecordingTask("t", log)
        task.init()
        self.assertIs(task.status, TaskStatus.INITIALIZED)
        task.run()
        self.assertTrue(task.is_running())
        task.stop()
        task.stop()
        self.assertIs(task.status, TaskStatus.STOPPED)
        self.assertEqual(log, ["init:t", "run:t", "stop:t"])

    def test_run_before_init(self):
        with self.assertRaises(InvalidTransition):
            RecordingTask("t", []).run()

    def test_init_twice(self):
        task = RecordingTask("t", [])
        task.init()
        with self.assertRaises(InvalidTransition):
            task.init()

    def test_failed_init_releases_waiters(self):
        task = RecordingTask("t", [], fail_init=True)
        with self.assertRaises(RuntimeError):
            task.init()
        self.assertIs(task.status, TaskStatus.ERROR)
        task.wait_while_running()

    def test_stop_releases_waiter(self):
        task = RecordingTask("t", [])
        task.init()
        task.run()
        done = threading.Event()

        def wait():
            task.wait_while_running()
            done.set()

        threading.Thread(target=wait, daemon=True).start()
        self.assertFalse(done.wait(0.05))
        task.stop()
        self.assertTrue(done.wait(5))

    def test_stop_before_init_skips_stop_task(self):
        log = []
        task = RecordingTask("t", log)
        task.stop()
        self.assertEqual(log, [])
        task.wait_while_running()


class TestCompositeTask(unittest.TestCase):

    def test_order(self):
        log = []
        composite = CompositeTask("all", [RecordingTask("a", log), RecordingTask("b", log)],
                                  monitor_subtasks=False)
        composite.init()
        composite.run()
        composite.stop()
        self.assertEqual(log, ["init:a", "init:b", "run:a", "run:b", "stop:b", "stop:a"])

    def test_init_failure_stops_initialized_subtasks(self):
        log = []
        a = RecordingTask("a", log)
        b = RecordingTask("b", log, fail_init=True)
        composite = CompositeTask("all", [a, b])
        with self.assertRaises(RuntimeError):
            composite.init()
        self.assertIs(a.status, TaskStatus.STOPPED)
        self.assertIs(composite.status, TaskStatus.ERROR)

    def test_subtask_ending_stops_composite(self):
        log = []
        a = RecordingTask("a", log)
        b = RecordingTask("b", log)
        composite = CompositeTask("all", [a, b])
        composite.init()
        composite.run()
        a.stop()
        composite._stopped.wait(5)
        self.assertIs(composite.status, TaskStatus.STOPPED)
        self.assertIs(b.status, TaskStatus.STOPPED)


class TestWebServerTask(unittest.TestCase):

    def test_uri_only_after_run(self):
        task = WebServerTask(port=0)
        task.init()
        with self.assertRaises(ServerNotYetRunningError):
            task.server_uri
        task.run()
        try:
            self.assertTrue(task.server_uri.startswith("http://127.0.0.1:"))
        finally:
            task.stop()

    def test_from_config(self):
        task = WebServerTask.from_config({"web": {"host": "0.0.0.0", "port": 18630}})
        self.assertEqual((task.server.host, task.server.port), ("0.0.0.0", 18630))
        task = WebServerTask.from_config({})
        self.assertEqual((task.server.host, task.server.port), ("127.0.0.1", 0))

    def test_pipeline_task_readiness(self):
        web = WebServerTask(port=0)
        task = PipelineWorkerTask("p1", FakeManager(), web)
        task.init()
        task.run()
        try:
            with urllib.request.urlopen(f"{web.server_uri}/ready", timeout=5) as resp:
                body = json.loads(resp.read())
            self.assertEqual(body["checks"]["pipeline"]["status"], "ok")
        finally:
            task.stop()
        self.assertIs(web.status, TaskStatus.STOPPED)


if __name__ == "__main__":
    unittest.main()
