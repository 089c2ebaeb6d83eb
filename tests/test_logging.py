"""
Pipeline Worker — Structured Logging Tests
"""

import io
import json
import logging
import os
import sys
import threading
import unittest

_base = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _base)

from support.logging import (
    JSONFormatter,
    LifecycleLogger,
    configure_logging,
    generate_trace_id,
    get_logger,
)


def _capture_logs(level="DEBUG"):
    buf = io.StringIO()
    configure_logging(level=level, stream=buf)
    return buf


def _parse_log_lines(buf):
    return [json.loads(line) for line in buf.getvalue().splitlines() if line.strip()]


class TestJSONFormatter(unittest.TestCase):

    def test_entry_schema(self):
        record = logging.LogRecord("pipeline_worker.x", logging.INFO, "", 0, "hello %s", ("w1",), None)
        entry = json.loads(JSONFormatter().format(record))
        for field in ("timestamp", "level", "logger", "thread", "message", "service.name"):
            self.assertIn(field, entry)
        self.assertEqual(entry["message"], "hello w1")
        self.assertEqual(entry["service.name"], "pipeline_worker")

    def test_exception_fields(self):
        try:
            raise ValueError("bad")
        except ValueError:
            record = logging.LogRecord("x", logging.ERROR, "", 0, "failed", (), sys.exc_info())
        entry = json.loads(JSONFormatter().format(record))
        self.assertEqual(entry["exception.type"], "ValueError")
        self.assertEqual(entry["exception.message"], "bad")

    def test_exception_notes(self):
        err = RuntimeError("manager down")
        err.add_note("while running as sdc (local, process w1)")
        record = logging.LogRecord("x", logging.ERROR, "", 0, "failed", (), (RuntimeError, err, None))
        entry = json.loads(JSONFormatter().format(record))
        self.assertEqual(entry["exception.notes"], ["while running as sdc (local, process w1)"])


class TestConfigureLogging(unittest.TestCase):

    def tearDown(self):
        configure_logging(level="WARNING")

    def test_child_loggers_emit_json(self):
        buf = _capture_logs()
        get_logger("lifecycle").info("Starting ...")
        lines = _parse_log_lines(buf)
        self.assertEqual(lines[-1]["logger"], "pipeline_worker.lifecycle")
        self.assertEqual(lines[-1]["thread"], threading.current_thread().name)

    def test_level_filtering(self):
        buf = _capture_logs(level="INFO")
        get_logger("hooks").debug("hidden")
        get_logger("hooks").info("shown")
        messages = [line["message"] for line in _parse_log_lines(buf)]
        self.assertEqual(messages, ["shown"])

    def test_reconfigure_does_not_duplicate(self):
        _capture_logs()
        buf = _capture_logs()
        get_logger().info("once")
        self.assertEqual(len(_parse_log_lines(buf)), 1)


class TestLifecycleLogger(unittest.TestCase):

    def tearDown(self):
        configure_logging(level="WARNING")

    def test_trace_id_format(self):
        trace_id = generate_trace_id()
        self.assertEqual(len(trace_id), 32)
        self.assertNotEqual(trace_id, generate_trace_id())

    def test_state_change(self):
        buf = _capture_logs()
        events = LifecycleLogger(pipeline="p1")
        events.on_state_change("initializing", "running")
        entry = _parse_log_lines(buf)[-1]
        self.assertEqual(entry["action"], "state_change")
        self.assertEqual(entry["pipeline"], "p1")
        self.assertEqual(entry["to_state"], "running")
        self.assertEqual(entry["trace_id"], events.trace_id)

    def test_pipeline_start_fields(self):
        buf = _capture_logs()
        LifecycleLogger(pipeline="p1").on_pipeline_start("u1", "p1", "1", "w1")
        entry = _parse_log_lines(buf)[-1]
        self.assertEqual((entry["owner"], entry["revision"], entry["process_id"]), ("u1", "1", "w1"))

    def test_hook_events_are_debug(self):
        buf = _capture_logs(level="INFO")
        events = LifecycleLogger()
        events.on_hook_registered("Main.shutdownHook")
        events.on_shutdown("SIGTERM (kill)")
        actions = [line["action"] for line in _parse_log_lines(buf)]
        self.assertEqual(actions, ["shutdown"])

    def test_events_share_trace_across_threads(self):
        buf = _capture_logs()
        events = LifecycleLogger(pipeline="p1")
        t = threading.Thread(target=events.on_shutdown, args=("destroy()",), name="Main.shutdownHook")
        t.start()
        t.join()
        events.on_state_change("stopping", "stopped")
        lines = _parse_log_lines(buf)
        self.assertEqual({line["trace_id"] for line in lines}, {events.trace_id})
        self.assertEqual(lines[0]["thread"], "Main.shutdownHook")


if __name__ == "__main__":
    unittest.main()
