"""
Pipeline Worker — Shutdown Hook Registry Tests
"""

import os
import sys
import threading
import unittest

_base = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _base)

from worker.errors import ShutdownInProgressError
from worker.hooks import ShutdownHooks, get_shutdown_hooks, reset_shutdown_hooks
from worker.security import current_identity
from worker.types import ProcessIdentity, SecurityConfiguration


class TestRegistration(unittest.TestCase):
    def setUp(self):
        self.hooks = ShutdownHooks(exit_on_signal=False)

    def test_add_and_remove(self):
        reg = self.hooks.add("Main.shutdownHook", lambda: None)
        self.assertEqual(self.hooks.registered(), [reg])
        self.assertTrue(self.hooks.remove(reg))
        self.assertTrue(reg.removed)
        self.assertEqual(self.hooks.registered(), [])

    def test_remove_twice(self):
        reg = self.hooks.add("h", lambda: None)
        self.assertTrue(reg.cancel())
        self.assertFalse(reg.cancel())

    def test_removed_hook_not_run(self):
        calls = []
        reg = self.hooks.add("h", lambda: calls.append("h"))
        self.hooks.remove(reg)
        self.hooks.run_hooks()
        self.assertEqual(calls, [])

    def test_remove_during_shutdown_raises(self):
        reg = self.hooks.add("h", lambda: None)
        self.hooks.run_hooks()
        with self.assertRaises(ShutdownInProgressError):
            self.hooks.remove(reg)
        self.assertTrue(reg.started)
        self.assertFalse(reg.removed)

    def test_add_during_shutdown_raises(self):
        self.hooks.run_hooks()
        with self.assertRaises(ShutdownInProgressError):
            self.hooks.add("late", lambda: None)


class TestRunHooks(unittest.TestCase):
    def setUp(self):
        self.hooks = ShutdownHooks(exit_on_signal=False)

    def test_runs_every_hook_once(self):
        calls = []
        self.hooks.add("a", lambda: calls.append("a"))
        self.hooks.add("b", lambda: calls.append("b"))
        self.assertTrue(self.hooks.run_hooks("SIGTERM"))
        self.assertFalse(self.hooks.run_hooks("process exit"))
        self.assertEqual(sorted(calls), ["a", "b"])
        self.assertTrue(self.hooks.shutting_down)

    def test_hooks_run_in_own_threads(self):
        names = []
        self.hooks.add("Main.shutdownHook", lambda: names.append(threading.current_thread().name))
        self.hooks.run_hooks()
        self.assertEqual(names, ["Main.shutdownHook"])

    def test_failing_hook_logged_others_run(self):
        calls = []

        def boom():
            raise RuntimeError("boom")

        self.hooks.add("bad", boom)
        self.hooks.add("good", lambda: calls.append("good"))
        with self.assertLogs("pipeline_worker.hooks", level="ERROR") as logs:
            self.hooks.run_hooks()
        self.assertEqual(calls, ["good"])
        self.assertTrue(any("bad" in line for line in logs.output))

    def test_hook_runs_under_captured_identity(self):
        identity = ProcessIdentity(process_id="w1", security=SecurityConfiguration(),
                                   principal_name="sdc")
        seen = []
        self.hooks.add("h", lambda: seen.append(current_identity()), identity=identity)
        self.hooks.run_hooks()
        self.assertEqual(seen, [identity])

    def test_concurrent_run_hooks_single_execution(self):
        calls = []
        lock = threading.Lock()

        def hook():
            with lock:
                calls.append(1)

        self.hooks.add("h", hook)
        threads = [threading.Thread(target=self.hooks.run_hooks) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual(len(calls), 1)


class TestInstall(unittest.TestCase):
    def test_install_without_signals_is_idempotent(self):
        hooks = ShutdownHooks(exit_on_signal=False)
        hooks.install(install_signals=False)
        hooks.install(install_signals=False)
        hooks.uninstall()
        hooks.uninstall()

    def test_signal_handler_runs_hooks(self):
        hooks = ShutdownHooks(exit_on_signal=True)
        calls = []
        hooks.add("h", lambda: calls.append("h"))
        with self.assertRaises(SystemExit) as ctx:
            hooks._on_signal(15, None)
        self.assertEqual(ctx.exception.code, 128 + 15)
        hooks.signal_thread.join(5)
        self.assertEqual(calls, ["h"])

    def test_signal_handler_does_not_wait_for_hooks(self):
        hooks = ShutdownHooks(exit_on_signal=False)
        held = threading.Lock()
        calls = []

        def hook():
            with held:
                calls.append("h")

        hooks.add("h", hook)
        with held:
            # the interrupted thread owns a lock the hook needs
            hooks._on_signal(15, None)
            self.assertTrue(hooks.signal_thread.is_alive())
            self.assertEqual(calls, [])
        hooks.signal_thread.join(5)
        self.assertFalse(hooks.signal_thread.is_alive())
        self.assertEqual(calls, ["h"])
        self.assertFalse(hooks.run_hooks("process exit"))


class TestSingleton(unittest.TestCase):
    def tearDown(self):
        reset_shutdown_hooks()

    def test_get_returns_same_instance(self):
        self.assertIs(get_shutdown_hooks(), get_shutdown_hooks())

    def test_reset(self):
        first = get_shutdown_hooks()
        reset_shutdown_hooks()
        self.assertIsNot(first, get_shutdown_hooks())


if __name__ == "__main__":
    unittest.main()
