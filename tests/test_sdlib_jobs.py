import threading
import unittest
from unittest.mock import patch

from sdlib.plumbing.common import JobInFlightError, TransportError, ValidationError
from sdlib.plumbing.systemctl import UnitFileChange
from sdlib.tasks import units
from sdlib.tasks.jobs import (JobBridge, JobStatus, Mode, Operation, UnitJob, valid_modes,
                              WaitPolicy)

from .plumbing import FakeManager


class TestValidation(unittest.TestCase):

    def setUp(self):
        self.manager = FakeManager(result="done")
        self.bridge = JobBridge(self.manager, poll_interval=0.05)

    def test_modes(self):
        self.assertEqual(valid_modes(), ["replace", "fail", "isolate", "ignore-dependencies",
                                         "ignore-requirements"])

    def test_mode_default(self):
        self.assertIs(Mode.parse(""), Mode.replace)
        self.assertIs(Mode.parse(None), Mode.replace)

    def test_invalid_mode(self):
        with self.assertRaises(ValidationError):
            self.bridge.issue("foo.service", Operation.start, "sideways")
        self.assertEqual(self.manager.calls, [])

    def test_invalid_mode_every_operation(self):
        for operation in Operation:
            with self.subTest(operation=operation):
                with self.assertRaises(ValidationError):
                    self.bridge.issue("foo.service", operation, "bogus")
        self.assertEqual(self.manager.calls, [])

    def test_timeout_over_cap(self):
        with self.assertRaises(ValidationError):
            self.bridge.issue("foo.service", Operation.restart, "replace", 61)
        self.assertEqual(self.manager.calls, [])

    def test_timeout_at_cap(self):
        result = self.bridge.issue("foo.service", Operation.restart, "replace", 60)
        self.assertEqual(result.status, JobStatus.completed)

    def test_timeout_negative(self):
        with self.assertRaises(ValidationError):
            WaitPolicy(-1).validate()

    def test_invalid_operation(self):
        with self.assertRaises(ValidationError):
            self.bridge.issue("foo.service", "explode")

    def test_missing_unit(self):
        with self.assertRaises(ValidationError):
            self.bridge.issue("", Operation.start)
        self.assertEqual(self.manager.calls, [])

    def test_check_timeout_over_cap(self):
        with self.assertRaises(ValidationError):
            self.bridge.check(120)


class TestIssue(unittest.TestCase):

    def test_completed_immediately(self):
        manager = FakeManager(result="done")
        bridge = JobBridge(manager, poll_interval=0.05)
        result = bridge.issue("foo.service", Operation.start)
        self.assertEqual(result.status, JobStatus.completed)
        self.assertEqual(result.message, "done")
        self.assertEqual(manager.calls, [("start", "foo.service", "replace")])
        self.assertIsNone(bridge.job)

    def test_operations(self):
        manager = FakeManager(result="done")
        bridge = JobBridge(manager, poll_interval=0.05)
        bridge.issue("a", Operation.stop, "fail")
        bridge.issue("b", Operation.restart, "isolate")
        bridge.issue("c", Operation.reload, "ignore-dependencies")
        self.assertEqual(manager.calls, [("stop", "a", "fail"),
                                         ("restart", "b", "isolate"),
                                         ("reload-or-restart", "c", "ignore-dependencies")])

    def test_operation_by_name(self):
        manager = FakeManager(result="done")
        JobBridge(manager, poll_interval=0.05).issue("a", "start")
        self.assertEqual(manager.calls, [("start", "a", "replace")])

    def test_arrives_within_interval(self):
        manager = FakeManager()
        bridge = JobBridge(manager, poll_interval=5)
        timer = threading.Timer(0.05, lambda: manager.slots[0].set_result("done"))
        timer.start()
        try:
            result = bridge.issue("foo.service", Operation.start)
        finally:
            timer.cancel()
        self.assertEqual(result.status, JobStatus.completed)
        self.assertEqual(result.message, "done")

    def test_in_progress_then_completed(self):
        manager = FakeManager()
        bridge = JobBridge(manager, poll_interval=0.05)
        first = bridge.issue("foo.service", Operation.restart, "replace", 30)
        self.assertEqual(first.status, JobStatus.in_progress)
        self.assertIn("still in progress", str(first))
        again = bridge.check()
        self.assertEqual(again.status, JobStatus.in_progress)
        manager.slots[0].set_result("canceled")
        final = bridge.check(30)
        self.assertEqual(final.status, JobStatus.completed)
        self.assertEqual(final.message, "canceled")
        self.assertEqual(final.unit, "foo.service")

    def test_result_consumed(self):
        bridge = JobBridge(FakeManager(result="done"), poll_interval=0.05)
        bridge.issue("foo.service", Operation.start)
        self.assertEqual(bridge.check().status, JobStatus.pending)

    def test_check_without_job(self):
        result = JobBridge(FakeManager(), poll_interval=0.05).check()
        self.assertEqual(result.status, JobStatus.pending)
        self.assertEqual(str(result), "No job pending.")

    def test_in_flight_rejected(self):
        manager = FakeManager()
        bridge = JobBridge(manager, poll_interval=0.05)
        bridge.issue("foo.service", Operation.start)
        with self.assertRaises(JobInFlightError):
            bridge.issue("bar.service", Operation.start)
        self.assertEqual(len(manager.calls), 1)
        self.assertFalse(manager.slots[0].done())

    def test_finished_but_uncollected(self):
        manager = FakeManager()
        bridge = JobBridge(manager, poll_interval=0.05)
        bridge.issue("foo.service", Operation.start)
        manager.slots[0].set_result("done")
        manager.result = "done"
        result = bridge.issue("bar.service", Operation.start)
        self.assertEqual(result.unit, "bar.service")
        self.assertEqual(result.status, JobStatus.completed)

    def test_slot_error(self):
        manager = FakeManager()
        bridge = JobBridge(manager, poll_interval=0.05)
        bridge.issue("foo.service", Operation.start)
        manager.slots[0].set_exception(TransportError("lost"))
        result = bridge.check()
        self.assertEqual(result.status, JobStatus.failed)
        self.assertIsInstance(result.error, TransportError)
        self.assertIn("lost", str(result))
        self.assertIsNone(bridge.job)

    def test_transport_error_propagates(self):
        manager = FakeManager()

        def broken(name, mode, slot):
            raise TransportError("no bus")

        manager.start_unit = broken
        bridge = JobBridge(manager, poll_interval=0.05)
        with self.assertRaises(TransportError):
            bridge.issue("foo.service", Operation.start)
        self.assertIsNone(bridge.job)

    def test_enable(self):
        change = UnitFileChange("symlink", "/etc/a", "/usr/lib/a")
        manager = FakeManager(changes=[change])
        result = JobBridge(manager).issue("a.service", Operation.enable)
        self.assertEqual(result.status, JobStatus.completed)
        self.assertEqual(result.message, "symlink: /etc/a -> /usr/lib/a")
        self.assertEqual(manager.calls, [("enable", ("a.service",))])

    def test_disable_unchanged(self):
        manager = FakeManager()
        result = JobBridge(manager).issue("a.service", Operation.disable)
        self.assertEqual(result.message, "nothing changed for a.service")

    def test_enable_through_units(self):
        manager = FakeManager()
        with patch("sdlib.tasks.units.enable", wraps=units.enable) as enable:
            result = JobBridge(manager).issue("a.service", Operation.enable)
        enable.assert_called_once_with(manager, "a.service")
        self.assertEqual(result.status, JobStatus.completed)

    def test_disable_through_units(self):
        manager = FakeManager()
        with patch("sdlib.tasks.units.disable", wraps=units.disable) as disable:
            JobBridge(manager).issue("a.service", Operation.disable)
        disable.assert_called_once_with(manager, "a.service")

    def test_job_id_reported(self):
        manager = FakeManager()
        bridge = JobBridge(manager, poll_interval=0.05)
        first = bridge.issue("foo.service", Operation.start)
        self.assertEqual(first.job, "1")
        self.assertEqual(first.to_dict()["job"], "1")
        manager.slots[0].set_result("done")
        self.assertEqual(bridge.check().job, "1")

    def test_toggle_has_no_job_id(self):
        result = JobBridge(FakeManager()).issue("a.service", Operation.enable)
        self.assertNotIn("job", result.to_dict())


class TestStop(unittest.TestCase):

    def test_graceful(self):
        manager = FakeManager(result="done")
        result = JobBridge(manager, poll_interval=0.05).stop("foo.service")
        self.assertEqual(result.status, JobStatus.completed)
        self.assertEqual(manager.calls, [("stop", "foo.service", "replace")])

    def test_kill_skips_slot(self):
        manager = FakeManager()
        bridge = JobBridge(manager, poll_interval=60)
        result = bridge.stop("foo.service", kill=True)
        self.assertEqual(result.status, JobStatus.completed)
        self.assertEqual(manager.calls, [("kill", "foo.service", 9)])
        self.assertEqual(manager.slots, [])
        self.assertIsNone(bridge.job)

    def test_kill_with_job_in_flight(self):
        manager = FakeManager()
        bridge = JobBridge(manager, poll_interval=0.05)
        bridge.issue("foo.service", Operation.stop)
        result = bridge.stop("foo.service", kill=True)
        self.assertEqual(result.status, JobStatus.completed)
        self.assertFalse(manager.slots[0].done())
        self.assertIsNotNone(bridge.job)

    def test_kill_validates(self):
        manager = FakeManager()
        with self.assertRaises(ValidationError):
            JobBridge(manager).stop("foo.service", "bogus", kill=True)
        with self.assertRaises(ValidationError):
            JobBridge(manager).stop("foo.service", timeout=100, kill=True)
        self.assertEqual(manager.calls, [])


class TestUnitJob(unittest.TestCase):

    def test_states(self):
        job = UnitJob("foo.service", Operation.start, Mode.replace)
        self.assertEqual(job.status, JobStatus.pending)
        job.wait(0)
        self.assertEqual(job.status, JobStatus.in_progress)
        job.slot.set_result("done")
        self.assertEqual(job.wait(0).message, "done")
        self.assertEqual(job.status, JobStatus.completed)


if __name__ == "__main__":
    unittest.main()
