from datetime import datetime, timezone
import time
import unittest

from sdlib.plumbing.common import HardTimeoutError, NotFoundError, ValidationError
from sdlib.tasks.logs import EPOCH, LogQuery, LogRetriever, project, unit_name

from .plumbing import entry, FakeJournal


def _journal() -> FakeJournal:
    entries = [entry("boot {}".format(i), ident="kernel", timestamp=i) for i in range(10)]
    entries.insert(3, entry("user hello", user_unit="app.service", unit="user@1000.service",
                            timestamp=100))
    entries.insert(6, entry("sshd hello", ident="sshd", timestamp=200))
    return FakeJournal(entries)


class TestProject(unittest.TestCase):

    def test_defaults(self):
        projected = project({})
        self.assertEqual(projected.time, EPOCH)
        self.assertEqual(projected.unit, ":")
        self.assertEqual(projected.host, "")
        self.assertEqual(projected.message, "")
        self.assertIsNone(projected.fields)

    def test_fields(self):
        raw = entry("hi", ident="cron", timestamp=1500000000000000, host="box")
        projected = project(raw)
        self.assertEqual(projected.time, datetime(2017, 7, 14, 2, 40, tzinfo=timezone.utc))
        self.assertEqual(projected.unit, "cron")
        self.assertEqual(projected.host, "box")
        self.assertEqual(projected.message, "hi")

    def test_composite_unit(self):
        raw = entry("hi", user_unit="app.service", unit="user@1000.service")
        self.assertEqual(unit_name(raw), "user@1000.service:app.service")

    def test_bad_timestamp(self):
        self.assertEqual(project({"__REALTIME_TIMESTAMP": "soon"}).time, EPOCH)

    def test_full(self):
        raw = entry("hi", ident="cron")
        data = project(raw, full=True).to_dict()
        self.assertEqual(data["full"], raw)
        self.assertEqual(data["time"], "1970-01-01T00:00:00+00:00")
        self.assertNotIn("full", project(raw).to_dict())


class TestQuery(unittest.TestCase):

    def test_negative(self):
        with self.assertRaises(ValidationError):
            LogQuery(-1).validate()

    def test_not_int(self):
        for count in ("3", 1.5, True, None):
            with self.subTest(count=count):
                with self.assertRaises(ValidationError):
                    LogQuery(count).validate()


class TestRetriever(unittest.TestCase):

    def test_zero(self):
        journal = _journal()
        self.assertEqual(LogRetriever(journal).retrieve(0), [])
        self.assertEqual(journal.calls, [])

    def test_negative(self):
        journal = _journal()
        with self.assertRaises(ValidationError):
            LogRetriever(journal).retrieve(-5)
        self.assertEqual(journal.calls, [])

    def test_tail(self):
        entries = LogRetriever(_journal()).retrieve(3)
        self.assertEqual([item.message for item in entries], ["boot 7", "boot 8", "boot 9"])

    def test_more_than_available(self):
        journal = _journal()
        entries = LogRetriever(journal).retrieve(1000)
        self.assertEqual(len(entries), 12)
        self.assertEqual(entries[0].message, "boot 0")
        self.assertEqual(entries[-1].message, "boot 9")

    def test_identifier(self):
        journal = _journal()
        entries = LogRetriever(journal).retrieve(5, "sshd")
        self.assertEqual([item.message for item in entries], ["sshd hello"])
        self.assertEqual(journal.step_backs(),
                         [("step_back", 5, (("SYSLOG_IDENTIFIER", "sshd"),), 1)])
        self.assertEqual(journal.matches, [])

    def test_user_unit(self):
        journal = _journal()
        entries = LogRetriever(journal).retrieve(5, "app.service")
        self.assertEqual([item.message for item in entries], ["user hello"])
        self.assertEqual(entries[0].unit, "user@1000.service:app.service")
        self.assertEqual(journal.step_backs(),
                         [("step_back", 5, (("SYSLOG_IDENTIFIER", "app.service"),), 0),
                          ("step_back", 5, (("_SYSTEMD_USER_UNIT", "app.service"),), 1)])

    def test_unmatched_falls_back(self):
        journal = _journal()
        entries = LogRetriever(journal).retrieve(2, "missing.service")
        self.assertEqual([item.message for item in entries], ["boot 8", "boot 9"])
        self.assertEqual(journal.step_backs()[-1], ("step_back", 2, (), 2))
        self.assertEqual(len(journal.step_backs()), 3)

    def test_unmatched_strict(self):
        journal = _journal()
        with self.assertRaises(NotFoundError):
            LogRetriever(journal, strict=True).retrieve(2, "missing.service")
        self.assertEqual(len(journal.step_backs()), 2)
        self.assertEqual(journal.matches, [])

    def test_empty_journal(self):
        self.assertEqual(LogRetriever(FakeJournal()).retrieve(10), [])

    def test_no_deadline(self):
        entries = LogRetriever(_journal(), deadline=None).retrieve(1)
        self.assertEqual(entries[0].message, "boot 9")

    def test_full(self):
        entries = LogRetriever(_journal()).retrieve(1, full=True)
        self.assertEqual(entries[0].fields["SYSLOG_IDENTIFIER"], "kernel")

    def test_hard_timeout(self):
        journal = _journal()
        journal.delay = 0.5
        retriever = LogRetriever(journal, deadline=0.05)
        with self.assertRaises(HardTimeoutError):
            retriever.retrieve(5)

    def test_timeout_is_timeout_error(self):
        journal = FakeJournal([entry("x")], delay=0.5)
        with self.assertRaises(TimeoutError):
            LogRetriever(journal, deadline=0.05).retrieve(1)

    def test_abandoned_stops_between_stages(self):
        journal = FakeJournal([entry("x", ident="kernel")], delay=0.2)
        with self.assertRaises(HardTimeoutError):
            LogRetriever(journal, deadline=0.05).retrieve(3, "missing")
        time.sleep(0.5)
        self.assertEqual(journal.step_backs(),
                         [("step_back", 3, (("SYSLOG_IDENTIFIER", "missing"),), 0)])
        self.assertEqual(journal.matches, [])

    def test_abandoned_stops_between_entries(self):
        journal = FakeJournal([entry(str(i)) for i in range(5)], delay=0.2)
        with self.assertRaises(HardTimeoutError):
            LogRetriever(journal, deadline=0.05).retrieve(5)
        time.sleep(0.5)
        self.assertEqual(len(journal.step_backs()), 1)
        self.assertNotIn(("next",), journal.calls)


if __name__ == "__main__":
    unittest.main()
