"""
Retrieval of the most recent journal entries, optionally for a single unit.

A unit name can refer to a syslog identifier or to a user session unit, so each is tried in turn
until one finds some history.  If none do, the unfiltered tail of the journal is returned instead,
unless the retriever was made `strict`.

The whole retrieval runs under a hard deadline, and is abandoned with `HardTimeoutError` if the
journal doesn't answer in time.
"""

from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from datetime import datetime, timedelta, timezone
import logging
import threading
from typing import Any, Dict, List, NamedTuple, Optional, Sequence

from ..plumbing.common import HardTimeoutError, NotFoundError, ValidationError
from ..plumbing.journal import LogStore, RawEntry


LOG = logging.getLogger(__name__)

DEADLINE = 1.0
"""
Time, in seconds, a whole retrieval may take before it's abandoned.
"""

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class LogQuery(NamedTuple):
    """
    Request for the last `count` entries, of a single unit if `unit` is set.
    """

    count: int
    unit: str = ""

    def validate(self) -> "LogQuery":
        if isinstance(self.count, bool) or not isinstance(self.count, int) or self.count < 0:
            raise ValidationError("Count must be a non-negative integer, not {!r}"
                                  .format(self.count))
        return self


class LogEntry(NamedTuple):
    """
    Journal entry reduced to the fields callers care about.
    """

    time: datetime
    unit: str
    host: str
    message: str
    fields: Optional[Dict[str, str]] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"time": self.time.isoformat(), "unit": self.unit,
                                "host": self.host, "message": self.message}
        if self.fields is not None:
            data["full"] = self.fields
        return data


class FilterStrategy(NamedTuple):
    """
    One way of matching a unit name against journal fields.
    """

    name: str
    field: str


STRATEGIES = (FilterStrategy("identifier", "SYSLOG_IDENTIFIER"),
              FilterStrategy("user-unit", "_SYSTEMD_USER_UNIT"))
"""
Fields tried in order when looking up a unit's entries.
"""


def _timestamp(raw: RawEntry) -> datetime:
    try:
        return EPOCH + timedelta(microseconds=int(raw.get("__REALTIME_TIMESTAMP", "")))
    except (TypeError, ValueError, OverflowError):
        return EPOCH


def unit_name(raw: RawEntry) -> str:
    """
    Name the unit an entry came from: its syslog identifier, else its system and user units.
    """
    ident = raw.get("SYSLOG_IDENTIFIER") or ""
    if ident:
        return ident
    return "{}:{}".format(raw.get("_SYSTEMD_UNIT") or "", raw.get("_SYSTEMD_USER_UNIT") or "")


def project(raw: RawEntry, full: bool = False) -> LogEntry:
    """
    Convert a raw journal entry into a `LogEntry`.  Missing fields become empty strings.
    """
    return LogEntry(time=_timestamp(raw),
                    unit=unit_name(raw),
                    host=raw.get("_HOSTNAME") or "",
                    message=raw.get("MESSAGE") or "",
                    fields=dict(raw) if full else None)


class Cancelled(Exception):
    """
    Raised inside an abandoned retrieval to stop it at the next opportunity.
    """


class LogRetriever:
    """
    Fetch recent entries from a journal cursor, with fallback between unit name fields.

    The cursor is used by one retrieval at a time.  A retrieval that overruns its deadline keeps
    hold of the cursor until its current journal call returns, and then stops.
    """

    def __init__(self, store: LogStore, deadline: Optional[float] = DEADLINE,
                 strategies: Sequence[FilterStrategy] = STRATEGIES, strict: bool = False):
        self.store = store
        self.deadline = deadline
        self.strategies = tuple(strategies)
        self.strict = strict
        self._lock = threading.Lock()

    def retrieve(self, count: int, unit: Optional[str] = None, full: bool = False) -> List[LogEntry]:
        """
        Return up to `count` of the most recent entries, oldest first.
        """
        query = LogQuery(count, unit or "").validate()
        if not query.count:
            return []
        if self.deadline is None:
            return self._locked(query, full, threading.Event())
        cancel = threading.Event()
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="sdlib-logs")
        try:
            future = pool.submit(self._locked, query, full, cancel)
            try:
                return future.result(timeout=self.deadline)
            except FutureTimeoutError:
                cancel.set()
                LOG.warning("Abandoned journal retrieval for %r after %ss",
                            query.unit or "all units", self.deadline)
                raise HardTimeoutError("Timed out reading the journal after {}s"
                                       .format(self.deadline)) from None
        finally:
            pool.shutdown(wait=False)

    def _locked(self, query: LogQuery, full: bool, cancel: threading.Event) -> List[LogEntry]:
        with self._lock:
            if cancel.is_set():
                raise Cancelled
            return self._retrieve(query, full, cancel)

    def _seek(self, count: int) -> int:
        self.store.seek_tail()
        return self.store.step_back(count)

    def _position(self, query: LogQuery, cancel: threading.Event) -> int:
        """
        Place the cursor at the start of the window to read, returning its size.
        """
        self.store.clear_matches()
        if not query.unit:
            return self._seek(query.count)
        for strategy in self.strategies:
            if cancel.is_set():
                raise Cancelled
            self.store.clear_matches()
            self.store.add_match(strategy.field, query.unit)
            stepped = self._seek(query.count)
            LOG.debug("Matching %s=%r stepped back %d", strategy.field, query.unit, stepped)
            if stepped:
                return stepped
        self.store.clear_matches()
        if self.strict:
            raise NotFoundError("No journal entries for {!r}".format(query.unit))
        LOG.debug("No entries for %r, falling back to all units", query.unit)
        return self._seek(query.count)

    def _retrieve(self, query: LogQuery, full: bool, cancel: threading.Event) -> List[LogEntry]:
        try:
            if not self._position(query, cancel):
                return []
            entries = []
            while True:
                if cancel.is_set():
                    raise Cancelled
                entries.append(project(self.store.current_entry(), full))
                if not self.store.next():
                    break
            return entries
        finally:
            self.store.clear_matches()
