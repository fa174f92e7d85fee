"""
Structured log access, through systemd's `journalctl` command.

A `LogStore` behaves like a journal cursor: seek to the tail, step back over the most recent
entries that match the current filters, then walk forward to the tail reading each entry.
"""

from abc import ABC, abstractmethod
import json
import logging
import os
from typing import Any, Dict, List, Optional, Tuple

from .common import command, transport


LOG = logging.getLogger(__name__)

JOURNALCTL = os.getenv("SDLIB_JOURNALCTL", "/usr/bin/journalctl")

CALL_TIMEOUT = 5.0
"""
Longest time a single `journalctl` invocation may run before being killed.
"""

RawEntry = Dict[str, str]


class LogStore(ABC):
    """
    Capabilities of a journal cursor.

    Matches on distinct fields narrow the cursor conjunctively.  A cursor is not safe for concurrent
    use, and should be owned by one caller at a time.
    """

    @abstractmethod
    def seek_tail(self) -> None:
        """
        Move the cursor past the most recent entry.
        """

    @abstractmethod
    def step_back(self, count: int) -> int:
        """
        Move the cursor back over at most `count` matching entries, returning how many were
        stepped over.  The cursor then rests on the oldest of those entries.
        """

    @abstractmethod
    def add_match(self, field: str, value: str) -> None: ...

    @abstractmethod
    def clear_matches(self) -> None: ...

    @abstractmethod
    def next(self) -> bool:
        """
        Advance the cursor by one entry, returning `False` once the tail has been reached.
        """

    @abstractmethod
    def current_entry(self) -> RawEntry:
        """
        Read all fields of the entry under the cursor.
        """

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


def normalise(value: Any) -> str:
    """
    Convert a journal JSON field value to a string.

    Repeated fields are given as lists (the first value wins), and fields with unprintable content
    as arrays of byte values.
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        if value and all(isinstance(item, int) for item in value):
            try:
                return bytes(value).decode("utf-8", "replace")
            except ValueError:
                return ""
        return normalise(value[0]) if value else ""
    return str(value)


def parse_entries(raw: str) -> List[RawEntry]:
    """
    Read journal entries from `journalctl -o json` output, one JSON object per line.
    """
    entries = []
    for line in raw.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            data = json.loads(line)
        except ValueError:
            LOG.warning("Skipping unreadable journal line: %r", line[:80])
            continue
        if isinstance(data, dict):
            entries.append({key: normalise(value) for key, value in data.items()})
    return entries


class Journalctl(LogStore):
    """
    Journal cursor backed by the `journalctl` command.

    Stepping back fetches the window of matching entries in one call, which the cursor then walks
    forward through.
    """

    def __init__(self, user: bool = False, binary: str = JOURNALCTL,
                 timeout: Optional[float] = CALL_TIMEOUT):
        self.user = user
        self.binary = binary
        self.timeout = timeout
        self._matches: List[Tuple[str, str]] = []
        self._window: List[RawEntry] = []
        self._pos = 0

    def __repr__(self):
        return "<{}: {}>".format(self.__class__.__name__, "user" if self.user else "system")

    def seek_tail(self) -> None:
        self._window = []
        self._pos = 0

    @transport
    def step_back(self, count: int) -> int:
        self._window = []
        self._pos = 0
        if count <= 0:
            return 0
        args = [self.binary, "--no-pager", "--output=json", "--lines={}".format(count)]
        if self.user:
            args.append("--user")
        args.extend("{}={}".format(field, value) for field, value in self._matches)
        proc = command(args, output=True, timeout=self.timeout)
        self._window = parse_entries(proc.stdout.decode("utf-8", "replace"))[-count:]
        return len(self._window)

    def add_match(self, field: str, value: str) -> None:
        self._matches.append((field, value))

    def clear_matches(self) -> None:
        self._matches = []

    def next(self) -> bool:
        if self._pos < len(self._window):
            self._pos += 1
        return self._pos < len(self._window)

    def current_entry(self) -> RawEntry:
        try:
            return self._window[self._pos]
        except IndexError:
            raise LookupError("Cursor is not positioned on an entry") from None


def connect(user: bool = False) -> Journalctl:
    """
    Open a cursor over the system journal, or the calling user's journal.
    """
    return Journalctl(user)
