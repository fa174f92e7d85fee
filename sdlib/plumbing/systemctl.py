"""
Service manager access, through systemd's `systemctl` command.

Units are reported as `UnitStatus` records, and queued state changes resolve a caller-supplied
`concurrent.futures.Future` with the job result once systemd has finished the job.
"""

from abc import ABC, abstractmethod
from concurrent.futures import Future
from enum import Enum
import logging
import os
import re
import threading
import time
from typing import Dict, Iterable, List, NamedTuple, Optional, Sequence

from .common import command, transport, TransportError


LOG = logging.getLogger(__name__)

SYSTEMCTL = os.getenv("SDLIB_SYSTEMCTL", "/usr/bin/systemctl")

WATCH_INTERVAL = 0.25
"""
Delay between checks of a unit's pending job, when waiting for it to finish.
"""

_SYMLINK = re.compile(r"^Created symlink (?P<filename>.+?) → (?P<destination>.+?)\.?$")
_REMOVED = re.compile(r"^Removed [\"']?(?P<filename>.+?)[\"']?\.?$")

SETTLED_STATES = {"start": ("active", "reloading"),
                  "restart": ("active", "reloading"),
                  "reload-or-restart": ("active", "reloading"),
                  "stop": ("inactive", "failed")}
"""
Active states a unit may be left in once a job of each kind has succeeded.
"""


class Scope(Enum):
    """
    Which service manager instance to talk to.
    """

    system = "--system"
    """
    The host-wide service manager (PID 1).
    """
    user = "--user"
    """
    The calling user's own service manager.
    """


class UnitStatus(NamedTuple):
    """
    Summary of a loaded unit, as shown in unit listings.
    """

    name: str
    load_state: str
    active_state: str
    sub_state: str
    description: str


class UnitFile(NamedTuple):
    """
    Installed unit file, and whether it's enabled.
    """

    name: str
    state: str


class UnitFileChange(NamedTuple):
    """
    Symlink created or removed when enabling or disabling a unit file.
    """

    type: str
    filename: str
    destination: str


class ServiceManager(ABC):
    """
    Capabilities of a service manager connection.

    Connections are not safe for concurrent use, and should be owned by one caller at a time.

    Queued state changes (start, stop, restart, reload) return a job identifier straight away, and
    later resolve the given `slot` future exactly once: with the job result word (`done`, `failed`,
    `canceled`, `timeout`, `dependency` or `skipped`), or with an exception if the job couldn't be
    followed to completion.
    """

    @abstractmethod
    def list_units(self, states: Optional[Sequence[str]] = None) -> List[UnitStatus]:
        """
        Enumerate loaded units, optionally only those in any of the given states.
        """

    @abstractmethod
    def list_units_by_patterns(self, patterns: Sequence[str],
                               states: Sequence[str] = ()) -> List[UnitStatus]:
        """
        Enumerate units with names matching any of the given glob patterns.
        """

    @abstractmethod
    def get_properties(self, name: str) -> Dict[str, str]:
        """
        Look up all properties of a unit.
        """

    @abstractmethod
    def start_unit(self, name: str, mode: str, slot: "Future[str]") -> str: ...

    @abstractmethod
    def stop_unit(self, name: str, mode: str, slot: "Future[str]") -> str: ...

    @abstractmethod
    def restart_unit(self, name: str, mode: str, slot: "Future[str]") -> str: ...

    @abstractmethod
    def reload_or_restart_unit(self, name: str, mode: str, slot: "Future[str]") -> str: ...

    @abstractmethod
    def kill_unit(self, name: str, signal: int) -> None:
        """
        Send a signal to all processes of a unit, without queueing a job.
        """

    @abstractmethod
    def enable_unit_files(self, files: Sequence[str]) -> List[UnitFileChange]: ...

    @abstractmethod
    def disable_unit_files(self, files: Sequence[str]) -> List[UnitFileChange]: ...

    @abstractmethod
    def list_unit_files(self) -> List[UnitFile]: ...

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


def parse_units(raw: str) -> List[UnitStatus]:
    """
    Read the rows of a plain, legend-free `list-units` table.
    """
    units = []
    for line in raw.splitlines():
        # Failed units are prefixed with a bullet even in plain output.
        parts = line.lstrip("●* ").split(None, 4)
        if len(parts) < 4:
            continue
        if len(parts) == 4:
            parts.append("")
        units.append(UnitStatus(*parts))
    return units


def parse_unit_files(raw: str) -> List[UnitFile]:
    """
    Read the rows of a legend-free `list-unit-files` table.
    """
    files = []
    for line in raw.splitlines():
        parts = line.split()
        if len(parts) >= 2:
            files.append(UnitFile(parts[0], parts[1]))
    return files


def parse_properties(raw: str) -> Dict[str, str]:
    """
    Read the `Key=Value` lines produced by `systemctl show`.
    """
    props = {}
    for line in raw.splitlines():
        key, sep, value = line.partition("=")
        if sep:
            props[key] = value
    return props


def job_result(verb: str, props: Dict[str, str]) -> str:
    """
    Work out the result word of a finished job from the state it left its unit in.

    The unit's own `Result` describes its last run rather than the job, so it's only used to tell
    a timeout apart from other failures.
    """
    if props.get("ActiveState") in SETTLED_STATES[verb]:
        return "done"
    if props.get("Result") == "timeout":
        return "timeout"
    return "failed"


def parse_changes(raw: str) -> List[UnitFileChange]:
    """
    Read the symlink changes reported by `systemctl enable` and `systemctl disable`.
    """
    changes = []
    for line in raw.splitlines():
        line = line.strip()
        match = _SYMLINK.match(line)
        if match:
            changes.append(UnitFileChange("symlink", match.group("filename"),
                                          match.group("destination")))
            continue
        match = _REMOVED.match(line)
        if match:
            changes.append(UnitFileChange("unlink", match.group("filename"), ""))
    return changes


class Systemctl(ServiceManager):
    """
    Service manager connection backed by the `systemctl` command.
    """

    def __init__(self, scope: Scope = Scope.system, binary: str = SYSTEMCTL,
                 watch_interval: float = WATCH_INTERVAL):
        self.scope = scope
        self.binary = binary
        self.watch_interval = watch_interval

    def __repr__(self):
        return "<{}: {}>".format(self.__class__.__name__, self.scope.name)

    def _run(self, *args: str, errors: bool = False) -> str:
        proc = command([self.binary, self.scope.value, "--no-pager", *args],
                       output=True, errors=errors)
        return proc.stdout.decode("utf-8", "replace")

    @transport
    def list_units(self, states: Optional[Sequence[str]] = None) -> List[UnitStatus]:
        args = ["list-units", "--all", "--plain", "--no-legend"]
        if states:
            args.append("--state={}".format(",".join(states)))
        return parse_units(self._run(*args))

    @transport
    def list_units_by_patterns(self, patterns: Sequence[str],
                               states: Sequence[str] = ()) -> List[UnitStatus]:
        args = ["list-units", "--all", "--plain", "--no-legend"]
        if states:
            args.append("--state={}".format(",".join(states)))
        args.append("--")
        args.extend(patterns)
        return parse_units(self._run(*args))

    @transport
    def get_properties(self, name: str) -> Dict[str, str]:
        return parse_properties(self._run("show", "--", name))

    def _get_property(self, name: str, prop: str) -> str:
        return self._run("show", "--property={}".format(prop), "--value", "--", name).strip()

    @transport
    def _enqueue(self, verb: str, name: str, mode: str, slot: "Future[str]") -> str:
        self._run("--no-block", "--job-mode={}".format(mode), verb, "--", name)
        job = self._get_property(name, "Job")
        LOG.debug("Queued %s of %r as job %r", verb, name, job or None)
        watcher = threading.Thread(target=self._watch, args=(verb, name, slot),
                                   name="sdlib-job-{}".format(name), daemon=True)
        watcher.start()
        return job

    def _watch(self, verb: str, name: str, slot: "Future[str]") -> None:
        # Resolve the slot once the unit no longer has a pending job.
        try:
            while self._get_property(name, "Job"):
                time.sleep(self.watch_interval)
            props = parse_properties(self._run("show", "--property=ActiveState",
                                               "--property=Result", "--", name))
        except Exception as ex:
            slot.set_exception(TransportError("Lost track of job for {}: {}".format(name, ex)))
        else:
            result = job_result(verb, props)
            LOG.debug("Job %s of %r finished: %s (%r)", verb, name, result, props)
            slot.set_result(result)

    def start_unit(self, name: str, mode: str, slot: "Future[str]") -> str:
        return self._enqueue("start", name, mode, slot)

    def stop_unit(self, name: str, mode: str, slot: "Future[str]") -> str:
        return self._enqueue("stop", name, mode, slot)

    def restart_unit(self, name: str, mode: str, slot: "Future[str]") -> str:
        return self._enqueue("restart", name, mode, slot)

    def reload_or_restart_unit(self, name: str, mode: str, slot: "Future[str]") -> str:
        return self._enqueue("reload-or-restart", name, mode, slot)

    @transport
    def kill_unit(self, name: str, signal: int) -> None:
        self._run("kill", "--signal={}".format(signal), "--", name)

    @transport
    def enable_unit_files(self, files: Sequence[str]) -> List[UnitFileChange]:
        return parse_changes(self._run("enable", "--", *files, errors=True))

    @transport
    def disable_unit_files(self, files: Sequence[str]) -> List[UnitFileChange]:
        return parse_changes(self._run("disable", "--", *files, errors=True))

    @transport
    def list_unit_files(self) -> List[UnitFile]:
        return parse_unit_files(self._run("list-unit-files", "--plain", "--no-legend"))


def connect(scope: Scope = Scope.system) -> Systemctl:
    """
    Open a connection to the system or user service manager.
    """
    return Systemctl(scope)


def get_states(units: Iterable[UnitStatus]) -> List[str]:
    """
    Collect the distinct load, active and sub states across the given units.
    """
    states = set()
    for unit in units:
        states.update((unit.load_state, unit.active_state, unit.sub_state))
    states.discard("")
    return sorted(states)
