"""
Unit lifecycle operations, with a bounded wait for systemd to finish the resulting job.

systemd runs state changes as background jobs.  `JobBridge` queues a job, then waits a short, fixed
poll interval for it to complete.  If it doesn't, the caller gets an `in_progress` result rather than
an error, and can call `JobBridge.check` again later to collect the outcome:

    bridge = JobBridge(systemctl.connect())
    result = bridge.issue("nginx.service", Operation.restart)
    while result.status is JobStatus.in_progress:
        result = bridge.check()
"""

from concurrent.futures import Future, TimeoutError as FutureTimeoutError
from datetime import datetime, timezone
from enum import Enum
import logging
import signal
import threading
from typing import Callable, Dict, List, NamedTuple, Optional

from ..plumbing.common import JobInFlightError, ValidationError
from ..plumbing.systemctl import ServiceManager, UnitFileChange
from . import units


LOG = logging.getLogger(__name__)

MAX_TIMEOUT = 60
"""
Upper bound, in seconds, on the wait a caller may request.
"""

POLL_INTERVAL = 3
"""
Longest time, in seconds, a single call actually blocks waiting for a job.
"""

KILL_SIGNAL = signal.SIGKILL


class Operation(Enum):
    """
    Lifecycle operation to perform on a unit.
    """

    start = "start"
    stop = "stop"
    restart = "restart"
    reload = "reload"
    enable = "enable"
    disable = "disable"


class Mode(Enum):
    """
    How a new job interacts with jobs systemd already has queued.
    """

    replace = "replace"
    """
    Replace queued jobs that conflict with this one.
    """
    fail = "fail"
    """
    Fail if this would change an already queued job.
    """
    isolate = "isolate"
    """
    Start the unit and stop all units that aren't its dependencies.
    """
    ignore_dependencies = "ignore-dependencies"
    """
    Ignore all dependencies of the unit (not recommended).
    """
    ignore_requirements = "ignore-requirements"
    """
    Ignore only requirement dependencies of the unit (not recommended).
    """

    @classmethod
    def parse(cls, value: Optional[str]) -> "Mode":
        """
        Look up a mode by name, defaulting to `replace` if empty.
        """
        if not value:
            return cls.replace
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise ValidationError("Invalid mode {!r}, must be one of: {}"
                                  .format(value, ", ".join(valid_modes()))) from None


def valid_modes() -> List[str]:
    return [mode.value for mode in Mode]


class JobStatus(Enum):
    """
    Progress of a job, as seen by the caller.
    """

    pending = "pending"
    """
    No job has been issued, or its result was already collected.
    """
    in_progress = "in-progress"
    """
    The job was queued but hadn't finished by the end of the poll interval.
    """
    completed = "completed"
    """
    The job finished, and `message` holds the result reported by systemd.
    """
    failed = "failed"
    """
    The job's outcome couldn't be determined, and `error` holds the reason.
    """


class JobResult(NamedTuple):
    """
    Outcome of a lifecycle call.  Only `failed` results carry an `error`, and only results of
    queued jobs carry the `job` identifier given by the service manager.
    """

    status: JobStatus
    message: str = ""
    unit: str = ""
    error: Optional[BaseException] = None
    job: str = ""

    def __str__(self) -> str:
        if self.status is JobStatus.failed:
            return "Job for {} failed: {}".format(self.unit or "unit", self.error)
        return self.message

    def to_dict(self) -> Dict[str, str]:
        data = {"status": self.status.value, "message": str(self)}
        if self.unit:
            data["unit"] = self.unit
        if self.job:
            data["job"] = self.job
        return data


class WaitPolicy(NamedTuple):
    """
    Caller-requested wait, paired with the fixed interval the bridge really blocks for.
    """

    timeout: float = 0
    poll_interval: float = POLL_INTERVAL

    def validate(self, cap: float = MAX_TIMEOUT) -> "WaitPolicy":
        if self.timeout < 0:
            raise ValidationError("Timeout must not be negative")
        if self.timeout > cap:
            raise ValidationError("Not waiting longer than {}s, longer operations will run in the "
                                  "background and can be checked on separately".format(cap))
        return self


class UnitJob:
    """
    One queued state change, and the one-shot future systemd's result is delivered to.
    """

    def __init__(self, unit: str, operation: Operation, mode: Mode):
        self.unit = unit
        self.operation = operation
        self.mode = mode
        self.issued = datetime.now(timezone.utc)
        self.slot: "Future[str]" = Future()
        self.job_id: Optional[str] = None
        self.status = JobStatus.pending

    def __repr__(self):
        return "<{}: {} {} ({})>".format(self.__class__.__name__, self.operation.value,
                                         self.unit, self.status.value)

    @property
    def done(self) -> bool:
        return self.slot.done()

    def wait(self, interval: float) -> JobResult:
        """
        Wait up to `interval` seconds for the job's result, without raising if it's not there yet.
        """
        job = self.job_id or ""
        try:
            message = self.slot.result(timeout=interval)
        except FutureTimeoutError:
            self.status = JobStatus.in_progress
            message = "{} of {} still in progress.".format(self.operation.value.capitalize(),
                                                           self.unit)
            return JobResult(JobStatus.in_progress, message, self.unit, job=job)
        except Exception as ex:
            self.status = JobStatus.failed
            return JobResult(JobStatus.failed, unit=self.unit, error=ex, job=job)
        self.status = JobStatus.completed
        return JobResult(JobStatus.completed, message, self.unit, job=job)


def describe_changes(target: str, changes: List[UnitFileChange]) -> str:
    if not changes:
        return "nothing changed for {}".format(target)
    lines = []
    for change in changes:
        if change.destination:
            lines.append("{}: {} -> {}".format(change.type, change.filename, change.destination))
        else:
            lines.append("{}: {}".format(change.type, change.filename))
    return "\n".join(lines)


class JobBridge:
    """
    Turn systemd's fire-and-forget jobs into calls that finish within a short window.

    At most one queued job is tracked at a time: issuing another before systemd has finished the
    first one raises `JobInFlightError`.  All operations are serialised, as the underlying
    connection is not safe for concurrent use.
    """

    def __init__(self, manager: ServiceManager, poll_interval: float = POLL_INTERVAL,
                 max_timeout: float = MAX_TIMEOUT):
        self.manager = manager
        self.poll_interval = poll_interval
        self.max_timeout = max_timeout
        self.job: Optional[UnitJob] = None
        self._lock = threading.Lock()

    def _policy(self, timeout: Optional[float]) -> WaitPolicy:
        return WaitPolicy(timeout or 0, self.poll_interval).validate(self.max_timeout)

    def _queue(self, operation: Operation) -> Callable[[str, str, "Future[str]"], str]:
        return {Operation.start: self.manager.start_unit,
                Operation.stop: self.manager.stop_unit,
                Operation.restart: self.manager.restart_unit,
                Operation.reload: self.manager.reload_or_restart_unit}[operation]

    def issue(self, unit: str, operation: Operation, mode: Optional[str] = None,
              timeout: Optional[float] = None) -> JobResult:
        """
        Perform a lifecycle operation on a unit, waiting briefly for the result.

        Parameters are validated before anything is sent to the service manager.  Enabling and
        disabling don't queue jobs, and complete straight away with a summary of file changes.
        """
        if not unit:
            raise ValidationError("No unit given")
        try:
            operation = Operation(operation)
        except ValueError:
            raise ValidationError("Invalid operation {!r}".format(operation)) from None
        mode_ = Mode.parse(mode)
        policy = self._policy(timeout)
        with self._lock:
            if operation in (Operation.enable, Operation.disable):
                return self._toggle(unit, operation)
            if self.job and not self.job.done:
                raise JobInFlightError("Job {!r} hasn't finished yet, check on it before issuing "
                                       "another".format(self.job))
            if self.job:
                LOG.warning("Discarding uncollected result of %r", self.job)
            job = UnitJob(unit, operation, mode_)
            LOG.info("Issuing %s of %r (mode: %s)", operation.value, unit, mode_.value)
            job.job_id = self._queue(operation)(unit, mode_.value, job.slot)
            self.job = job
            return self._wait(policy)

    def _toggle(self, unit: str, operation: Operation) -> JobResult:
        toggle = units.enable if operation is Operation.enable else units.disable
        result = toggle(self.manager, unit)
        LOG.info("%s %r: %s", operation.value.capitalize(), unit, result.state.name)
        return JobResult(JobStatus.completed, describe_changes(unit, result.value), unit)

    def _wait(self, policy: WaitPolicy) -> JobResult:
        job = self.job
        if not job:
            return JobResult(JobStatus.pending, "No job pending.")
        # The requested timeout only bounds validation, the real wait is always the poll interval.
        result = job.wait(policy.poll_interval)
        LOG.debug("Waited on %r: %s", job, result.status.value)
        if result.status is not JobStatus.in_progress:
            self.job = None
        return result

    def check(self, timeout: Optional[float] = None) -> JobResult:
        """
        Collect the result of the last queued job, waiting briefly if it's still running.
        """
        policy = self._policy(timeout)
        with self._lock:
            return self._wait(policy)

    def stop(self, unit: str, mode: Optional[str] = None, timeout: Optional[float] = None,
             kill: bool = False) -> JobResult:
        """
        Stop a unit cleanly, or with `kill`, send it `SIGKILL` and return immediately.
        """
        if not kill:
            return self.issue(unit, Operation.stop, mode, timeout)
        if not unit:
            raise ValidationError("No unit given")
        Mode.parse(mode)
        self._policy(timeout)
        with self._lock:
            LOG.info("Killing %r with signal %d", unit, KILL_SIGNAL)
            self.manager.kill_unit(unit, int(KILL_SIGNAL))
        return JobResult(JobStatus.completed, "Sent signal {} to {}.".format(int(KILL_SIGNAL), unit),
                         unit)
