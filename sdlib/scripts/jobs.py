"""
Scripts to start, stop, restart and reload units.

Each script keeps checking on the job until systemd reports a result, or until `--timeout` seconds
have passed, after which the job carries on in the background.
"""

import time

from .utils import DocOptArgs, entrypoint, error
from ..tasks.jobs import JobBridge, JobResult, JobStatus, Operation


def _timeout(opts: DocOptArgs) -> int:
    value = opts["--timeout"] or "0"
    if not value.isdigit():
        error("Timeout must be a whole number of seconds", exit=2)
    return int(value)


def _follow(bridge: JobBridge, result: JobResult, timeout: int) -> None:
    end = time.monotonic() + timeout
    while result.status is JobStatus.in_progress and time.monotonic() < end:
        print(result)
        result = bridge.check(timeout)
    print(result)
    if result.status is JobStatus.failed:
        error(exit=1)


def _run(opts: DocOptArgs, bridge: JobBridge, operation: Operation) -> None:
    timeout = _timeout(opts)
    result = bridge.issue(opts["UNIT"], operation, opts["--mode"], timeout)
    _follow(bridge, result, timeout)


@entrypoint
def start(opts: DocOptArgs, bridge: JobBridge):
    """
    Start a unit.

    Usage: {script} [--mode=MODE] [--timeout=SECS] UNIT
    """
    _run(opts, bridge, Operation.start)


@entrypoint
def restart(opts: DocOptArgs, bridge: JobBridge):
    """
    Restart a unit.

    Usage: {script} [--mode=MODE] [--timeout=SECS] UNIT
    """
    _run(opts, bridge, Operation.restart)


@entrypoint
def reload(opts: DocOptArgs, bridge: JobBridge):
    """
    Reload a unit, or restart it if it doesn't support reloading.

    Usage: {script} [--mode=MODE] [--timeout=SECS] UNIT
    """
    _run(opts, bridge, Operation.reload)


@entrypoint
def stop(opts: DocOptArgs, bridge: JobBridge):
    """
    Stop a unit, or with --kill, send SIGKILL to its processes without waiting.

    Usage: {script} [--mode=MODE] [--timeout=SECS] [--kill] UNIT
    """
    timeout = _timeout(opts)
    result = bridge.stop(opts["UNIT"], opts["--mode"], timeout, bool(opts["--kill"]))
    _follow(bridge, result, timeout)
