"""
Shared helper methods, base classes and exceptions.
"""

from enum import Enum
from functools import wraps
import logging
import subprocess
from typing import Any, Callable, Generator, Generic, Iterable, List, Optional, TypeVar


LOG = logging.getLogger(__name__)

T = TypeVar("T")

Collect = Generator["Result[Any]", None, T]
"""
Generic type for the return value of functions using `Result.collect`.
"""


class SdlibError(Exception):
    """
    Base class of all errors raised by this library.
    """


class ValidationError(SdlibError, ValueError):
    """
    Parameters were rejected before any call to the service manager or journal was made.
    """


class JobInFlightError(ValidationError):
    """
    A queued job was requested whilst a previous job's result is still outstanding.
    """


class TransportError(SdlibError):
    """
    The underlying service manager or journal call failed.  The original error is chained.
    """


class NotFoundError(SdlibError, LookupError):
    """
    No units or log entries matched a name or pattern query.
    """


class HardTimeoutError(SdlibError, TimeoutError):
    """
    An operation with a hard deadline didn't finish in time, and its result was discarded.
    """


class State(Enum):
    """
    Whether a unit of work changed anything.
    """

    unchanged = 0
    success = 1

    def __bool__(self):
        return bool(self.value)


class Result(Generic[T]):
    """
    State and accompanying value from a unit of work, e.g. the symlinks made by enabling a unit:

        def enable(manager, file):
            changes = manager.enable_unit_files([file])
            return Result(State.success if changes else State.unchanged, changes)

    A result is `False` if no changes were made.  For a task made of several results, see
    `Result.collect`.
    """

    @classmethod
    def collect(cls, fn: Callable[..., Collect[T]]) -> Callable[..., "Result[T]"]:
        """
        Decorator: build a `Result` from a generator of sub-task results:

            @Result.collect
            def task() -> Collect[List[str]]:
                first = yield from plumb_a()
                yield plumb_b()
                return first.value

        The new result holds the collected sub-task results as its `parts`, takes the generator's
        return value as its `value`, and reports `success` if any part did.
        """
        @wraps(fn)
        def inner(*args: Any, **kwargs: Any) -> Result[T]:
            value = None
            parts: List[Result[Any]] = []
            gen = fn(*args, **kwargs)
            try:
                while True:
                    parts.append(next(gen))
            except StopIteration as ex:
                value = ex.value
            return cls(None, value, parts)
        return inner

    def __init__(self, state: Optional[State] = None, value: Optional[T] = None,
                 parts: Iterable["Result[Any]"] = ()):
        self._state = state
        self.value = value
        self.parts = tuple(parts)

    @property
    def state(self) -> State:
        if self._state is not None:
            return self._state
        return State.success if any(self.parts) else State.unchanged

    def __bool__(self) -> bool:
        return bool(self.state)

    def __iter__(self) -> Generator["Result[T]", None, "Result[T]"]:
        # Lets `yield from` hand the result to `Result.collect` and take it back as a value.
        yield self
        return self

    def __repr__(self) -> str:
        params = [self.state.name, repr(self.value)]
        if self.parts:
            params.append("<{} parts>".format(len(self.parts)))
        return "{}({})".format(self.__class__.__name__, ", ".join(params))


def command(args: List[str], output: bool = False, errors: bool = False,
            timeout: Optional[float] = None) -> "subprocess.CompletedProcess[bytes]":
    """
    Create a subprocess to execute an external command.

    With `output`, standard output is captured, and with `errors` standard error is merged into it.
    A non-zero exit status raises `subprocess.CalledProcessError`, and exceeding `timeout` raises
    `subprocess.TimeoutExpired`.
    """
    LOG.debug("Exec: %r", args)
    stdout = subprocess.PIPE if output or errors else None
    stderr = subprocess.STDOUT if errors else None
    return subprocess.run(args, stdout=stdout, stderr=stderr, timeout=timeout, check=True)


def transport(fn: Callable[..., T]) -> Callable[..., T]:
    """
    Decorator: re-raise failures of external commands as `TransportError`:

        @transport
        def get_units(): ...
    """
    @wraps(fn)
    def inner(*args: Any, **kwargs: Any) -> T:
        try:
            return fn(*args, **kwargs)
        except subprocess.CalledProcessError as ex:
            detail = ex.output.decode("utf-8", "replace").strip() if ex.output else ""
            raise TransportError("{}: exit status {}{}".format(
                ex.cmd[0], ex.returncode, ": {}".format(detail) if detail else "")) from ex
        except subprocess.TimeoutExpired as ex:
            raise TransportError("{}: timed out after {}s".format(ex.cmd[0], ex.timeout)) from ex
        except OSError as ex:
            raise TransportError(str(ex)) from ex
    return inner
