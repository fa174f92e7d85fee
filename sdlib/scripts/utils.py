"""
Helpers for converting methods into scripts, and filling in arguments with client objects.
"""

from functools import wraps
from inspect import cleandoc, signature
import logging
import sys
from typing import Any, Callable, Dict, List, Optional, Union

from docopt import docopt

from ..plumbing import journal, systemctl
from ..plumbing.common import SdlibError
from ..plumbing.journal import LogStore
from ..plumbing.systemctl import Scope, ServiceManager
from ..tasks.jobs import JobBridge
from ..tasks.logs import LogRetriever
from ..tools import Tools


DocOptArgs = Dict[str, Union[bool, str, List[str]]]


ENTRYPOINTS: List[str] = []


class Clients:
    """
    Lazily connected service manager and journal, shared by all arguments of one script run.
    """

    def __init__(self, scope: Scope = Scope.system):
        self.scope = scope
        self._manager: Optional[ServiceManager] = None
        self._store: Optional[LogStore] = None

    @property
    def manager(self) -> ServiceManager:
        if not self._manager:
            self._manager = systemctl.connect(self.scope)
        return self._manager

    @property
    def store(self) -> LogStore:
        if not self._store:
            self._store = journal.connect(self.scope == Scope.user)
        return self._store

    def resolve(self, cls: Any) -> Any:
        """
        Build the object to pass for a parameter annotated with `cls`.
        """
        if cls is ServiceManager:
            return self.manager
        elif cls is LogStore:
            return self.store
        elif cls is JobBridge:
            return JobBridge(self.manager)
        elif cls is LogRetriever:
            return LogRetriever(self.store)
        elif cls is Tools:
            return Tools(self.manager, self.store)
        raise KeyError(cls)

    def close(self) -> None:
        for client in (self._manager, self._store):
            if client:
                client.close()


def entrypoint(fn: Callable[..., Any]) -> Callable[..., Any]:
    """
    Decorator to make an entrypoint out of a generic function.

    This uses `docopt` to parse arguments according to the method docstring, and will be formatted
    with `{script}` set to the script name.  At minimum, it should contain `Usage: {script}`.

    Functions may optionally accept arguments, but they must be annotated with a recognised type in
    order to be filled in:

    - `DocOptArgs` (a `dict` of input parameters parsed from the usage line)
    - `ServiceManager` or `LogStore` (clients for the system instance, or the user's own with
      `--user`)
    - `JobBridge`, `LogRetriever` or `Tools` (built on top of those clients)

    An example function:

        @entrypoint
        def restart(opts: DocOptArgs, bridge: JobBridge):
            \"""
            Restart a unit.

            Usage: {script} UNIT
            \"""
    """
    label = "sdlib-{}-{}".format(fn.__module__.rsplit(".", 1)[-1],
                                 fn.__qualname__).replace("_", "-")

    @wraps(fn)
    def wrap(opts: Optional[DocOptArgs] = None, clients: Optional[Clients] = None):
        extra: Dict[str, Any] = {}
        script = "{} [--debug] [--user]".format(label)
        if opts is None:
            doc = cleandoc(fn.__doc__.format(script=script))
            opts = docopt(doc)
        if opts.pop("--debug", False):
            logging.basicConfig(level=logging.DEBUG)
        user = opts.pop("--user", False)
        if clients is None:
            clients = Clients(Scope.user if user else Scope.system)
        # Detect resolvable-typed arguments and fill in their values.
        for param in signature(fn).parameters.values():
            if param.annotation is DocOptArgs:
                extra[param.name] = opts
                continue
            try:
                extra[param.name] = clients.resolve(param.annotation)
            except KeyError:
                raise RuntimeError("Bad parameter {!r} type {!r}"
                                   .format(param.name, param.annotation)) from None
        try:
            return fn(**extra)
        except SdlibError as ex:
            error(str(ex), exit=1)
        finally:
            clients.close()
    wrap.__doc__ = wrap.__doc__.format(script=label)
    # Create a console script line for setup.
    target = "{}:{}".format(fn.__module__, fn.__qualname__)
    ENTRYPOINTS.append("{}={}".format(label, target))
    return wrap


def confirm(msg: str = "Are you sure?"):
    """
    Prompt for confirmation before destructive actions.
    """
    try:
        yn = input("\033[96m{} [yN]\033[0m ".format(msg))
    except (KeyboardInterrupt, EOFError):
        print()
        yn = "n"
    if yn.lower() not in ("y", "yes"):
        error("Aborted!", exit=1)


def error(msg: Optional[str] = None, *, exit: Optional[int] = None, colour: Optional[str] = None):
    """
    Print an error message and/or exit.
    """
    if msg:
        colour = colour or ("1" if exit else "3")
        print("\033[9{}m{}\033[0m".format(colour, msg), file=sys.stderr)
    if exit is not None:
        sys.exit(exit)
