"""
Tool front end: named operations taking a parameter mapping, and returning JSON text contents.

Each tool answers with a list of strings, one JSON document per unit, log entry or job result, ready
to be wrapped in whatever envelope the calling protocol uses:

    tools = Tools(systemctl.connect(), journal.connect())
    for text in tools.call("list_log", {"unit": "sshd", "count": 20}):
        print(text)
"""

import json
import logging
from typing import Any, Callable, Dict, List, Mapping, NamedTuple, Optional

from .plumbing.common import NotFoundError, ValidationError
from .plumbing.journal import LogStore
from .plumbing.systemctl import ServiceManager
from .tasks import units
from .tasks.jobs import JobBridge, JobResult, Operation, valid_modes
from .tasks.logs import LogRetriever


LOG = logging.getLogger(__name__)

Params = Mapping[str, Any]


class Tool(NamedTuple):
    name: str
    description: str
    params: Dict[str, str]
    handler: Callable[[Params], List[str]]


def _dump(value: Any) -> str:
    return json.dumps(value, sort_keys=False, default=str)


def _str(params: Params, key: str, default: str = "") -> str:
    value = params.get(key, default)
    if value is None:
        return default
    if not isinstance(value, str):
        raise ValidationError("Parameter {!r} must be a string".format(key))
    return value


def _bool(params: Params, key: str) -> bool:
    value = params.get(key, False)
    if isinstance(value, str):
        return value.lower() in ("1", "true", "yes")
    return bool(value)


def _int(params: Params, key: str, default: int = 0) -> int:
    value = params.get(key, default)
    if value is None:
        return default
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value)
    raise ValidationError("Parameter {!r} must be an integer".format(key))


class Tools:
    """
    Registry of tools sharing one service manager connection and one journal cursor.

    The job bridge lives as long as this object, so a job issued by one call can be checked on by a
    later `check_restart_reload` call.
    """

    def __init__(self, manager: ServiceManager, store: LogStore,
                 bridge: Optional[JobBridge] = None, retriever: Optional[LogRetriever] = None):
        self.manager = manager
        self.store = store
        self.bridge = bridge or JobBridge(manager)
        self.retriever = retriever or LogRetriever(store)
        self.tools: Dict[str, Tool] = {}
        modes = ", ".join(valid_modes())
        self._add("list_systemd_units_by_state",
                  "List units in the given state as JSON, with name, state and description. Valid "
                  "states are: {}".format(", ".join(units.VALID_STATES)),
                  {"state": "State to list, 'all' for every loaded unit (default: running).",
                   "verbose": "Include all listing fields, only for debugging."},
                  self._list_by_state)
        self._add("list_systemd_units_by_name",
                  "List units matching name patterns, e.g. 'foo*', '*.timer', with their non-empty "
                  "properties as JSON.",
                  {"names": "List of unit names or glob patterns.",
                   "verbose": "Include all properties, only for debugging."},
                  self._list_by_name)
        self._add("list_unit_files", "List installed unit files and whether they're enabled.",
                  {}, self._list_unit_files)
        self._add("start_unit", "Start a unit, waiting briefly for the job to finish.",
                  {"name": "Exact name of the unit.",
                   "mode": "Job mode, one of: {} (default: replace).".format(modes),
                   "timeout": "Seconds the caller is prepared to wait, at most 60."},
                  self._start)
        self._add("restart_reload_unit",
                  "Reload a unit, or restart it if it can't reload or 'forcerestart' is set.",
                  {"name": "Exact name of the unit.",
                   "mode": "Job mode, one of: {} (default: replace).".format(modes),
                   "timeout": "Seconds the caller is prepared to wait, at most 60.",
                   "forcerestart": "Restart even if the unit supports reloading."},
                  self._restart_reload)
        self._add("stop_unit", "Stop a unit cleanly, or kill it.",
                  {"name": "Exact name of the unit.",
                   "mode": "Job mode, one of: {} (default: replace).".format(modes),
                   "timeout": "Seconds the caller is prepared to wait, at most 60.",
                   "kill": "Send SIGKILL instead, only if the unit won't stop after waiting."},
                  self._stop)
        self._add("check_restart_reload",
                  "Check on the last start, stop, restart or reload that was still in progress.",
                  {"timeout": "Seconds the caller is prepared to wait, at most 60."},
                  self._check)
        self._add("enable_disable_unit", "Enable or disable a unit file.",
                  {"file": "Unit name, or absolute path if outside the standard unit directories.",
                   "disable": "Disable instead of enable."},
                  self._enable_disable)
        self._add("list_log",
                  "Get the most recent journal entries, optionally only those of one unit.",
                  {"count": "Number of entries to return.",
                   "unit": "Exact name of the unit, all units if empty."},
                  self._list_log)

    def _add(self, name: str, description: str, params: Dict[str, str],
             handler: Callable[[Params], List[str]]) -> None:
        self.tools[name] = Tool(name, description, params, handler)

    def describe(self) -> List[Dict[str, Any]]:
        return [{"name": tool.name, "description": tool.description, "params": tool.params}
                for tool in self.tools.values()]

    def call(self, name: str, params: Optional[Params] = None) -> List[str]:
        """
        Run a tool by name.  Unknown tools raise `NotFoundError`, unknown parameters
        `ValidationError`.
        """
        try:
            tool = self.tools[name]
        except KeyError:
            raise NotFoundError("No tool named {!r}".format(name)) from None
        params = dict(params or {})
        extra = set(params) - set(tool.params)
        if extra:
            raise ValidationError("Unknown parameters for {}: {}"
                                  .format(name, ", ".join(sorted(extra))))
        LOG.debug("Calling %s with %r", name, params)
        return tool.handler(params)

    def _job(self, result: JobResult) -> List[str]:
        return [_dump(result.to_dict())]

    def _list_by_state(self, params: Params) -> List[str]:
        found = units.list_by_state(self.manager, _str(params, "state"), _bool(params, "verbose"))
        return [_dump(unit) for unit in found]

    def _list_by_name(self, params: Params) -> List[str]:
        names = params.get("names") or []
        if isinstance(names, str):
            names = [names]
        found = units.list_by_name(self.manager, list(names), _bool(params, "verbose"))
        return [_dump(props) for props in found]

    def _list_unit_files(self, params: Params) -> List[str]:
        return [_dump(unit) for unit in units.list_unit_files(self.manager)]

    def _start(self, params: Params) -> List[str]:
        return self._job(self.bridge.issue(_str(params, "name"), Operation.start,
                                           _str(params, "mode"), _int(params, "timeout")))

    def _restart_reload(self, params: Params) -> List[str]:
        operation = Operation.restart if _bool(params, "forcerestart") else Operation.reload
        return self._job(self.bridge.issue(_str(params, "name"), operation,
                                           _str(params, "mode"), _int(params, "timeout")))

    def _stop(self, params: Params) -> List[str]:
        return self._job(self.bridge.stop(_str(params, "name"), _str(params, "mode"),
                                          _int(params, "timeout"), _bool(params, "kill")))

    def _check(self, params: Params) -> List[str]:
        return self._job(self.bridge.check(_int(params, "timeout")))

    def _enable_disable(self, params: Params) -> List[str]:
        operation = Operation.disable if _bool(params, "disable") else Operation.enable
        return self._job(self.bridge.issue(_str(params, "file"), operation))

    def _list_log(self, params: Params) -> List[str]:
        entries = self.retriever.retrieve(_int(params, "count"), _str(params, "unit"))
        return [_dump(entry.to_dict()) for entry in entries]
