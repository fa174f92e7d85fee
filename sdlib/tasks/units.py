"""
Unit listings and unit file changes.

Listings come in a light form, holding just enough to identify a unit and its state, and a
verbose form with everything the service manager reports.
"""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from ..plumbing import systemctl
from ..plumbing.common import Collect, NotFoundError, Result, State, ValidationError
from ..plumbing.systemctl import ServiceManager, UnitFileChange


LOG = logging.getLogger(__name__)

VALID_STATES = ("active", "dead", "inactive", "loaded", "mounted", "not-found", "plugged",
                "running", "all")
"""
States accepted by `list_by_state`, where `all` lists every loaded unit.
"""

DEFAULT_STATE = "running"

LIGHT_PROPERTIES = ("Id", "Description",
                    "LoadState", "FragmentPath", "UnitFileState", "UnitFilePreset",
                    "ActiveState", "SubState", "ActiveEnterTimestamp",
                    "InvocationID", "MainPID", "ExecMainPID", "ExecMainStatus",
                    "TasksCurrent", "TasksMax", "CPUUsageNSec",
                    "ControlGroup",
                    "ExecStartPre", "ExecStart",
                    "Restart", "MemoryCurrent")
"""
Properties kept in the light view of a unit, in output order.
"""

_UNSET_VALUES = ("", "[not set]")


def clear_map(props: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Drop properties with no meaningful value: empty strings, empty lists, or systemd's `[not set]`.
    """
    cleared = {}
    for key, value in props.items():
        if isinstance(value, str) and value in _UNSET_VALUES:
            continue
        if isinstance(value, (list, tuple)) and not value:
            continue
        cleared[key] = value
    return cleared


def _number(value: Any) -> Any:
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return value


def light_properties(props: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Reduce a unit's properties to the light view, converting counters to integers.
    """
    return {key: _number(props[key]) for key in LIGHT_PROPERTIES if key in props}


def unit_dict(unit: systemctl.UnitStatus, verbose: bool = False) -> Dict[str, str]:
    if verbose:
        return dict(unit._asdict())
    return {"name": unit.name, "state": unit.active_state, "description": unit.description}


def list_by_state(manager: ServiceManager, state: Optional[str] = None,
                  verbose: bool = False) -> List[Dict[str, str]]:
    """
    List units in the given state, defaulting to running units.
    """
    state = state or DEFAULT_STATE
    if state not in VALID_STATES:
        raise ValidationError("Requested state {!r} is not a valid state, must be one of: {}"
                              .format(state, ", ".join(VALID_STATES)))
    if state == "all":
        units = manager.list_units()
    else:
        units = manager.list_units([state])
    return [unit_dict(unit, verbose) for unit in units]


def list_by_name(manager: ServiceManager, names: Sequence[str],
                 verbose: bool = False) -> List[Dict[str, Any]]:
    """
    Look up the properties of all units matching the given name patterns, e.g. `*.timer`.
    """
    if isinstance(names, str):
        names = [names]
    if not names:
        raise ValidationError("No unit names given")
    found = []
    for unit in manager.list_units_by_patterns(names):
        props = clear_map(manager.get_properties(unit.name))
        found.append(props if verbose else light_properties(props))
    if not found:
        raise NotFoundError("Found no units with name pattern: {}".format(", ".join(names)))
    return found


def get_states(manager: ServiceManager) -> List[str]:
    """
    Find every load, active and sub state currently in use by some unit.
    """
    return systemctl.get_states(manager.list_units())


def list_unit_files(manager: ServiceManager) -> List[Dict[str, str]]:
    return [{"name": unit.name, "state": unit.state} for unit in manager.list_unit_files()]


def enable(manager: ServiceManager, file: str) -> Result[List[UnitFileChange]]:
    """
    Enable a unit file, by name or by absolute path if outside the standard unit directories.
    """
    changes = manager.enable_unit_files([file])
    return Result(State.success if changes else State.unchanged, changes)


def disable(manager: ServiceManager, file: str) -> Result[List[UnitFileChange]]:
    """
    Disable a unit file, removing the links created when it was enabled.
    """
    changes = manager.disable_unit_files([file])
    return Result(State.success if changes else State.unchanged, changes)


@Result.collect
def set_enabled(manager: ServiceManager, files: Iterable[str],
                enabled: bool = True) -> Collect[List[UnitFileChange]]:
    """
    Enable or disable several unit files, collecting all of their changes.
    """
    changes: List[UnitFileChange] = []
    for file in files:
        result = yield from (enable if enabled else disable)(manager, file)
        changes.extend(result.value)
    if changes:
        LOG.info("%s: %d change(s)", "Enabled" if enabled else "Disabled", len(changes))
    return changes
