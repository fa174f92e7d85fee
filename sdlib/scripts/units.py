"""
Scripts to inspect units and manage unit files.
"""

import json

from .utils import confirm, DocOptArgs, entrypoint
from ..plumbing.systemctl import ServiceManager
from ..tasks import units


def _print(items):
    for item in items:
        print(json.dumps(item, default=str))


@entrypoint
def by_state(opts: DocOptArgs, manager: ServiceManager):
    """
    List units in the given state, running units by default, or every loaded unit with `all`.

    Usage: {script} [--verbose] [STATE]
    """
    _print(units.list_by_state(manager, opts["STATE"], bool(opts["--verbose"])))


@entrypoint
def show(opts: DocOptArgs, manager: ServiceManager):
    """
    Show the properties of units matching the given names or patterns, e.g. '*.timer'.

    Usage: {script} [--verbose] NAME...
    """
    _print(units.list_by_name(manager, opts["NAME"], bool(opts["--verbose"])))


@entrypoint
def states(opts: DocOptArgs, manager: ServiceManager):
    """
    List all states currently held by some unit.

    Usage: {script}
    """
    for state in units.get_states(manager):
        print(state)


@entrypoint
def files(opts: DocOptArgs, manager: ServiceManager):
    """
    List installed unit files.

    Usage: {script}
    """
    _print(units.list_unit_files(manager))


@entrypoint
def enable(opts: DocOptArgs, manager: ServiceManager):
    """
    Enable unit files, by name or by absolute path.

    Usage: {script} FILE...
    """
    result = units.set_enabled(manager, opts["FILE"], True)
    for change in result.value:
        print("{}: {} -> {}".format(change.type, change.filename, change.destination))
    if not result:
        print("Nothing changed")


@entrypoint
def disable(opts: DocOptArgs, manager: ServiceManager):
    """
    Disable unit files, by name or by absolute path.

    Usage: {script} [--yes] FILE...
    """
    if not opts["--yes"]:
        confirm("Disable {}?".format(", ".join(opts["FILE"])))
    result = units.set_enabled(manager, opts["FILE"], False)
    for change in result.value:
        print("{}: {}".format(change.type, change.filename))
    if not result:
        print("Nothing changed")
