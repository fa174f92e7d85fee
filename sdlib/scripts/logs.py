"""
Scripts to read the journal.
"""

import json

from .utils import DocOptArgs, entrypoint, error
from ..tasks.logs import LogRetriever


@entrypoint
def show(opts: DocOptArgs, retriever: LogRetriever):
    """
    Show the most recent journal entries, of a single unit if given.

    With --strict, fail if the unit has no entries, rather than showing those of all units.

    Usage: {script} [--count=N] [--full] [--strict] [UNIT]
    """
    count = opts["--count"] or "20"
    if not count.isdigit():
        error("Count must be a whole number", exit=2)
    retriever.strict = bool(opts["--strict"])
    for entry in retriever.retrieve(int(count), opts["UNIT"], bool(opts["--full"])):
        print(json.dumps(entry.to_dict()))
