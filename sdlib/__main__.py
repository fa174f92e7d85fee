import code
import logging

from sdlib import plumbing as p, tools
from sdlib.plumbing import journal, systemctl
from sdlib.plumbing.common import *
from sdlib.tasks import jobs, logs, units


manager = systemctl.connect()
store = journal.connect()
bridge = jobs.JobBridge(manager)
retriever = logs.LogRetriever(store)


if __name__ == "__main__":
    logging.basicConfig(level=logging.DEBUG)
    code.interact(local=globals())
