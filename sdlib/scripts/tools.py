"""
Scripts to drive the tool front end from a shell.
"""

import json

from .utils import DocOptArgs, entrypoint, error
from ..tools import Tools


@entrypoint
def describe(opts: DocOptArgs, tools: Tools):
    """
    List available tools and their parameters.

    Usage: {script}
    """
    for tool in tools.describe():
        print("{}: {}".format(tool["name"], tool["description"]))
        for name, desc in tool["params"].items():
            print("    {}: {}".format(name, desc))


@entrypoint
def call(opts: DocOptArgs, tools: Tools):
    """
    Call a tool, passing parameters as a JSON object.

    Usage: {script} TOOL [PARAMS]
    """
    try:
        params = json.loads(opts["PARAMS"] or "null") or {}
    except ValueError as ex:
        error("Parameters aren't valid JSON: {}".format(ex), exit=2)
    if not isinstance(params, dict):
        error("Parameters must be a JSON object", exit=2)
    for text in tools.call(opts["TOOL"], params):
        print(text)
