"""Stores all global state."""

import argparse
import socket
import time
from typing import cast
from jinja2 import Environment, StrictUndefined

args: argparse.Namespace = cast(argparse.Namespace, None)
"""
The parsed command line arguments. Used by the logger to determine
whether color and debugging output are enabled.
"""

hostname: str = ""
"""The name of this host. Looked up once by `init_context`."""

start_time: float = 0.0
"""The monotonic clock value at startup. All session deadlines are relative to this."""

jinja2_env: Environment = Environment(
    autoescape=False,
    keep_trailing_newline=True,
    undefined=StrictUndefined)
"""The jinja2 environment used for help and version text."""

def init_context() -> None:
    """Initializes the process-wide context. Must be called once before the server starts."""
    global hostname, start_time # pylint: disable=global-statement
    hostname = socket.gethostname()
    start_time = time.monotonic()
