"""
Provides logging utilities.

All user-facing output of the server goes through this module, so that it is
displayed in a consistent format. The output is meant for humans and is not a
stable machine readable format.
"""

from __future__ import annotations

import argparse
import os
import signal
import sys
from typing import Any, Optional, cast

from filter_server import globals as G

def col(color_code: str) -> str:
    """Returns the given argument only if color is enabled."""
    if not isinstance(cast(Any, G.args), argparse.Namespace):
        use_color = os.getenv("NO_COLOR") is None
    else:
        use_color = not G.args.no_color

    return color_code if use_color else ""

def _is_debug() -> bool:
    """Returns True if debugging output should be generated."""
    return bool(getattr(G.args, "debug", False))

def debug(msg: str) -> None:
    """Prints the given message only in debug mode."""
    if not _is_debug():
        return

    print(f"   {col('[1;34m')}DEBUG{col('[m')}: {msg}", file=sys.stderr, flush=True)

def debug_args(msg: str, args: dict[str, Any]) -> None:
    """Prints all given arguments when in debug mode."""
    if not _is_debug():
        return

    str_args = ""
    args = {k: v for k,v in args.items() if k != "self"}
    if len(args) > 0:
        str_args = " " + ", ".join(f"{k}={v}" for k,v in args.items())

    debug(f"{msg}{str_args}")

def describe_status(status: int) -> str:
    """
    Describes a raw wait status as returned by `os.waitpid`.

    Parameters
    ----------
    status
        The raw wait status.

    Returns
    -------
    str
        A human readable description such as "exit code: 0" or "killed by signal SIGKILL".
    """
    if os.WIFSIGNALED(status):
        signum = os.WTERMSIG(status)
        try:
            name = signal.Signals(signum).name
        except ValueError:
            name = str(signum)
        return f"killed by signal {name}"
    return f"exit code: {os.waitstatus_to_exitcode(status)}"

def print_settings(settings: Any) -> None:
    """Prints the effective server settings."""
    def yes_no(flag: bool) -> str:
        return f"{col('[32m')}yes{col('[m')}" if flag else f"{col('[31m')}no{col('[m')}"

    print(f"port :             {settings.port}")
    print(f"maximum sessions : {settings.max_sessions}")
    print(f"maximum time :     {settings.max_duration:.5g} s")
    print(f"decompress input : {yes_no(settings.decompress_input)}")
    print(f"compress output :  {yes_no(settings.compress_output)}")
    print(f"command:           {col('[1m')}{' '.join(settings.command)}{col('[m')}", flush=True)

def binding(hostname: str, port: int, instances: int) -> None:
    """Prints the address the listener is about to bind to."""
    print(f"binding to {hostname}:{port} ({instances} instances)", flush=True)

def waiting_for_connections(hostname: str, port: int) -> None:
    """Prints the startup banner once the listener is ready."""
    print(f"{col('[1;32m')}{hostname} {port}{col('[m')} waiting for connections.", flush=True)

def connection_accepted(address: Optional[Any]) -> None:
    """Prints a notice about a newly accepted connection."""
    if isinstance(address, tuple) and len(address) >= 2:
        peer = f"{address[0]}:{address[1]}"
    else:
        peer = str(address)
    print(f"{col('[1;34m')}accept{col('[m')} connection from: {peer}", flush=True)

def process_started(command: str, pid: int) -> None:
    """Prints a notice about a started session process."""
    print(f"{col('[1;32m')}process{col('[m')} {command},{pid} starting.", flush=True)

def process_completed(pid: int, status: int) -> None:
    """Prints a notice about a session process that has exited."""
    print(f"{col('[1m')}process{col('[m')} {pid} is complete, {describe_status(status)}.", flush=True)

def process_vanished(pid: int) -> None:
    """Prints a notice about a session process that is no longer a child of this server."""
    print(f"{col('[1;33m')}process{col('[m')} {pid} is no longer a child process, releasing its slot.", flush=True)

def process_terminating(pid: int) -> None:
    """Prints a notice about a timed out session process that is being terminated."""
    print(f"{col('[1;33m')}timeout{col('[m')}: terminating process {pid}", flush=True)

def process_killing(pid: int) -> None:
    """Prints a notice about a timed out session process that is being killed."""
    print(f"{col('[1;31m')}timeout{col('[m')}: killing process {pid}", flush=True)
