"""
Provides the top-level logic of filter_server such as
the CLI interface and server startup.
"""

import argparse
import os
import sys
from typing import Any, NoReturn, Optional

from filter_server import globals as G, logger
from filter_server.listener import create_listener, set_non_blocking
from filter_server.server import Server
from filter_server.settings import (MAXIMUM_SESSIONS, DEFAULT_SESSIONS, ServerSettings,
        check_port, is_privileged_port, parse_duration)
from filter_server.utils import FatalError, die_error, print_status, print_warning
from filter_server.version import version

DESCRIPTION_TEMPLATE = """\
filter_server {{ version }}

filter_server provides the means to run any arbitrary command, script or program,
that accepts input from standard input and writes its result to standard output
as a forking TCP/IP service.
"""

EPILOG_TEMPLATE = """\
parameters:
  port           The port number on which the service will run.
                 Must be >= 1024 for non-root privileged users.
  command        The command to be run. This must be on the PATH and/or specified
                 using an absolute path.
  args...        Optional arguments passed to the command executable.

The number of sessions is clamped to the range 1 to {{ max_sessions }}.
The timeout may be qualified with {{ units | join(", ") }} for
minutes, hours, days and weeks respectively. 'none' means no timeout.

example (trivial):

on server...
   {{ prog }} -- 4242 stdbuf -oL tr 'a-z' 'A-Z'

   stdbuf is an easy way to modify (output) buffering.

on client...
   ncat server_host 4242

   Any text typed on the command line will be converted to upper case.
"""

def render(template: str, **kwargs: Any) -> str:
    """Renders the given jinja2 template string with the given variables."""
    return G.jinja2_env.from_string(template).render(**kwargs)

class ArgumentParserError(Exception):
    """Error class for argument parsing errors."""

class ThrowingArgumentParser(argparse.ArgumentParser):
    """An argument parser that throws when invalid argument types are passed."""

    def error(self, message: str) -> NoReturn:
        """Raises an exception on error."""
        raise ArgumentParserError(message)

def timeout_argument(value: str) -> float:
    """Converts a --timeout argument, reporting malformed values to argparse."""
    try:
        return parse_duration(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e

def create_parser() -> ThrowingArgumentParser:
    """Creates the command line argument parser."""
    prog = "filter_server"
    parser = ThrowingArgumentParser(
            prog=prog,
            usage="%(prog)s [OPTIONS] port command args...",
            description=render(DESCRIPTION_TEMPLATE, version=version),
            epilog=render(EPILOG_TEMPLATE, max_sessions=MAXIMUM_SESSIONS, units=["m", "h", "d", "w"], prog=prog),
            formatter_class=argparse.RawDescriptionHelpFormatter)

    parser.add_argument('-v', '--version', action='version',
            version=f"Filter Server. Version: {version}")
    parser.add_argument('-s', '--sessions', dest='sessions', type=int, default=DEFAULT_SESSIONS,
            help=f"The maximum number of allowed simultaneous sessions or connections. The default is {DEFAULT_SESSIONS} sessions.")
    parser.add_argument('-t', '--timeout', dest='timeout', type=timeout_argument, default="1d",
            help="The maximum time in seconds that a session is allowed to run for. The timeout will be adjusted to be >= 1.0 seconds if needs be. The default is 1d.")
    parser.add_argument('-u', '--unzip', dest='unzip', action='store_true',
            help="Decompress the input (using gunzip) sent to the filter command.")
    parser.add_argument('-z', '--zip', dest='zip', action='store_true',
            help="Compress output (using gzip) from the filter command.")
    parser.add_argument('--debug', dest='debug', action='store_true',
            help="Enable debugging output.")
    parser.add_argument('--no-color', dest='no_color', action='store_true',
            help="Disables any color output. Color can also be disabled by setting the NO_COLOR environment variable.")
    parser.add_argument('port', type=int,
            help=argparse.SUPPRESS)
    parser.add_argument('command', nargs=argparse.REMAINDER,
            help=argparse.SUPPRESS)
    return parser

def settings_from_args(args: argparse.Namespace) -> ServerSettings:
    """
    Builds the server settings from the parsed arguments and
    validates everything the argument parser cannot.

    Parameters
    ----------
    args
        The parsed arguments

    Returns
    -------
    ServerSettings
        The resolved settings

    Raises
    ------
    FatalError
        The port or the command is invalid.
    """
    command = list(args.command)
    if len(command) > 0 and command[0] == "--":
        command = command[1:]

    if len(command) == 0:
        raise FatalError("Too few arguments", status_code=1)

    try:
        check_port(args.port)
    except ValueError as e:
        raise FatalError(str(e), status_code=2) from e

    if command[0] == "":
        raise FatalError("command is empty", status_code=2)

    return ServerSettings(
        port=args.port,
        command=command,
        max_sessions=args.sessions,
        max_duration=args.timeout,
        decompress_input=args.unzip,
        compress_output=args.zip).resolved()

def main(argv: Optional[list[str]] = None) -> None:
    """
    The main program entry point. This will parse arguments, report the
    effective settings, bind the listener and serve connections until the
    process is terminated. Defaults to sys.argv[1:] if argv is None.
    """
    if argv is None:
        argv = sys.argv[1:]
    parser = create_parser()

    try:
        args: argparse.Namespace = parser.parse_args(argv)
    except ArgumentParserError as e:
        print(parser.format_usage(), end="", file=sys.stderr)
        die_error(str(e))

    # Disable color when NO_COLOR is set
    if os.getenv("NO_COLOR") is not None:
        args.no_color = True

    G.args = args
    try:
        settings = settings_from_args(args)
    except FatalError as e:
        die_error(str(e), status_code=e.status_code)

    if is_privileged_port(settings.port):
        print_warning(f"port {settings.port} requires root privilege")

    G.init_context()
    logger.print_settings(settings)

    try:
        listener = create_listener(settings.port)
    except FatalError as e:
        die_error(str(e), status_code=e.status_code)

    try:
        set_non_blocking(listener)
        server = Server(settings, listener)
        logger.waiting_for_connections(G.hostname, settings.port)
        server.serve_forever()
    except KeyboardInterrupt:
        print()
    finally:
        listener.close()
        print_status("done", "filter server complete")
