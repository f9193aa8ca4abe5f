"""
Builds the process topology of a session inside the forked worker.

The worker's standard input and output are bound to the accepted connection,
optionally with a decompression stage spliced in front of the command and a
compression stage behind it, just like the shell pipeline

    gunzip | command | gzip

Every stage is a separate process connected by an anonymous pipe. The worker
finally replaces itself with the command, so the process id tracked by the
server is the one of the command.

None of the functions in this module return on failure. Errors are reported
on stderr and the calling process exits, which only ends the affected session.
"""

import os
import signal
from typing import NoReturn

from filter_server import logger
from filter_server.utils import flush_output, print_os_error

DECOMPRESS_COMMAND = ["gunzip"]
"""The filter stage used to decompress the input of the command."""

COMPRESS_COMMAND = ["gzip"]
"""The filter stage used to compress the output of the command."""

EXIT_STAGE_FAILURE = 4
"""Exit status of a worker or stage that failed to set up the pipeline."""

EXIT_EXEC_FAILURE = 8
"""Exit status of a worker that failed to execute the command."""

def _fail(context: str, err: OSError, status: int) -> NoReturn:
    """Reports the given error and terminates the current process without cleanup."""
    try:
        print_os_error(context, err)
    finally:
        os._exit(status) # pylint: disable=protected-access

def _redirect(fd: int, target: int) -> None:
    """Duplicates fd onto target (e.g. a pipe end onto stdin), or terminates on failure."""
    try:
        os.dup2(fd, target)
    except OSError as e:
        _fail(f"dup2 ({fd}, {target})", e, EXIT_STAGE_FAILURE)

def _exec(argv: list[str], status: int) -> NoReturn:
    """Replaces the current process image with argv, or terminates with the given status."""
    try:
        os.execvp(argv[0], argv)
    except OSError as e:
        _fail(f"execvp ({argv[0]}, ...)", e, status)

def restore_signals() -> None:
    """
    Restores the default disposition of signals the Python runtime ignores,
    so executed commands behave as they would when started from a shell.
    """
    for name in ("SIGPIPE", "SIGXFSZ"):
        signum = getattr(signal, name, None)
        if signum is not None:
            signal.signal(signum, signal.SIG_DFL)

def close_inherited_fds() -> None:
    """Closes every descriptor above stdin, stdout and stderr."""
    try:
        max_fd = os.sysconf("SC_OPEN_MAX")
    except (ValueError, OSError):
        max_fd = 1024
    os.closerange(3, max_fd)

def create_pre_process(argv: list[str]) -> int:
    """
    Starts argv as a filter stage in front of the calling process (argv | caller).
    The stage reads the current stdin, its output becomes the new stdin of the caller.

    Parameters
    ----------
    argv
        The stage command.

    Returns
    -------
    int
        The process id of the stage.
    """
    try:
        read_fd, write_fd = os.pipe()
    except OSError as e:
        _fail("createPreProcess.pipe ()", e, EXIT_STAGE_FAILURE)

    try:
        pid = os.fork()
    except OSError as e:
        _fail("fork ()", e, EXIT_STAGE_FAILURE)

    if pid == 0:
        os.close(read_fd)
        _redirect(write_fd, 1)
        os.close(write_fd)
        _exec(argv, EXIT_STAGE_FAILURE)

    os.close(write_fd)
    _redirect(read_fd, 0)
    os.close(read_fd)
    return pid

def create_post_process(argv: list[str]) -> int:
    """
    Starts argv as a filter stage behind the calling process (caller | argv).
    The stage writes to the current stdout, its input becomes the new stdout of the caller.

    Parameters
    ----------
    argv
        The stage command.

    Returns
    -------
    int
        The process id of the stage.
    """
    try:
        read_fd, write_fd = os.pipe()
    except OSError as e:
        _fail("createPostProcess.pipe ()", e, EXIT_STAGE_FAILURE)

    try:
        pid = os.fork()
    except OSError as e:
        _fail("fork ()", e, EXIT_STAGE_FAILURE)

    if pid == 0:
        os.close(write_fd)
        _redirect(read_fd, 0)
        os.close(read_fd)
        _exec(argv, EXIT_STAGE_FAILURE)

    os.close(read_fd)
    _redirect(write_fd, 1)
    os.close(write_fd)
    return pid

def run_session(connection_fd: int,
                command: list[str],
                decompress_input: bool = False,
                compress_output: bool = False) -> NoReturn:
    """
    Wires stdin and stdout of the current (worker) process to the given
    connection, starts the requested filter stages and executes the command.
    Must only be called in a freshly forked worker, as it never returns.

    Parameters
    ----------
    connection_fd
        The descriptor of the accepted connection.
    command
        The command and its arguments.
    decompress_input
        Whether the input must be decompressed before it reaches the command.
    compress_output
        Whether the output of the command must be compressed.
    """
    logger.debug_args("run_session", locals())
    flush_output()
    restore_signals()

    _redirect(connection_fd, 0)
    _redirect(connection_fd, 1)
    close_inherited_fds()

    if decompress_input:
        create_pre_process(DECOMPRESS_COMMAND)

    if compress_output:
        create_post_process(COMPRESS_COMMAND)

    _exec(command, EXIT_EXEC_FAILURE)
