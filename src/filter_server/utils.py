"""
Provides utility functions.
"""

from __future__ import annotations

import sys
import time
from typing import NoReturn, Optional

from filter_server import globals as G
from filter_server.logger import col

class FatalError(Exception):
    """An exception type for fatal errors that prevent the server from starting."""
    def __init__(self, msg: str, status_code: int = 1):
        super().__init__(msg)
        self.status_code = status_code

def print_status(status: str, msg: str) -> None:
    """Prints a message with a (possibly colored) status prefix."""
    print(f"{col('[1;32m')}{status}{col('[m')} {msg}", flush=True)

def print_warning(msg: str) -> None:
    """Prints a message with a (possibly colored) 'warning: ' prefix."""
    print(f"{col('[1;33m')}warning:{col('[m')} {msg}", file=sys.stderr, flush=True)

def print_error(msg: str) -> None:
    """Prints a message with a (possibly colored) 'error: ' prefix."""
    print(f"{col('[1;31m')}error:{col('[m')} {msg}", file=sys.stderr, flush=True)

def print_os_error(context: str, err: OSError) -> None:
    """
    Prints an error caused by a failed system call, including the
    description of the underlying OS error.

    Parameters
    ----------
    context
        What was attempted, e.g. "accept (3, ...)".
    err
        The error raised by the system call.
    """
    description = err.strerror if err.strerror is not None else str(err)
    print_error(f"{context}: {description}")

def die_error(msg: str, status_code: int = 1) -> NoReturn:
    """Prints a message with a colored 'error: ' prefix, and exit with the given status code afterwards."""
    print_error(msg)
    sys.exit(status_code)

def delay(duration: float) -> None:
    """Sleeps for the given duration in seconds. Negative durations are treated as zero."""
    time.sleep(max(0.0, duration))

def time_since_start(now: Optional[float] = None) -> float:
    """
    Returns the monotonic time in seconds since the server context was initialized.

    Parameters
    ----------
    now
        A monotonic clock value to convert. Defaults to the current time.
    """
    if now is None:
        now = time.monotonic()
    return now - G.start_time

def flush_output() -> None:
    """Flushes stdout and stderr, so buffered text is not duplicated into forked children."""
    sys.stdout.flush()
    sys.stderr.flush()
