"""
Provides the configuration consumed by the server core.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field, replace

MAXIMUM_SESSIONS = 80
"""The hard upper limit of simultaneous sessions."""

DEFAULT_SESSIONS = 20
"""The number of simultaneous sessions used if none is given."""

MINIMUM_DURATION = 1.0
"""The shortest allowed session duration in seconds."""

DEFAULT_DURATION = 24.0 * 3600.0
"""The session duration used if none is given (one day)."""

UNBOUNDED_DURATION = math.inf
"""The session duration representing 'no timeout'."""

_duration_units = {
    "": 1.0,
    "m": 60.0,
    "h": 3600.0,
    "d": 86400.0,
    "w": 604800.0,
}

_duration_pattern = re.compile(r"^\s*(-?\d+)\s*([a-zA-Z]?)\s*$")

def parse_duration(text: str) -> float:
    """
    Parses a session duration given on the command line.

    Parameters
    ----------
    text
        Either 'none' for no timeout, or an integer number of seconds,
        optionally qualified with one of m, h, d or w for minutes, hours,
        days and weeks respectively.

    Returns
    -------
    float
        The duration in seconds.

    Raises
    ------
    ValueError
        The value is malformed or uses an unknown unit.
    """
    if text.strip() == "none":
        return UNBOUNDED_DURATION

    match = _duration_pattern.match(text)
    if match is None:
        raise ValueError(f"invalid timeout '{text}'")

    value, unit = match.groups()
    if unit not in _duration_units:
        raise ValueError(f"invalid timeout modifier '{unit}'")

    return float(value) * _duration_units[unit]

def check_port(port: int) -> None:
    """Raises a ValueError if the given port is not a valid TCP port number."""
    if port < 1 or port > 65535:
        raise ValueError("port number must be in range 1 to 65535")

def is_privileged_port(port: int) -> bool:
    """Returns True if binding the given port requires root privileges."""
    return port < 1024

@dataclass
class ServerSettings:
    """
    This class stores everything the server core needs to know:
    where to listen, what to run for each connection, how many
    connections to serve at once and for how long.
    """
    port: int
    command: list[str] = field(default_factory=list)
    max_sessions: int = DEFAULT_SESSIONS
    max_duration: float = DEFAULT_DURATION
    decompress_input: bool = False
    compress_output: bool = False

    def resolved(self) -> ServerSettings:
        """
        Returns a sanitized copy of these settings. The number of sessions is
        clamped to [1, MAXIMUM_SESSIONS] and the duration is raised to at least
        MINIMUM_DURATION.

        Returns
        -------
        ServerSettings
            The sanitized settings
        """
        return replace(self,
            command      = list(self.command),
            max_sessions = min(max(self.max_sessions, 1), MAXIMUM_SESSIONS),
            max_duration = max(self.max_duration, MINIMUM_DURATION))
