"""
Provides the session slot table, a fixed-capacity registry of the
worker processes that are currently serving a connection.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Optional

from filter_server.settings import MAXIMUM_SESSIONS

FREE_PID = -1
"""The process id of a slot that is not in use."""

class SessionState(Enum):
    """The escalation ladder of a session. States only ever advance."""
    RUNNING = 0
    GRACE_PERIOD = 1
    FORCE_KILLED = 2

@dataclass
class Slot:
    """A single entry of the slot table."""
    pid: int = FREE_PID
    """The process id of the worker, or FREE_PID if the slot is free."""
    state: SessionState = SessionState.RUNNING
    """The lifecycle state of the session."""
    expiry: float = 0.0
    """The time (relative to startup) after which the session is terminated."""
    terminated_at: Optional[float] = None
    """The time at which the graceful termination signal was sent, if any."""

    @property
    def occupied(self) -> bool:
        """Whether this slot currently tracks a process."""
        return self.pid != FREE_PID

    def advance(self, state: SessionState, now: Optional[float] = None) -> None:
        """
        Moves the session to the given state.

        Parameters
        ----------
        state
            The new state. Must be later on the ladder than the current one.
        now
            The current time, recorded when entering the grace period.

        Raises
        ------
        ValueError
            The transition would not advance the state.
        """
        if state.value <= self.state.value:
            raise ValueError(f"Cannot move session from {self.state.name} to {state.name}")
        if state == SessionState.GRACE_PERIOD:
            self.terminated_at = now
        self.state = state

    def clear(self) -> None:
        """Marks this slot as free."""
        self.pid = FREE_PID
        self.state = SessionState.RUNNING
        self.expiry = 0.0
        self.terminated_at = None

class SlotTable:
    """
    A fixed number of session slots indexed by small integers. The table is
    owned by the accept loop, nothing else may modify it.
    """

    def __init__(self, capacity: int):
        if capacity < 1 or capacity > MAXIMUM_SESSIONS:
            raise ValueError(f"capacity must be in range 1 to {MAXIMUM_SESSIONS}")
        self.slots: list[Slot] = [Slot() for _ in range(capacity)]

    def __len__(self) -> int:
        return len(self.slots)

    def __getitem__(self, index: int) -> Slot:
        return self.slots[index]

    @property
    def capacity(self) -> int:
        """The maximum number of simultaneous sessions."""
        return len(self.slots)

    def in_use(self) -> int:
        """Returns the number of occupied slots."""
        return sum(1 for slot in self.slots if slot.occupied)

    def occupied(self) -> Iterator[tuple[int, Slot]]:
        """Yields (index, slot) for every occupied slot in index order."""
        for index, slot in enumerate(self.slots):
            if slot.occupied:
                yield index, slot

    def find_free(self) -> Optional[int]:
        """Returns the lowest index of a free slot, or None if all slots are in use."""
        for index, slot in enumerate(self.slots):
            if not slot.occupied:
                return index
        return None

    def find_pid(self, pid: int) -> Optional[int]:
        """Returns the index of the slot tracking the given process, if any."""
        for index, slot in self.occupied():
            if slot.pid == pid:
                return index
        return None

    def occupy(self, index: int, pid: int, now: float, duration: float) -> Slot:
        """
        Registers a new session in the given free slot.

        Parameters
        ----------
        index
            The slot index, usually obtained from `find_free`.
        pid
            The process id of the worker serving the session.
        now
            The current time (relative to startup).
        duration
            The maximum session duration in seconds.

        Returns
        -------
        Slot
            The populated slot.

        Raises
        ------
        ValueError
            The slot is not free, the pid is invalid or already tracked.
        """
        slot = self.slots[index]
        if slot.occupied:
            raise ValueError(f"Slot {index} is already in use by process {slot.pid}")
        if pid <= 0:
            raise ValueError(f"Invalid process id {pid}")
        if self.find_pid(pid) is not None:
            raise ValueError(f"Process {pid} is already tracked")

        slot.pid = pid
        slot.state = SessionState.RUNNING
        slot.expiry = now + duration
        slot.terminated_at = None
        return slot

    def release(self, index: int) -> None:
        """Frees the given slot."""
        self.slots[index].clear()

    def reset(self) -> None:
        """Frees all slots."""
        for slot in self.slots:
            slot.clear()
