"""
Contains the timeout reaper, which collects exited session processes and
escalates sessions that have exceeded their deadline.
"""

import os
import signal
from typing import Optional

from filter_server import logger
from filter_server.slots import SessionState, Slot, SlotTable
from filter_server.utils import print_os_error

GRACE_WINDOW = 2.0
"""Seconds between the graceful termination signal and the forceful kill."""

class ProcessControl:
    """
    The operations the reaper needs to observe and signal session processes.
    The default implementation acts on real child processes.
    """

    def poll_exit(self, pid: int) -> Optional[int]:
        """
        Checks without blocking whether the given child process has exited.

        Returns
        -------
        Optional[int]
            The raw wait status if the process has exited, None if it is still running.

        Raises
        ------
        ChildProcessError
            The process is not a child of this process (anymore).
        OSError
            The check failed for another reason.
        """
        wpid, status = os.waitpid(pid, os.WNOHANG)
        if wpid == 0:
            return None
        return status

    def terminate(self, pid: int) -> None:
        """Asks the given process to terminate (SIGTERM)."""
        os.kill(pid, signal.SIGTERM)

    def kill(self, pid: int) -> None:
        """Forcefully kills the given process (SIGKILL)."""
        os.kill(pid, signal.SIGKILL)

class TimeoutReaper:
    """
    Checks every occupied slot of a table once per call. Exited processes
    free their slot immediately. Overdue processes are first terminated
    gracefully and, if they are still around after GRACE_WINDOW seconds,
    killed. A killed process keeps its slot until its exit is observed.
    """

    def __init__(self, control: Optional[ProcessControl] = None):
        self.control = control if control is not None else ProcessControl()

    def check(self, table: SlotTable, now: float) -> None:
        """
        Runs one reaper pass over the given table.

        Parameters
        ----------
        table
            The slot table to examine and update.
        now
            The current time (relative to startup).
        """
        for index, slot in table.occupied():
            pid = slot.pid
            try:
                status = self.control.poll_exit(pid)
            except ChildProcessError:
                logger.process_vanished(pid)
                table.release(index)
                continue
            except OSError as e:
                print_os_error(f"waitpid ({pid}, &status, WNOHANG)", e)
                continue

            if status is not None:
                logger.process_completed(pid, status)
                table.release(index)
                continue

            if now >= slot.expiry:
                self._escalate(slot, now)

    def _escalate(self, slot: Slot, now: float) -> None:
        """Moves an overdue session one step up the escalation ladder if it is due."""
        if slot.state == SessionState.RUNNING:
            logger.process_terminating(slot.pid)
            try:
                self.control.terminate(slot.pid)
            except OSError as e:
                print_os_error(f"kill ({slot.pid}, SIGTERM)", e)
            slot.advance(SessionState.GRACE_PERIOD, now)

        elif slot.state == SessionState.GRACE_PERIOD:
            terminated_at = slot.terminated_at if slot.terminated_at is not None else slot.expiry
            if now >= terminated_at + GRACE_WINDOW:
                logger.process_killing(slot.pid)
                try:
                    self.control.kill(slot.pid)
                except OSError as e:
                    print_os_error(f"kill ({slot.pid}, SIGKILL)", e)
                slot.advance(SessionState.FORCE_KILLED)

        # A force killed process needs no further action, its slot is
        # released once the exit has been observed.
