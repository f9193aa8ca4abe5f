"""
Provides the accept/dispatch loop of the server.

The loop is single-threaded and never blocks: each iteration reaps finished
sessions, looks for a free slot, polls the non-blocking listener and forks a
worker for a new connection. Whenever there is nothing to do, it backs off
for a few milliseconds and tries again.
"""

from __future__ import annotations

import os
import socket
from typing import NoReturn, Optional

from filter_server import logger
from filter_server.pipeline import run_session
from filter_server.reaper import ProcessControl, TimeoutReaper
from filter_server.settings import ServerSettings
from filter_server.slots import SlotTable
from filter_server.utils import delay, flush_output, print_os_error, time_since_start

BACKOFF = 0.005
"""Seconds to wait before the next iteration when no connection could be accepted."""

EXIT_WORKER_RETURNED = 16
"""Exit status of a worker whose session setup unexpectedly returned."""

class Server:
    """
    Serves connections on a listening socket by running the configured
    command once per connection, in its own process.
    """

    def __init__(self, settings: ServerSettings, listener: socket.socket, control: Optional[ProcessControl] = None):
        self.settings = settings.resolved()
        if len(self.settings.command) == 0:
            raise ValueError("command is empty")
        self.listener = listener
        self.slots = SlotTable(self.settings.max_sessions)
        self.reaper = TimeoutReaper(control)

    def _fork(self) -> int:
        """Forks the current process. Returns 0 in the child and the child's pid in the parent."""
        flush_output()
        return os.fork()

    def _run_worker(self, conn: socket.socket) -> NoReturn:
        """Runs the session of the given connection in the forked child. Never returns."""
        try:
            self.listener.close()
            conn.setblocking(True)
            run_session(conn.fileno(), self.settings.command,
                        decompress_input=self.settings.decompress_input,
                        compress_output=self.settings.compress_output)
        finally:
            os._exit(EXIT_WORKER_RETURNED) # pylint: disable=protected-access

    def _spawn(self, index: int, conn: socket.socket) -> Optional[int]:
        """
        Forks a worker for the given connection and registers it in the given slot.

        Parameters
        ----------
        index
            A free slot index.
        conn
            The accepted connection.

        Returns
        -------
        Optional[int]
            The pid of the worker, or None if forking failed.
        """
        try:
            pid = self._fork()
        except OSError as e:
            print_os_error("fork ()", e)
            conn.close()
            delay(BACKOFF)
            return None

        if pid == 0:
            self._run_worker(conn)

        # The connection now belongs to the worker.
        conn.close()
        self.slots.occupy(index, pid, time_since_start(), self.settings.max_duration)
        logger.process_started(self.settings.command[0], pid)
        return pid

    def step(self) -> Optional[int]:
        """
        Runs a single iteration of the accept loop.

        Returns
        -------
        Optional[int]
            The pid of the worker started in this iteration, if any.
        """
        self.reaper.check(self.slots, time_since_start())

        index = self.slots.find_free()
        if index is None:
            # Too busy to accept any more connections for now.
            delay(BACKOFF)
            return None

        try:
            conn, address = self.listener.accept()
        except BlockingIOError:
            delay(BACKOFF)
            return None
        except OSError as e:
            print_os_error(f"accept ({self.listener.fileno()}, ...)", e)
            delay(BACKOFF)
            return None

        logger.connection_accepted(address)
        return self._spawn(index, conn)

    def serve_forever(self) -> NoReturn:
        """Runs the accept loop until the process is terminated."""
        while True:
            self.step()
