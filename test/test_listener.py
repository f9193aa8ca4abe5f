import socket

import pytest

from filter_server.listener import BACKLOG, create_listener, set_non_blocking
from filter_server.utils import FatalError

def test_create_listener():
    listener = create_listener(0)
    try:
        assert listener.family == socket.AF_INET
        assert listener.getsockname()[1] > 0
        assert listener.getsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR) != 0
        assert listener.getsockopt(socket.SOL_SOCKET, socket.SO_ACCEPTCONN) != 0
    finally:
        listener.close()

def test_non_blocking_accept():
    listener = create_listener(0)
    try:
        set_non_blocking(listener)
        with pytest.raises(BlockingIOError):
            listener.accept()

        client = socket.create_connection(("127.0.0.1", listener.getsockname()[1]))
        try:
            # The connection is queued by the kernel, accepting it must not block
            for _ in range(1000):
                try:
                    conn, _ = listener.accept()
                    conn.close()
                    break
                except BlockingIOError:
                    pass
            else:
                pytest.fail("connection was never accepted")
        finally:
            client.close()
    finally:
        listener.close()

def test_port_in_use():
    occupied = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    occupied.bind(("0.0.0.0", 0))
    occupied.listen(BACKLOG)
    try:
        with pytest.raises(FatalError) as e:
            create_listener(occupied.getsockname()[1])
        assert e.value.status_code == 4
    finally:
        occupied.close()
