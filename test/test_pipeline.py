import gzip
import os
import shutil
import socket
import sys

import pytest

from filter_server import pipeline
from filter_server.pipeline import EXIT_EXEC_FAILURE, run_session

needs_gzip = pytest.mark.skipif(shutil.which("gzip") is None or shutil.which("gunzip") is None,
                                reason="gzip is not available")

payload = bytes(range(256)) * 64

def start_session(command, decompress_input=False, compress_output=False):
    """Forks a worker serving one end of a socket pair and returns (pid, other end)."""
    ours, theirs = socket.socketpair()
    sys.stdout.flush()
    sys.stderr.flush()
    pid = os.fork()
    if pid == 0:
        try:
            ours.close()
            run_session(theirs.fileno(), command,
                        decompress_input=decompress_input,
                        compress_output=compress_output)
        finally:
            os._exit(99)

    theirs.close()
    return pid, ours

def communicate(sock: socket.socket, data: bytes) -> bytes:
    """Sends all data, signals end of input and collects everything until the peer closes."""
    sock.settimeout(10.0)
    try:
        if data:
            sock.sendall(data)
        sock.shutdown(socket.SHUT_WR)
        chunks = []
        while True:
            chunk = sock.recv(65536)
            if not chunk:
                break
            chunks.append(chunk)
        return b"".join(chunks)
    finally:
        sock.close()

def wait_exit(pid: int) -> int:
    _, status = os.waitpid(pid, 0)
    return os.waitstatus_to_exitcode(status)

def test_plain_tr():
    pid, sock = start_session(["tr", "a-z", "A-Z"])
    assert communicate(sock, b"hello") == b"HELLO"
    assert wait_exit(pid) == 0

def test_plain_cat_binary():
    pid, sock = start_session(["cat"])
    assert communicate(sock, payload) == payload
    assert wait_exit(pid) == 0

def test_arguments_are_passed():
    pid, sock = start_session(["echo", "-n", "abc", "def"])
    assert communicate(sock, b"") == b"abc def"
    assert wait_exit(pid) == 0

def test_missing_command():
    pid, sock = start_session(["/nonexistent/filter_server_command"])
    assert communicate(sock, b"") == b""
    assert wait_exit(pid) == EXIT_EXEC_FAILURE

@pytest.mark.skipif(not os.path.isdir("/proc/self/fd"), reason="requires /proc")
def test_no_descriptors_are_inherited():
    # Open a few unrelated descriptors that must not leak into the command
    extra = [os.open(os.devnull, os.O_RDONLY) for _ in range(4)]
    try:
        pid, sock = start_session(["ls", "/proc/self/fd"])
    finally:
        for fd in extra:
            os.close(fd)
    fds = communicate(sock, b"").decode().split()
    assert wait_exit(pid) == 0
    # ls itself holds one more descriptor to read the directory
    assert set(fds) <= {"0", "1", "2", "3"}

@needs_gzip
def test_decompress_input():
    pid, sock = start_session(["cat"], decompress_input=True)
    assert communicate(sock, gzip.compress(payload)) == payload
    assert wait_exit(pid) == 0

@needs_gzip
def test_compress_output():
    pid, sock = start_session(["cat"], compress_output=True)
    assert gzip.decompress(communicate(sock, payload)) == payload
    assert wait_exit(pid) == 0

@needs_gzip
def test_decompress_and_compress():
    pid, sock = start_session(["tr", "a-z", "A-Z"], decompress_input=True, compress_output=True)
    assert gzip.decompress(communicate(sock, gzip.compress(b"hello world"))) == b"HELLO WORLD"
    assert wait_exit(pid) == 0

def test_missing_stage(monkeypatch):
    monkeypatch.setattr(pipeline, "DECOMPRESS_COMMAND", ["/nonexistent/filter_server_gunzip"])
    pid, sock = start_session(["cat"], decompress_input=True)
    # The stage fails, so the command sees an empty input
    assert communicate(sock, b"") == b""
    assert wait_exit(pid) == 0

def test_close_inherited_fds_keeps_stdio():
    pid = os.fork()
    if pid == 0:
        try:
            pipeline.close_inherited_fds()
            os.fstat(0)
            os.fstat(2)
            os._exit(0)
        finally:
            os._exit(1)
    assert wait_exit(pid) == 0
