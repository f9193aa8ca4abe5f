import signal

import filter_server.globals as G
from filter_server import logger

def test_describe_exit_code():
    assert logger.describe_status(0) == "exit code: 0"
    assert logger.describe_status(3 << 8) == "exit code: 3"

def test_describe_signal():
    assert logger.describe_status(signal.SIGKILL) == "killed by signal SIGKILL"
    assert logger.describe_status(signal.SIGTERM) == "killed by signal SIGTERM"

def test_no_color(monkeypatch):
    monkeypatch.setattr(G, "args", None)
    monkeypatch.setenv("NO_COLOR", "1")
    assert logger.col("[1m") == ""
    monkeypatch.delenv("NO_COLOR")
    assert logger.col("[1m") == "[1m"

def test_debug_only_when_enabled(capsys, monkeypatch):
    class Args:
        debug = False
    monkeypatch.setattr(G, "args", Args())
    logger.debug("hidden")
    assert capsys.readouterr().err == ""

    Args.debug = True
    logger.debug_args("visible", {"self": None, "pid": 7})
    err = capsys.readouterr().err
    assert "visible pid=7" in err
    assert "self" not in err

def test_session_notices(capsys, monkeypatch):
    monkeypatch.setattr(G, "args", None)
    monkeypatch.setenv("NO_COLOR", "1")
    logger.connection_accepted(("10.0.0.1", 5555))
    logger.process_started("cat", 42)
    logger.process_terminating(42)
    logger.process_killing(42)
    logger.process_completed(42, signal.SIGKILL)
    out = capsys.readouterr().out.splitlines()
    assert out == [
        "accept connection from: 10.0.0.1:5555",
        "process cat,42 starting.",
        "timeout: terminating process 42",
        "timeout: killing process 42",
        "process 42 is complete, killed by signal SIGKILL.",
    ]
