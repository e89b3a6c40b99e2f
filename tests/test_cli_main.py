import json
import logging
import os
import signal
import sys
import threading
from pathlib import Path

import pytest

from logpipe.cli.main import _cancel_on_signals, main
from logpipe.core.concurrency import CancelToken

HEADER = "timestamp,ip,method,url,status_code,response_time_ms\n"


@pytest.fixture(autouse=True)
def _restore_package_logger():
    logger = logging.getLogger("logpipe")
    handlers = list(logger.handlers)
    level, propagate = logger.level, logger.propagate
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate


def _write_log(path: Path, rows: list[str]) -> Path:
    path.write_text(HEADER + "".join(row + "\n" for row in rows), encoding="utf-8")
    return path


def _sample_log(tmp_path: Path) -> Path:
    rows = (
        ["t,10.0.0.1,GET,/,200,10"] * 3
        + ["t,10.0.0.2,GET,/,404,20"] * 5
        + ["t,10.0.0.3,GET,/,500,30"]
    )
    return _write_log(tmp_path / "access.csv", rows)


def test_missing_argument_prints_usage_and_succeeds(capsys):
    rc = main([])

    assert rc == 0
    out = capsys.readouterr().out
    assert out.startswith("usage: logpipe")


def test_report_is_printed_in_fixed_order(tmp_path: Path, capsys):
    path = _sample_log(tmp_path)

    rc = main([str(path)])

    assert rc == 0
    out = capsys.readouterr().out
    assert out.splitlines() == [
        "Total requests: 9",
        "Total errors (4xx and 5xx): 6",
        "Average response time: 17.78 ms",
        "Top 3 IP addresses:",
        "10.0.0.2: 5 requests",
        "10.0.0.1: 3 requests",
        "10.0.0.3: 1 requests",
    ]


def test_top_flag_limits_ranking(tmp_path: Path, capsys):
    path = _sample_log(tmp_path)

    rc = main([str(path), "--top", "2", "--workers", "1"])

    assert rc == 0
    out = capsys.readouterr().out
    assert "Top 2 IP addresses:" in out
    assert "10.0.0.3" not in out


def test_open_failure_exits_non_zero(tmp_path: Path, capsys):
    rc = main([str(tmp_path / "missing.csv")])

    assert rc == 1
    captured = capsys.readouterr()
    assert captured.out == ""
    assert "missing.csv" in captured.err


def test_malformed_lines_go_to_stderr_not_stdout(tmp_path: Path, capsys):
    path = _write_log(tmp_path / "access.csv", ["t,10.0.0.1,GET,/,200,10", "t,10.0.0.1,GET,/"])

    rc = main([str(path)])

    assert rc == 0
    captured = capsys.readouterr()
    assert "Total requests: 1" in captured.out
    assert "malformed" not in captured.out
    assert "Skipping malformed" in captured.err


def test_config_file_and_invalid_override(tmp_path: Path, capsys):
    path = _sample_log(tmp_path)
    cfg_path = tmp_path / "logpipe.json"
    cfg_path.write_text(json.dumps({"pipeline": {"error_threshold": 500}, "report": {"top_n": 1}}), encoding="utf-8")

    rc = main([str(path), "--config", str(cfg_path)])
    assert rc == 0
    out = capsys.readouterr().out
    assert "Total errors (4xx and 5xx): 1" in out
    assert "Top 1 IP addresses:" in out

    rc = main([str(path), "--workers", "0"])
    assert rc == 1
    assert "pipeline.workers" in capsys.readouterr().err


@pytest.mark.skipif(sys.platform == "win32", reason="needs POSIX signal delivery")
def test_sigint_cancels_run_and_still_prints_partial_report(tmp_path: Path, capsys):
    total_rows = 100_000
    rows = [f"t,10.0.{i % 5}.{i % 13},GET,/p/{i},{500 if i % 3 == 0 else 200},{i % 50}" for i in range(total_rows)]
    path = _write_log(tmp_path / "big.csv", rows)
    previous_int = signal.getsignal(signal.SIGINT)
    previous_term = signal.getsignal(signal.SIGTERM)

    timer = threading.Timer(0.2, os.kill, (os.getpid(), signal.SIGINT))
    timer.start()
    try:
        rc = main([str(path), "--workers", "1", "--buffer", "1"])
    finally:
        timer.cancel()

    assert rc == 0
    captured = capsys.readouterr()
    first_line = captured.out.splitlines()[0]
    assert first_line.startswith("Total requests: ")
    assert int(first_line.split(": ")[1]) < total_rows
    assert "Top" in captured.out
    assert "Received SIGINT" in captured.err
    assert signal.getsignal(signal.SIGINT) is previous_int
    assert signal.getsignal(signal.SIGTERM) is previous_term


def test_handlers_not_installed_from_python_are_not_restored(monkeypatch):
    calls = []

    def _fake_signal(signum, handler):
        calls.append((signum, handler))
        return None

    monkeypatch.setattr(signal, "signal", _fake_signal)

    with _cancel_on_signals(CancelToken()):
        pass

    assert calls
    assert all(handler is not None for _, handler in calls)
