import logging
import threading

import pytest

from logpipe.core.channels import Channel
from logpipe.core.concurrency import CancelToken, StageGroup, process_logs, spawn, wait_all


def _fill(items, capacity=1):
    ch = Channel(capacity)

    def _produce():
        try:
            for item in items:
                ch.send(item)
        finally:
            ch.close()

    spawn(_produce)
    return ch


def test_cancel_token_is_idempotent_and_keeps_first_reason():
    token = CancelToken()
    assert not token.cancelled

    token.cancel("first")
    token.cancel("second")

    assert token.cancelled
    assert token.reason == "first"
    assert token.wait(timeout=0)


def test_spawn_returns_result_and_propagates_errors():
    ok = spawn(lambda x: x * 2, 21)
    assert ok.result(timeout=5) == 42

    def _boom():
        raise RuntimeError("boom")

    failed = spawn(_boom, name="boom-stage")
    with pytest.raises(RuntimeError, match="boom"):
        failed.result(timeout=5)


def test_wait_all_returns_results_in_order():
    release = threading.Event()
    slow = spawn(lambda: release.wait(5) and "slow")
    fast = spawn(lambda: "fast")
    release.set()

    assert wait_all([slow, fast], timeout=5) == ["slow", "fast"]


def test_process_logs_forwards_every_item_across_workers():
    items = list(range(500))
    cancel = CancelToken()

    out = process_logs(_fill(items), cancel, 4)

    assert sorted(out) == items


def test_process_logs_single_worker_keeps_order():
    items = list(range(50))
    out = process_logs(_fill(items), CancelToken(), 1)
    assert list(out) == items


def test_process_logs_applies_transform():
    out = process_logs(_fill([1, 2, 3]), CancelToken(), 2, transform=lambda x: x * 10)
    assert sorted(out) == [10, 20, 30]


def test_process_logs_requires_a_worker():
    with pytest.raises(ValueError):
        process_logs(Channel(1), CancelToken(), 0)


def test_process_logs_stops_forwarding_after_cancellation():
    cancel = CancelToken()
    source = Channel(1)
    group = StageGroup()

    def _produce():
        try:
            i = 0
            while source.send(i, cancel, poll_interval=0.01):
                i += 1
        finally:
            source.close()

    group.spawn(_produce, name="endless-producer")
    out = process_logs(source, cancel, 3, poll_interval=0.01, group=group)

    received = []
    for item in out:
        received.append(item)
        if len(received) == 10:
            cancel.cancel("test")

    group.join(timeout=5)
    assert 10 <= len(received) < 100


def test_stage_group_join_reraises_first_stage_error():
    group = StageGroup()
    group.spawn(lambda: "fine", name="ok")

    def _fail():
        raise ValueError("stage exploded")

    group.spawn(_fail, name="bad")
    assert len(group) == 2
    with pytest.raises(ValueError, match="stage exploded"):
        group.join(timeout=5)


def test_worker_error_still_closes_output():
    def _transform(x):
        if x == 3:
            raise RuntimeError("bad item")
        return x

    group = StageGroup()
    out = process_logs(_fill(range(6)), CancelToken(), 2, transform=_transform, group=group)

    received = sorted(out)  # terminates even though a worker failed
    assert 3 not in received
    with pytest.raises(RuntimeError, match="bad item"):
        group.join(timeout=5)


def test_spawn_runs_on_a_named_executor_thread():
    fut = spawn(lambda: threading.current_thread().name, name="reader-stage")
    assert fut.result(timeout=5).startswith("reader-stage")


def test_stage_group_gives_each_blocking_stage_its_own_thread():
    group = StageGroup(max_stages=2)
    ch = Channel(1)

    def _produce():
        try:
            for i in range(5):
                ch.send(i)
        finally:
            ch.close()

    group.spawn(_produce, name="producer")
    consumer = group.spawn(list, ch, name="consumer")
    group.join(timeout=5)

    assert consumer.result() == [0, 1, 2, 3, 4]


def test_stage_group_refuses_more_stages_than_threads():
    group = StageGroup(max_stages=1)
    group.spawn(lambda: None, name="only")

    with pytest.raises(RuntimeError, match="full"):
        group.spawn(lambda: None, name="extra")
    group.join(timeout=5)


def test_stage_failure_is_logged_and_cancels_group_token(caplog):
    cancel = CancelToken()
    group = StageGroup(cancel)

    def _fail():
        raise ValueError("bad input")

    with caplog.at_level(logging.ERROR, logger="logpipe"):
        group.spawn(_fail, name="bad-stage")
        with pytest.raises(ValueError, match="bad input"):
            group.join(timeout=5)

    assert cancel.cancelled
    assert cancel.reason == "stage failed: bad input"
    assert "Stage bad-stage failed" in caplog.text
