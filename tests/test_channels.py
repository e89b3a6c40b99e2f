import threading
import time

import pytest

from logpipe.core.channels import Channel
from logpipe.core.concurrency import CancelToken
from logpipe.core.errors import ChannelClosed


def test_channel_preserves_fifo_order_and_drains_after_close():
    ch = Channel(3)
    for i in range(3):
        assert ch.send(i)
    ch.close()

    assert list(ch) == [0, 1, 2]
    assert ch.recv() == (None, False)


def test_channel_rejects_zero_capacity():
    with pytest.raises(ValueError):
        Channel(0)


def test_send_on_closed_channel_raises():
    ch = Channel(1)
    ch.close()
    with pytest.raises(ChannelClosed):
        ch.send("x")


def test_close_is_idempotent():
    ch = Channel(1)
    ch.close()
    ch.close()
    assert ch.closed


def test_send_blocks_while_full_until_consumer_reads():
    ch = Channel(1)
    ch.send("first")
    sent = threading.Event()

    def _producer():
        ch.send("second")
        sent.set()

    t = threading.Thread(target=_producer)
    t.start()
    time.sleep(0.1)
    assert not sent.is_set()  # buffer full, producer must wait

    assert ch.recv() == ("first", True)
    assert sent.wait(timeout=5)
    t.join(timeout=5)
    assert ch.recv() == ("second", True)


def test_recv_blocks_until_close_wakes_it():
    ch = Channel(1)
    results = []

    t = threading.Thread(target=lambda: results.append(ch.recv()))
    t.start()
    time.sleep(0.05)
    ch.close()
    t.join(timeout=5)

    assert results == [(None, False)]


def test_cancelled_send_gives_up_on_full_channel():
    ch = Channel(1)
    ch.send("occupied")
    cancel = CancelToken()
    outcome = []

    t = threading.Thread(target=lambda: outcome.append(ch.send("blocked", cancel, poll_interval=0.01)))
    t.start()
    time.sleep(0.05)
    cancel.cancel()
    t.join(timeout=5)

    assert not t.is_alive()
    assert outcome == [False]
    assert len(ch) == 1


def test_many_consumers_receive_each_item_once():
    ch = Channel(2)
    seen = []
    lock = threading.Lock()

    def _consume():
        for item in ch:
            with lock:
                seen.append(item)

    consumers = [threading.Thread(target=_consume) for _ in range(4)]
    for t in consumers:
        t.start()
    for i in range(200):
        ch.send(i)
    ch.close()
    for t in consumers:
        t.join(timeout=5)

    assert sorted(seen) == list(range(200))
