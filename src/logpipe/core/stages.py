# stages.py
# SPDX-License-Identifier: MIT
"""Single-consumer stages of the log pipeline: tee and filter.

Neither stage observes the cancel token. Both end when their input channel
closes, which happens once the cancellable producers upstream have stopped.
"""

from __future__ import annotations

from typing import TypeVar

from .channels import Channel
from .concurrency import StageGroup, start_stage
from .log import get_logger
from .records import LogEntry

__all__ = ["tee", "filter_logs"]

log = get_logger(__name__)

T = TypeVar("T")


def tee(
    source: Channel[T],
    capacity: int,
    *,
    group: StageGroup | None = None,
) -> tuple[Channel[T], Channel[T]]:
    """Duplicate ``source`` into two independently buffered channels.

    One forwarding loop writes every item to the first output and then the
    second, so both see the same items in input order. Each output holds at
    most ``capacity`` items; when either is full the loop blocks, which means
    a stalled consumer on one branch also stalls the other. Both outputs are
    closed together once ``source`` is exhausted.

    Raises:
        ValueError: If ``capacity`` is less than 1.
    """
    if capacity < 1:
        raise ValueError(f"tee requires capacity >= 1; got {capacity}")
    left: Channel[T] = Channel(capacity, name="tee-left")
    right: Channel[T] = Channel(capacity, name="tee-right")

    def _forward() -> int:
        count = 0
        try:
            for item in source:
                left.send(item)
                right.send(item)
                count += 1
        finally:
            left.close()
            right.close()
        log.debug("Tee forwarded %d item(s)", count)
        return count

    start_stage(group, _forward, name="logpipe-tee")
    return left, right


def filter_logs(
    source: Channel[LogEntry],
    min_status: int,
    *,
    group: StageGroup | None = None,
) -> Channel[LogEntry]:
    """Forward only entries with ``status_code >= min_status``, in order."""
    out: Channel[LogEntry] = Channel(1, name="filter")

    def _forward() -> int:
        kept = 0
        try:
            for entry in source:
                if entry.status_code >= min_status:
                    out.send(entry)
                    kept += 1
        except Exception:
            # keep the tee moving so the unfiltered branch can finish
            for _ in source:
                pass
            raise
        finally:
            out.close()
        return kept

    start_stage(group, _forward, name="logpipe-filter")
    return out
