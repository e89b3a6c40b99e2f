# channels.py
# SPDX-License-Identifier: MIT
"""Bounded, closable channels connecting pipeline stages.

A :class:`Channel` is a FIFO buffer with a fixed capacity and an explicit
close. Producers block in :meth:`Channel.send` while the buffer is full;
consumers block in :meth:`Channel.recv` while it is empty. Closing never
blocks: buffered items remain readable and iteration ends once the channel is
closed and drained. Any number of threads may send or receive.
"""

from __future__ import annotations

import threading
from collections import deque
from collections.abc import Iterator
from typing import TYPE_CHECKING, Generic, TypeVar

from .errors import ChannelClosed

if TYPE_CHECKING:  # pragma: no cover
    from .concurrency import CancelToken

__all__ = ["Channel", "ChannelClosed"]

T = TypeVar("T")

DEFAULT_POLL_INTERVAL = 0.05


class Channel(Generic[T]):
    """Fixed-capacity FIFO with close semantics.

    ``capacity=1`` is the closest equivalent of an unbuffered hand-off: a
    producer can run at most one item ahead of its consumer.

    Attributes:
        capacity (int): Maximum number of buffered items.
        name (str): Label used in reprs and thread names.
    """

    def __init__(self, capacity: int = 1, *, name: str = "channel") -> None:
        if capacity < 1:
            raise ValueError(f"Channel capacity must be >= 1; got {capacity}")
        self.capacity = capacity
        self.name = name
        self._items: deque[T] = deque()
        self._closed = False
        self._cond = threading.Condition()

    def __repr__(self) -> str:
        return f"Channel(name={self.name!r}, capacity={self.capacity}, size={len(self)}, closed={self._closed})"

    def __len__(self) -> int:
        with self._cond:
            return len(self._items)

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def send(
        self,
        item: T,
        cancel: CancelToken | None = None,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> bool:
        """Append an item, blocking while the buffer is full.

        Without a cancel token the call blocks until space frees up. With a
        token, the wait is sliced into ``poll_interval`` chunks and the token
        is re-checked between slices, so a cancelled producer gives up within
        one interval even when nobody is reading.

        Returns:
            bool: True when the item was buffered, False when the token was
            cancelled before space became available.

        Raises:
            ChannelClosed: If the channel is already closed.
        """
        timeout = poll_interval if cancel is not None else None
        with self._cond:
            while len(self._items) >= self.capacity and not self._closed:
                if cancel is not None and cancel.cancelled:
                    return False
                self._cond.wait(timeout)
            if self._closed:
                raise ChannelClosed(f"send on closed channel {self.name!r}")
            self._items.append(item)
            self._cond.notify_all()
            return True

    def recv(self) -> tuple[T | None, bool]:
        """Pop the oldest item, blocking while the channel is empty and open.

        Returns:
            tuple[T | None, bool]: ``(item, True)`` for a received item, or
            ``(None, False)`` once the channel is closed and drained.
        """
        with self._cond:
            while not self._items and not self._closed:
                self._cond.wait()
            if self._items:
                item = self._items.popleft()
                self._cond.notify_all()
                return item, True
            return None, False

    def close(self) -> None:
        """Mark the channel closed and wake every waiter. Idempotent."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def __iter__(self) -> Iterator[T]:
        while True:
            item, ok = self.recv()
            if not ok:
                return
            yield item  # type: ignore[misc]
