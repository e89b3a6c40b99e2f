# concurrency.py
# SPDX-License-Identifier: MIT
"""Concurrency helpers for the logpipe stage graph.

Every stage loop runs on its own executor thread and reports its outcome via a
:class:`concurrent.futures.Future`, so callers can join stages with
:func:`concurrent.futures.wait` and re-raise their errors with
``Future.result()``. Cancellation is cooperative: a :class:`CancelToken` is
broadcast to the producing stages, which check it before each emission.
"""
from __future__ import annotations

import itertools
import threading
from collections.abc import Callable, Iterable
from concurrent.futures import ALL_COMPLETED, Future, ThreadPoolExecutor, wait
from functools import partial
from typing import Any, TypeVar

from .channels import DEFAULT_POLL_INTERVAL, Channel
from .log import get_logger

log = get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")

_stage_ids = itertools.count(1)

DEFAULT_MAX_STAGES = 32


class CancelToken:
    """Broadcast, idempotent cancellation signal.

    Once cancelled the token stays cancelled; later calls to :meth:`cancel`
    keep the first reason.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._reason: str | None = None

    def __repr__(self) -> str:
        return f"CancelToken(cancelled={self.cancelled}, reason={self._reason!r})"

    def cancel(self, reason: str = "cancelled") -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the token is cancelled or ``timeout`` elapses."""
        return self._event.wait(timeout)


def _log_failure(label: str, fut: Future[Any]) -> None:
    if fut.cancelled():
        return
    exc = fut.exception()
    if exc is not None:
        log.error("Stage %s failed: %s", label, exc, exc_info=exc)


def spawn(fn: Callable[..., R], *args: Any, name: str | None = None) -> Future[R]:
    """Run ``fn(*args)`` on a one-shot single-thread executor.

    The returned future completes with the function's return value or its
    exception. Exceptions are also logged here, since a stage whose future is
    never joined would otherwise fail silently. The executor is shut down
    right after submission; its thread exits once ``fn`` returns.
    """
    label = name or f"logpipe-stage-{next(_stage_ids)}"
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=label)
    try:
        fut = executor.submit(fn, *args)
    finally:
        executor.shutdown(wait=False)
    fut.add_done_callback(partial(_log_failure, label))
    return fut


class StageGroup:
    """Runs the stages of one pipeline run on a shared thread pool.

    Stage constructors accept an optional group; the engine passes one in so
    it can join all stages at the end of a run and surface the first stage
    error. When a ``cancel`` token is given, the first failing stage cancels
    it, so producers feeding a dead stage stop instead of blocking forever.

    Stage loops block on each other through channels, so every stage needs
    its own pool thread: the pool holds ``max_stages`` threads (started
    lazily) and :meth:`spawn` refuses to queue more stages than that.
    """

    def __init__(self, cancel: CancelToken | None = None, *, max_stages: int = DEFAULT_MAX_STAGES) -> None:
        if max_stages < 1:
            raise ValueError(f"StageGroup requires max_stages >= 1; got {max_stages}")
        self._futures: list[Future[Any]] = []
        self._lock = threading.Lock()
        self._cancel = cancel
        self._max_stages = max_stages
        self._executor = ThreadPoolExecutor(max_workers=max_stages, thread_name_prefix="logpipe-stage")

    def __len__(self) -> int:
        with self._lock:
            return len(self._futures)

    def spawn(self, fn: Callable[..., R], *args: Any, name: str | None = None) -> Future[R]:
        label = name or f"logpipe-stage-{next(_stage_ids)}"
        with self._lock:
            if len(self._futures) >= self._max_stages:
                raise RuntimeError(
                    f"StageGroup is full ({self._max_stages} stages); cannot start {label}"
                )
            fut = self._executor.submit(fn, *args)
            self._futures.append(fut)
        fut.add_done_callback(partial(_log_failure, label))
        if self._cancel is not None:
            fut.add_done_callback(self._cancel_on_failure)
        return fut

    def _cancel_on_failure(self, fut: Future[Any]) -> None:
        if fut.cancelled():
            return
        exc = fut.exception()
        if exc is not None and self._cancel is not None:
            self._cancel.cancel(f"stage failed: {exc}")

    def join(self, timeout: float | None = None) -> None:
        """Wait for every stage, shut the pool down, then re-raise the first
        stage error.

        Raises:
            TimeoutError: If some stage is still running after ``timeout``.
            Exception: The first exception raised by a stage, in start order.
        """
        with self._lock:
            futures = list(self._futures)
        _, pending = wait(futures, timeout=timeout, return_when=ALL_COMPLETED)
        if pending:
            self._executor.shutdown(wait=False)
            raise TimeoutError(f"{len(pending)} pipeline stage(s) still running after {timeout}s")
        self._executor.shutdown(wait=True)
        for fut in futures:
            fut.result()


def start_stage(group: StageGroup | None, fn: Callable[..., R], *args: Any, name: str) -> Future[R]:
    """Start a stage loop, tracked by ``group`` when one is given."""
    if group is not None:
        return group.spawn(fn, *args, name=name)
    return spawn(fn, *args, name=name)


def _identity(item: T) -> T:
    return item


def process_logs(
    source: Channel[T],
    cancel: CancelToken,
    workers: int,
    *,
    transform: Callable[[T], T] | None = None,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
    group: StageGroup | None = None,
) -> Channel[T]:
    """Fan ``source`` out to ``workers`` concurrent consumers and merge them.

    Each worker pulls from the shared input channel, checks the cancel token,
    applies ``transform`` (identity by default) and forwards the result to one
    shared output channel. Output order is not related to input order. The
    output closes only after every worker has either drained the input or
    stopped on cancellation.

    Args:
        source (Channel[T]): Input channel shared by all workers.
        cancel (CancelToken): Token checked before each forward.
        workers (int): Number of concurrent workers; must be >= 1.
        transform (Callable[[T], T] | None): Optional per-item enrichment.
        poll_interval (float): Cancel re-check interval while blocked on a
            full output channel.
        group (StageGroup | None): Optional group that tracks the stage
            futures.

    Returns:
        Channel[T]: Merged output channel.

    Raises:
        ValueError: If ``workers`` is less than 1.
    """
    if workers < 1:
        raise ValueError(f"process_logs requires workers >= 1; got {workers}")
    fn = transform or _identity
    out: Channel[T] = Channel(1, name="workers")

    def _worker(idx: int) -> int:
        forwarded = 0
        for item in source:
            if cancel.cancelled:
                log.debug("Worker %d stopping on cancellation after %d item(s)", idx, forwarded)
                return forwarded
            if not out.send(fn(item), cancel, poll_interval=poll_interval):
                log.debug("Worker %d dropped a blocked send on cancellation", idx)
                return forwarded
            forwarded += 1
        return forwarded

    futures = [start_stage(group, _worker, i, name=f"logpipe-worker-{i}") for i in range(workers)]

    def _close_when_drained() -> int:
        try:
            wait(futures, return_when=ALL_COMPLETED)
        finally:
            out.close()
        return sum(f.result() for f in futures if f.exception() is None)

    start_stage(group, _close_when_drained, name="logpipe-worker-closer")
    return out


def wait_all(futures: Iterable[Future[R]], timeout: float | None = None) -> list[R]:
    """Join barrier: wait for every future and return their results in order.

    Raises:
        TimeoutError: If a future is still pending after ``timeout``.
    """
    futures = list(futures)
    _, pending = wait(futures, timeout=timeout, return_when=ALL_COMPLETED)
    if pending:
        raise TimeoutError(f"{len(pending)} task(s) still running after {timeout}s")
    return [f.result() for f in futures]


__all__ = [
    "CancelToken",
    "StageGroup",
    "DEFAULT_MAX_STAGES",
    "spawn",
    "start_stage",
    "process_logs",
    "wait_all",
]
