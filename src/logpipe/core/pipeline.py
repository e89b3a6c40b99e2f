# pipeline.py
# SPDX-License-Identifier: MIT
"""Pipeline engine wiring the reader, worker pool, tee, filter and aggregators.

Stage graph::

    reader -> workers(N) -> tee -+-> calculate_stats                -> stats
                                 +-> filter_logs -> calculate_stats -> error_stats

Each arrow is a :class:`~logpipe.core.channels.Channel`. The reader and the
workers watch the run's cancel token; every other stage stops when its input
closes. The two aggregators run concurrently and the engine joins both before
reading either result.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from ..sources.csv_source import LogFileSource, ReadSummary
from .channels import Channel
from .concurrency import CancelToken, StageGroup, process_logs, wait_all
from .config import LogpipeConfig
from .log import get_logger
from .records import LogEntry
from .stages import filter_logs, tee
from .stats import Statistics, calculate_stats

__all__ = ["PipelineEngine", "PipelineResult"]

log = get_logger(__name__)

# reader, worker closer, tee, filter and the two aggregators
_FIXED_STAGES = 6


def _aggregate(source: Channel[LogEntry]) -> Statistics:
    """Fold ``source`` into statistics, draining it if the fold fails.

    Both aggregators are fed by one tee loop; a branch that stops reading
    would stall the other branch for good.
    """
    try:
        return calculate_stats(source)
    except Exception:
        for _ in source:
            pass
        raise


@dataclass(frozen=True, slots=True)
class PipelineResult:
    """Outcome of one run.

    ``stats`` covers every entry that reached the unfiltered aggregator;
    ``error_stats`` covers the entries that passed the status filter. After a
    cancelled run both describe an incomplete dataset; ``source.cancelled``
    tells whether the reader stopped early.
    """

    stats: Statistics
    error_stats: Statistics
    source: ReadSummary

    def as_dict(self) -> dict[str, object]:
        return {
            "stats": self.stats.as_dict(),
            "error_stats": self.error_stats.as_dict(),
            "source": {
                "path": self.source.path,
                "lines_read": self.source.lines_read,
                "emitted": self.source.emitted,
                "malformed": self.source.malformed,
                "blank": self.source.blank,
                "cancelled": self.source.cancelled,
            },
        }


class PipelineEngine:
    """Run the stage graph over one log file per :meth:`run` call.

    Attributes:
        config (LogpipeConfig): Validated configuration.
        transform (Callable[[LogEntry], LogEntry] | None): Optional per-entry
            enrichment applied inside the worker pool.
    """

    def __init__(
        self,
        config: LogpipeConfig | None = None,
        *,
        transform: Callable[[LogEntry], LogEntry] | None = None,
    ) -> None:
        self.config = config or LogpipeConfig()
        self.config.validate()
        self.transform = transform

    def run(self, path: str | Path, cancel: CancelToken | None = None) -> PipelineResult:
        """Process ``path`` and return both aggregations.

        Args:
            path (str | Path): CSV access log.
            cancel (CancelToken | None): Token that stops the reader and the
                workers early. A fresh token is used when omitted.

        Returns:
            PipelineResult: Unfiltered and error-branch statistics plus the
            reader summary.

        Raises:
            SourceOpenError: If the file cannot be opened.
            Exception: The first error raised by any stage.
        """
        cancel = cancel or CancelToken()
        src_cfg = self.config.source
        pc = self.config.pipeline
        group = StageGroup(cancel, max_stages=pc.workers + _FIXED_STAGES)

        source = LogFileSource(
            path=Path(path),
            delimiter=src_cfg.delimiter,
            encoding=src_cfg.encoding,
            poll_interval=pc.cancel_poll_interval,
        )
        entries, reader = source.open(cancel, group=group)
        processed = process_logs(
            entries,
            cancel,
            pc.workers,
            transform=self.transform,
            poll_interval=pc.cancel_poll_interval,
            group=group,
        )
        unfiltered, filtered = tee(processed, pc.tee_buffer, group=group)

        all_fut = group.spawn(_aggregate, unfiltered, name="logpipe-stats")
        err_fut = group.spawn(
            _aggregate,
            filter_logs(filtered, pc.error_threshold, group=group),
            name="logpipe-error-stats",
        )

        try:
            stats, error_stats = wait_all([all_fut, err_fut])
        finally:
            group.join()
        summary = reader.result()
        log.info(
            "Read %d line(s) from %s: %d emitted, %d malformed, %d blank%s",
            summary.lines_read,
            source.path.name,
            summary.emitted,
            summary.malformed,
            summary.blank,
            " (cancelled)" if summary.cancelled else "",
        )
        return PipelineResult(stats=stats, error_stats=error_stats, source=summary)
