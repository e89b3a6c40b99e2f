# stats.py
# SPDX-License-Identifier: MIT
"""
Traffic statistics and the aggregator that folds a channel into them.

Every counter is a commutative fold, so the result does not depend on the
order in which entries arrive. That is what lets the worker pool upstream
reorder entries freely.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from .config import ERROR_STATUS_THRESHOLD
from .records import LogEntry

__all__ = [
    "Statistics",
    "calculate_stats",
    "top_ips",
    "merge_statistics",
    "merge_stats_dicts",
]


@dataclass(slots=True)
class Statistics:
    """Summary of one aggregated stream.

    ``average_resp_time`` is only meaningful after :meth:`finalize`; it equals
    ``total_resp_time / total_requests`` when there were requests and 0.0
    otherwise.
    """

    total_requests: int = 0
    error_count: int = 0
    requests_by_ip: dict[str, int] = field(default_factory=dict)
    total_resp_time: int = 0
    average_resp_time: float = 0.0

    def add(self, entry: LogEntry) -> None:
        self.total_requests += 1
        if entry.status_code >= ERROR_STATUS_THRESHOLD:
            self.error_count += 1
        self.requests_by_ip[entry.ip] = self.requests_by_ip.get(entry.ip, 0) + 1
        self.total_resp_time += entry.response_time

    def finalize(self) -> "Statistics":
        if self.total_requests > 0:
            self.average_resp_time = self.total_resp_time / self.total_requests
        else:
            self.average_resp_time = 0.0
        return self

    def top_ips(self, n: int) -> list[tuple[str, int]]:
        return top_ips(self.requests_by_ip, n)

    def as_dict(self) -> dict[str, Any]:
        """Return a stable dict shape for reporting and merging."""
        return {
            "total_requests": int(self.total_requests),
            "error_count": int(self.error_count),
            "requests_by_ip": dict(self.requests_by_ip),
            "total_resp_time": int(self.total_resp_time),
            "average_resp_time": float(self.average_resp_time),
        }


def calculate_stats(entries: Iterable[LogEntry]) -> Statistics:
    """Consume ``entries`` to exhaustion and return finalized statistics.

    Blocks the calling thread until the input (typically a channel) is closed
    and drained. Errors are counted against a fixed 400 threshold whatever
    filtering happened upstream.
    """
    stats = Statistics()
    for entry in entries:
        stats.add(entry)
    return stats.finalize()


def top_ips(requests_by_ip: Mapping[str, int], n: int) -> list[tuple[str, int]]:
    """Return up to ``n`` ``(ip, count)`` pairs, busiest first.

    Ties are broken by IP string ascending so the output is deterministic.
    """
    if n <= 0:
        return []
    ranked = sorted(requests_by_ip.items(), key=lambda kv: (-kv[1], kv[0]))
    return ranked[:n]


def merge_statistics(stats_seq: Sequence[Statistics]) -> Statistics:
    """Combine finalized summaries, e.g. from several log files."""
    merged = Statistics()
    for stats in stats_seq:
        merged.total_requests += stats.total_requests
        merged.error_count += stats.error_count
        merged.total_resp_time += stats.total_resp_time
        for ip, count in stats.requests_by_ip.items():
            merged.requests_by_ip[ip] = merged.requests_by_ip.get(ip, 0) + count
    return merged.finalize()


def merge_stats_dicts(stats_dicts: Sequence[Mapping[str, Any]]) -> dict[str, Any]:
    """
    Merge a sequence of Statistics.as_dict()-style dictionaries.

    The average is non-additive and is re-derived from the summed totals.
    """
    parts = [
        Statistics(
            total_requests=int(data.get("total_requests", 0)),
            error_count=int(data.get("error_count", 0)),
            requests_by_ip={str(ip): int(c) for ip, c in (data.get("requests_by_ip") or {}).items()},
            total_resp_time=int(data.get("total_resp_time", 0)),
        )
        for data in stats_dicts
    ]
    return merge_statistics(parts).as_dict()
