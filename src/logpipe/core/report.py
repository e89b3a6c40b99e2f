# report.py
# SPDX-License-Identifier: MIT
"""Human-readable rendering of a pipeline result."""

from __future__ import annotations

from .pipeline import PipelineResult
from .stats import top_ips

__all__ = ["format_report", "format_top_ips"]


def format_top_ips(requests_by_ip: dict[str, int], n: int) -> list[str]:
    ranked = top_ips(requests_by_ip, n)
    lines = [f"Top {len(ranked)} IP addresses:"]
    lines.extend(f"{ip}: {count} requests" for ip, count in ranked)
    return lines


def format_report(result: PipelineResult, *, top_n: int = 5) -> str:
    """Render totals, the error count and the busiest IPs, one per line.

    The error count comes from the filtered branch; totals, average and the
    IP ranking come from the unfiltered one.
    """
    stats = result.stats
    lines = [
        f"Total requests: {stats.total_requests}",
        f"Total errors (4xx and 5xx): {result.error_stats.error_count}",
        f"Average response time: {stats.average_resp_time:.2f} ms",
    ]
    lines.extend(format_top_ips(stats.requests_by_ip, top_n))
    return "\n".join(lines) + "\n"
