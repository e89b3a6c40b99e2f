# __init__.py
# SPDX-License-Identifier: MIT
"""
Top-level package exports for :mod:`logpipe`.

logpipe reads a CSV access log through a streaming, concurrent stage graph
and reports total requests, error count, average response time and the
busiest client IPs.

Examples:
    Programmatic run::

        >>> from logpipe import run_pipeline
        >>> result = run_pipeline("access.csv")
        >>> result.stats.total_requests

    Building the graph by hand::

        >>> from logpipe import CancelToken, read_logs, process_logs, tee, filter_logs, calculate_stats
        >>> cancel = CancelToken()
        >>> left, right = tee(process_logs(read_logs("access.csv", cancel), cancel, 3), 100)
"""


from __future__ import annotations

try:
    from importlib.metadata import version as _pkg_version

    __version__ = _pkg_version("logpipe")
except Exception:  # PackageNotFoundError or runtime env oddities
    __version__ = "0.0.0+unknown"


from .core.channels import Channel
from .core.concurrency import CancelToken, StageGroup, process_logs, spawn
from .core.config import LogpipeConfig, load_config_from_path
from .core.errors import ChannelClosed, LogpipeError, MalformedRecordError, SourceOpenError
from .core.log import configure_logging, get_logger
from .core.pipeline import PipelineEngine, PipelineResult
from .core.records import LogEntry, parse_log_line
from .core.report import format_report
from .core.runner import run_pipeline
from .core.stages import filter_logs, tee
from .core.stats import Statistics, calculate_stats, merge_statistics, top_ips
from .sources.csv_source import LogFileSource, ReadSummary, read_logs

__all__ = [
    "__version__",
    "CancelToken",
    "Channel",
    "ChannelClosed",
    "LogEntry",
    "LogFileSource",
    "LogpipeConfig",
    "LogpipeError",
    "MalformedRecordError",
    "PipelineEngine",
    "PipelineResult",
    "ReadSummary",
    "SourceOpenError",
    "StageGroup",
    "Statistics",
    "calculate_stats",
    "configure_logging",
    "filter_logs",
    "format_report",
    "get_logger",
    "load_config_from_path",
    "merge_statistics",
    "parse_log_line",
    "process_logs",
    "read_logs",
    "run_pipeline",
    "spawn",
    "tee",
    "top_ips",
]
