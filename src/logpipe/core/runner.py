# SPDX-License-Identifier: MIT
"""Orchestration helper that bridges configuration and the engine."""
from __future__ import annotations

from pathlib import Path

from .concurrency import CancelToken
from .config import LogpipeConfig
from .pipeline import PipelineEngine, PipelineResult

__all__ = ["run_pipeline"]


def run_pipeline(
    path: str | Path,
    *,
    config: LogpipeConfig | None = None,
    cancel: CancelToken | None = None,
) -> PipelineResult:
    """Run the end-to-end pipeline over one log file.

    Args:
        path (str | Path): CSV access log.
        config (LogpipeConfig | None): Optional configuration; defaults are
            used when omitted.
        cancel (CancelToken | None): Optional token to stop the run early.

    Returns:
        PipelineResult: Statistics for both branches and the reader summary.
    """
    engine = PipelineEngine(config)
    return engine.run(path, cancel)
