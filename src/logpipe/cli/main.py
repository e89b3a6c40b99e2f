# main.py
# SPDX-License-Identifier: MIT

from __future__ import annotations

import argparse
import signal
import sys
from contextlib import contextmanager
from typing import Iterator, Optional, Sequence

from ..core.concurrency import CancelToken
from ..core.config import LogpipeConfig, load_config_from_path
from ..core.log import get_logger
from ..core.pipeline import PipelineEngine
from ..core.report import format_report

log = get_logger(__name__)

_CANCEL_SIGNALS = ("SIGINT", "SIGTERM")


def _build_parser() -> argparse.ArgumentParser:
    """Build the logpipe CLI argument parser.

    The log file is optional at the parser level so that a bare invocation
    can print usage and exit successfully.

    Returns:
        argparse.ArgumentParser: Configured argument parser for the CLI.
    """
    parser = argparse.ArgumentParser(
        prog="logpipe",
        description="Aggregate traffic statistics from a CSV access log.",
    )
    parser.add_argument("logfile", nargs="?", help="CSV access log (header row first).")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (e.g., DEBUG, INFO, WARNING).",
    )
    parser.add_argument("-c", "--config", help="Path to config file (TOML or JSON).")
    parser.add_argument("--workers", type=int, help="Override pipeline.workers.")
    parser.add_argument("--buffer", type=int, help="Override pipeline.tee_buffer.")
    parser.add_argument("--threshold", type=int, help="Override pipeline.error_threshold.")
    parser.add_argument("--top", type=int, help="Override report.top_n.")
    return parser


def _apply_overrides(cfg: LogpipeConfig, args: argparse.Namespace) -> None:
    """Apply CLI override flags to a config object in place."""
    if args.workers is not None:
        cfg.pipeline.workers = int(args.workers)
    if args.buffer is not None:
        cfg.pipeline.tee_buffer = int(args.buffer)
    if args.threshold is not None:
        cfg.pipeline.error_threshold = int(args.threshold)
    if args.top is not None:
        cfg.report.top_n = int(args.top)
    if args.log_level:
        cfg.logging.level = args.log_level


@contextmanager
def _cancel_on_signals(cancel: CancelToken) -> Iterator[None]:
    """Route SIGINT/SIGTERM to ``cancel`` for the duration of the block.

    Signal handlers can only be installed from the main thread; elsewhere
    the block runs without them.
    """
    previous: dict[int, object] = {}

    def _handler(signum, frame) -> None:
        name = signal.Signals(signum).name
        log.warning("Received %s; cancelling run", name)
        cancel.cancel(f"signal {name}")

    try:
        for sig_name in _CANCEL_SIGNALS:
            signum = getattr(signal, sig_name, None)
            if signum is None:
                continue
            previous[signum] = signal.signal(signum, _handler)
    except ValueError:
        log.debug("Not on the main thread; signal-driven cancellation disabled")
    try:
        yield
    finally:
        for signum, handler in previous.items():
            # None means the old handler was not installed from Python
            if handler is not None:
                signal.signal(signum, handler)


def _dispatch(args: argparse.Namespace) -> int:
    """Load configuration, run the pipeline and print the report.

    Args:
        args (argparse.Namespace): Parsed arguments.

    Returns:
        int: Process exit code.
    """
    cfg = load_config_from_path(args.config) if args.config else LogpipeConfig()
    _apply_overrides(cfg, args)
    cfg.logging.apply()
    engine = PipelineEngine(cfg)
    cancel = CancelToken()
    with _cancel_on_signals(cancel):
        result = engine.run(args.logfile, cancel)
    sys.stdout.write(format_report(result, top_n=cfg.report.top_n))
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Entry point for the logpipe command-line interface.

    A missing log file argument prints usage to stdout and returns 0. Open
    failures and invalid configuration are reported on stderr with exit
    code 1.

    Args:
        argv (Sequence[str] | None): Optional list of argument strings to
            parse instead of ``sys.argv[1:]``. Primarily useful for tests.

    Returns:
        int: Process exit code.
    """
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    if not args.logfile:
        parser.print_usage(sys.stdout)
        return 0
    try:
        return _dispatch(args)
    except Exception as exc:  # noqa: BLE001
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
