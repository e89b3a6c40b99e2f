# csv_source.py
# SPDX-License-Identifier: MIT

"""CSV access-log source that streams parsed entries onto a channel."""

from __future__ import annotations

import gzip
import os
from concurrent.futures import Future
from dataclasses import dataclass
from pathlib import Path
from typing import IO

from ..core.channels import DEFAULT_POLL_INTERVAL, Channel
from ..core.concurrency import CancelToken, StageGroup, start_stage
from ..core.errors import MalformedRecordError, SourceOpenError
from ..core.log import get_logger
from ..core.records import LogEntry, parse_log_line

__all__ = ["LogFileSource", "ReadSummary", "read_logs"]

log = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class ReadSummary:
    """Counters reported by one run of the reader loop.

    Attributes:
        path (str): File that was read.
        lines_read (int): Data lines pulled from the file (header excluded).
        emitted (int): Entries sent downstream.
        malformed (int): Lines skipped as malformed.
        blank (int): Empty lines skipped silently.
        cancelled (bool): Whether the loop stopped on the cancel token.
    """
    path: str
    lines_read: int = 0
    emitted: int = 0
    malformed: int = 0
    blank: int = 0
    cancelled: bool = False


@dataclass
class LogFileSource:
    """Stream :class:`LogEntry` values from a CSV access log.

    The first line is a header and is discarded without validation. Each
    following non-empty line is parsed; malformed lines are logged and
    skipped. Files ending in ``.gz`` are decompressed on the fly.

    Attributes:
        path (Path): Log file to read.
        delimiter (str): Field separator.
        encoding (str): Text encoding; undecodable bytes are replaced.
        poll_interval (float): Cancel re-check interval while blocked on a
            full output channel.
    """
    path: Path
    delimiter: str = ","
    encoding: str = "utf-8"
    poll_interval: float = DEFAULT_POLL_INTERVAL

    def __post_init__(self) -> None:
        self.path = Path(self.path)

    def open(
        self,
        cancel: CancelToken,
        *,
        group: StageGroup | None = None,
    ) -> tuple[Channel[LogEntry], Future[ReadSummary]]:
        """Open the file and start the read loop on its own thread.

        The file is opened and stat'd before this returns, so an unreadable
        path fails here rather than through the channel.

        Returns:
            tuple[Channel[LogEntry], Future[ReadSummary]]: The entry channel
            and the future of the reader's summary.

        Raises:
            SourceOpenError: If the file cannot be opened or stat'd.
        """
        try:
            fp = _open_log(self.path, encoding=self.encoding)
        except OSError as exc:
            raise SourceOpenError(str(self.path), exc) from exc
        try:
            info = os.fstat(fp.fileno())
        except OSError as exc:
            fp.close()
            raise SourceOpenError(str(self.path), exc) from exc
        log.info("Reading %s (%d bytes)", self.path.name, info.st_size)

        out: Channel[LogEntry] = Channel(1, name="reader")
        fut = start_stage(group, self._read_loop, fp, out, cancel, name="logpipe-reader")
        return out, fut

    def _read_loop(self, fp: IO[str], out: Channel[LogEntry], cancel: CancelToken) -> ReadSummary:
        lines_read = emitted = malformed = blank = 0
        cancelled = False
        try:
            with fp:
                if not fp.readline():
                    log.warning("Header missing or file is empty: %s", self.path)
                    return ReadSummary(path=str(self.path))
                for lineno, raw in enumerate(fp, start=2):
                    if cancel.cancelled:
                        cancelled = True
                        break
                    lines_read += 1
                    line = raw[:-1] if raw.endswith("\n") else raw
                    if not line.strip():
                        blank += 1
                        continue
                    try:
                        entry = parse_log_line(line, lineno=lineno, delimiter=self.delimiter)
                    except MalformedRecordError as exc:
                        malformed += 1
                        log.warning("Skipping malformed log line in %s: %s", self.path.name, exc)
                        continue
                    if not out.send(entry, cancel, poll_interval=self.poll_interval):
                        cancelled = True
                        break
                    emitted += 1
        finally:
            out.close()
        if cancelled:
            log.warning(
                "Read of %s cancelled (%s) after %d line(s)",
                self.path.name,
                cancel.reason,
                lines_read,
            )
        return ReadSummary(
            path=str(self.path),
            lines_read=lines_read,
            emitted=emitted,
            malformed=malformed,
            blank=blank,
            cancelled=cancelled,
        )


def read_logs(
    path: str | Path,
    cancel: CancelToken,
    *,
    delimiter: str = ",",
    encoding: str = "utf-8",
    poll_interval: float = DEFAULT_POLL_INTERVAL,
    group: StageGroup | None = None,
) -> Channel[LogEntry]:
    """Open ``path`` and return a channel of parsed entries.

    Raises:
        SourceOpenError: If the file cannot be opened.
    """
    source = LogFileSource(
        path=Path(path),
        delimiter=delimiter,
        encoding=encoding,
        poll_interval=poll_interval,
    )
    channel, _ = source.open(cancel, group=group)
    return channel


def _open_log(path: Path, *, encoding: str) -> IO[str]:
    """Open a plain or gzip-compressed log file in text mode."""
    if path.suffix.lower() == ".gz":
        return gzip.open(path, "rt", encoding=encoding, errors="replace")
    return open(path, encoding=encoding, errors="replace")
