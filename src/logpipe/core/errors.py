# errors.py
# SPDX-License-Identifier: MIT
"""Exception hierarchy shared by the pipeline stages."""

from __future__ import annotations

__all__ = ["LogpipeError", "SourceOpenError", "MalformedRecordError", "ChannelClosed"]


class LogpipeError(Exception):
    """Base class for errors raised by logpipe."""


class SourceOpenError(LogpipeError):
    """Raised when the input log file cannot be opened or stat'd."""

    def __init__(self, path: str, cause: BaseException) -> None:
        super().__init__(f"cannot open log file {path!r}: {cause}")
        self.path = path
        self.cause = cause


class MalformedRecordError(LogpipeError, ValueError):
    """Raised when a log line fails field-count or integer checks."""

    def __init__(self, message: str, *, lineno: int | None = None) -> None:
        if lineno is not None:
            message = f"line {lineno}: {message}"
        super().__init__(message)
        self.lineno = lineno


class ChannelClosed(LogpipeError):
    """Raised when sending on a channel that was already closed."""
