# records.py
# SPDX-License-Identifier: MIT
"""Parsed access-log entries and the line parser that builds them."""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass
from typing import Any

from .errors import MalformedRecordError

__all__ = ["LogEntry", "parse_log_line", "FIELD_NAMES", "EXPECTED_FIELDS"]

FIELD_NAMES = ("timestamp", "ip", "method", "url", "status_code", "response_time_ms")
EXPECTED_FIELDS = len(FIELD_NAMES)

# Plain decimal with an optional sign; int() alone would also accept
# surrounding whitespace and digit separators.
_INT_RE = re.compile(r"[+-]?[0-9]+")


# Convention: hot-path dataclasses use slots=True to reduce per-instance overhead.
@dataclass(frozen=True, slots=True)
class LogEntry:
    """One access-log line.

    Attributes:
        timestamp (str): Request time as written in the log, e.g.
            ``2024-01-15 10:30:00``.
        ip (str): Client IP address.
        method (str): HTTP method.
        url (str): Request path.
        status_code (int): HTTP status code.
        response_time (int): Response time in milliseconds (>= 0).
    """
    timestamp: str
    ip: str
    method: str
    url: str
    status_code: int
    response_time: int

    @property
    def is_error(self) -> bool:
        return self.status_code >= 400

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def _parse_int(raw: str, label: str, lineno: int | None) -> int:
    if not _INT_RE.fullmatch(raw):
        raise MalformedRecordError(f"invalid {label} {raw!r}", lineno=lineno)
    return int(raw)


def parse_log_line(
    line: str,
    *,
    lineno: int | None = None,
    delimiter: str = ",",
) -> LogEntry:
    """Split one CSV line into a :class:`LogEntry`.

    Fields are split on ``delimiter`` without quote handling. The first four
    fields are kept verbatim; status code and response time must be integers
    and the response time must not be negative.

    Args:
        line (str): Raw line without its trailing newline.
        lineno (int | None): 1-based file line number used in error messages.
        delimiter (str): Field separator.

    Returns:
        LogEntry: The parsed entry.

    Raises:
        MalformedRecordError: On a wrong field count or a bad integer field.
    """
    fields = line.split(delimiter)
    if len(fields) != EXPECTED_FIELDS:
        raise MalformedRecordError(
            f"expected {EXPECTED_FIELDS} fields, got {len(fields)}",
            lineno=lineno,
        )
    timestamp, ip, method, url, raw_status, raw_resp = fields
    status_code = _parse_int(raw_status, "status code", lineno)
    response_time = _parse_int(raw_resp, "response time", lineno)
    if response_time < 0:
        raise MalformedRecordError(f"negative response time {response_time}", lineno=lineno)
    return LogEntry(
        timestamp=timestamp,
        ip=ip,
        method=method,
        url=url,
        status_code=status_code,
        response_time=response_time,
    )
