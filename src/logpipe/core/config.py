# config.py
# SPDX-License-Identifier: MIT
"""Configuration models and helpers for logpipe runs.

This module defines declarative dataclasses for the log source, the stage
graph, the report, and logging, along with helpers for serializing and
loading configurations from JSON and TOML.
"""
from __future__ import annotations

import json
try:  # pragma: no cover - optional dependency
    import tomllib  # Python 3.11+
except ModuleNotFoundError:  # pragma: no cover
    try:
        import tomli as tomllib  # type: ignore[assignment]
    except Exception:  # pragma: no cover
        tomllib = None  # type: ignore[assignment]
import types
from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Tuple, Type, TypeVar, Union, get_args, get_origin, get_type_hints

from .log import DEFAULT_FORMAT, PACKAGE_LOGGER_NAME, configure_logging

T = TypeVar("T")

DEFAULT_WORKERS = 3
DEFAULT_TEE_BUFFER = 100
ERROR_STATUS_THRESHOLD = 400
DEFAULT_TOP_N = 5


@dataclass(slots=True)
class SourceConfig:
    """Settings for reading the access-log file.

    Attributes:
        delimiter (str): Single-character field separator.
        encoding (str): Text encoding of the file.
    """
    delimiter: str = ","
    encoding: str = "utf-8"


@dataclass(slots=True)
class PipelineConfig:
    """
    Shape of the stage graph.

    workers: number of pass-through workers draining the reader channel.
    tee_buffer: capacity of each of the two tee outputs. A full buffer blocks
        the tee loop, so one slow branch throttles both.
    error_threshold: minimum status code forwarded to the error branch.
    cancel_poll_interval: seconds a cancellable producer waits on a full
        channel before re-checking the cancel token.
    """
    workers: int = DEFAULT_WORKERS
    tee_buffer: int = DEFAULT_TEE_BUFFER
    error_threshold: int = ERROR_STATUS_THRESHOLD
    cancel_poll_interval: float = 0.05


@dataclass(slots=True)
class ReportConfig:
    top_n: int = DEFAULT_TOP_N


@dataclass(slots=True)
class LoggingConfig:
    """Controls the package logger; set propagate=True/logger_name to
    integrate with host apps.
    """
    level: int | str = "INFO"
    propagate: bool = True
    fmt: str = DEFAULT_FORMAT
    logger_name: str = PACKAGE_LOGGER_NAME

    def apply(self) -> None:
        """Apply this logging configuration to the package logger."""
        configure_logging(
            level=self.level,
            propagate=self.propagate,
            fmt=self.fmt,
            logger_name=self.logger_name or PACKAGE_LOGGER_NAME,
        )


@dataclass(slots=True)
class LogpipeConfig:
    """Declarative settings for a logpipe run.

    Holds only serializable knobs. Runtime objects (cancel tokens, channels,
    open files) are created by the engine for each run and never stored here.
    """
    source: SourceConfig = field(default_factory=SourceConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    report: ReportConfig = field(default_factory=ReportConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def validate(self) -> None:
        """Validate the configuration for internal consistency.

        Raises:
            ValueError: If any knob is out of range.
        """
        if len(self.source.delimiter) != 1:
            raise ValueError(f"source.delimiter must be a single character; got {self.source.delimiter!r}.")
        if self.pipeline.workers < 1:
            raise ValueError(f"pipeline.workers must be >= 1; got {self.pipeline.workers}.")
        if self.pipeline.tee_buffer < 1:
            raise ValueError(f"pipeline.tee_buffer must be >= 1; got {self.pipeline.tee_buffer}.")
        if self.pipeline.cancel_poll_interval <= 0:
            raise ValueError("pipeline.cancel_poll_interval must be > 0.")
        if self.report.top_n < 0:
            raise ValueError(f"report.top_n must be >= 0; got {self.report.top_n}.")

    # -------------------------
    # Serialization helpers
    # -------------------------
    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON-serializable representation of this configuration."""
        return _dataclass_to_dict(self)

    def to_json(self, path: Path | str, *, indent: int = 2) -> str:
        """Serialize the configuration to JSON and write it to disk.

        Args:
            path (Path | str): Target file path.
            indent (int): Indentation level passed to ``json.dumps``.

        Returns:
            str: String path to the written file.
        """
        target = Path(path)
        target.write_text(json.dumps(self.to_dict(), indent=indent, sort_keys=True), encoding="utf-8")
        return str(target)

    @classmethod
    def from_dict(cls: Type[T], data: Mapping[str, Any]) -> T:
        return _dataclass_from_dict(cls, data)

    @classmethod
    def from_json(cls: Type[T], path: Path | str) -> T:
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
        if not isinstance(payload, Mapping):
            raise TypeError(f"Top-level JSON document must be an object; got {type(payload).__name__}.")
        return cls.from_dict(payload)

    @classmethod
    def from_toml(cls: Type[T], path: Path | str) -> T:
        """
        Load a LogpipeConfig from a TOML file.

        The TOML layout mirrors this dataclass: tables [source], [pipeline],
        [report] and [logging].
        """
        if tomllib is None:
            raise RuntimeError(
                "TOML support requires Python 3.11+ (tomllib) or installing the 'tomli' package."
            )
        data = tomllib.loads(Path(path).read_bytes().decode("utf-8"))
        return cls.from_dict(data)


def load_config_from_path(path: str | Path) -> LogpipeConfig:
    """Load a LogpipeConfig from a JSON or TOML file.

    Args:
        path (Path | str): Path to a ``.toml`` or ``.json`` config file.

    Returns:
        LogpipeConfig: Parsed configuration instance.

    Raises:
        ValueError: If the file extension is not ``.toml`` or ``.json``.
    """
    p = Path(path)
    suffix = p.suffix.lower()
    if suffix == ".toml":
        return LogpipeConfig.from_toml(p)
    if suffix == ".json":
        return LogpipeConfig.from_json(p)
    raise ValueError(f"Unsupported config extension {p.suffix!r}; expected .toml or .json.")


def _dataclass_to_dict(obj: Any) -> Dict[str, Any]:
    """Serialize dataclasses to JSON-friendly dicts, skipping None fields."""
    result: Dict[str, Any] = {}
    for f in fields(obj):
        value = getattr(obj, f.name)
        if value is None:
            continue
        if is_dataclass(value):
            result[f.name] = _dataclass_to_dict(value)
        elif isinstance(value, Path):
            result[f.name] = str(value)
        else:
            result[f.name] = value
    return result


def _dataclass_from_dict(cls: Type[T], data: Mapping[str, Any] | None) -> T:
    """Instantiate a dataclass of type `cls` from a mapping.

    Unknown keys raise ValueError so typos in config files surface early.
    """
    if data is None:
        return cls()  # type: ignore[call-arg]
    type_hints = get_type_hints(cls)
    known = {f.name for f in fields(cls)}
    unknown = sorted(k for k in data if k not in known)
    if unknown:
        raise ValueError(
            f"Unsupported options for {cls.__name__}: {', '.join(unknown)}. "
            f"Allowed keys: {', '.join(sorted(known))}"
        )

    kwargs: Dict[str, Any] = {}
    for f in fields(cls):
        if f.name not in data:
            continue
        kwargs[f.name] = _coerce_value(type_hints.get(f.name, f.type), data[f.name])
    return cls(**kwargs)  # type: ignore[arg-type]


def _coerce_value(expected_type: Any, value: Any) -> Any:
    """Coerce `value` into the shape implied by `expected_type`."""
    base_type, _ = _strip_optional(expected_type)
    if value is None:
        return None
    if is_dataclass_type(base_type):
        return _dataclass_from_dict(base_type, value)
    if base_type is Path:
        return Path(value)
    if base_type in {str, int, float, bool}:
        return base_type(value)
    return value


def _strip_optional(typ: Any) -> Tuple[Any, bool]:
    """Strip Optional from a type annotation.

    Returns:
        tuple[Any, bool]: ``(base_type, is_optional)``.
    """
    origin = get_origin(typ)
    if origin is Union or origin is types.UnionType:
        args = [arg for arg in get_args(typ) if arg is not type(None)]
        if len(args) == 1:
            base, _ = _strip_optional(args[0])
            return base, True
    return typ, False


def is_dataclass_type(typ: Any) -> bool:
    """Return True if `typ` is a dataclass type (not an instance)."""
    return isinstance(typ, type) and is_dataclass(typ)


__all__ = [
    "LogpipeConfig",
    "SourceConfig",
    "PipelineConfig",
    "ReportConfig",
    "LoggingConfig",
    "ERROR_STATUS_THRESHOLD",
    "load_config_from_path",
]
