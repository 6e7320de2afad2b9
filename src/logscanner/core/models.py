"""Core data models for log ingestion."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class LogLevel(str, Enum):
    """Normalized severity levels stored with every record."""

    ERROR = "ERROR"
    WARN = "WARN"
    INFO = "INFO"
    DEBUG = "DEBUG"
    TRACE = "TRACE"
    UNKNOWN = "UNKNOWN"


class LogFormat(str, Enum):
    """Closed set of input formats; one parser exists per member."""

    JSON = "JSON"
    CSV = "CSV"
    STANDARD_TEXT = "STANDARD_TEXT"
    PLAIN_TEXT = "PLAIN_TEXT"


@dataclass(frozen=True, slots=True)
class LogRecord:
    """Normalized log record produced by a parser from one input unit."""

    line_no: int
    raw_line: str
    timestamp: datetime | None = None  # UTC, None when not detectable
    level: LogLevel = LogLevel.UNKNOWN
    message: str = ""
    source: str | None = None  # originating file or logger name
    attributes: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.raw_line:
            raise ValueError("raw_line must not be empty")


@dataclass(frozen=True, slots=True)
class SourceUnit:
    """One raw input unit (a line, CSV row or JSON array element)."""

    line_no: int
    text: str
