"""Field helpers shared by the structured (JSON/CSV) parsers."""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from typing import Any

from ..models import LogLevel

_LEVEL_ALIASES = {
    "WARNING": "WARN",
    "ERR": "ERROR",
    "FATAL": "ERROR",
    "CRITICAL": "ERROR",
    "CRIT": "ERROR",
    "SEVERE": "ERROR",
    "PANIC": "ERROR",
    "EMERG": "ERROR",
    "TRC": "TRACE",
    "DBG": "DEBUG",
    "INFORMATION": "INFO",
    "NOTICE": "INFO",
}

TIME_KEYS: Sequence[str] = ("timestamp", "@timestamp", "time", "ts", "datetime", "date")
LEVEL_KEYS: Sequence[str] = ("level", "severity", "lvl", "log_level", "loglevel")
MESSAGE_KEYS: Sequence[str] = ("message", "msg", "log", "text", "detail")
SOURCE_KEYS: Sequence[str] = ("source", "logger", "logger_name", "service", "component")

# Column names that make a delimited header look like a log export.
TEMPORAL_OR_LEVEL_KEYS = frozenset((*TIME_KEYS, *LEVEL_KEYS))

# Epoch values above this are taken as milliseconds.
_EPOCH_MILLIS_THRESHOLD = 10**11


def to_utc(ts: datetime) -> datetime:
    """Return a timezone-aware UTC datetime (naive values are taken as UTC)."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=UTC)
    return ts.astimezone(UTC)


def parse_iso_timestamp(value: str) -> datetime | None:
    """Parse an ISO8601 timestamp string into a UTC datetime."""
    s = value.strip()
    if not s:
        return None
    try:
        ts = datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError:
        return None
    return to_utc(ts)


def parse_timestamp_value(value: Any) -> datetime | None:
    """Parse an ISO string or epoch number (seconds or millis)."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        seconds = value / 1000 if abs(value) >= _EPOCH_MILLIS_THRESHOLD else value
        try:
            return datetime.fromtimestamp(seconds, tz=UTC)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        ts = parse_iso_timestamp(value)
        if ts is None and value.strip().lstrip("-").replace(".", "", 1).isdigit():
            return parse_timestamp_value(float(value))
        return ts
    return None


def parse_level(value: str) -> LogLevel:
    """Parse a level name (case-insensitive, with aliases) into a LogLevel."""
    name = value.strip().upper()
    if not name:
        return LogLevel.UNKNOWN
    name = _LEVEL_ALIASES.get(name, name)
    try:
        return LogLevel[name]
    except KeyError:
        return LogLevel.UNKNOWN


def stringify(value: Any) -> str:
    """Render an attribute value as text; nested values are JSON-encoded."""
    if isinstance(value, str):
        return value
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, sort_keys=True)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def split_common_fields(
    fields: Mapping[str, Any],
) -> tuple[datetime | None, LogLevel, str | None, str | None, dict[str, str]]:
    """Pick timestamp, level, message and source out of a mapping.

    The first key that yields a usable value wins; every field not consumed
    that way is returned as a string attribute.
    """
    by_lower = {k.lower(): k for k in fields}
    used: set[str] = set()

    def pick(keys: Sequence[str], convert):
        for key in keys:
            original = by_lower.get(key)
            if original is None:
                continue
            converted = convert(fields[original])
            if converted is not None:
                used.add(original)
                return converted
        return None

    ts = pick(TIME_KEYS, parse_timestamp_value)
    level = pick(
        LEVEL_KEYS,
        lambda v: parse_level(v) if isinstance(v, str) and v.strip() else None,
    )
    message = pick(MESSAGE_KEYS, lambda v: stringify(v) if v is not None else None)
    source = pick(SOURCE_KEYS, lambda v: stringify(v) or None if v is not None else None)

    attributes = {k: stringify(v) for k, v in fields.items() if k not in used}
    return ts, level or LogLevel.UNKNOWN, message, source, attributes
