"""JSON parser (JSON lines or elements of a top-level array)."""

from __future__ import annotations

import json
from dataclasses import dataclass

from ..errors import ParseError
from ..models import LogRecord
from .common import split_common_fields


@dataclass(frozen=True, slots=True)
class JsonLinesParser:
    """Parse one JSON object per unit; unknown fields become attributes."""

    def parse(self, line_no: int, text: str) -> LogRecord:
        """Parse a JSON object into a LogRecord."""
        s = text.strip()
        if not s:
            raise ParseError(line_no, "empty input", text)

        try:
            obj = json.loads(s)
        except json.JSONDecodeError as exc:
            raise ParseError(line_no, f"invalid JSON: {exc.msg}", text) from exc
        if not isinstance(obj, dict):
            raise ParseError(line_no, f"expected a JSON object, got {type(obj).__name__}", text)

        ts, level, message, source, attributes = split_common_fields(obj)
        return LogRecord(
            line_no=line_no,
            raw_line=s,
            timestamp=ts,
            level=level,
            message=message if message is not None else "",
            source=source,
            attributes=attributes,
        )
