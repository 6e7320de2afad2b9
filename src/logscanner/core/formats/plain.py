"""Fallback parser for free-form text lines."""

from __future__ import annotations

import re
from dataclasses import dataclass

from ..errors import ParseError
from ..models import LogLevel, LogRecord
from .common import parse_level

_BRACKET_LEVEL_RE = re.compile(r"^\s*\[\s*(?P<level>[A-Za-z]+)\s*\]\s*(?P<msg>.*)$")
_BARE_LEVEL_RE = re.compile(
    r"^\s*(?P<level>ERROR|ERR|FATAL|CRITICAL|WARN(?:ING)?|INFO|DEBUG|TRACE)(?::\s*|\s+)(?P<msg>.*)$",
    re.IGNORECASE,
)


@dataclass(frozen=True, slots=True)
class PlainTextParser:
    """Extract a leading ``[LEVEL]`` (or bare level keyword); the rest is the message."""

    def parse(self, line_no: int, text: str) -> LogRecord:
        """Parse a free-form line into a LogRecord."""
        line = text.rstrip("\r\n")
        if not line.strip():
            raise ParseError(line_no, "empty line", text)

        level = LogLevel.UNKNOWN
        message = line.strip()

        m = _BRACKET_LEVEL_RE.match(line)
        if m and parse_level(m.group("level")) is not LogLevel.UNKNOWN:
            level = parse_level(m.group("level"))
            message = m.group("msg").strip()
        else:
            m = _BARE_LEVEL_RE.match(line)
            if m:
                level = parse_level(m.group("level"))
                message = m.group("msg").strip()

        return LogRecord(line_no=line_no, raw_line=line, level=level, message=message)
