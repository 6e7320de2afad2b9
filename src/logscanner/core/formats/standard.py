"""Standard text parser: ``yyyy-MM-dd HH:mm:ss[.SSS] LEVEL [context] - message``."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import UTC, datetime

from ..errors import ParseError
from ..models import LogLevel, LogRecord
from .common import parse_level

STANDARD_LINE_RE = re.compile(
    r"^(?P<date>\d{4}-\d{2}-\d{2})[ T]"
    r"(?P<time>\d{2}:\d{2}:\d{2})(?:[.,](?P<frac>\d{1,6}))?\s+"
    r"(?P<level>[A-Za-z]+)\s+"
    r"(?:\[(?P<context>[^\]]*)\]\s+)?"
    r"-\s?(?P<msg>.*)$"
)


@dataclass(frozen=True, slots=True)
class StandardTextParser:
    """Parse the canonical application log line.

    Lines that do not follow the grammar are kept whole as the message with
    UNKNOWN level; only blank input is an error.
    """

    def _parse_ts(self, date_s: str, time_s: str, frac: str | None) -> datetime | None:
        try:
            ts = datetime.strptime(f"{date_s} {time_s}", "%Y-%m-%d %H:%M:%S")
        except ValueError:
            return None
        if frac:
            ts = ts.replace(microsecond=int(frac.ljust(6, "0")))
        return ts.replace(tzinfo=UTC)

    def parse(self, line_no: int, text: str) -> LogRecord:
        """Parse a standard text line into a LogRecord."""
        line = text.rstrip("\r\n")
        if not line.strip():
            raise ParseError(line_no, "empty line", text)

        m = STANDARD_LINE_RE.match(line)
        if not m:
            return LogRecord(line_no=line_no, raw_line=line, level=LogLevel.UNKNOWN, message=line.strip())

        ts = self._parse_ts(m.group("date"), m.group("time"), m.group("frac"))
        if ts is None:
            return LogRecord(line_no=line_no, raw_line=line, level=LogLevel.UNKNOWN, message=line.strip())

        context = (m.group("context") or "").strip() or None
        return LogRecord(
            line_no=line_no,
            raw_line=line,
            timestamp=ts,
            level=parse_level(m.group("level")),
            message=m.group("msg").strip(),
            source=context,
        )
