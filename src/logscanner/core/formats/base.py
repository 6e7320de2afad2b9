"""Parser interface."""

from __future__ import annotations

from typing import Protocol

from ..models import LogRecord


class LogParser(Protocol):
    """Parser interface: return a LogRecord or raise ParseError."""

    def parse(self, line_no: int, text: str) -> LogRecord:
        """Parse one input unit into a LogRecord."""
        ...
