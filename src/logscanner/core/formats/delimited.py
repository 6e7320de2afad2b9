"""CSV (delimiter-separated) parser."""

from __future__ import annotations

import csv
from collections.abc import Sequence
from dataclasses import dataclass

from ..errors import ParseError
from ..models import LogRecord
from .common import split_common_fields

DELIMITERS: Sequence[str] = (",", ";", "\t", "|")


def split_row(text: str, delimiter: str) -> list[str]:
    """Split one delimited line, honoring double-quoted fields."""
    return next(csv.reader([text], delimiter=delimiter, skipinitialspace=True), [])


def sniff_delimiter(header: str) -> str:
    """Pick the delimiter that splits the header into the most columns."""
    best, best_count = DELIMITERS[0], 0
    for delim in DELIMITERS:
        count = len(split_row(header, delim))
        if count > best_count:
            best, best_count = delim, count
    return best


@dataclass(frozen=True, slots=True)
class DelimitedParser:
    """Map rows positionally onto the header columns.

    With ``strict`` (the default) a row whose field count differs from the
    header is a ParseError. Lenient mode pads short rows with empty values and
    keeps surplus fields in the ``_extra`` attribute.
    """

    columns: tuple[str, ...]
    delimiter: str = ","
    strict: bool = True

    @classmethod
    def from_header(cls, header: str, *, delimiter: str | None = None, strict: bool = True) -> DelimitedParser:
        delim = delimiter or sniff_delimiter(header)
        columns = tuple(c.strip().lstrip("\ufeff") for c in split_row(header, delim))
        if len(columns) < 2:
            raise ValueError(f"CSV header needs at least two columns: {header!r}")
        return cls(columns=columns, delimiter=delim, strict=strict)

    def parse(self, line_no: int, text: str) -> LogRecord:
        """Parse one data row into a LogRecord."""
        if not text.strip():
            raise ParseError(line_no, "empty row", text)

        values = split_row(text, self.delimiter)
        extra: list[str] = []
        if len(values) != len(self.columns):
            if self.strict:
                raise ParseError(
                    line_no,
                    f"malformed row: expected {len(self.columns)} fields, got {len(values)}",
                    text,
                )
            if len(values) < len(self.columns):
                values = values + [""] * (len(self.columns) - len(values))
            else:
                extra = values[len(self.columns):]
                values = values[: len(self.columns)]

        row = {col: val for col, val in zip(self.columns, values) if col}
        ts, level, message, source, attributes = split_common_fields(row)
        if extra:
            attributes["_extra"] = self.delimiter.join(extra)

        return LogRecord(
            line_no=line_no,
            raw_line=text,
            timestamp=ts,
            level=level,
            message=message if message is not None else "",
            source=source,
            attributes=attributes,
        )
