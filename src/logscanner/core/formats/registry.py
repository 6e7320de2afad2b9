"""Parser registry: one parser per LogFormat."""

from __future__ import annotations

from ..models import LogFormat
from .base import LogParser
from .delimited import DelimitedParser
from .jsonl import JsonLinesParser
from .plain import PlainTextParser
from .standard import StandardTextParser


def build_parser(fmt: LogFormat, *, header: str | None = None, strict_csv: bool = True) -> LogParser:
    """Return the parser for a detected format.

    CSV parsers are built from the file's header line, which must be given.
    """
    if fmt is LogFormat.JSON:
        return JsonLinesParser()
    if fmt is LogFormat.CSV:
        if header is None:
            raise ValueError("CSV parser requires the header line")
        return DelimitedParser.from_header(header, strict=strict_csv)
    if fmt is LogFormat.STANDARD_TEXT:
        return StandardTextParser()
    if fmt is LogFormat.PLAIN_TEXT:
        return PlainTextParser()
    raise ValueError(f"No parser registered for format {fmt!r}")
