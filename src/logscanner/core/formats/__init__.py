"""Log parsing formats.

Contains one parser per supported input format (JSON, CSV, standard text,
plain text) and the registry that selects between them.
"""

from __future__ import annotations

from .base import LogParser
from .delimited import DelimitedParser
from .jsonl import JsonLinesParser
from .plain import PlainTextParser
from .registry import build_parser
from .standard import StandardTextParser

__all__ = [
    "DelimitedParser",
    "JsonLinesParser",
    "LogParser",
    "PlainTextParser",
    "StandardTextParser",
    "build_parser",
]
