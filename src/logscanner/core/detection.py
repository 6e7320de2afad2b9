"""Format detection from a bounded prefix of a log file."""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from pathlib import Path

from .errors import SourceError
from .formats.common import TEMPORAL_OR_LEVEL_KEYS
from .formats.delimited import DELIMITERS, split_row
from .formats.standard import STANDARD_LINE_RE
from .models import LogFormat
from .reader import open_source

logger = logging.getLogger(__name__)

# Data lines compared against the CSV header's field count.
_CSV_CONFIRM_LINES = 4


def _looks_like_json(lines: Sequence[str]) -> bool:
    first = lines[0]
    if first.startswith("["):
        # A top-level array, unless this is a "[LEVEL] message" line.
        rest = first[1:].lstrip()
        if not rest or rest.startswith(("{", "]")):
            return True
        try:
            return isinstance(json.loads(first), list)
        except json.JSONDecodeError:
            return False
    if not (first.startswith("{") and first.endswith("}")):
        return False
    try:
        return isinstance(json.loads(first), dict)
    except json.JSONDecodeError:
        return False


def _looks_like_csv(lines: Sequence[str]) -> bool:
    header = lines[0]
    for delim in DELIMITERS:
        if delim not in header:
            continue
        columns = [c.strip().lstrip("\ufeff").lower() for c in split_row(header, delim)]
        if len(columns) < 2 or not TEMPORAL_OR_LEVEL_KEYS.intersection(columns):
            continue
        following = lines[1 : 1 + _CSV_CONFIRM_LINES]
        # A minority of malformed rows is reported per line by the parser.
        stable = sum(1 for line in following if len(split_row(line, delim)) == len(columns))
        if not following or stable * 2 > len(following):
            return True
    return False


def detect_format(sample_lines: Sequence[str]) -> LogFormat:
    """Classify a file from its first lines. Never fails; PLAIN_TEXT is the fallback.

    Priority: JSON, then CSV (stable field count and a temporal/level column),
    then the standard ``DATE TIME LEVEL [context] - message`` grammar.
    """
    lines = [s for s in (line.strip().lstrip("\ufeff") for line in sample_lines) if s]
    if not lines:
        return LogFormat.PLAIN_TEXT

    if _looks_like_json(lines):
        return LogFormat.JSON
    if _looks_like_csv(lines):
        return LogFormat.CSV
    if any(STANDARD_LINE_RE.match(line) for line in lines):
        return LogFormat.STANDARD_TEXT
    return LogFormat.PLAIN_TEXT


async def read_sample(
    log_path: str | Path,
    *,
    sample_lines: int = 20,
    max_bytes_per_line: int = 4096,
    max_bytes: int = 64 * 1024,
) -> list[str]:
    """Read up to ``sample_lines`` non-empty lines from the first ``max_bytes`` of a file.

    The prefix is read with a single bounded call, even for one-line files.
    """
    try:
        async with open_source(log_path) as f:
            head = await f.read(max_bytes)
    except OSError as exc:
        raise SourceError(f"Cannot read log file {log_path}: {exc}") from exc

    raw_lines = head.split(b"\n")
    if len(head) >= max_bytes and len(raw_lines) > 1:
        raw_lines.pop()  # cut off mid-line

    out: list[str] = []
    for raw in raw_lines:
        line = raw[:max_bytes_per_line].decode("utf-8", errors="replace").strip()
        if line:
            out.append(line)
        if len(out) >= sample_lines:
            break
    return out


async def sniff_format(log_path: str | Path, *, sample_lines: int = 20) -> LogFormat:
    """Sample the first lines of a file and pick its format."""
    sample = await read_sample(log_path, sample_lines=sample_lines)
    fmt = detect_format(sample)
    logger.debug("Detected %s for %s from %d sample lines", fmt.value, log_path, len(sample))
    return fmt
