"""Compile structured record queries into backend-neutral plans.

``compile_query`` never rejects a request: out-of-range paging is clamped,
unknown sort fields fall back to ``timestamp`` and blank filters are dropped.
The resulting ``QueryPlan`` can be evaluated against records directly
(in-memory store) or rendered as an Elasticsearch/OpenSearch request body.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from .formats.common import parse_level, to_utc
from .models import LogLevel, LogRecord

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 1000
SORT_FIELDS = ("timestamp", "level", "source")
TEXT_FIELDS = ("message", "raw_line")


class SortDirection(str, Enum):
    ASC = "ASC"
    DESC = "DESC"


@dataclass(frozen=True, slots=True)
class QueryRequest:
    """Filter/sort/page request as received from the service layer."""

    search_text: str | None = None
    levels: Iterable[LogLevel | str] = ()
    start_date: datetime | None = None
    end_date: datetime | None = None
    page: int | None = None
    size: int | None = None
    sort_field: str | None = None
    sort_direction: SortDirection | str | None = None


@dataclass(frozen=True, slots=True)
class TextMatch:
    text: str
    fields: tuple[str, ...] = TEXT_FIELDS

    def matches(self, record: LogRecord) -> bool:
        needle = self.text.casefold()
        return any(needle in (getattr(record, f) or "").casefold() for f in self.fields)

    def to_search(self) -> dict[str, Any]:
        return {"multi_match": {"query": self.text, "fields": list(self.fields), "operator": "and"}}


@dataclass(frozen=True, slots=True)
class LevelIn:
    levels: frozenset[LogLevel]

    def matches(self, record: LogRecord) -> bool:
        return record.level in self.levels

    def to_search(self) -> dict[str, Any]:
        return {"terms": {"level": sorted(lvl.value for lvl in self.levels)}}


@dataclass(frozen=True, slots=True)
class TimeRange:
    """Inclusive bounds on ``timestamp``; records without a timestamp never match."""

    start: datetime | None = None
    end: datetime | None = None

    def matches(self, record: LogRecord) -> bool:
        ts = record.timestamp
        if ts is None:
            return False
        ts = to_utc(ts)
        if self.start is not None and ts < self.start:
            return False
        if self.end is not None and ts > self.end:
            return False
        return True

    def to_search(self) -> dict[str, Any]:
        bounds: dict[str, str] = {}
        if self.start is not None:
            bounds["gte"] = self.start.isoformat()
        if self.end is not None:
            bounds["lte"] = self.end.isoformat()
        return {"range": {"timestamp": bounds}}


Clause = TextMatch | LevelIn | TimeRange


@dataclass(frozen=True, slots=True)
class QueryPlan:
    """Conjunction of clauses plus pagination and sort. No clauses = match all."""

    clauses: tuple[Clause, ...] = ()
    page: int = 0
    size: int = DEFAULT_PAGE_SIZE
    sort_field: str = "timestamp"
    sort_direction: SortDirection = SortDirection.DESC

    @property
    def match_all(self) -> bool:
        return not self.clauses

    @property
    def offset(self) -> int:
        return self.page * self.size

    def matches(self, record: LogRecord) -> bool:
        return all(c.matches(record) for c in self.clauses)

    def sort_value(self, record: LogRecord) -> Any:
        if self.sort_field == "timestamp":
            return to_utc(record.timestamp) if record.timestamp is not None else None
        if self.sort_field == "level":
            return record.level.value
        return record.source

    def to_search_body(self) -> dict[str, Any]:
        """Render the plan as an Elasticsearch/OpenSearch ``_search`` body."""
        if self.match_all:
            query: dict[str, Any] = {"match_all": {}}
        else:
            must = [c.to_search() for c in self.clauses if isinstance(c, TextMatch)]
            filters = [c.to_search() for c in self.clauses if not isinstance(c, TextMatch)]
            bool_q: dict[str, Any] = {}
            if must:
                bool_q["must"] = must
            if filters:
                bool_q["filter"] = filters
            query = {"bool": bool_q}
        return {
            "query": query,
            "from": self.offset,
            "size": self.size,
            "sort": [
                {self.sort_field: {"order": self.sort_direction.value.lower(), "missing": "_last"}}
            ],
            "track_total_hits": True,
        }


@dataclass(frozen=True, slots=True)
class QueryPage:
    """One page of matching records plus the total match count."""

    records: Sequence[LogRecord] = field(default_factory=tuple)
    total: int = 0
    page: int = 0
    size: int = DEFAULT_PAGE_SIZE


def _normalize_levels(levels: Iterable[LogLevel | str] | None) -> frozenset[LogLevel]:
    out: set[LogLevel] = set()
    for lvl in levels or ():
        if isinstance(lvl, LogLevel):
            out.add(lvl)
        elif isinstance(lvl, str) and lvl.strip():
            out.add(parse_level(lvl))
    return frozenset(out)


def _normalize_direction(value: SortDirection | str | None) -> SortDirection:
    if isinstance(value, SortDirection):
        return value
    if isinstance(value, str) and value.strip().upper() == "ASC":
        return SortDirection.ASC
    return SortDirection.DESC


def compile_query(
    request: QueryRequest | None = None,
    *,
    default_page_size: int = DEFAULT_PAGE_SIZE,
    max_page_size: int = MAX_PAGE_SIZE,
) -> QueryPlan:
    """Compile a request into a plan. Total: never raises on bad input."""
    req = request or QueryRequest()
    clauses: list[Clause] = []

    text = (req.search_text or "").strip()
    if text:
        clauses.append(TextMatch(text))

    levels = _normalize_levels(req.levels)
    if levels:
        clauses.append(LevelIn(levels))

    start = to_utc(req.start_date) if req.start_date is not None else None
    end = to_utc(req.end_date) if req.end_date is not None else None
    if start is not None and end is not None and start > end:
        start, end = end, start
    if start is not None or end is not None:
        clauses.append(TimeRange(start, end))

    max_size = max(1, max_page_size)
    page = max(0, req.page) if isinstance(req.page, int) else 0
    size = req.size if isinstance(req.size, int) else default_page_size
    size = min(max(1, size), max_size)

    sort_field = req.sort_field.strip().lower() if isinstance(req.sort_field, str) else ""
    if sort_field not in SORT_FIELDS:
        sort_field = "timestamp"

    return QueryPlan(
        clauses=tuple(clauses),
        page=page,
        size=size,
        sort_field=sort_field,
        sort_direction=_normalize_direction(req.sort_direction),
    )
