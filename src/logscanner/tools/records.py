"""MCP tool implementations for querying and exporting ingested records."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from logscanner.core.export import EXPORT_FORMATS, record_to_dict
from logscanner.core.models import LogLevel
from logscanner.core.query import SORT_FIELDS, QueryRequest
from logscanner.core.service import LogScannerService
from logscanner.core.time_window import resolve_time_window

ALL_LEVELS = [lvl.value for lvl in LogLevel]
_LEVEL_ALIASES = {"WARNING": "WARN"}


def _parse_levels(levels: Sequence[str] | None) -> list[LogLevel]:
    """Parse user-supplied severity names into LogLevel enums."""
    out: list[LogLevel] = []
    for s in levels or ():
        name = s.strip().upper()
        if not name:
            continue
        name = _LEVEL_ALIASES.get(name, name)
        try:
            out.append(LogLevel[name])
        except KeyError as e:
            valid = ", ".join(ALL_LEVELS)
            raise ValueError(
                f"Unknown log level '{s}'. Valid values: {valid}. "
                "Tip: levels is case-insensitive (e.g., 'error', 'WARN')."
            ) from e
    return out


def _parse_sort(sort_field: str | None, sort_direction: str | None) -> tuple[str | None, str | None]:
    if sort_field and sort_field.strip().lower() not in SORT_FIELDS:
        raise ValueError(f"Unknown sort field '{sort_field}'. Valid values: {', '.join(SORT_FIELDS)}")
    if sort_direction and sort_direction.strip().upper() not in ("ASC", "DESC"):
        raise ValueError("sort_direction must be 'asc' or 'desc'")
    return sort_field, sort_direction


def build_request(
    *,
    search_text: str | None = None,
    levels: Sequence[str] | None = None,
    since: str | None = None,
    until: str | None = None,
    date: str | None = None,
    hour: str | None = None,
    week: str | None = None,
    month: str | None = None,
    year: str | None = None,
    page: int | None = None,
    size: int | None = None,
    sort_field: str | None = None,
    sort_direction: str | None = None,
) -> QueryRequest:
    """Validate tool arguments and turn them into a QueryRequest."""
    start, end = resolve_time_window(
        since=since,
        until=until,
        date_=date,
        hour=hour,
        week=week,
        month=month,
        year=year,
    )
    if page is not None and page < 0:
        raise ValueError("page must be >= 0")
    if size is not None and size <= 0:
        raise ValueError("size must be > 0")
    sort_field, sort_direction = _parse_sort(sort_field, sort_direction)
    return QueryRequest(
        search_text=search_text,
        levels=_parse_levels(levels),
        start_date=start,
        end_date=end,
        page=page,
        size=size,
        sort_field=sort_field,
        sort_direction=sort_direction,
    )


async def query_records_impl(
    service: LogScannerService,
    *,
    include_raw: bool = False,
    **filters: Any,
) -> dict[str, Any]:
    """Implementation for the `query_records` MCP tool.

    Notes
    -----
    - Time window precedence: date/hour/week/month selectors, then since/until.
    - Sizes above the configured maximum are clamped, not rejected.
    """
    request = build_request(**filters)
    result = await service.query_records(request)
    return {
        "total": result.total,
        "page": result.page,
        "size": result.size,
        "count": len(result.records),
        "records": [record_to_dict(r, include_raw=include_raw) for r in result.records],
    }


async def export_records_impl(
    service: LogScannerService,
    *,
    fmt: str = "csv",
    **filters: Any,
) -> dict[str, Any]:
    """Implementation for the `export_records` MCP tool; returns the export as one string."""
    fmt = (fmt or "csv").strip().lower()
    if fmt not in EXPORT_FORMATS:
        raise ValueError(f"Unsupported export format '{fmt}'. Valid values: {', '.join(EXPORT_FORMATS)}")
    filters.pop("page", None)
    filters.pop("size", None)
    request = build_request(**filters)
    chunks = [chunk async for chunk in service.export_records(request, fmt)]
    return {"format": fmt, "content": "".join(chunks)}
