"""Streamed CSV/JSON export of query results."""

from __future__ import annotations

import csv
import io
import json
import logging
from collections.abc import AsyncIterator
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from .models import LogRecord
from .query import QueryRequest, compile_query

if TYPE_CHECKING:
    from .stores import IndexStore

logger = logging.getLogger(__name__)

EXPORT_FORMATS = ("csv", "json", "ndjson")
CSV_COLUMNS = ("timestamp", "level", "source", "message", "raw_line", "attributes")


def record_to_dict(record: LogRecord, *, include_raw: bool = True) -> dict[str, Any]:
    """Convert a LogRecord into a JSON-serializable dict."""
    d: dict[str, Any] = {
        "line_no": record.line_no,
        "timestamp": record.timestamp.isoformat() if record.timestamp is not None else None,
        "level": record.level.value,
        "source": record.source,
        "message": record.message,
    }
    if record.attributes:
        d["attributes"] = dict(record.attributes)
    if include_raw:
        d["raw_line"] = record.raw_line
    return d


def _csv_row(values: tuple[Any, ...] | list[Any]) -> str:
    buf = io.StringIO()
    csv.writer(buf, lineterminator="\n").writerow(values)
    return buf.getvalue()


def _record_to_csv(record: LogRecord) -> str:
    return _csv_row(
        [
            record.timestamp.isoformat() if record.timestamp is not None else "",
            record.level.value,
            record.source or "",
            record.message,
            record.raw_line,
            json.dumps(record.attributes, ensure_ascii=False, sort_keys=True) if record.attributes else "",
        ]
    )


def _record_to_json(record: LogRecord) -> str:
    return json.dumps(record_to_dict(record), ensure_ascii=False)


async def iter_matching(
    index_store: IndexStore,
    request: QueryRequest | None = None,
    *,
    page_size: int = 500,
    limit: int = 100_000,
) -> AsyncIterator[LogRecord]:
    """Yield every record matching the request's filters and sort, page by page.

    The request's own page/size are ignored; at most ``limit`` records are produced.
    """
    plan = compile_query(request, default_page_size=page_size, max_page_size=page_size)
    plan = replace(plan, page=0, size=page_size)
    produced = 0
    while produced < limit:
        page = await index_store.execute_query(plan)
        for record in page.records:
            yield record
            produced += 1
            if produced >= limit:
                logger.info("Export truncated at %d records", limit)
                return
        if len(page.records) < plan.size or (plan.page + 1) * plan.size >= page.total:
            return
        plan = replace(plan, page=plan.page + 1)


def export_records(
    index_store: IndexStore,
    request: QueryRequest | None = None,
    fmt: str = "csv",
    *,
    page_size: int = 500,
    limit: int = 100_000,
) -> AsyncIterator[str]:
    """Serialize matching records as text chunks without buffering the result set."""
    fmt = fmt.lower()
    if fmt not in EXPORT_FORMATS:
        raise ValueError(f"Unsupported export format '{fmt}'. Valid values: {', '.join(EXPORT_FORMATS)}")
    return _export(index_store, request, fmt, page_size=page_size, limit=limit)


async def _export(
    index_store: IndexStore,
    request: QueryRequest | None,
    fmt: str,
    *,
    page_size: int,
    limit: int,
) -> AsyncIterator[str]:
    records = iter_matching(index_store, request, page_size=page_size, limit=limit)

    if fmt == "csv":
        yield _csv_row(CSV_COLUMNS)
        async for record in records:
            yield _record_to_csv(record)
        return

    if fmt == "ndjson":
        async for record in records:
            yield _record_to_json(record) + "\n"
        return

    yield "["
    first = True
    async for record in records:
        yield ("" if first else ",") + _record_to_json(record)
        first = False
    yield "]"
