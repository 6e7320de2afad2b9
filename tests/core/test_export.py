from __future__ import annotations

import csv
import io
import json

import pytest

from conftest import make_record, ts
from logscanner.core.export import CSV_COLUMNS, export_records, iter_matching, record_to_dict
from logscanner.core.models import LogLevel, LogRecord
from logscanner.core.query import QueryRequest
from logscanner.core.stores import InMemoryIndexStore


async def _store(n: int = 7) -> InMemoryIndexStore:
    store = InMemoryIndexStore()
    await store.bulk_write(
        "job",
        [
            make_record(
                i,
                f"message {i}, with comma",
                level=LogLevel.ERROR if i % 2 else LogLevel.INFO,
                timestamp=ts(8, i),
            )
            for i in range(1, n + 1)
        ],
    )
    return store


async def _text(chunks) -> str:
    return "".join([c async for c in chunks])


def test_record_to_dict() -> None:
    record = LogRecord(
        line_no=3,
        raw_line="raw",
        timestamp=ts(8),
        level=LogLevel.WARN,
        message="m",
        source="s",
        attributes={"k": "v"},
    )
    assert record_to_dict(record) == {
        "line_no": 3,
        "timestamp": "2025-12-30T08:00:00+00:00",
        "level": "WARN",
        "source": "s",
        "message": "m",
        "attributes": {"k": "v"},
        "raw_line": "raw",
    }
    assert "raw_line" not in record_to_dict(record, include_raw=False)


@pytest.mark.asyncio
async def test_iter_matching_pages_through_everything() -> None:
    store = await _store(7)
    records = [r async for r in iter_matching(store, QueryRequest(sort_direction="asc"), page_size=3)]
    assert [r.line_no for r in records] == [1, 2, 3, 4, 5, 6, 7]


@pytest.mark.asyncio
async def test_iter_matching_respects_limit_and_filters() -> None:
    store = await _store(7)
    request = QueryRequest(levels=["error"], sort_direction="asc", page=5, size=1)
    records = [r async for r in iter_matching(store, request, page_size=2, limit=3)]
    assert [r.line_no for r in records] == [1, 3, 5]


@pytest.mark.asyncio
async def test_export_csv() -> None:
    store = await _store(3)
    text = await _text(export_records(store, QueryRequest(sort_direction="asc"), "csv"))
    rows = list(csv.reader(io.StringIO(text)))
    assert tuple(rows[0]) == CSV_COLUMNS
    assert len(rows) == 4
    assert rows[1][:4] == ["2025-12-30T08:01:00+00:00", "ERROR", "app.log", "message 1, with comma"]


@pytest.mark.asyncio
async def test_export_json_is_a_valid_array() -> None:
    store = await _store(4)
    text = await _text(export_records(store, QueryRequest(sort_direction="asc"), "JSON", page_size=3))
    data = json.loads(text)
    assert [d["line_no"] for d in data] == [1, 2, 3, 4]

    empty = await _text(export_records(InMemoryIndexStore(), None, "json"))
    assert json.loads(empty) == []


@pytest.mark.asyncio
async def test_export_ndjson() -> None:
    store = await _store(2)
    text = await _text(export_records(store, QueryRequest(search_text="message 2"), "ndjson"))
    lines = text.splitlines()
    assert len(lines) == 1
    assert json.loads(lines[0])["message"] == "message 2, with comma"


def test_export_rejects_unknown_format() -> None:
    with pytest.raises(ValueError, match="Valid values"):
        export_records(InMemoryIndexStore(), None, "xml")
