from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from conftest import (
    BrokenJobStore,
    FlakyIndexStore,
    GatedIndexStore,
    RecordingJobStore,
    no_sleep,
)
from logscanner.core.batching import BatchWriter
from logscanner.core.config import IngestConfig
from logscanner.core.jobs import IngestionJob, JobState, JobStatus
from logscanner.core.models import LogFormat, LogLevel
from logscanner.core.query import QueryRequest, compile_query
from logscanner.core.stores import InMemoryIndexStore

CSV_LINES = [
    "timestamp,level,source,message",
    "2025-12-30T08:00:00Z,INFO,api,started",
    "2025-12-30T08:00:01Z,ERROR,api",
    "2025-12-30T08:00:02Z,WARN,db,slow query",
    "2025-12-30T08:00:03Z,INFO,api,done",
]


def _job(path: Path, job_store, index_store, **cfg) -> IngestionJob:
    status = JobStatus(job_id="job-1", file_name=path.name)
    return IngestionJob(
        status,
        path,
        job_store=job_store,
        index_store=index_store,
        config=IngestConfig(**cfg),
    )


@pytest.mark.asyncio
async def test_clean_jsonl_completes(tmp_path: Path, write_jsonl) -> None:
    log = tmp_path / "app.jsonl"
    write_jsonl(log, 25)
    job_store = RecordingJobStore()
    index = InMemoryIndexStore()

    status = await _job(log, job_store, index, batch_size=10).run()

    assert status.state is JobState.COMPLETED
    assert status.format is LogFormat.JSON
    assert status.processed_lines == 25
    assert status.total_lines == 25
    assert status.error_count == 0
    assert status.remaining_lines == 0
    assert status.progress == 1.0
    assert status.started_at is not None and status.completed_at is not None
    assert len(index) == 25
    assert index.write_calls == 3
    assert await job_store.get("job-1") == status


@pytest.mark.asyncio
async def test_progress_is_monotonic_and_bounded(tmp_path: Path, write_jsonl) -> None:
    log = tmp_path / "app.jsonl"
    write_jsonl(log, 40)
    job_store = RecordingJobStore()

    await _job(log, job_store, InMemoryIndexStore(), batch_size=7).run()

    processed = [s.processed_lines for s in job_store.history]
    assert processed == sorted(processed)
    assert all(s.error_count <= s.processed_lines for s in job_store.history)
    states = [s.state for s in job_store.history]
    assert states[0] is JobState.PROCESSING
    assert states[-1] is JobState.COMPLETED


@pytest.mark.asyncio
async def test_csv_short_row_counts_one_error(tmp_path: Path, write_lines) -> None:
    log = tmp_path / "export.csv"
    write_lines(log, CSV_LINES)
    index = InMemoryIndexStore()

    status = await _job(log, RecordingJobStore(), index).run()

    assert status.state is JobState.COMPLETED
    assert status.format is LogFormat.CSV
    assert status.processed_lines == 4
    assert status.error_count == 1
    assert status.sample_errors == ("line 3: malformed row: expected 4 fields, got 3",)
    assert len(index) == 3


@pytest.mark.asyncio
async def test_bad_array_element_is_one_error(tmp_path: Path) -> None:
    log = tmp_path / "export.json"
    items = [json.dumps({"level": "info", "message": f"m{i}"}) for i in range(10)]
    items[2] = "{bad json}"
    log.write_text("[" + ", ".join(items) + "]", encoding="utf-8")
    index = InMemoryIndexStore()

    status = await _job(log, RecordingJobStore(), index, batch_size=4).run()

    assert status.state is JobState.COMPLETED
    assert status.format is LogFormat.JSON
    assert status.processed_lines == 10
    assert status.error_count == 1
    assert status.sample_errors[0].startswith("line 3:")
    assert len(index) == 9


@pytest.mark.asyncio
async def test_lenient_csv_keeps_short_rows(tmp_path: Path, write_lines) -> None:
    log = tmp_path / "export.csv"
    write_lines(log, CSV_LINES)
    index = InMemoryIndexStore()

    status = await _job(log, RecordingJobStore(), index, strict_csv=False).run()

    assert status.state is JobState.COMPLETED
    assert status.error_count == 0
    assert len(index) == 4


@pytest.mark.asyncio
async def test_sample_errors_are_capped_oldest_first(tmp_path: Path, write_lines) -> None:
    log = tmp_path / "app.jsonl"
    write_lines(
        log,
        ['{"message": "ok"}', "garbage 1", '{"message": "ok"}', "garbage 2", "[1]", "garbage 3"],
    )

    status = await _job(log, RecordingJobStore(), InMemoryIndexStore(), sample_error_limit=2).run()

    assert status.state is JobState.COMPLETED
    assert status.error_count == 4
    assert status.processed_lines == 6
    assert len(status.sample_errors) == 2
    assert status.sample_errors[0].startswith("line 2:")
    assert status.sample_errors[1].startswith("line 4:")


@pytest.mark.asyncio
async def test_records_default_source_to_file_name(tmp_path: Path, write_standard_log) -> None:
    log = tmp_path / "service.log"
    write_standard_log(log)
    index = InMemoryIndexStore()

    status = await _job(log, RecordingJobStore(), index).run()

    assert status.format is LogFormat.STANDARD_TEXT
    page = await index.execute_query(compile_query(QueryRequest(sort_direction="asc")))
    assert [r.source for r in page.records] == ["main", "http", "http", "service.log"]
    assert page.records[2].level is LogLevel.ERROR


@pytest.mark.asyncio
async def test_failed_batches_are_counted_not_fatal(tmp_path: Path, write_jsonl) -> None:
    log = tmp_path / "app.jsonl"
    write_jsonl(log, 5)
    index = FlakyIndexStore(failures=None)
    status = JobStatus(job_id="job-1", file_name=log.name)
    job = IngestionJob(
        status,
        log,
        job_store=RecordingJobStore(),
        index_store=index,
        writer=BatchWriter(index, retry_attempts=2, sleep=no_sleep),
    )

    final = await job.run()

    assert final.state is JobState.COMPLETED
    assert final.processed_lines == 5
    assert final.error_count == 5
    assert "failed after 2 attempts" in final.sample_errors[0]
    assert index.attempts == 2


@pytest.mark.asyncio
async def test_cancel_stops_at_next_batch_boundary(tmp_path: Path, write_jsonl) -> None:
    log = tmp_path / "app.jsonl"
    write_jsonl(log, 10)
    index = GatedIndexStore()
    job = _job(log, RecordingJobStore(), index, batch_size=2)

    task = asyncio.create_task(job.run())
    await asyncio.wait_for(index.entered.wait(), 5)
    job.request_cancel()
    index.release.set()
    status = await asyncio.wait_for(task, 5)

    assert status.state is JobState.CANCELLED
    assert status.cause == "cancelled by request"
    assert status.processed_lines == 2
    assert len(index) == 2
    assert (await job.wait()) is status


@pytest.mark.asyncio
async def test_missing_file_fails(tmp_path: Path) -> None:
    status = await _job(tmp_path / "missing.log", RecordingJobStore(), InMemoryIndexStore()).run()
    assert status.state is JobState.FAILED
    assert status.cause is not None and "missing.log" in status.cause
    assert status.completed_at is not None


@pytest.mark.asyncio
async def test_job_store_failure_fails_the_job(tmp_path: Path, write_jsonl) -> None:
    log = tmp_path / "app.jsonl"
    write_jsonl(log, 10)

    status = await _job(log, BrokenJobStore(ok_puts=2), InMemoryIndexStore(), batch_size=3).run()

    assert status.state is JobState.FAILED
    assert status.cause == "job store unavailable: disk full"


@pytest.mark.asyncio
async def test_cancel_before_start(tmp_path: Path) -> None:
    job_store = RecordingJobStore()
    job = _job(tmp_path / "never.log", job_store, InMemoryIndexStore())

    await job.cancel_before_start()
    assert job.status.state is JobState.CANCELLED
    assert job.cancel_requested

    # A worker that picks the job up afterwards leaves it alone.
    assert (await job.run()).state is JobState.CANCELLED
    assert [s.state for s in job_store.history] == [JobState.CANCELLED]
