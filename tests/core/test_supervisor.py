from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from conftest import GatedIndexStore, wait_until
from logscanner.core.config import IngestConfig
from logscanner.core.errors import JobNotFoundError
from logscanner.core.jobs import JobState, JobSupervisor
from logscanner.core.stores import InMemoryIndexStore, InMemoryJobStore


def _logs(tmp_path: Path, write_jsonl, n: int) -> list[Path]:
    paths = []
    for i in range(n):
        p = tmp_path / f"app{i}.jsonl"
        write_jsonl(p, 3)
        paths.append(p)
    return paths


@pytest.mark.asyncio
async def test_submit_returns_queued_and_completes(tmp_path: Path, write_jsonl) -> None:
    (log,) = _logs(tmp_path, write_jsonl, 1)
    job_store = InMemoryJobStore()
    async with JobSupervisor(job_store, InMemoryIndexStore()) as sup:
        status = await sup.submit(log)
        assert status.state is JobState.QUEUED
        assert status.file_name == "app0.jsonl"
        assert (await job_store.get(status.job_id)) is not None

        final = await sup.wait(status.job_id)
        assert final.state is JobState.COMPLETED
        assert (await sup.get(status.job_id)) == final


@pytest.mark.asyncio
async def test_fifo_admission_with_single_worker(tmp_path: Path, write_jsonl) -> None:
    paths = _logs(tmp_path, write_jsonl, 3)
    index = GatedIndexStore()
    cfg = IngestConfig(max_concurrent_jobs=1)
    async with JobSupervisor(InMemoryJobStore(), index, cfg) as sup:
        ids = [(await sup.submit(p)).job_id for p in paths]

        await wait_until(index.entered.is_set)
        states = [(await sup.get(i)).state for i in ids]
        assert states == [JobState.PROCESSING, JobState.QUEUED, JobState.QUEUED]

        index.release.set()
        finals = [await sup.wait(i) for i in ids]

    assert all(s.state is JobState.COMPLETED for s in finals)
    started = [s.started_at for s in finals]
    assert started == sorted(started)


@pytest.mark.asyncio
async def test_concurrency_cap(tmp_path: Path, write_jsonl) -> None:
    paths = _logs(tmp_path, write_jsonl, 4)
    index = GatedIndexStore()
    cfg = IngestConfig(max_concurrent_jobs=2)
    async with JobSupervisor(InMemoryJobStore(), index, cfg) as sup:
        ids = [(await sup.submit(p)).job_id for p in paths]

        await wait_until(lambda: index.waiting == 2)
        await asyncio.sleep(0.05)
        assert index.waiting == 2
        states = [(await sup.get(i)).state for i in ids]
        assert states.count(JobState.PROCESSING) == 2
        assert states[2:] == [JobState.QUEUED, JobState.QUEUED]

        index.release.set()
        finals = [await sup.wait(i) for i in ids]
    assert all(s.state is JobState.COMPLETED for s in finals)


@pytest.mark.asyncio
async def test_cancel_queued_job(tmp_path: Path, write_jsonl) -> None:
    first, second = _logs(tmp_path, write_jsonl, 2)
    index = GatedIndexStore()
    async with JobSupervisor(InMemoryJobStore(), index, IngestConfig(max_concurrent_jobs=1)) as sup:
        a = await sup.submit(first)
        b = await sup.submit(second)
        await wait_until(index.entered.is_set)

        cancelled = await sup.cancel(b.job_id)
        assert cancelled.state is JobState.CANCELLED

        index.release.set()
        assert (await sup.wait(a.job_id)).state is JobState.COMPLETED
        assert (await sup.wait(b.job_id)).state is JobState.CANCELLED
        assert (await sup.cancel(b.job_id)).state is JobState.CANCELLED


@pytest.mark.asyncio
async def test_cancel_running_job(tmp_path: Path, write_jsonl) -> None:
    log = tmp_path / "big.jsonl"
    write_jsonl(log, 30)
    index = GatedIndexStore()
    async with JobSupervisor(InMemoryJobStore(), index, IngestConfig(batch_size=5)) as sup:
        status = await sup.submit(log)
        await wait_until(index.entered.is_set)
        await sup.cancel(status.job_id)
        index.release.set()
        final = await sup.wait(status.job_id)

    assert final.state is JobState.CANCELLED
    assert final.processed_lines == 5


@pytest.mark.asyncio
async def test_delete_removes_job_and_records(tmp_path: Path, write_jsonl) -> None:
    (log,) = _logs(tmp_path, write_jsonl, 1)
    job_store = InMemoryJobStore()
    index = InMemoryIndexStore()
    async with JobSupervisor(job_store, index) as sup:
        status = await sup.submit(log)
        await sup.wait(status.job_id)
        assert len(index) == 3

        await sup.delete(status.job_id)

        with pytest.raises(JobNotFoundError):
            await sup.get(status.job_id)
        assert status.job_id not in [s.job_id for s in await sup.list()]
        assert await job_store.get(status.job_id) is None
        assert len(index) == 0

        with pytest.raises(JobNotFoundError):
            await sup.delete(status.job_id)


@pytest.mark.asyncio
async def test_delete_running_job_cancels_it_first(tmp_path: Path, write_jsonl) -> None:
    log = tmp_path / "big.jsonl"
    write_jsonl(log, 30)
    index = GatedIndexStore()
    async with JobSupervisor(InMemoryJobStore(), index, IngestConfig(batch_size=5)) as sup:
        status = await sup.submit(log)
        await wait_until(index.entered.is_set)
        index.release.set()
        await sup.delete(status.job_id)
        with pytest.raises(JobNotFoundError):
            await sup.get(status.job_id)


@pytest.mark.asyncio
async def test_list_is_newest_first(tmp_path: Path, write_jsonl) -> None:
    paths = _logs(tmp_path, write_jsonl, 3)
    async with JobSupervisor(InMemoryJobStore(), InMemoryIndexStore()) as sup:
        ids = [(await sup.submit(p)).job_id for p in paths]
        listed = [s.job_id for s in await sup.list()]
    assert listed == list(reversed(ids))


@pytest.mark.asyncio
async def test_unknown_job(tmp_path: Path) -> None:
    async with JobSupervisor(InMemoryJobStore(), InMemoryIndexStore()) as sup:
        with pytest.raises(JobNotFoundError):
            await sup.get("nope")
        with pytest.raises(JobNotFoundError):
            await sup.cancel("nope")


@pytest.mark.asyncio
async def test_stop_cancels_queued_jobs(tmp_path: Path, write_jsonl) -> None:
    paths = _logs(tmp_path, write_jsonl, 3)
    index = GatedIndexStore()
    sup = JobSupervisor(InMemoryJobStore(), index, IngestConfig(max_concurrent_jobs=1))
    await sup.start()
    ids = [(await sup.submit(p)).job_id for p in paths]
    await wait_until(index.entered.is_set)
    index.release.set()

    await sup.stop()

    assert not sup.running
    states = [(await sup.get(i)).state for i in ids]
    assert states[1:] == [JobState.CANCELLED, JobState.CANCELLED]
    assert states[0] in (JobState.COMPLETED, JobState.CANCELLED)
