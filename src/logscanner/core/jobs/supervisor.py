"""Process-wide registry of ingestion jobs with a bounded worker pool."""

from __future__ import annotations

import asyncio
import itertools
import logging
from pathlib import Path
from typing import TYPE_CHECKING
from uuid import uuid4

from ..config import IngestConfig
from ..errors import JobNotFoundError
from .controller import IngestionJob
from .models import JobState, JobStatus

if TYPE_CHECKING:
    from ..stores import IndexStore, JobStore

logger = logging.getLogger(__name__)


class JobSupervisor:
    """Admit jobs immediately, run at most ``max_concurrent_jobs`` at a time.

    Queued jobs are started in submission order by a fixed set of worker
    tasks. The registry is only mutated under ``_lock``.
    """

    def __init__(
        self,
        job_store: JobStore,
        index_store: IndexStore,
        config: IngestConfig | None = None,
    ) -> None:
        self._job_store = job_store
        self._index_store = index_store
        self._cfg = config or IngestConfig()
        self._jobs: dict[str, IngestionJob] = {}
        self._admission: dict[str, int] = {}
        self._seq = itertools.count()
        self._queue: asyncio.Queue[IngestionJob] = asyncio.Queue()
        self._workers: list[asyncio.Task[None]] = []
        self._lock = asyncio.Lock()

    @property
    def max_concurrent_jobs(self) -> int:
        return self._cfg.max_concurrent_jobs

    @property
    def running(self) -> bool:
        return bool(self._workers)

    async def __aenter__(self) -> JobSupervisor:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    async def start(self) -> None:
        """Start the worker pool (idempotent)."""
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._worker(n), name=f"ingest-worker-{n}")
            for n in range(self._cfg.max_concurrent_jobs)
        ]
        logger.info("Job supervisor started with %d workers", len(self._workers))

    async def stop(self, *, timeout: float = 10.0) -> None:
        """Cancel queued jobs, ask running ones to stop, then shut the workers down."""
        async with self._lock:
            jobs = list(self._jobs.values())
        running: list[IngestionJob] = []
        for job in jobs:
            state = job.status.state
            if state is JobState.QUEUED:
                await job.cancel_before_start("supervisor shutting down")
            elif state is JobState.PROCESSING:
                job.request_cancel("supervisor shutting down")
                running.append(job)

        if running:
            waiters = [asyncio.ensure_future(job.wait()) for job in running]
            _, pending = await asyncio.wait(waiters, timeout=timeout)
            for w in pending:
                w.cancel()

        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info("Job supervisor stopped")

    async def _worker(self, n: int) -> None:
        while True:
            job = await self._queue.get()
            try:
                if job.status.state is JobState.QUEUED:
                    logger.debug("Worker %d picked job %s", n, job.job_id)
                    await job.run()
            finally:
                self._queue.task_done()

    # -- public API -----------------------------------------------------

    async def submit(self, path: str | Path, file_name: str | None = None) -> JobStatus:
        """Register a job for ``path`` and queue it; returns the QUEUED status."""
        path = Path(path)
        status = JobStatus(job_id=uuid4().hex, file_name=file_name or path.name)
        job = IngestionJob(
            status,
            path,
            job_store=self._job_store,
            index_store=self._index_store,
            config=self._cfg,
        )
        async with self._lock:
            await self._job_store.put(status)
            self._jobs[status.job_id] = job
            self._admission[status.job_id] = next(self._seq)
            self._queue.put_nowait(job)
        logger.info(
            "Queued job %s for %s (%d waiting)", status.job_id, status.file_name, self._queue.qsize()
        )
        return status

    async def get(self, job_id: str) -> JobStatus:
        """Return the job's current status; raise JobNotFoundError if unknown."""
        job = self._jobs.get(job_id)
        if job is not None:
            return job.status
        status = await self._job_store.get(job_id)
        if status is None:
            raise JobNotFoundError(job_id)
        return status

    async def list(self) -> list[JobStatus]:
        """All known jobs, most recent first."""
        by_id = {s.job_id: s for s in await self._job_store.list_all()}
        for job_id, job in self._jobs.items():
            by_id[job_id] = job.status
        return sorted(
            by_id.values(),
            key=lambda s: (s.created_at, self._admission.get(s.job_id, -1)),
            reverse=True,
        )

    async def wait(self, job_id: str) -> JobStatus:
        """Wait until the job reaches a terminal state."""
        job = self._jobs.get(job_id)
        if job is None:
            return await self.get(job_id)
        return await job.wait()

    async def cancel(self, job_id: str) -> JobStatus:
        """Cancel a queued or running job; terminal jobs are returned unchanged."""
        async with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return await self.get(job_id)
            state = job.status.state
            if state is JobState.QUEUED:
                await job.cancel_before_start()
                logger.info("Cancelled queued job %s", job_id)
            elif state is JobState.PROCESSING:
                job.request_cancel()
                logger.info("Cancellation requested for job %s", job_id)
            return job.status

    async def delete(self, job_id: str) -> None:
        """Remove a job and its records; a running job is cancelled first."""
        job = self._jobs.get(job_id)
        if job is not None and not job.status.state.terminal:
            await self.cancel(job_id)
            await job.wait()

        async with self._lock:
            removed = await self._job_store.delete(job_id)
            known = self._jobs.pop(job_id, None) is not None
            self._admission.pop(job_id, None)
        if not removed and not known:
            raise JobNotFoundError(job_id)

        purged = await self._index_store.delete_job_records(job_id)
        logger.info("Deleted job %s (%d records removed)", job_id, purged)
