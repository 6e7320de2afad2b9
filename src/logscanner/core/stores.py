"""Collaborator interfaces (index store, job store) and local implementations.

The real deployment talks to a search engine and a key-value store; the
in-memory and file-backed versions here implement the same protocols so the
pipeline runs end to end locally and under test.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

import aiofiles
from pydantic import ValidationError

from .errors import IndexStoreError, JobStoreError
from .jobs.models import JobStatus
from .models import LogRecord
from .query import QueryPage, QueryPlan, SortDirection

logger = logging.getLogger(__name__)


class IndexStore(Protocol):
    """Searchable record store."""

    async def bulk_write(self, job_id: str, records: Sequence[LogRecord]) -> None:
        """Upsert records keyed by (job_id, line_no); raise IndexStoreError on failure."""
        ...

    async def execute_query(self, plan: QueryPlan) -> QueryPage:
        """Return one page of matching records plus the total match count."""
        ...

    async def delete_job_records(self, job_id: str) -> int:
        """Remove all records written for a job; return how many were removed."""
        ...


class JobStore(Protocol):
    """Key-value persistence for job status."""

    async def put(self, status: JobStatus) -> None: ...

    async def get(self, job_id: str) -> JobStatus | None: ...

    async def delete(self, job_id: str) -> bool: ...

    async def list_all(self) -> list[JobStatus]: ...


class InMemoryIndexStore:
    """Dict-backed index store evaluating QueryPlans directly."""

    def __init__(self) -> None:
        self._records: dict[tuple[str, int], LogRecord] = {}
        self.write_calls = 0

    def __len__(self) -> int:
        return len(self._records)

    async def bulk_write(self, job_id: str, records: Sequence[LogRecord]) -> None:
        self.write_calls += 1
        for record in records:
            self._records[(job_id, record.line_no)] = record

    async def execute_query(self, plan: QueryPlan) -> QueryPage:
        hits = [(key, rec) for key, rec in self._records.items() if plan.matches(rec)]
        hits.sort(key=lambda item: item[0])

        # Records without a sort value go last in either direction.
        keyed = [(plan.sort_value(rec), key, rec) for key, rec in hits]
        present = [item for item in keyed if item[0] is not None]
        missing = [item for item in keyed if item[0] is None]
        present.sort(key=lambda item: item[0], reverse=plan.sort_direction is SortDirection.DESC)
        ordered = [rec for _, _, rec in present + missing]

        start = plan.offset
        return QueryPage(
            records=tuple(ordered[start : start + plan.size]),
            total=len(ordered),
            page=plan.page,
            size=plan.size,
        )

    async def delete_job_records(self, job_id: str) -> int:
        keys = [key for key in self._records if key[0] == job_id]
        for key in keys:
            del self._records[key]
        return len(keys)


class InMemoryJobStore:
    """Dict-backed job store."""

    def __init__(self) -> None:
        self._jobs: dict[str, JobStatus] = {}

    async def put(self, status: JobStatus) -> None:
        self._jobs[status.job_id] = status

    async def get(self, job_id: str) -> JobStatus | None:
        return self._jobs.get(job_id)

    async def delete(self, job_id: str) -> bool:
        return self._jobs.pop(job_id, None) is not None

    async def list_all(self) -> list[JobStatus]:
        return list(self._jobs.values())


class FileJobStore:
    """One JSON document per job under a directory.

    Writes go to a temporary file that is then renamed over the target, so a
    reader never sees a half-written status.
    """

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, job_id: str) -> Path:
        if not job_id or "/" in job_id or "\\" in job_id or job_id.startswith("."):
            raise JobStoreError(f"Invalid job id: {job_id!r}")
        return self.directory / f"{job_id}.json"

    async def put(self, status: JobStatus) -> None:
        path = self._path(status.job_id)
        tmp = path.with_suffix(".json.tmp")
        try:
            async with aiofiles.open(tmp, "w", encoding="utf-8") as f:
                await f.write(status.model_dump_json())
            await asyncio.to_thread(os.replace, tmp, path)
        except OSError as exc:
            raise JobStoreError(f"Cannot persist job {status.job_id}: {exc}") from exc

    async def get(self, job_id: str) -> JobStatus | None:
        path = self._path(job_id)
        try:
            async with aiofiles.open(path, encoding="utf-8") as f:
                data = await f.read()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise JobStoreError(f"Cannot load job {job_id}: {exc}") from exc
        try:
            return JobStatus.model_validate_json(data)
        except ValidationError as exc:
            raise JobStoreError(f"Corrupt status document for job {job_id}") from exc

    async def delete(self, job_id: str) -> bool:
        path = self._path(job_id)
        try:
            await asyncio.to_thread(path.unlink)
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise JobStoreError(f"Cannot delete job {job_id}: {exc}") from exc
        return True

    async def list_all(self) -> list[JobStatus]:
        out: list[JobStatus] = []
        for path in sorted(self.directory.glob("*.json")):
            status = await self.get(path.stem)
            if status is not None:
                out.append(status)
        return out


__all__ = [
    "FileJobStore",
    "InMemoryIndexStore",
    "InMemoryJobStore",
    "IndexStore",
    "IndexStoreError",
    "JobStore",
    "JobStoreError",
]
