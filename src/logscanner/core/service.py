"""Service facade used by the outer layers (MCP tools, CLI).

Wires the supervisor, the stores and the query side together behind the
operations the surrounding service exposes: submit/get/list/cancel/delete
jobs, query records and export them.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from pathlib import Path

from .config import IngestConfig, resolve_ingest_config
from .errors import IndexStoreError, QueryExecutionError
from .export import export_records
from .jobs import JobStatus, JobSupervisor
from .query import QueryPage, QueryRequest, compile_query
from .stores import FileJobStore, InMemoryIndexStore, InMemoryJobStore, IndexStore, JobStore

logger = logging.getLogger(__name__)


class LogScannerService:
    """Entry point for ingestion and querying."""

    def __init__(
        self,
        *,
        config: IngestConfig | None = None,
        job_store: JobStore | None = None,
        index_store: IndexStore | None = None,
    ) -> None:
        self.config = config or IngestConfig()
        if job_store is None:
            if self.config.job_store_dir:
                job_store = FileJobStore(self.config.job_store_dir)
            else:
                job_store = InMemoryJobStore()
        self.job_store = job_store
        self.index_store = index_store or InMemoryIndexStore()
        self.supervisor = JobSupervisor(self.job_store, self.index_store, self.config)

    @classmethod
    def from_env(cls) -> LogScannerService:
        return cls(config=resolve_ingest_config())

    async def start(self) -> None:
        await self.supervisor.start()

    async def stop(self) -> None:
        await self.supervisor.stop()

    async def __aenter__(self) -> LogScannerService:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    # -- jobs -----------------------------------------------------------

    async def submit_job(self, path: str | Path, file_name: str | None = None) -> JobStatus:
        return await self.supervisor.submit(path, file_name)

    async def get_job(self, job_id: str) -> JobStatus:
        return await self.supervisor.get(job_id)

    async def list_jobs(self) -> list[JobStatus]:
        return await self.supervisor.list()

    async def cancel_job(self, job_id: str) -> JobStatus:
        return await self.supervisor.cancel(job_id)

    async def delete_job(self, job_id: str) -> None:
        await self.supervisor.delete(job_id)

    async def wait_for_job(self, job_id: str) -> JobStatus:
        return await self.supervisor.wait(job_id)

    # -- records --------------------------------------------------------

    async def query_records(self, request: QueryRequest | None = None) -> QueryPage:
        """Compile and execute a query; store failures surface as QueryExecutionError."""
        plan = compile_query(
            request,
            default_page_size=self.config.default_page_size,
            max_page_size=self.config.max_page_size,
        )
        try:
            return await self.index_store.execute_query(plan)
        except IndexStoreError as exc:
            logger.warning("Query failed: %s", exc)
            raise QueryExecutionError(f"Query failed, please retry: {exc}") from exc

    def export_records(self, request: QueryRequest | None = None, fmt: str = "csv") -> AsyncIterator[str]:
        """Lazily serialize all matching records as CSV, JSON or NDJSON text chunks."""
        return _guard_export(
            export_records(
                self.index_store,
                request,
                fmt,
                page_size=self.config.export_page_size,
                limit=self.config.max_export_records,
            )
        )


async def _guard_export(chunks: AsyncIterator[str]) -> AsyncIterator[str]:
    try:
        async for chunk in chunks:
            yield chunk
    except IndexStoreError as exc:
        logger.warning("Export failed: %s", exc)
        raise QueryExecutionError(f"Export failed, please retry: {exc}") from exc
