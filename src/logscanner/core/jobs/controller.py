"""Ingestion job controller.

One ``IngestionJob`` owns one file's ``JobStatus`` and is its only writer. It
drives the pipeline

    sniff_format -> SourceReader -> parser -> BatchAccumulator -> BatchWriter

and persists progress to the job store at every batch boundary. Readers only
ever see immutable ``JobStatus`` snapshots.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from pathlib import Path
from typing import TYPE_CHECKING, Any

from ..batching import BatchAccumulator, BatchWriter
from ..config import IngestConfig
from ..detection import sniff_format
from ..errors import FormatError, JobStoreError, ParseError, SourceError
from ..formats import LogParser, build_parser
from ..models import LogFormat, LogRecord
from ..reader import SourceReader
from .models import JobState, JobStatus, check_transition, utcnow

if TYPE_CHECKING:
    from ..stores import IndexStore, JobStore

logger = logging.getLogger(__name__)


class _Cancelled(Exception):
    """Internal signal: the cancel flag was seen at a batch boundary."""


class IngestionJob:
    """Runs one file through the ingestion pipeline."""

    def __init__(
        self,
        status: JobStatus,
        path: str | Path,
        *,
        job_store: JobStore,
        index_store: IndexStore,
        config: IngestConfig | None = None,
        writer: BatchWriter | None = None,
    ) -> None:
        self._status = status
        self.path = Path(path)
        self._job_store = job_store
        self._cfg = config or IngestConfig()
        self._writer = writer or BatchWriter(
            index_store,
            retry_attempts=self._cfg.retry_attempts,
            retry_backoff=self._cfg.retry_backoff,
            max_backoff=self._cfg.max_backoff,
        )
        self._cancel = asyncio.Event()
        self._cancel_reason = "cancelled by request"
        self._done = asyncio.Event()

        # Counters owned by the running pipeline; published at batch boundaries.
        self._consumed = 0
        self._errors = 0
        self._samples: list[str] = list(status.sample_errors)

    @property
    def job_id(self) -> str:
        return self._status.job_id

    @property
    def status(self) -> JobStatus:
        """Current snapshot (immutable)."""
        return self._status

    @property
    def cancel_requested(self) -> bool:
        return self._cancel.is_set()

    def request_cancel(self, reason: str = "cancelled by request") -> None:
        """Ask the job to stop at its next batch boundary."""
        self._cancel_reason = reason
        self._cancel.set()

    async def wait(self) -> JobStatus:
        await self._done.wait()
        return self._status

    # -- state changes --------------------------------------------------

    async def _update(self, **changes: Any) -> None:
        updated = self._status.model_copy(update=changes)
        await self._job_store.put(updated)
        self._status = updated

    async def _transition(self, target: JobState, **changes: Any) -> None:
        check_transition(self._status.state, target)
        await self._update(state=target, **changes)

    async def cancel_before_start(self, reason: str = "cancelled before start") -> None:
        """QUEUED -> CANCELLED for a job no worker has picked up yet."""
        self.request_cancel(reason)
        try:
            await self._settle(JobState.CANCELLED, cause=reason, completed_at=utcnow())
        finally:
            self._done.set()

    async def _settle(self, target: JobState, **changes: Any) -> None:
        """Enter a terminal state; persisting it is best-effort."""
        check_transition(self._status.state, target)
        self._status = self._status.model_copy(update={"state": target, **changes})
        try:
            await self._job_store.put(self._status)
        except JobStoreError:
            logger.exception("Could not persist %s state for job %s", target.value, self.job_id)

    async def _fail(self, cause: str) -> None:
        logger.error("Job %s (%s) failed: %s", self.job_id, self._status.file_name, cause)
        await self._settle(
            JobState.FAILED,
            cause=cause,
            completed_at=utcnow(),
            **self._progress_fields(),
        )

    def _progress_fields(self, *, total_lines: int | None = None) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "processed_lines": self._consumed,
            "error_count": self._errors,
            "sample_errors": tuple(self._samples),
        }
        if total_lines is not None:
            fields["total_lines"] = total_lines
        return fields

    def _record_error(self, message: str) -> None:
        if len(self._samples) < self._cfg.sample_error_limit:
            self._samples.append(message)

    # -- pipeline -------------------------------------------------------

    async def run(self) -> JobStatus:
        """Run the job to a terminal state and return the final snapshot.

        Failures are absorbed into the status (state FAILED plus ``cause``);
        only task cancellation propagates.
        """
        if self._status.state.terminal:
            self._done.set()
            return self._status

        try:
            # State moves locally before persisting so a store failure can still end in FAILED.
            check_transition(self._status.state, JobState.PROCESSING)
            self._status = self._status.model_copy(
                update={"state": JobState.PROCESSING, "started_at": utcnow()}
            )
            await self._job_store.put(self._status)
            logger.info("Job %s started for %s", self.job_id, self._status.file_name)

            fmt = await sniff_format(self.path, sample_lines=self._cfg.sniff_lines)
            await self._update(format=fmt)
            logger.info("Job %s: detected %s format", self.job_id, fmt.value)

            await self._ingest(fmt)

            await self._transition(
                JobState.COMPLETED,
                completed_at=utcnow(),
                **self._progress_fields(total_lines=self._consumed),
            )
            logger.info(
                "Job %s completed: %d lines, %d errors",
                self.job_id,
                self._consumed,
                self._errors,
            )
        except _Cancelled:
            await self._settle(JobState.CANCELLED, cause=self._cancel_reason, completed_at=utcnow())
            logger.info(
                "Job %s cancelled after %d lines", self.job_id, self._status.processed_lines
            )
        except (SourceError, FormatError) as exc:
            await self._fail(str(exc))
        except JobStoreError as exc:
            await self._fail(f"job store unavailable: {exc}")
        except asyncio.CancelledError:
            await self._settle(
                JobState.CANCELLED, cause="ingestion task stopped", completed_at=utcnow()
            )
            raise
        except Exception as exc:
            logger.exception("Unexpected error in job %s", self.job_id)
            await self._fail(f"unexpected error: {exc}")
        finally:
            self._done.set()
        return self._status

    def _estimate_total(self, reader: SourceReader, size: int | None) -> int | None:
        if not size or not reader.bytes_read:
            return None
        estimate = round(self._consumed * size / min(size, reader.bytes_read))
        return max(self._consumed, estimate)

    async def _boundary(self, batch: list[LogRecord], reader: SourceReader, size: int | None) -> None:
        """Flush one batch and publish progress; honors the cancel flag."""
        if self._cancel.is_set():
            raise _Cancelled

        if batch:
            outcome = await self._writer.write(self.job_id, batch)
            if not outcome.written:
                self._errors += outcome.failed
                self._record_error(outcome.error or "batch write failed")

        await self._update(**self._progress_fields(total_lines=self._estimate_total(reader, size)))

        if self._cancel.is_set():
            raise _Cancelled

    async def _ingest(self, fmt: LogFormat) -> None:
        reader = SourceReader(self.path, chunk_size=self._cfg.chunk_size)
        size = reader.size
        acc = BatchAccumulator(self._cfg.batch_size, flush_interval=self._cfg.flush_interval)
        parser: LogParser | None = None
        if fmt is not LogFormat.CSV:
            parser = build_parser(fmt)

        pending = 0  # units consumed since the last boundary
        file_name = self._status.file_name

        async for unit in reader.units(fmt):
            if parser is None:
                try:
                    parser = build_parser(fmt, header=unit.text, strict_csv=self._cfg.strict_csv)
                except ValueError as exc:
                    raise FormatError(f"cannot classify {file_name}: {exc}") from exc
                continue

            try:
                record = parser.parse(unit.line_no, unit.text)
            except ParseError as exc:
                self._errors += 1
                self._record_error(str(exc))
                logger.debug("Job %s: %s", self.job_id, exc)
            else:
                if record.source is None:
                    record = replace(record, source=file_name)
                acc.add(record)

            self._consumed += 1
            pending += 1

            if acc.ready or pending >= self._cfg.batch_size:
                await self._boundary(acc.take(), reader, size)
                pending = 0

        if pending or len(acc):
            await self._boundary(acc.take(), reader, size)
        elif self._cancel.is_set():
            raise _Cancelled
