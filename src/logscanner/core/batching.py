"""Batch accumulation and retried bulk writes to the index store."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .errors import IndexStoreError
from .models import LogRecord

if TYPE_CHECKING:
    from .stores import IndexStore

logger = logging.getLogger(__name__)


class BatchAccumulator:
    """Buffer records until ``batch_size`` is reached or the oldest one is too old."""

    def __init__(
        self,
        batch_size: int,
        *,
        flush_interval: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.batch_size = batch_size
        self.flush_interval = flush_interval
        self._clock = clock
        self._records: list[LogRecord] = []
        self._first_added: float | None = None

    def __len__(self) -> int:
        return len(self._records)

    def add(self, record: LogRecord) -> None:
        if not self._records:
            self._first_added = self._clock()
        self._records.append(record)

    @property
    def ready(self) -> bool:
        """True when the buffered records should be flushed now."""
        if len(self._records) >= self.batch_size:
            return True
        if self._records and self.flush_interval is not None and self._first_added is not None:
            return self._clock() - self._first_added >= self.flush_interval
        return False

    def take(self) -> list[LogRecord]:
        """Hand over the buffered records and start a new batch."""
        batch, self._records = self._records, []
        self._first_added = None
        return batch


@dataclass(frozen=True, slots=True)
class BatchOutcome:
    """Result of writing one batch, after retries."""

    size: int
    attempts: int
    error: str | None = None

    @property
    def written(self) -> bool:
        return self.error is None

    @property
    def failed(self) -> int:
        return 0 if self.error is None else self.size


class BatchWriter:
    """Write batches with bounded retries and exponential backoff."""

    def __init__(
        self,
        index_store: IndexStore,
        *,
        retry_attempts: int = 3,
        retry_backoff: float = 0.5,
        max_backoff: float = 8.0,
        sleep: Callable[[float], object] = asyncio.sleep,
    ) -> None:
        if retry_attempts < 1:
            raise ValueError("retry_attempts must be >= 1")
        self._store = index_store
        self.retry_attempts = retry_attempts
        self.retry_backoff = retry_backoff
        self.max_backoff = max_backoff
        self._sleep = sleep

    def backoff_for(self, attempt: int) -> float:
        """Delay before retrying after the given failed attempt (1-based)."""
        return min(self.max_backoff, self.retry_backoff * 2 ** (attempt - 1))

    async def write(self, job_id: str, batch: Sequence[LogRecord]) -> BatchOutcome:
        """Write one batch; never raises for store failures."""
        if not batch:
            return BatchOutcome(size=0, attempts=0)

        last_err: IndexStoreError | None = None
        for attempt in range(1, self.retry_attempts + 1):
            try:
                await self._store.bulk_write(job_id, batch)
                return BatchOutcome(size=len(batch), attempts=attempt)
            except IndexStoreError as e:
                last_err = e
                if attempt >= self.retry_attempts:
                    break
                delay = self.backoff_for(attempt)
                logger.warning(
                    "Bulk write for job %s failed (attempt %s/%s): %s; retrying in %.2fs",
                    job_id,
                    attempt,
                    self.retry_attempts,
                    e,
                    delay,
                )
                await self._sleep(delay)

        logger.error(
            "Giving up on batch of %d records for job %s after %d attempts: %s",
            len(batch),
            job_id,
            self.retry_attempts,
            last_err,
        )
        return BatchOutcome(
            size=len(batch),
            attempts=self.retry_attempts,
            error=f"batch of {len(batch)} records (lines {batch[0].line_no}-{batch[-1].line_no}) "
            f"failed after {self.retry_attempts} attempts: {last_err}",
        )
