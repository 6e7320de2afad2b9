from __future__ import annotations

import asyncio
import json
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from pathlib import Path

import pytest

from logscanner.core.errors import IndexStoreError, JobStoreError
from logscanner.core.jobs import JobStatus
from logscanner.core.models import LogLevel, LogRecord
from logscanner.core.stores import InMemoryIndexStore, InMemoryJobStore


@pytest.fixture
def write_jsonl() -> Callable[[Path, int], None]:
    def _write(path: Path, n: int) -> None:
        lines = [
            json.dumps(
                {
                    "timestamp": f"2025-12-30T08:{i // 60:02d}:{i % 60:02d}Z",
                    "level": "error" if i % 3 == 0 else "info",
                    "message": f"event {i}",
                    "request_id": f"r{i}",
                }
            )
            for i in range(n)
        ]
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")

    return _write


@pytest.fixture
def write_standard_log() -> Callable[[Path], None]:
    def _write(path: Path) -> None:
        path.write_text(
            "\n".join(
                [
                    "2025-12-30 08:12:01.120 INFO [main] - service started",
                    "2025-12-30 08:12:03.500 WARN [http] - retrying request id=abc123",
                    "2025-12-30 08:12:04.000 ERROR [http] - upstream timeout route=/api/v1/items",
                    "2025-12-30 08:12:05,250 DEBUG - cache warmed",
                ]
            )
            + "\n",
            encoding="utf-8",
        )

    return _write


@pytest.fixture
def write_lines() -> Callable[[Path, Sequence[str]], None]:
    def _write(path: Path, lines: Sequence[str]) -> None:
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")

    return _write


def make_record(
    line_no: int,
    message: str = "hello",
    *,
    level: LogLevel = LogLevel.INFO,
    timestamp: datetime | None = None,
    source: str | None = "app.log",
) -> LogRecord:
    return LogRecord(
        line_no=line_no,
        raw_line=f"{line_no} {message}",
        timestamp=timestamp,
        level=level,
        message=message,
        source=source,
    )


def ts(hour: int, minute: int = 0) -> datetime:
    return datetime(2025, 12, 30, hour, minute, tzinfo=UTC)


class FlakyIndexStore(InMemoryIndexStore):
    """Fails the first ``failures`` bulk writes, or every write when ``failures`` is None."""

    def __init__(self, failures: int | None = 1) -> None:
        super().__init__()
        self.failures = failures
        self.attempts = 0

    async def bulk_write(self, job_id: str, records: Sequence[LogRecord]) -> None:
        self.attempts += 1
        if self.failures is None or self.attempts <= self.failures:
            raise IndexStoreError("index unavailable")
        await super().bulk_write(job_id, records)


class GatedIndexStore(InMemoryIndexStore):
    """Blocks every bulk write until ``release`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.entered = asyncio.Event()
        self.release = asyncio.Event()
        self.waiting = 0

    async def bulk_write(self, job_id: str, records: Sequence[LogRecord]) -> None:
        self.entered.set()
        self.waiting += 1
        try:
            await self.release.wait()
        finally:
            self.waiting -= 1
        await super().bulk_write(job_id, records)


class RecordingJobStore(InMemoryJobStore):
    """Keeps every status written, in order."""

    def __init__(self) -> None:
        super().__init__()
        self.history: list[JobStatus] = []

    async def put(self, status: JobStatus) -> None:
        self.history.append(status)
        await super().put(status)


class BrokenJobStore(InMemoryJobStore):
    """Accepts the first ``ok_puts`` writes, then fails."""

    def __init__(self, ok_puts: int) -> None:
        super().__init__()
        self.ok_puts = ok_puts
        self.puts = 0

    async def put(self, status: JobStatus) -> None:
        self.puts += 1
        if self.puts > self.ok_puts:
            raise JobStoreError("disk full")
        await super().put(status)


async def no_sleep(_: float) -> None:
    return None


async def wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> None:
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(_poll(), timeout)
