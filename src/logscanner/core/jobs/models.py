"""Job status models and the job state machine."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from ..errors import InvalidTransition
from ..models import LogFormat


class JobState(str, Enum):
    QUEUED = "QUEUED"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.FAILED, JobState.CANCELLED)


_TRANSITIONS: dict[JobState, frozenset[JobState]] = {
    JobState.QUEUED: frozenset({JobState.PROCESSING, JobState.CANCELLED}),
    JobState.PROCESSING: frozenset({JobState.COMPLETED, JobState.FAILED, JobState.CANCELLED}),
    JobState.COMPLETED: frozenset(),
    JobState.FAILED: frozenset(),
    JobState.CANCELLED: frozenset(),
}


def check_transition(current: JobState, target: JobState) -> None:
    """Raise InvalidTransition unless ``current -> target`` is allowed."""
    if target not in _TRANSITIONS[current]:
        raise InvalidTransition(f"Cannot move job from {current.value} to {target.value}")


def utcnow() -> datetime:
    return datetime.now(UTC)


class JobStatus(BaseModel):
    """Immutable snapshot of one ingestion job's progress."""

    model_config = ConfigDict(frozen=True)

    job_id: str = Field(description="Opaque job identifier.")
    file_name: str = Field(description="Name of the ingested file.")
    state: JobState = JobState.QUEUED
    format: LogFormat | None = Field(default=None, description="Detected input format.")
    total_lines: int | None = Field(
        default=None, description="Estimated while processing; exact once the source is exhausted."
    )
    processed_lines: int = 0
    error_count: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    sample_errors: tuple[str, ...] = Field(
        default=(), description="First parse/write failure messages, oldest first."
    )
    cause: str | None = Field(default=None, description="Why the job failed or was cancelled.")

    @property
    def remaining_lines(self) -> int | None:
        if self.total_lines is None:
            return None
        return self.total_lines - self.processed_lines

    @property
    def progress(self) -> float | None:
        """Fraction of lines processed, when the total is known or estimated."""
        if self.state is JobState.COMPLETED:
            return 1.0
        if not self.total_lines:
            return None
        return min(1.0, self.processed_lines / self.total_lines)
