"""Ingestion jobs: status model, controller and supervisor."""

from __future__ import annotations

from .controller import IngestionJob
from .models import JobState, JobStatus, check_transition
from .supervisor import JobSupervisor

__all__ = [
    "IngestionJob",
    "JobState",
    "JobStatus",
    "JobSupervisor",
    "check_transition",
]
