"""MCP tool implementations for the job lifecycle.

Keep this layer thin: validate inputs, translate them into service calls, and
return JSON-serializable data structures.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from logscanner.core.errors import JobNotFoundError
from logscanner.core.jobs import JobStatus
from logscanner.core.service import LogScannerService


def job_to_dict(status: JobStatus) -> dict[str, Any]:
    """Convert a JobStatus into a JSON-serializable dict."""
    d = status.model_dump(mode="json")
    d["remaining_lines"] = status.remaining_lines
    d["progress"] = status.progress
    return d


def _require_job_id(job_id: str) -> str:
    job_id = (job_id or "").strip()
    if not job_id:
        raise ValueError("job_id must not be empty")
    return job_id


def _not_found(exc: JobNotFoundError) -> ValueError:
    return ValueError(f"Job '{exc.job_id}' not found. Tip: use list_jobs to see known job ids.")


async def submit_job_impl(
    service: LogScannerService,
    *,
    log_path: str,
    file_name: str | None = None,
) -> dict[str, Any]:
    """Queue a file for ingestion; a missing file surfaces later as a FAILED job."""
    if not log_path or not log_path.strip():
        raise ValueError("log_path must not be empty")
    path = Path(log_path).expanduser()
    status = await service.submit_job(path, file_name=file_name)
    return job_to_dict(status)


async def get_job_impl(service: LogScannerService, *, job_id: str) -> dict[str, Any]:
    try:
        status = await service.get_job(_require_job_id(job_id))
    except JobNotFoundError as exc:
        raise _not_found(exc) from exc
    return job_to_dict(status)


async def list_jobs_impl(service: LogScannerService, *, state: str | None = None) -> dict[str, Any]:
    """List jobs newest first, optionally keeping a single state."""
    jobs = await service.list_jobs()
    if state:
        wanted = state.strip().upper()
        jobs = [j for j in jobs if j.state.value == wanted]
    return {"count": len(jobs), "jobs": [job_to_dict(j) for j in jobs]}


async def cancel_job_impl(service: LogScannerService, *, job_id: str) -> dict[str, Any]:
    try:
        status = await service.cancel_job(_require_job_id(job_id))
    except JobNotFoundError as exc:
        raise _not_found(exc) from exc
    return job_to_dict(status)


async def delete_job_impl(service: LogScannerService, *, job_id: str) -> dict[str, Any]:
    job_id = _require_job_id(job_id)
    try:
        await service.delete_job(job_id)
    except JobNotFoundError as exc:
        raise _not_found(exc) from exc
    return {"job_id": job_id, "deleted": True}
