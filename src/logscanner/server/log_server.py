"""MCP server entrypoint (stdio transport).

This module wires together:
- Tools: job lifecycle actions and record queries
- Resources: addressable data blobs (help text, job status via URI)

Run locally (stdio):
    python -m logscanner.server.log_server
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from typing import Any

from mcp.server.fastmcp import FastMCP

from logscanner.core.service import LogScannerService
from logscanner.resources.registry import register_resources
from logscanner.tools.jobs import (
    cancel_job_impl,
    delete_job_impl,
    get_job_impl,
    list_jobs_impl,
    submit_job_impl,
)
from logscanner.tools.records import export_records_impl, query_records_impl

LOGGER = logging.getLogger(__name__)


def _configure_logging() -> None:
    """Configure a reasonable default logging setup.

    The MCP client typically captures stderr; stdout carries the protocol.
    """
    level_name = os.getenv("LOGSCANNER_LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(
        stream=sys.stderr,
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


service = LogScannerService.from_env()


@asynccontextmanager
async def _lifespan(_: FastMCP) -> AsyncIterator[LogScannerService]:
    async with service:
        yield service


mcp = FastMCP("logscanner", json_response=True, lifespan=_lifespan)

register_resources(mcp, service)


@mcp.tool()
async def submit_job(log_path: str, file_name: str | None = None) -> dict[str, Any]:
    """Queue a local log file for ingestion and return the QUEUED job status.

    Parameters
    ----------
    log_path:
        Path to a local log file. JSON (lines or array), CSV with header,
        "date time LEVEL - message" text and free text are detected automatically.
        Files ending in .gz are decompressed on the fly.
    file_name:
        Display name for the job; defaults to the file's name.
    """
    return await submit_job_impl(service, log_path=log_path, file_name=file_name)


@mcp.tool()
async def get_job(job_id: str) -> dict[str, Any]:
    """Return the current status of a job (state, progress, error count, sample errors)."""
    return await get_job_impl(service, job_id=job_id)


@mcp.tool()
async def list_jobs(state: str | None = None) -> dict[str, Any]:
    """List all jobs, most recent first. Optionally keep only one state (e.g., "PROCESSING")."""
    return await list_jobs_impl(service, state=state)


@mcp.tool()
async def cancel_job(job_id: str) -> dict[str, Any]:
    """Cancel a queued or running job. Finished jobs are returned unchanged."""
    return await cancel_job_impl(service, job_id=job_id)


@mcp.tool()
async def delete_job(job_id: str) -> dict[str, Any]:
    """Delete a job and the records it ingested. A running job is cancelled first."""
    return await delete_job_impl(service, job_id=job_id)


@mcp.tool()
async def query_records(
    search_text: str | None = None,
    levels: Sequence[str] | None = None,
    since: str | None = None,
    until: str | None = None,
    date: str | None = None,
    hour: str | None = None,
    week: str | None = None,
    month: str | None = None,
    year: str | None = None,
    page: int | None = None,
    size: int | None = None,
    sort_field: str | None = None,
    sort_direction: str | None = None,
    include_raw: bool = False,
) -> dict[str, Any]:
    """Search ingested records.

    Parameters
    ----------
    search_text:
        Case-insensitive substring matched against message and raw line.
    levels:
        Severity names (e.g., ["error", "warn"]). Case-insensitive.
    since/until:
        ISO-8601 datetimes, inclusive. If timezone is omitted, UTC is assumed.
    date/hour/week/month/year:
        Convenience selectors that take precedence over since/until.
        Examples: 2025-12-31, 2025-12-31T20, 2025-W52, 2025-12, 2025.
    page/size:
        Zero-based page number and page size (clamped to the configured maximum).
    sort_field/sort_direction:
        One of timestamp, level, source; "asc" or "desc" (default: timestamp desc).
    include_raw:
        Whether to include the original raw line in each record.

    Returns
    -------
    dict:
        {"total": int, "page": int, "size": int, "count": int, "records": list[dict]}
    """
    return await query_records_impl(
        service,
        search_text=search_text,
        levels=levels,
        since=since,
        until=until,
        date=date,
        hour=hour,
        week=week,
        month=month,
        year=year,
        page=page,
        size=size,
        sort_field=sort_field,
        sort_direction=sort_direction,
        include_raw=include_raw,
    )


@mcp.tool()
async def export_records(
    fmt: str = "csv",
    search_text: str | None = None,
    levels: Sequence[str] | None = None,
    since: str | None = None,
    until: str | None = None,
    date: str | None = None,
    hour: str | None = None,
    week: str | None = None,
    month: str | None = None,
    year: str | None = None,
    sort_field: str | None = None,
    sort_direction: str | None = None,
) -> dict[str, Any]:
    """Export every matching record as csv, json or ndjson text (capped by configuration)."""
    return await export_records_impl(
        service,
        fmt=fmt,
        search_text=search_text,
        levels=levels,
        since=since,
        until=until,
        date=date,
        hour=hour,
        week=week,
        month=month,
        year=year,
        sort_field=sort_field,
        sort_direction=sort_direction,
    )


def main(argv: Sequence[str] | None = None) -> None:
    """Start the MCP server over stdio."""
    _configure_logging()
    LOGGER.debug("Starting MCP server (transport=stdio)")
    _ = argv or sys.argv[1:]
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
