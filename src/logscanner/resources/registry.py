"""MCP resource registry.

Resources are addressable by URI and can be fetched by the MCP client on demand.
"""

from __future__ import annotations

from typing import Any

from mcp.server.fastmcp import FastMCP

from logscanner.core.export import EXPORT_FORMATS
from logscanner.core.jobs import JobState
from logscanner.core.models import LogFormat, LogLevel
from logscanner.core.query import SORT_FIELDS
from logscanner.core.service import LogScannerService
from logscanner.tools.jobs import get_job_impl


def help_text(service: LogScannerService) -> str:
    """Return a short overview of the server's tools and resources."""
    cfg = service.config
    return (
        "Tools:\n"
        "- submit_job(log_path): queue a log file for ingestion. JSON (lines or array), CSV,\n"
        "  standard text and plain text are detected automatically; .gz files are decompressed\n"
        "- get_job(job_id) / list_jobs(state?) / cancel_job(job_id) / delete_job(job_id)\n"
        "- query_records(search_text?, levels?, since/until or date/hour/week/month/year, page, size, sort)\n"
        f"- export_records(fmt): one of {', '.join(EXPORT_FORMATS)}\n"
        "\nResources:\n"
        "- app://logscanner/help\n"
        "- app://logscanner/jobs/{job_id}\n"
        f"\nFormats: {', '.join(f.value for f in LogFormat)}\n"
        f"Levels: {', '.join(lvl.value for lvl in LogLevel)}\n"
        f"Job states: {', '.join(s.value for s in JobState)}\n"
        f"Sort fields: {', '.join(SORT_FIELDS)}\n"
        f"Page size: default {cfg.default_page_size}, max {cfg.max_page_size}\n"
        f"Concurrent jobs: {cfg.max_concurrent_jobs}\n"
    )


def register_resources(mcp: FastMCP, service: LogScannerService) -> None:
    """Register resource handlers on the MCP server."""

    @mcp.resource("app://logscanner/help")
    def help_resource() -> str:
        """Return a short list of available tools and resource URIs."""
        return help_text(service)

    @mcp.resource("app://logscanner/jobs/{job_id}")
    async def job_resource(job_id: str) -> dict[str, Any]:
        """Return the current status of one ingestion job."""
        return await get_job_impl(service, job_id=job_id)
