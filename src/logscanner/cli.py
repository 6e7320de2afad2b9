"""Local CLI: ingest files in-process, then query or export the records."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from dataclasses import replace
from pathlib import Path

from logscanner.core.config import resolve_ingest_config
from logscanner.core.errors import LogScannerError
from logscanner.core.export import EXPORT_FORMATS
from logscanner.core.jobs import JobState, JobStatus
from logscanner.core.service import LogScannerService
from logscanner.tools.records import build_request


def _split_levels(s: str) -> list[str]:
    out = [part.strip() for part in s.split(",") if part.strip()]
    if not out:
        raise argparse.ArgumentTypeError("At least one level must be provided")
    return out


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="logscanner",
        description="Ingest log files (format auto-detected) and search the parsed records.",
    )
    p.add_argument("log_paths", nargs="+", help="Log files to ingest (.gz supported)")
    p.add_argument("--levels", type=_split_levels, default=None, help="Comma-separated (e.g., ERROR,WARN)")
    p.add_argument("--search", default=None, help="Case-insensitive text to look for")
    p.add_argument("--size", type=int, default=None, help="Records to print (clamped to the page maximum)")
    p.add_argument("--page", type=int, default=None, help="Zero-based page number")
    p.add_argument("--sort", dest="sort_field", default=None, help="timestamp, level or source")
    p.add_argument("--asc", dest="sort_direction", action="store_const", const="ASC", default=None)
    p.add_argument("--export", choices=EXPORT_FORMATS, default=None, help="Write all matches to stdout")
    p.add_argument("--batch-size", type=int, default=None, help="Records per index write")
    p.add_argument("--lenient-csv", action="store_true", help="Pad short CSV rows instead of rejecting them")
    p.add_argument("--jobs-only", action="store_true", help="Only print job summaries")

    # Time window
    p.add_argument("--since", default=None, help="ISO8601 start time (assumes UTC if tz missing)")
    p.add_argument("--until", default=None, help="ISO8601 end time (assumes UTC if tz missing)")
    p.add_argument("--date", default=None, help="YYYY-MM-DD (UTC day)")
    p.add_argument("--hour", default=None, help="YYYY-MM-DDTHH (UTC hour)")
    p.add_argument("--week", default=None, help="YYYY-Www (ISO week, UTC)")
    p.add_argument("--month", default=None, help="YYYY-MM (UTC month)")
    p.add_argument("--year", default=None, help="YYYY (UTC year)")
    return p


def _summary(status: JobStatus) -> str:
    fmt = status.format.value if status.format else "-"
    line = (
        f"{status.job_id} {status.file_name} {status.state.value} format={fmt} "
        f"processed={status.processed_lines} errors={status.error_count}"
    )
    if status.cause:
        line += f" cause={status.cause}"
    return line


async def run(args: argparse.Namespace) -> int:
    """Ingest every path, print job summaries, then print or export matches."""
    request = build_request(
        search_text=args.search,
        levels=args.levels,
        since=args.since,
        until=args.until,
        date=args.date,
        hour=args.hour,
        week=args.week,
        month=args.month,
        year=args.year,
        page=args.page,
        size=args.size,
        sort_field=args.sort_field,
        sort_direction=args.sort_direction,
    )

    cfg = resolve_ingest_config()
    if args.batch_size is not None:
        cfg = replace(cfg, batch_size=args.batch_size)
    if args.lenient_csv:
        cfg = replace(cfg, strict_csv=False)

    failed = False
    async with LogScannerService(config=cfg) as service:
        submitted = [await service.submit_job(Path(p)) for p in args.log_paths]
        for status in submitted:
            final = await service.wait_for_job(status.job_id)
            print(_summary(final), file=sys.stderr)
            failed = failed or final.state is JobState.FAILED

        if args.jobs_only:
            return 1 if failed else 0

        if args.export:
            async for chunk in service.export_records(request, args.export):
                sys.stdout.write(chunk)
            if args.export == "json":
                sys.stdout.write("\n")
            return 1 if failed else 0

        result = await service.query_records(request)
        for r in result.records:
            ts = r.timestamp.isoformat() if r.timestamp else "-"
            print(f"{r.source or '-'}:{r.line_no} {ts} [{r.level.value}] {r.message}")
        print(f"\nShowing {len(result.records)} of {result.total} matching records.")
    return 1 if failed else 0


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    level_name = os.getenv("LOGSCANNER_LOG_LEVEL", "WARNING").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        code = asyncio.run(run(args))
    except (ValueError, LogScannerError) as e:
        print(f"Error: {e}", file=sys.stderr)
        raise SystemExit(2)
    raise SystemExit(code)


if __name__ == "__main__":
    main()
