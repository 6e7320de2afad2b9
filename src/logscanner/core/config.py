"""Ingestion configuration and environment overrides."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace


@dataclass(frozen=True, slots=True)
class IngestConfig:
    batch_size: int = 1000
    flush_interval: float = 5.0  # seconds a partial batch may wait
    retry_attempts: int = 3
    retry_backoff: float = 0.5
    max_backoff: float = 8.0
    max_concurrent_jobs: int = 2
    sample_error_limit: int = 20
    sniff_lines: int = 20
    chunk_size: int = 64 * 1024
    strict_csv: bool = True

    default_page_size: int = 50
    max_page_size: int = 1000
    export_page_size: int = 500
    max_export_records: int = 100_000

    # None keeps job status in memory only.
    job_store_dir: str | None = None

    def __post_init__(self) -> None:
        for name in (
            "batch_size",
            "retry_attempts",
            "max_concurrent_jobs",
            "sniff_lines",
            "chunk_size",
            "default_page_size",
            "max_page_size",
            "export_page_size",
            "max_export_records",
        ):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be >= 1")
        if self.sample_error_limit < 0:
            raise ValueError("sample_error_limit must be >= 0")
        if self.flush_interval <= 0:
            raise ValueError("flush_interval must be > 0")
        if self.retry_backoff < 0 or self.max_backoff < 0:
            raise ValueError("backoff values must be >= 0")


_INT_ENV_OVERRIDES = {
    "LOGSCANNER_BATCH_SIZE": "batch_size",
    "LOGSCANNER_MAX_CONCURRENT_JOBS": "max_concurrent_jobs",
    "LOGSCANNER_RETRY_ATTEMPTS": "retry_attempts",
    "LOGSCANNER_MAX_PAGE_SIZE": "max_page_size",
}


def _env_int(name: str) -> int | None:
    env = os.getenv(name)
    if env is None or env == "":
        return None
    try:
        value = int(env)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer") from exc
    if value < 1:
        raise ValueError(f"{name} must be >= 1")
    return value


def resolve_ingest_config(cfg: IngestConfig | None = None) -> IngestConfig:
    """Return config with optional env overrides applied."""
    if cfg is None:
        cfg = IngestConfig()

    changes: dict[str, object] = {}
    for env_name, field_name in _INT_ENV_OVERRIDES.items():
        value = _env_int(env_name)
        if value is not None:
            changes[field_name] = value

    store_dir = os.getenv("LOGSCANNER_JOB_STORE_DIR")
    if store_dir:
        changes["job_store_dir"] = store_dir

    if not changes:
        return cfg
    return replace(cfg, **changes)
