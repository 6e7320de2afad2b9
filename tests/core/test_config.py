from __future__ import annotations

import pytest

from logscanner.core.config import IngestConfig, resolve_ingest_config


def test_defaults_without_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "LOGSCANNER_BATCH_SIZE",
        "LOGSCANNER_MAX_CONCURRENT_JOBS",
        "LOGSCANNER_RETRY_ATTEMPTS",
        "LOGSCANNER_MAX_PAGE_SIZE",
        "LOGSCANNER_JOB_STORE_DIR",
    ):
        monkeypatch.delenv(name, raising=False)
    cfg = resolve_ingest_config()
    assert cfg == IngestConfig()
    assert cfg.batch_size == 1000
    assert cfg.strict_csv is True
    assert cfg.job_store_dir is None


def test_env_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.setenv("LOGSCANNER_BATCH_SIZE", "25")
    monkeypatch.setenv("LOGSCANNER_MAX_CONCURRENT_JOBS", "4")
    monkeypatch.setenv("LOGSCANNER_JOB_STORE_DIR", str(tmp_path))
    cfg = resolve_ingest_config(IngestConfig(retry_attempts=5))
    assert cfg.batch_size == 25
    assert cfg.max_concurrent_jobs == 4
    assert cfg.retry_attempts == 5
    assert cfg.job_store_dir == str(tmp_path)


@pytest.mark.parametrize(
    ("value", "message"),
    [("many", "must be an integer"), ("0", "must be >= 1")],
)
def test_invalid_env_values(monkeypatch: pytest.MonkeyPatch, value: str, message: str) -> None:
    monkeypatch.setenv("LOGSCANNER_MAX_CONCURRENT_JOBS", value)
    with pytest.raises(ValueError, match=message):
        resolve_ingest_config()


def test_config_validation() -> None:
    with pytest.raises(ValueError, match="batch_size"):
        IngestConfig(batch_size=0)
    with pytest.raises(ValueError, match="flush_interval"):
        IngestConfig(flush_interval=0)
