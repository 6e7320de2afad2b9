"""Exception taxonomy for the ingestion core."""

from __future__ import annotations


class LogScannerError(Exception):
    """Base class for all errors raised by the ingestion core."""


class ParseError(LogScannerError):
    """A single input unit could not be turned into a record."""

    def __init__(self, line_no: int, reason: str, text: str | None = None) -> None:
        self.line_no = line_no
        self.reason = reason
        self.text = (text or "")[:200]
        super().__init__(f"line {line_no}: {reason}")


class SourceError(LogScannerError):
    """The log source could not be opened or read."""


class FormatError(LogScannerError):
    """The source could not be classified into any parser."""


class IndexStoreError(LogScannerError):
    """The index store rejected or failed a write or query."""


class JobStoreError(LogScannerError):
    """Job status could not be persisted or loaded."""


class JobNotFoundError(LogScannerError, LookupError):
    """No job exists for the requested id."""

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


class InvalidTransition(LogScannerError):
    """A job state change that the state machine does not allow."""


class QueryExecutionError(LogScannerError):
    """Executing a query against the index store failed; the caller may retry."""

    retryable = True
