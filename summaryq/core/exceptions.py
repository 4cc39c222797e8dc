"""
Error taxonomy for the summary job queue.

Store errors are transient and never recorded on a job. Executor errors are
classified by the retry policy into retryable or terminal outcomes.
"""

from typing import Any

from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError


class SummaryQueueException(Exception):
    """Base exception for the summary queue."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class StoreUnavailableError(SummaryQueueException):
    """Raised when the job store cannot be reached. Safe to retry next poll."""

    def __init__(
        self,
        message: str = "Job store unavailable",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)


class JobNotFoundError(SummaryQueueException):
    """Raised when a job row expected by a state transition does not exist."""

    def __init__(self, job_id: int, details: dict[str, Any] | None = None):
        self.job_id = job_id
        super().__init__(f"Summary job {job_id} not found", details)


class ExecutorError(SummaryQueueException):
    """
    Error raised by summary executors.

    Executors may attach an HTTP ``status``, an errno-style ``code`` and an
    explicit ``retryable`` flag; the retry policy uses them when classifying.
    """

    def __init__(
        self,
        message: str,
        status: int | None = None,
        code: str | None = None,
        retryable: bool | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.status = status
        self.code = code
        self.retryable = retryable
        super().__init__(message, details)


def is_transient_store_error(exc: BaseException) -> bool:
    """Check whether a database error means the store is unreachable."""
    if isinstance(exc, (OperationalError, InterfaceError)):
        return True
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    return isinstance(exc, (ConnectionError, OSError))
