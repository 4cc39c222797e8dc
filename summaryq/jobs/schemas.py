"""
Summary job Pydantic schemas.
"""

from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from summaryq.jobs.models import as_utc


class _UTCModel(BaseModel):
    """Normalizes every datetime field to an aware UTC value."""

    @field_validator("*", mode="after")
    @classmethod
    def _normalize_datetimes(cls, value: Any) -> Any:
        if isinstance(value, datetime):
            return as_utc(value)
        return value


class JobResponse(_UTCModel):
    """Detached snapshot of a summary job row."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    kind: str
    target_id: str
    request_key: str
    status: str
    attempt_count: int
    max_attempts: int
    next_run_at: datetime

    # Worker coordination
    locked_at: datetime | None = None
    locked_by: str | None = None

    payload: dict[str, Any] = Field(default_factory=dict)

    # Outcome
    result_summary: str | None = None
    error_code: str | None = None
    error_message: str | None = None

    created_at: datetime
    updated_at: datetime

    @field_validator("payload", mode="before")
    @classmethod
    def _payload_object(cls, value: Any) -> dict[str, Any]:
        return value if isinstance(value, dict) else {}


class CacheEntryResponse(_UTCModel):
    """Cached summary for a content item."""

    model_config = ConfigDict(from_attributes=True)

    kind: str
    target_id: str
    metadata_hash: str
    prompt_version: str
    provider: str
    summary_text: str
    generated_at: datetime
    expires_at: datetime
    last_success_at: datetime


class EnqueueResult(BaseModel):
    """Outcome of an enqueue call."""

    job: JobResponse | None = Field(
        default=None, description="Queued or in-flight job; None on cache hit"
    )
    cached: bool = Field(default=False, description="Whether the cache answered")
    cache_entry: CacheEntryResponse | None = None
    request_key: str


class ErrorClassification(BaseModel):
    """Retry decision for an executor failure."""

    model_config = ConfigDict(frozen=True)

    retryable: bool
    error_code: str


class JobStatsResponse(BaseModel):
    """Schema for queue statistics."""

    kind: str | None = None
    total_jobs: int
    by_status: dict[str, int]
    queue_depth: int  # queued + running
    stale_running: int


OnError = Callable[[BaseException, JobResponse | None], Any]
Executor = Callable[[JobResponse], Awaitable[Any]]


class WorkerConfig(BaseModel):
    """Options accepted by ``SummaryQueue.start_worker``."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    kind: str
    worker_id: str | None = None
    poll_interval_ms: int | None = None
    stale_lock_ms: int | None = None
    recovery_interval_ms: int | None = None
    executor: Executor | None = None
    on_error: OnError | None = None
