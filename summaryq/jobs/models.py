"""
Summary job queue models.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from sqlalchemy import (
    JSON,
    TIMESTAMP,
    BigInteger,
    CheckConstraint,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from summaryq.infra.database import Base

# SQLite only autoincrements INTEGER PRIMARY KEY columns
BigIntPK = BigInteger().with_variant(Integer, "sqlite")


class JobStatus(str, Enum):
    """Job status enumeration."""

    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    DEAD = "dead"


REVIVABLE_STATUSES = (JobStatus.FAILED, JobStatus.DEAD)


class ContentKind(str, Enum):
    """Content types that own a summary queue."""

    GITHUB = "github"
    BOOKMARK = "bookmark"
    YOUTUBE = "youtube"


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive timestamps returned by backends without tz support."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class SummaryJob(Base):
    """
    One summary request for a content item.

    A row is unique per (kind, request_key). It doubles as queue entry and
    state machine:

        queued -> running -> succeeded | queued (retry) | dead | failed

    Failed and dead rows may be revived into queued by a fresh enqueue or an
    operator retry.
    """

    __tablename__ = "summary_jobs"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    kind: Mapped[str] = mapped_column(
        Text, nullable=False, comment="Content kind: github|bookmark|youtube"
    )
    target_id: Mapped[str] = mapped_column(
        Text, nullable=False, comment="Content item the summary is for"
    )
    request_key: Mapped[str] = mapped_column(
        Text, nullable=False, comment="Idempotency fingerprint"
    )

    # Job state
    status: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default=JobStatus.QUEUED.value,
        comment="Job status: queued|running|succeeded|failed|dead",
    )
    attempt_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, comment="Incremented on every claim"
    )
    max_attempts: Mapped[int] = mapped_column(
        Integer, nullable=False, default=5, comment="Claims allowed before dead-letter"
    )
    next_run_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
        comment="Earliest time the job may be claimed",
    )

    # Worker coordination
    locked_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True, comment="When job was locked by worker"
    )
    locked_by: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Worker ID that locked the job"
    )

    payload: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
        comment="Executor parameters plus metadata_hash/prompt_version/provider",
    )

    # Outcome
    result_summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_code: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Structured error identifier"
    )
    error_message: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Last error message"
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
        default=lambda: datetime.now(UTC),
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
        default=lambda: datetime.now(UTC),
    )

    __table_args__ = (
        UniqueConstraint("kind", "request_key", name="uq_summary_jobs_kind_request_key"),
        Index("ix_summary_jobs_kind_status_next_run_at", "kind", "status", "next_run_at"),
        Index("ix_summary_jobs_kind_target_created_at", "kind", "target_id", "created_at"),
        Index("ix_summary_jobs_status_locked_at", "status", "locked_at"),
        CheckConstraint(
            "status IN ('queued', 'running', 'succeeded', 'failed', 'dead')",
            name="summary_jobs_status_check",
        ),
        CheckConstraint("attempt_count >= 0", name="summary_jobs_attempt_count_check"),
        CheckConstraint("max_attempts >= 1", name="summary_jobs_max_attempts_check"),
    )


class SummaryCacheEntry(Base):
    """Most recent successful summary per (kind, target_id)."""

    __tablename__ = "summary_cache"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    kind: Mapped[str] = mapped_column(Text, nullable=False)
    target_id: Mapped[str] = mapped_column(Text, nullable=False)
    metadata_hash: Mapped[str] = mapped_column(
        Text, nullable=False, comment="Fingerprint of the summarized content"
    )
    prompt_version: Mapped[str] = mapped_column(Text, nullable=False)
    provider: Mapped[str] = mapped_column(Text, nullable=False)
    summary_text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    generated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    last_success_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("kind", "target_id", name="uq_summary_cache_kind_target_id"),
        CheckConstraint("expires_at > generated_at", name="summary_cache_expiry_check"),
    )
