"""
Relational job store for summary jobs.

Every mutating operation is a single SQL statement so that no state
transition can be half-applied and no read-then-write race exists between
workers or enqueuers. Claiming relies on ``FOR UPDATE SKIP LOCKED`` on
PostgreSQL; on SQLite the database-level write lock serializes the same
statement.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy import (
    TIMESTAMP,
    and_,
    case,
    func,
    literal,
    null,
    or_,
    select,
    true,
    update,
)
from sqlalchemy.ext.asyncio import AsyncSession

from summaryq.core.exceptions import (
    JobNotFoundError,
    StoreUnavailableError,
    is_transient_store_error,
)
from summaryq.infra.database import Database
from summaryq.jobs.models import (
    REVIVABLE_STATUSES,
    ContentKind,
    JobStatus,
    SummaryJob,
)
from summaryq.jobs.schemas import JobResponse, JobStatsResponse

logger = logging.getLogger(__name__)

jobs = SummaryJob.__table__

QUEUED = JobStatus.QUEUED.value
RUNNING = JobStatus.RUNNING.value
SUCCEEDED = JobStatus.SUCCEEDED.value
FAILED = JobStatus.FAILED.value
DEAD = JobStatus.DEAD.value
REVIVABLE = [status.value for status in REVIVABLE_STATUSES]


def utcnow() -> datetime:
    return datetime.now(UTC)


def _ts(value: datetime):
    """Typed timestamp literal for use inside CASE expressions."""
    return literal(value, TIMESTAMP(timezone=True))


def normalize_kind(kind: ContentKind | str) -> str:
    return ContentKind(kind).value


def dialect_insert(dialect_name: str):
    """Return the dialect's INSERT construct supporting ON CONFLICT."""
    if dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert

        return insert
    if dialect_name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert

        return insert
    raise NotImplementedError(f"Unsupported job store dialect: {dialect_name}")


@asynccontextmanager
async def store_session(database: Database, operation: str) -> AsyncIterator[AsyncSession]:
    """Open a session and translate connectivity failures into StoreUnavailableError."""
    try:
        async with database.SessionLocal() as session:
            yield session
    except StoreUnavailableError:
        raise
    except Exception as exc:
        if is_transient_store_error(exc):
            logger.warning(
                "Job store unavailable",
                extra={"operation": operation, "error": str(exc)},
            )
            raise StoreUnavailableError(
                f"Job store unavailable during {operation}",
                details={"operation": operation, "error": str(exc)},
            ) from exc
        raise


class JobStore:
    """Atomic claim, transition and recovery primitives over ``summary_jobs``."""

    def __init__(self, database: Database, stale_lock_ms: int = 120_000):
        self.database = database
        self.stale_lock_ms = stale_lock_ms

    def _session(self, operation: str):
        return store_session(self.database, operation)

    async def _execute_returning(
        self, operation: str, stmt: Any
    ) -> JobResponse | None:
        async with self._session(operation) as session:
            result = await session.execute(stmt)
            row = result.mappings().first()
            await session.commit()
        return JobResponse.model_validate(dict(row)) if row is not None else None

    async def upsert_queued(
        self,
        kind: ContentKind | str,
        target_id: str,
        request_key: str,
        max_attempts: int,
        payload: dict[str, Any],
        stale_lock_ms: int | None = None,
    ) -> JobResponse:
        """
        Insert a queued job, or conditionally revive the existing one.

        On request-key conflict the existing row is reset to a fresh queued
        job when it is failed, dead, or running with a stale (or missing)
        lock. In-flight rows keep their state; only payload and max_attempts
        are refreshed. The decision runs inside one INSERT ... ON CONFLICT.
        """
        kind = normalize_kind(kind)
        now = utcnow()
        stale_ms = stale_lock_ms if stale_lock_ms is not None else self.stale_lock_ms
        stale_before = now - timedelta(milliseconds=stale_ms)
        max_attempts = max(1, int(max_attempts))

        revive = or_(
            jobs.c.status.in_(REVIVABLE),
            and_(
                jobs.c.status == RUNNING,
                or_(jobs.c.locked_at.is_(None), jobs.c.locked_at < stale_before),
            ),
        )

        insert = dialect_insert(self.database.dialect_name)
        stmt = insert(jobs).values(
            kind=kind,
            target_id=target_id,
            request_key=request_key,
            status=QUEUED,
            attempt_count=0,
            max_attempts=max_attempts,
            next_run_at=now,
            payload=payload,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[jobs.c.kind, jobs.c.request_key],
            set_={
                "payload": stmt.excluded.payload,
                "max_attempts": stmt.excluded.max_attempts,
                "updated_at": now,
                "status": case((revive, QUEUED), else_=jobs.c.status),
                "next_run_at": case((revive, _ts(now)), else_=jobs.c.next_run_at),
                "attempt_count": case((revive, 0), else_=jobs.c.attempt_count),
                "locked_at": case((revive, null()), else_=jobs.c.locked_at),
                "locked_by": case((revive, null()), else_=jobs.c.locked_by),
                "error_code": case((revive, null()), else_=jobs.c.error_code),
                "error_message": case((revive, null()), else_=jobs.c.error_message),
            },
        ).returning(*jobs.c)

        job = await self._execute_returning("upsert_queued", stmt)
        if job is None:
            raise StoreUnavailableError("Upsert returned no row")

        logger.info(
            "Summary job upserted",
            extra={
                "job_id": job.id,
                "kind": kind,
                "target_id": target_id,
                "status": job.status,
                "attempt_count": job.attempt_count,
            },
        )
        return job

    async def claim_next(
        self, kind: ContentKind | str, worker_id: str
    ) -> JobResponse | None:
        """
        Claim the oldest eligible queued job for ``kind``.

        Eligible means ``status = queued AND next_run_at <= now``, ordered by
        (next_run_at, created_at). Concurrent callers skip rows locked by
        each other, so a job is handed to exactly one caller. Returns None
        when nothing is eligible.
        """
        kind = normalize_kind(kind)
        now = utcnow()

        candidate = (
            select(jobs.c.id)
            .where(
                and_(
                    jobs.c.kind == kind,
                    jobs.c.status == QUEUED,
                    jobs.c.next_run_at <= now,
                )
            )
            .order_by(jobs.c.next_run_at.asc(), jobs.c.created_at.asc(), jobs.c.id.asc())
            .limit(1)
            .with_for_update(skip_locked=True)
            .scalar_subquery()
        )

        stmt = (
            update(jobs)
            .where(and_(jobs.c.id == candidate, jobs.c.status == QUEUED))
            .values(
                status=RUNNING,
                locked_at=now,
                locked_by=worker_id,
                attempt_count=jobs.c.attempt_count + 1,
                updated_at=now,
            )
            .returning(*jobs.c)
        )

        job = await self._execute_returning("claim_next", stmt)
        if job is not None:
            logger.info(
                "Claimed summary job",
                extra={
                    "job_id": job.id,
                    "kind": kind,
                    "worker_id": worker_id,
                    "attempt_count": job.attempt_count,
                },
            )
        return job

    async def _current_or_missing(self, operation: str, job_id: int) -> JobResponse:
        job = await self.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        logger.warning(
            "Ignoring completion for job no longer held by this claim",
            extra={"operation": operation, "job_id": job_id, "status": job.status},
        )
        return job

    def _owned_by(
        self, job_id: int, worker_id: str | None, attempt_count: int | None
    ):
        """Match a running job, optionally only while the given claim still holds it."""
        conditions = [jobs.c.id == job_id, jobs.c.status == RUNNING]
        if worker_id is not None:
            conditions.append(jobs.c.locked_by == worker_id)
        if attempt_count is not None:
            conditions.append(jobs.c.attempt_count == attempt_count)
        return and_(*conditions)

    async def mark_succeeded(
        self,
        job_id: int,
        summary_text: str,
        worker_id: str | None = None,
        attempt_count: int | None = None,
    ) -> JobResponse:
        """
        Record a successful run and release the lock.

        When ``worker_id``/``attempt_count`` identify the claim, the outcome
        only applies while that claim still owns the row; a worker whose lock
        was recovered and re-claimed elsewhere cannot overwrite the new run.
        """
        now = utcnow()
        stmt = (
            update(jobs)
            .where(self._owned_by(job_id, worker_id, attempt_count))
            .values(
                status=SUCCEEDED,
                result_summary=str(summary_text or ""),
                error_code=None,
                error_message=None,
                locked_at=None,
                locked_by=None,
                next_run_at=now,
                updated_at=now,
            )
            .returning(*jobs.c)
        )

        job = await self._execute_returning("mark_succeeded", stmt)
        if job is None:
            return await self._current_or_missing("mark_succeeded", job_id)

        logger.info("Summary job succeeded", extra={"job_id": job_id})
        return job

    async def mark_failed(
        self,
        job_id: int,
        retryable: bool,
        error_code: str | None,
        error_message: str | None,
        next_run_at: datetime | None = None,
        worker_id: str | None = None,
        attempt_count: int | None = None,
    ) -> JobResponse:
        """
        Record a failed run and release the lock.

        Retryable failures go back to queued at ``next_run_at`` while attempts
        remain, otherwise to dead. Non-retryable failures go straight to
        failed regardless of remaining attempts.

        Claim ownership is checked the same way as in ``mark_succeeded``.
        """
        now = utcnow()
        retry_at = next_run_at or now
        attempts_left = jobs.c.attempt_count < jobs.c.max_attempts

        if retryable:
            status = case((attempts_left, QUEUED), else_=DEAD)
            run_at = case((attempts_left, _ts(retry_at)), else_=_ts(now))
        else:
            status = FAILED
            run_at = now

        stmt = (
            update(jobs)
            .where(self._owned_by(job_id, worker_id, attempt_count))
            .values(
                status=status,
                next_run_at=run_at,
                error_code=error_code or None,
                error_message=error_message or None,
                locked_at=None,
                locked_by=None,
                updated_at=now,
            )
            .returning(*jobs.c)
        )

        job = await self._execute_returning("mark_failed", stmt)
        if job is None:
            return await self._current_or_missing("mark_failed", job_id)

        log = logger.warning if job.status == QUEUED else logger.error
        log(
            "Summary job failed",
            extra={
                "job_id": job_id,
                "status": job.status,
                "retryable": retryable,
                "error_code": error_code,
                "attempt_count": job.attempt_count,
                "max_attempts": job.max_attempts,
                "next_run_at": job.next_run_at.isoformat(),
            },
        )
        return job

    async def recover_stale(
        self,
        stale_threshold_ms: int | None = None,
        kind: ContentKind | str | None = None,
    ) -> int:
        """
        Requeue or dead-letter running jobs whose lock is missing or older than
        the threshold.

        This is the only path that reclaims work from a worker that died
        without reporting. Returns the number of recovered rows.
        """
        now = utcnow()
        stale_ms = (
            stale_threshold_ms if stale_threshold_ms is not None else self.stale_lock_ms
        )
        cutoff = now - timedelta(milliseconds=max(0, int(stale_ms)))
        exhausted = jobs.c.attempt_count >= jobs.c.max_attempts

        conditions = [
            jobs.c.status == RUNNING,
            or_(jobs.c.locked_at.is_(None), jobs.c.locked_at < cutoff),
        ]
        if kind is not None:
            conditions.append(jobs.c.kind == normalize_kind(kind))

        stmt = (
            update(jobs)
            .where(and_(*conditions))
            .values(
                status=case((exhausted, DEAD), else_=QUEUED),
                locked_at=None,
                locked_by=None,
                next_run_at=now,
                error_code=case(
                    (exhausted, func.coalesce(jobs.c.error_code, "stale_lock")),
                    else_=null(),
                ),
                error_message=case(
                    (
                        exhausted,
                        func.coalesce(
                            jobs.c.error_message,
                            f"Worker lock expired after {stale_ms}ms",
                        ),
                    ),
                    else_=null(),
                ),
                updated_at=now,
            )
            .returning(jobs.c.id, jobs.c.status)
        )

        async with self._session("recover_stale") as session:
            result = await session.execute(stmt)
            recovered = result.all()
            await session.commit()

        if recovered:
            logger.warning(
                "Recovered stale summary jobs",
                extra={
                    "recovered_count": len(recovered),
                    "dead_count": sum(1 for row in recovered if row.status == DEAD),
                    "stale_threshold_ms": stale_ms,
                    "kind": kind,
                },
            )
        return len(recovered)

    async def get_latest_by_target(
        self, kind: ContentKind | str, target_id: str
    ) -> JobResponse | None:
        """Most recent job for a content item."""
        stmt = (
            select(jobs)
            .where(and_(jobs.c.kind == normalize_kind(kind), jobs.c.target_id == target_id))
            .order_by(jobs.c.created_at.desc(), jobs.c.id.desc())
            .limit(1)
        )
        async with self._session("get_latest_by_target") as session:
            row = (await session.execute(stmt)).mappings().first()
        return JobResponse.model_validate(dict(row)) if row is not None else None

    async def get_job(self, job_id: int) -> JobResponse | None:
        async with self._session("get_job") as session:
            row = (
                await session.execute(select(jobs).where(jobs.c.id == job_id))
            ).mappings().first()
        return JobResponse.model_validate(dict(row)) if row is not None else None

    async def retry_job(self, job_id: int) -> JobResponse | None:
        """Operator retry: reset a failed or dead job to a fresh queued job."""
        now = utcnow()
        stmt = (
            update(jobs)
            .where(and_(jobs.c.id == job_id, jobs.c.status.in_(REVIVABLE)))
            .values(
                status=QUEUED,
                attempt_count=0,
                error_code=None,
                error_message=None,
                locked_at=None,
                locked_by=None,
                next_run_at=now,
                updated_at=now,
            )
            .returning(*jobs.c)
        )

        job = await self._execute_returning("retry_job", stmt)
        if job is not None:
            logger.info("Summary job retried", extra={"job_id": job_id})
        return job

    async def get_stats(self, kind: ContentKind | str | None = None) -> JobStatsResponse:
        """Queue depth and per-status counts, optionally for one kind."""
        kind_value = normalize_kind(kind) if kind is not None else None
        base_filter = jobs.c.kind == kind_value if kind_value else true()
        stale_before = utcnow() - timedelta(milliseconds=self.stale_lock_ms)

        async with self._session("get_stats") as session:
            status_rows = await session.execute(
                select(jobs.c.status, func.count(jobs.c.id))
                .where(base_filter)
                .group_by(jobs.c.status)
            )
            by_status = {status: count for status, count in status_rows.all()}

            stale_result = await session.execute(
                select(func.count(jobs.c.id)).where(
                    and_(
                        base_filter,
                        jobs.c.status == RUNNING,
                        or_(
                            jobs.c.locked_at.is_(None),
                            jobs.c.locked_at < stale_before,
                        ),
                    )
                )
            )
            stale_running = stale_result.scalar() or 0

        return JobStatsResponse(
            kind=kind_value,
            total_jobs=sum(by_status.values()),
            by_status=by_status,
            queue_depth=by_status.get(QUEUED, 0) + by_status.get(RUNNING, 0),
            stale_running=stale_running,
        )
