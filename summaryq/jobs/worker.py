"""
Polling worker for summary jobs.
"""

import asyncio
import inspect
import os
import socket
import time
from collections.abc import Mapping
from typing import Any

import structlog

from summaryq.config.logging import get_logger
from summaryq.config.settings import Settings
from summaryq.core.exceptions import ExecutorError, StoreUnavailableError
from summaryq.jobs.cache import ResultCache
from summaryq.jobs.models import ContentKind, JobStatus
from summaryq.jobs.retry import RetryPolicy
from summaryq.jobs.schemas import Executor, JobResponse, OnError
from summaryq.jobs.store import JobStore, normalize_kind

logger = get_logger(__name__)

MIN_POLL_INTERVAL_MS = 100
MIN_RECOVERY_INTERVAL_MS = 1000


def extract_summary_text(result: Any) -> str:
    """Accept a plain string or an object/mapping exposing the summary text."""
    if result is None:
        return ""
    if isinstance(result, str):
        return result.strip()
    for key in ("summary_text", "result_summary"):
        value = result.get(key) if isinstance(result, Mapping) else getattr(result, key, None)
        if value:
            return str(value).strip()
    return ""


class RecoverySweeper:
    """Requeues jobs stuck in running, at most once per recovery interval."""

    def __init__(
        self,
        store: JobStore,
        kind: ContentKind | str,
        stale_lock_ms: int,
        recovery_interval_ms: int,
    ):
        self.store = store
        self.kind = normalize_kind(kind)
        self.stale_lock_ms = stale_lock_ms
        self.recovery_interval_ms = recovery_interval_ms
        self._last_sweep_at: float | None = None

    def is_due(self) -> bool:
        if self._last_sweep_at is None:
            return True
        elapsed_ms = (time.monotonic() - self._last_sweep_at) * 1000
        return elapsed_ms >= self.recovery_interval_ms

    async def maybe_sweep(self) -> int | None:
        """Sweep if the interval has elapsed. A failed sweep waits a full interval."""
        if not self.is_due():
            return None
        self._last_sweep_at = time.monotonic()
        return await self.sweep()

    async def sweep(self) -> int:
        return await self.store.recover_stale(self.stale_lock_ms, kind=self.kind)


class SummaryWorker:
    """
    Single-threaded cooperative polling worker for one content kind.

    A timer fires every poll interval; each tick sweeps stale locks when due,
    claims at most one job, runs the executor and records the outcome. A busy
    guard skips ticks while a previous tick is still in flight, so one worker
    never holds two claims. Mutual exclusion across workers is left to
    ``JobStore.claim_next``.
    """

    def __init__(
        self,
        settings: Settings,
        store: JobStore,
        cache: ResultCache,
        kind: ContentKind | str,
        executor: Executor,
        worker_id: str | None = None,
        poll_interval_ms: int | None = None,
        stale_lock_ms: int | None = None,
        recovery_interval_ms: int | None = None,
        on_error: OnError | None = None,
        retry_policy: RetryPolicy | None = None,
    ):
        if not callable(executor):
            raise ValueError("executor callback is required to start a summary worker")

        self.settings = settings
        self.store = store
        self.cache = cache
        self.kind = normalize_kind(kind)
        self.executor = executor
        self.on_error = on_error
        self.retry_policy = retry_policy or RetryPolicy.from_settings(settings)
        self.worker_id = worker_id or (
            f"{self.kind}-summary-worker-{socket.gethostname()}-{os.getpid()}"
        )

        poll_ms = poll_interval_ms or settings.summary_worker_poll_interval_ms
        if poll_ms < MIN_POLL_INTERVAL_MS:
            poll_ms = settings.summary_worker_poll_interval_ms
        recovery_ms = recovery_interval_ms or settings.summary_recovery_interval_ms
        if recovery_ms < MIN_RECOVERY_INTERVAL_MS:
            recovery_ms = settings.summary_recovery_interval_ms

        self.poll_interval_ms = poll_ms
        self.stale_lock_ms = stale_lock_ms or settings.summary_stale_lock_ms
        self.executor_timeout_s = settings.summary_executor_timeout_s
        self.sweeper = RecoverySweeper(store, self.kind, self.stale_lock_ms, recovery_ms)

        self._busy = False
        self._stopped = True
        self._ticker: asyncio.Task | None = None
        self._inflight: set[asyncio.Task] = set()
        self._log = logger.bind(worker_id=self.worker_id, kind=self.kind)

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def running(self) -> bool:
        return not self._stopped

    def start(self) -> "SummaryWorker":
        """Start the poll timer and run one immediate tick."""
        if self._ticker is not None and not self._ticker.done():
            raise RuntimeError("Worker is already running")

        self._stopped = False
        self._ticker = asyncio.create_task(self._tick_loop())
        self._log.info(
            "Starting summary worker",
            poll_interval_ms=self.poll_interval_ms,
            stale_lock_ms=self.stale_lock_ms,
            recovery_interval_ms=self.sweeper.recovery_interval_ms,
        )
        self.trigger()
        return self

    def trigger(self) -> None:
        """Poll immediately instead of waiting for the next timer tick."""
        if self._stopped or self._busy:
            return
        task = asyncio.create_task(self.process_next())
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def stop(self, timeout: float | None = None) -> None:
        """Cancel the timer and let in-flight work finish."""
        self._stopped = True
        if self._ticker is not None:
            self._ticker.cancel()
            try:
                await self._ticker
            except asyncio.CancelledError:
                pass
            self._ticker = None

        timeout = self.settings.summary_shutdown_timeout_s if timeout is None else timeout
        pending = {task for task in self._inflight if not task.done()}
        if pending:
            _, still_running = await asyncio.wait(pending, timeout=timeout)
            if still_running:
                self._log.warning(
                    "Worker stopped with in-flight work", inflight=len(still_running)
                )

        self._log.info("Summary worker stopped")

    async def _tick_loop(self) -> None:
        while not self._stopped:
            await asyncio.sleep(self.poll_interval_ms / 1000)
            self.trigger()

    async def process_next(self) -> JobResponse | None:
        """
        Run one poll cycle.

        Returns the job's state after its outcome was recorded, or None when
        the tick was skipped, found nothing, or hit a store error.
        """
        if self._busy:
            return None

        self._busy = True
        try:
            # Store and cache log lines emitted during this tick carry the worker
            with structlog.contextvars.bound_contextvars(
                worker_id=self.worker_id, kind=self.kind
            ):
                await self.sweeper.maybe_sweep()

                job = await self.store.claim_next(self.kind, self.worker_id)
                if job is None:
                    return None

                return await self._run_job(job)

        except StoreUnavailableError as exc:
            self._log.warning("Job store unavailable, retrying next poll", error=exc.message)
            await self._report(exc, None)
            return None

        except Exception as exc:
            self._log.exception("Error in summary worker tick")
            await self._report(exc, None)
            return None

        finally:
            self._busy = False

    async def _run_job(self, job: JobResponse) -> JobResponse:
        job_log = self._log.bind(
            job_id=job.id, target_id=job.target_id, attempt=job.attempt_count
        )
        job_log.info("Processing summary job started")

        try:
            result = await asyncio.wait_for(
                self.executor(job), timeout=self.executor_timeout_s
            )
            summary_text = extract_summary_text(result)
            if not summary_text:
                raise ExecutorError(
                    "Executor returned an empty summary",
                    code="empty_summary",
                    retryable=False,
                )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            return await self._record_failure(job, exc, job_log)

        done = await self.store.mark_succeeded(
            job.id,
            summary_text,
            worker_id=self.worker_id,
            attempt_count=job.attempt_count,
        )
        if done.status == JobStatus.SUCCEEDED.value:
            job_log.info("Processing summary job completed successfully")
            await self._write_cache(done, summary_text, job_log)
        return done

    async def _record_failure(
        self, job: JobResponse, exc: BaseException, job_log: Any
    ) -> JobResponse:
        classification = self.retry_policy.classify(exc)
        if isinstance(exc, TimeoutError) and not str(exc):
            message = f"Executor timed out after {self.executor_timeout_s}s"
        else:
            message = str(exc) or exc.__class__.__name__

        failed = await self.store.mark_failed(
            job.id,
            retryable=classification.retryable,
            error_code=classification.error_code,
            error_message=message,
            next_run_at=self.retry_policy.next_run_at(job.attempt_count),
            worker_id=self.worker_id,
            attempt_count=job.attempt_count,
        )

        job_log.warning(
            "Processing summary job failed",
            error=message,
            error_code=classification.error_code,
            retryable=classification.retryable,
            status=failed.status,
        )
        await self._report(exc, job)
        return failed

    async def _write_cache(self, job: JobResponse, summary_text: str, job_log: Any) -> None:
        payload = job.payload
        try:
            await self.cache.put(
                self.kind,
                job.target_id,
                str(payload.get("metadata_hash") or ""),
                str(payload.get("prompt_version") or self.settings.summary_prompt_version),
                payload.get("provider") or self.settings.summary_provider,
                summary_text,
                ttl_ms=self.settings.summary_cache_ttl_ms,
            )
        except Exception as exc:
            job_log.warning("Failed to cache summary", error=str(exc))
            await self._report(exc, job)

    async def _report(self, exc: BaseException, job: JobResponse | None) -> None:
        """Invoke on_error for observability; its failures never affect control flow."""
        if self.on_error is None:
            return
        try:
            outcome = self.on_error(exc, job)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception:
            self._log.debug("on_error callback raised", exc_info=True)
