"""
Library entry point for the summary job queue.

Callers (HTTP handlers, scripts) build one ``SummaryQueue`` per process and
use ``enqueue``/``get_status`` plus ``start_worker`` for each content kind
they process.
"""

from typing import Any

from summaryq.config.logging import get_logger, setup_logging
from summaryq.config.settings import Settings, get_settings
from summaryq.core.registries import executor_registry
from summaryq.infra.database import Database
from summaryq.jobs.cache import ResultCache
from summaryq.jobs.models import ContentKind
from summaryq.jobs.retry import RetryPolicy
from summaryq.jobs.schemas import (
    EnqueueResult,
    Executor,
    JobResponse,
    JobStatsResponse,
    OnError,
    WorkerConfig,
)
from summaryq.jobs.service import SummaryJobService
from summaryq.jobs.store import JobStore
from summaryq.jobs.worker import SummaryWorker

logger = get_logger(__name__)


class SummaryQueue:
    """Durable summary job queue over one relational store."""

    def __init__(self, settings: Settings, database: Database):
        self.settings = settings
        self.database = database
        self.store = JobStore(database, stale_lock_ms=settings.summary_stale_lock_ms)
        self.cache = ResultCache(database, default_ttl_ms=settings.summary_cache_ttl_ms)
        self.service = SummaryJobService(settings, self.store, self.cache)
        self.workers: list[SummaryWorker] = []

    async def enqueue(
        self,
        kind: ContentKind | str,
        target_id: str,
        metadata_hash: str,
        prompt_version: str | None = None,
        force: bool = False,
        payload: dict[str, Any] | None = None,
        **options: Any,
    ) -> EnqueueResult:
        result = await self.service.enqueue(
            kind,
            target_id,
            metadata_hash,
            prompt_version=prompt_version,
            force=force,
            payload=payload,
            **options,
        )
        # Wake local workers for this kind instead of waiting for their timer
        if result.job is not None:
            for worker in self.workers:
                if worker.kind == result.job.kind:
                    worker.trigger()
        return result

    async def get_status(
        self, kind: ContentKind | str, target_id: str
    ) -> JobResponse | None:
        return await self.service.get_status(kind, target_id)

    async def retry(self, job_id: int) -> JobResponse | None:
        return await self.service.retry(job_id)

    async def get_stats(self, kind: ContentKind | str | None = None) -> JobStatsResponse:
        return await self.service.get_stats(kind)

    def start_worker(
        self,
        kind: ContentKind | str | None = None,
        executor: Executor | None = None,
        worker_id: str | None = None,
        poll_interval_ms: int | None = None,
        stale_lock_ms: int | None = None,
        recovery_interval_ms: int | None = None,
        on_error: OnError | None = None,
        retry_policy: RetryPolicy | None = None,
        config: WorkerConfig | None = None,
    ) -> SummaryWorker:
        """
        Start a polling worker for one content kind.

        The executor defaults to the one registered for ``kind`` in
        ``executor_registry``. The returned worker exposes ``trigger()`` and
        ``stop()``.
        """
        if config is not None:
            kind = config.kind
            executor = config.executor or executor
            worker_id = config.worker_id or worker_id
            poll_interval_ms = config.poll_interval_ms or poll_interval_ms
            stale_lock_ms = config.stale_lock_ms or stale_lock_ms
            recovery_interval_ms = config.recovery_interval_ms or recovery_interval_ms
            on_error = config.on_error or on_error
        if kind is None:
            raise ValueError("kind is required to start a summary worker")

        kind_value = ContentKind(kind).value
        if executor is None:
            executor = executor_registry.get(kind_value)

        worker = SummaryWorker(
            self.settings,
            self.store,
            self.cache,
            kind_value,
            executor,
            worker_id=worker_id,
            poll_interval_ms=poll_interval_ms,
            stale_lock_ms=stale_lock_ms,
            recovery_interval_ms=recovery_interval_ms,
            on_error=on_error,
            retry_policy=retry_policy,
        )
        self.workers.append(worker)
        return worker.start()

    async def close(self) -> None:
        """Stop all workers started here and dispose of the engine."""
        for worker in self.workers:
            await worker.stop()
        self.workers.clear()
        await self.database.close()


def create_queue(settings: Settings | None = None, configure_logging: bool = True) -> SummaryQueue:
    """Create and configure a SummaryQueue."""
    settings = settings or get_settings()

    # Initialize structured logging
    if configure_logging:
        setup_logging(settings)

    # Freeze the executor registry outside development to prevent runtime swaps
    if settings.environment != "development":
        executor_registry.freeze()

    logger.info(
        "Summary queue configured",
        environment=settings.environment,
        prompt_version=settings.summary_prompt_version,
        max_attempts=settings.summary_max_attempts,
        stale_lock_ms=settings.summary_stale_lock_ms,
    )
    return SummaryQueue(settings, Database(settings))
