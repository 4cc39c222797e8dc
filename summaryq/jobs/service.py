"""
Summary job service: the enqueue entry point and status lookups.
"""

import logging
from typing import Any

from summaryq.config.settings import Settings
from summaryq.jobs.cache import ResultCache
from summaryq.jobs.keys import build_request_key, normalize_provider
from summaryq.jobs.models import ContentKind
from summaryq.jobs.schemas import EnqueueResult, JobResponse, JobStatsResponse
from summaryq.jobs.store import JobStore, normalize_kind

logger = logging.getLogger(__name__)


class SummaryJobService:
    """Service for enqueueing and inspecting summary jobs."""

    def __init__(self, settings: Settings, store: JobStore, cache: ResultCache):
        self.settings = settings
        self.store = store
        self.cache = cache

    async def enqueue(
        self,
        kind: ContentKind | str,
        target_id: str,
        metadata_hash: str,
        prompt_version: str | None = None,
        force: bool = False,
        payload: dict[str, Any] | None = None,
        max_attempts: int | None = None,
        provider: str | None = None,
    ) -> EnqueueResult:
        """
        Enqueue a summary job unless a live cached summary already answers it.

        Args:
            kind: Content kind owning the queue
            target_id: Content item to summarize
            metadata_hash: Fingerprint of the content being summarized
            prompt_version: Prompt version; defaults to the configured one
            force: Skip the cache and use a distinct request key
            payload: Extra executor parameters stored on the job
            max_attempts: Attempt budget; defaults to the configured one
            provider: Summarization provider; defaults to the configured one

        Returns:
            EnqueueResult with either the cache entry or the upserted job
        """
        kind = normalize_kind(kind)
        target_id = str(target_id or "").strip()
        if not target_id:
            raise ValueError("target_id is required for summary enqueueing")

        prompt_version = prompt_version or self.settings.summary_prompt_version
        provider = normalize_provider(provider or self.settings.summary_provider)
        request_key = build_request_key(target_id, metadata_hash, prompt_version, force)

        if not force:
            cache_entry = await self.cache.get(
                kind, target_id, metadata_hash, prompt_version, provider
            )
            if cache_entry is not None:
                logger.info(
                    "Summary served from cache",
                    extra={"kind": kind, "target_id": target_id},
                )
                return EnqueueResult(
                    job=None,
                    cached=True,
                    cache_entry=cache_entry,
                    request_key=request_key,
                )

        merged_payload = {
            **(payload or {}),
            "force": bool(force),
            "metadata_hash": metadata_hash,
            "prompt_version": prompt_version,
            "provider": provider,
        }

        job = await self.store.upsert_queued(
            kind,
            target_id,
            request_key,
            max_attempts or self.settings.summary_max_attempts,
            merged_payload,
            stale_lock_ms=self.settings.summary_stale_lock_ms,
        )

        logger.info(
            "Summary job enqueued",
            extra={
                "job_id": job.id,
                "kind": kind,
                "target_id": target_id,
                "status": job.status,
                "force": force,
            },
        )
        return EnqueueResult(job=job, cached=False, request_key=request_key)

    async def get_status(
        self, kind: ContentKind | str, target_id: str
    ) -> JobResponse | None:
        """Latest job for a content item, for status polling."""
        return await self.store.get_latest_by_target(kind, target_id)

    async def retry(self, job_id: int) -> JobResponse | None:
        """Operator retry of a failed or dead job. None if the job is not revivable."""
        return await self.store.retry_job(job_id)

    async def get_stats(self, kind: ContentKind | str | None = None) -> JobStatsResponse:
        return await self.store.get_stats(kind)
