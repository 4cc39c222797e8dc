"""Tests for the enqueue entry point."""

import pytest

from summaryq.jobs.keys import build_github_metadata_hash, build_request_key
from summaryq.jobs.models import ContentKind, JobStatus


class TestEnqueue:
    async def test_enqueue_creates_job_with_merged_payload(self, service, payload_for):
        payload = payload_for("octo/repo")
        metadata_hash = build_github_metadata_hash(payload["metadata"])

        result = await service.enqueue(ContentKind.GITHUB, "octo/repo", metadata_hash, payload=payload)

        assert result.cached is False
        assert result.cache_entry is None
        assert result.request_key == build_request_key("octo/repo", metadata_hash, "v1", False)
        job = result.job
        assert job.status == JobStatus.QUEUED.value
        assert job.max_attempts == 5
        assert job.payload["repoId"] == "octo/repo"
        assert job.payload["force"] is False
        assert job.payload["metadata_hash"] == metadata_hash
        assert job.payload["prompt_version"] == "v1"
        assert job.payload["provider"] == "glm"

    async def test_identical_requests_share_one_job(self, service):
        first = await service.enqueue("github", "octo/repo", "hash-1")
        second = await service.enqueue("github", "octo/repo", "hash-1")

        assert first.job.id == second.job.id
        assert (await service.get_stats("github")).total_jobs == 1

    async def test_content_change_creates_new_job(self, service):
        first = await service.enqueue("github", "octo/repo", "hash-1")
        second = await service.enqueue("github", "octo/repo", "hash-2")

        assert first.job.id != second.job.id

    async def test_force_uses_distinct_request_key(self, service):
        normal = await service.enqueue("github", "octo/repo", "hash-1")
        forced = await service.enqueue("github", "octo/repo", "hash-1", force=True)

        assert normal.job.id != forced.job.id
        assert forced.job.payload["force"] is True

    async def test_explicit_options_override_settings(self, service):
        result = await service.enqueue(
            "bookmark",
            "https://example.com/post",
            "hash-1",
            prompt_version="v2",
            max_attempts=2,
            provider="OpenAI",
        )

        assert result.job.kind == "bookmark"
        assert result.job.max_attempts == 2
        assert result.job.payload["prompt_version"] == "v2"
        assert result.job.payload["provider"] == "openai"

    @pytest.mark.parametrize("target", ["", "   ", None])
    async def test_blank_target_rejected(self, service, target):
        with pytest.raises(ValueError, match="target_id is required"):
            await service.enqueue("github", target, "hash-1")

    async def test_unknown_kind_rejected(self, service):
        with pytest.raises(ValueError):
            await service.enqueue("podcast", "episode-1", "hash-1")


class TestCacheShortCircuit:
    async def test_live_cache_entry_answers_without_job(self, service, cache):
        await cache.put("github", "octo/repo", "hash-1", "v1", "glm", "Cached summary")

        result = await service.enqueue("github", "octo/repo", "hash-1")

        assert result.cached is True
        assert result.job is None
        assert result.cache_entry.summary_text == "Cached summary"
        assert (await service.get_stats()).total_jobs == 0

    async def test_stale_fingerprint_bypasses_cache(self, service, cache):
        await cache.put("github", "octo/repo", "hash-1", "v1", "glm", "Cached summary")

        result = await service.enqueue("github", "octo/repo", "hash-2")

        assert result.cached is False
        assert result.job is not None

    async def test_force_bypasses_cache(self, service, cache):
        await cache.put("github", "octo/repo", "hash-1", "v1", "glm", "Cached summary")

        result = await service.enqueue("github", "octo/repo", "hash-1", force=True)

        assert result.cached is False
        assert result.job.status == JobStatus.QUEUED.value


class TestStatusAndRetry:
    async def test_get_status_returns_latest_job(self, service):
        assert await service.get_status("github", "octo/repo") is None

        await service.enqueue("github", "octo/repo", "hash-1")
        latest = await service.enqueue("github", "octo/repo", "hash-2")

        status = await service.get_status("github", "octo/repo")
        assert status.id == latest.job.id

    async def test_retry_dead_job(self, service, force_job_fields):
        result = await service.enqueue("github", "octo/repo", "hash-1")
        await force_job_fields(result.job.id, status="dead", attempt_count=5)

        retried = await service.retry(result.job.id)

        assert retried.status == JobStatus.QUEUED.value
        assert retried.attempt_count == 0

    async def test_retry_missing_job(self, service):
        assert await service.retry(424242) is None
