"""Tests for the summary result cache."""

from datetime import UTC, datetime, timedelta

from sqlalchemy import update

from summaryq.jobs.cache import MIN_TTL_MS
from summaryq.jobs.models import ContentKind, SummaryCacheEntry


async def _put(cache, target="octo/repo", metadata_hash="hash-1", text="Summary", **kwargs):
    return await cache.put(
        kwargs.pop("kind", ContentKind.GITHUB),
        target,
        metadata_hash,
        kwargs.pop("prompt_version", "v1"),
        kwargs.pop("provider", "glm"),
        text,
        **kwargs,
    )


class TestCacheLookup:
    async def test_hit_when_tuple_matches(self, cache):
        await _put(cache)

        entry = await cache.get(ContentKind.GITHUB, "octo/repo", "hash-1", "v1", "glm")

        assert entry is not None
        assert entry.summary_text == "Summary"
        assert entry.expires_at > datetime.now(UTC)

    async def test_miss_when_empty(self, cache):
        assert await cache.get(ContentKind.GITHUB, "octo/repo", "hash-1", "v1", "glm") is None

    async def test_miss_on_any_component_mismatch(self, cache):
        await _put(cache)

        assert await cache.get(ContentKind.GITHUB, "octo/repo", "hash-2", "v1", "glm") is None
        assert await cache.get(ContentKind.GITHUB, "octo/repo", "hash-1", "v2", "glm") is None
        assert await cache.get(ContentKind.GITHUB, "octo/repo", "hash-1", "v1", "openai") is None
        assert await cache.get(ContentKind.BOOKMARK, "octo/repo", "hash-1", "v1", "glm") is None

    async def test_provider_is_normalized(self, cache):
        await _put(cache, provider="  GLM ")

        assert await cache.get(ContentKind.GITHUB, "octo/repo", "hash-1", "v1", None) is not None

    async def test_expired_entry_is_a_miss(self, cache, database):
        await _put(cache)
        past = datetime.now(UTC) - timedelta(minutes=1)
        async with database.SessionLocal() as session:
            await session.execute(
                update(SummaryCacheEntry).values(
                    generated_at=past - timedelta(hours=1), expires_at=past
                )
            )
            await session.commit()

        assert await cache.get(ContentKind.GITHUB, "octo/repo", "hash-1", "v1", "glm") is None


class TestCacheWrite:
    async def test_overwrite_replaces_previous_entry(self, cache):
        """One entry per target; a new write supersedes the old fingerprint."""
        await _put(cache, metadata_hash="hash-1", text="Old")
        await _put(cache, metadata_hash="hash-2", text="New")

        assert await cache.get(ContentKind.GITHUB, "octo/repo", "hash-1", "v1", "glm") is None
        entry = await cache.get(ContentKind.GITHUB, "octo/repo", "hash-2", "v1", "glm")
        assert entry.summary_text == "New"

    async def test_ttl_has_floor(self, cache):
        entry = await _put(cache, ttl_ms=1)

        lifetime = entry.expires_at - entry.generated_at
        assert lifetime >= timedelta(milliseconds=MIN_TTL_MS)

    async def test_explicit_ttl(self, cache):
        entry = await _put(cache, ttl_ms=60_000)

        assert entry.expires_at - entry.generated_at == timedelta(minutes=1)

    async def test_older_write_does_not_replace_newer(self, cache, database):
        """Last write wins on generated_at."""
        await _put(cache, text="Newest")
        future = datetime.now(UTC) + timedelta(hours=1)
        async with database.SessionLocal() as session:
            await session.execute(
                update(SummaryCacheEntry).values(
                    generated_at=future, expires_at=future + timedelta(days=1)
                )
            )
            await session.commit()

        await _put(cache, text="Stale")

        entry = await cache.get(ContentKind.GITHUB, "octo/repo", "hash-1", "v1", "glm")
        assert entry.summary_text == "Newest"
