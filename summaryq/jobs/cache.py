"""
Summary result cache.

Holds the most recent successful summary per (kind, target). A read is a hit
only while the entry is unexpired and was produced from the same content
fingerprint, prompt version and provider as the request.
"""

import logging
from datetime import timedelta

from sqlalchemy import and_, select

from summaryq.infra.database import Database
from summaryq.jobs.keys import normalize_provider
from summaryq.jobs.models import ContentKind, SummaryCacheEntry
from summaryq.jobs.schemas import CacheEntryResponse
from summaryq.jobs.store import dialect_insert, normalize_kind, store_session, utcnow

logger = logging.getLogger(__name__)

cache_table = SummaryCacheEntry.__table__

MIN_TTL_MS = 10_000


class ResultCache:
    """Keyed summary cache with TTL."""

    def __init__(self, database: Database, default_ttl_ms: int = 7 * 24 * 60 * 60 * 1000):
        self.database = database
        self.default_ttl_ms = default_ttl_ms

    async def get(
        self,
        kind: ContentKind | str,
        target_id: str,
        metadata_hash: str,
        prompt_version: str,
        provider: str | None,
    ) -> CacheEntryResponse | None:
        stmt = (
            select(cache_table)
            .where(
                and_(
                    cache_table.c.kind == normalize_kind(kind),
                    cache_table.c.target_id == target_id,
                    cache_table.c.metadata_hash == metadata_hash,
                    cache_table.c.prompt_version == prompt_version,
                    cache_table.c.provider == normalize_provider(provider),
                    cache_table.c.expires_at > utcnow(),
                )
            )
            .limit(1)
        )
        async with store_session(self.database, "cache_get") as session:
            row = (await session.execute(stmt)).mappings().first()
        return CacheEntryResponse.model_validate(dict(row)) if row is not None else None

    async def put(
        self,
        kind: ContentKind | str,
        target_id: str,
        metadata_hash: str,
        prompt_version: str,
        provider: str | None,
        summary_text: str,
        ttl_ms: int | None = None,
    ) -> CacheEntryResponse:
        """
        Store the summary for a target, replacing any previous one.

        Concurrent writers for the same target resolve last-write-wins on
        ``generated_at``; an older write never replaces a newer entry.
        """
        kind = normalize_kind(kind)
        now = utcnow()
        ttl = ttl_ms if ttl_ms is not None else self.default_ttl_ms
        expires_at = now + timedelta(milliseconds=max(MIN_TTL_MS, int(ttl or 0)))

        insert = dialect_insert(self.database.dialect_name)
        stmt = insert(cache_table).values(
            kind=kind,
            target_id=target_id,
            metadata_hash=metadata_hash,
            prompt_version=prompt_version,
            provider=normalize_provider(provider),
            summary_text=str(summary_text or ""),
            generated_at=now,
            expires_at=expires_at,
            last_success_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[cache_table.c.kind, cache_table.c.target_id],
            set_={
                "metadata_hash": stmt.excluded.metadata_hash,
                "prompt_version": stmt.excluded.prompt_version,
                "provider": stmt.excluded.provider,
                "summary_text": stmt.excluded.summary_text,
                "generated_at": stmt.excluded.generated_at,
                "expires_at": stmt.excluded.expires_at,
                "last_success_at": stmt.excluded.last_success_at,
            },
            where=stmt.excluded.generated_at >= cache_table.c.generated_at,
        )

        async with store_session(self.database, "cache_put") as session:
            await session.execute(stmt)
            await session.commit()

        logger.info(
            "Summary cached",
            extra={
                "kind": kind,
                "target_id": target_id,
                "prompt_version": prompt_version,
                "expires_at": expires_at.isoformat(),
            },
        )

        return CacheEntryResponse(
            kind=kind,
            target_id=target_id,
            metadata_hash=metadata_hash,
            prompt_version=prompt_version,
            provider=normalize_provider(provider),
            summary_text=str(summary_text or ""),
            generated_at=now,
            expires_at=expires_at,
            last_success_at=now,
        )
