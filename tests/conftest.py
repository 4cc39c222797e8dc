import os
from collections.abc import AsyncGenerator
from datetime import datetime

import pytest
from sqlalchemy import update

from summaryq.config.settings import Settings
from summaryq.infra.database import Database
from summaryq.jobs.cache import ResultCache
from summaryq.jobs.models import SummaryJob
from summaryq.jobs.service import SummaryJobService
from summaryq.jobs.store import JobStore


def _database_url(tmp_path) -> str:
    """Use the CI PostgreSQL database when configured, else a SQLite file."""
    database_url = os.getenv("DATABASE_URL")
    if database_url and "postgresql" in database_url:
        return database_url
    return f"sqlite+aiosqlite:///{tmp_path / 'summaryq.db'}"


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Settings pointing at an isolated database with deterministic backoff."""
    return Settings(
        _env_file=None,
        database_url=_database_url(tmp_path),
        summary_retry_jitter_ratio=0.0,
        summary_executor_timeout_s=5.0,
        summary_shutdown_timeout_s=5.0,
    )


@pytest.fixture
async def database(test_settings) -> AsyncGenerator[Database, None]:
    """Create a fresh schema for each test."""
    db = Database(test_settings)
    await db.drop_all()
    await db.create_all()
    yield db
    await db.drop_all()
    await db.close()


@pytest.fixture
def store(database, test_settings) -> JobStore:
    return JobStore(database, stale_lock_ms=test_settings.summary_stale_lock_ms)


@pytest.fixture
def cache(database, test_settings) -> ResultCache:
    return ResultCache(database, default_ttl_ms=test_settings.summary_cache_ttl_ms)


@pytest.fixture
def service(test_settings, store, cache) -> SummaryJobService:
    return SummaryJobService(test_settings, store, cache)


@pytest.fixture
def force_job_fields(database):
    """Overwrite columns of a job row directly, e.g. to age a lock."""

    async def _force(job_id: int, **values) -> None:
        async with database.SessionLocal() as session:
            await session.execute(
                update(SummaryJob).where(SummaryJob.id == job_id).values(**values)
            )
            await session.commit()

    return _force


@pytest.fixture
def payload_for():
    """Build a realistic github executor payload."""

    def _payload(repo_id: str, readme: str = "# README") -> dict:
        return {
            "repoId": repo_id,
            "metadata": {
                "repoId": repo_id,
                "fullName": repo_id,
                "description": f"{repo_id} description",
                "readme": readme,
            },
            "requestedAt": datetime(2026, 10, 18, 9, 0).isoformat(),
        }

    return _payload
