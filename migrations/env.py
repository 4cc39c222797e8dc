"""Alembic async migration environment."""

import asyncio
from logging.config import fileConfig

from alembic import context

from summaryq.config.settings import get_settings
from summaryq.infra.database import Base, get_database
from summaryq.jobs import models  # noqa: F401

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def run_migrations_offline():
    """Run migrations in offline mode."""
    context.configure(
        url=get_settings().database_url,
        target_metadata=target_metadata,
        literal_binds=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection):
    context.configure(connection=connection, target_metadata=target_metadata)
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online():
    """Run migrations in online mode with the application's async engine."""
    database = get_database()
    async with database.engine.connect() as connection:
        await connection.run_sync(do_run_migrations)
    await database.close()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
