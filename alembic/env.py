# alembic/env.py
from __future__ import annotations
from logging.config import fileConfig
from sqlalchemy import pool
from alembic import context
from sqlalchemy.ext.asyncio import async_engine_from_config

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

from researcher_hut.core.config import settings
from researcher_hut.core.db import Base
from researcher_hut.models import *  # noqa: F401,F403  (populates Base.metadata)

target_metadata = Base.metadata

_ASYNC_DRIVERS = ("+asyncpg", "+aiosqlite")

def _sync_url(url: str) -> str:
    for driver in _ASYNC_DRIVERS:
        url = url.replace(driver, "")
    return url

def _run_migrations(connection) -> None:
    context.configure(connection=connection, target_metadata=target_metadata)
    with context.begin_transaction():
        context.run_migrations()

def run_migrations_offline() -> None:
    # offline mode renders SQL only, so the async driver is dropped from the URL
    context.configure(
        url=_sync_url(settings.async_database_url),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()

async def run_migrations_online() -> None:
    connectable = async_engine_from_config(
        {"sqlalchemy.url": settings.async_database_url},
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    async with connectable.connect() as connection:
        await connection.run_sync(_run_migrations)
    await connectable.dispose()

def run() -> None:
    if context.is_offline_mode():
        run_migrations_offline()
    else:
        import asyncio
        asyncio.run(run_migrations_online())

run()
