"""Alembic environment — async migration runner for both MatchSync databases.

Uses the async engine for PostgreSQL (remote) and SQLite (local) alike. Imports all
models to ensure metadata is populated before autogenerate.

Design Decisions:
    - Target chosen with `-x db=remote|local` (default remote); the URL comes from
      Settings so env vars and .env apply exactly as at runtime
    - Falls back to alembic.ini value when Settings yields nothing
"""

import asyncio
from logging.config import fileConfig

from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from alembic import context

from matchsync.config import get_settings
from matchsync.db.base import Base
# Import all models so Base.metadata has them
import matchsync.models  # noqa: F401

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _get_target() -> str:
    return context.get_x_argument(as_dictionary=True).get("db", "remote")


def _get_database_url() -> str:
    """DB URL for the selected target from Settings, else alembic.ini."""
    settings = get_settings()
    url = (
        settings.local_database_url if _get_target() == "local"
        else settings.remote_database_url
    )
    return url or config.get_main_option("sqlalchemy.url")


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode."""
    context.configure(
        url=_get_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    context.configure(connection=connection, target_metadata=target_metadata)
    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    """Run migrations in 'online' mode with async engine."""
    configuration = config.get_section(config.config_ini_section, {})
    configuration["sqlalchemy.url"] = _get_database_url()
    connectable = async_engine_from_config(
        configuration,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)
    await connectable.dispose()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode."""
    asyncio.run(run_async_migrations())


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
