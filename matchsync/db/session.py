"""Async Session Factory — builds engines and session factories for either database.

Invariants:
    - Every factory uses expire_on_commit=False (rows stay readable after commit)
    - create_tables only creates the tables passed in (local vs remote split)

Design Decisions:
    - One helper for both databases: the on-device SQLite file and the remote
      PostgreSQL store differ only in URL and pool settings
    - create_tables for dev/tests; production schema goes through alembic
"""

from sqlalchemy import Table
from sqlalchemy.ext.asyncio import (
    AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine,
)

from matchsync.db.base import Base


def create_engine_for(database_url: str, **kwargs) -> AsyncEngine:
    """Create an async engine; pool options are dropped for SQLite."""
    if database_url.startswith("sqlite"):
        kwargs.pop("pool_size", None)
        kwargs.pop("max_overflow", None)
        return create_async_engine(database_url, echo=False)
    return create_async_engine(
        database_url, echo=False, pool_pre_ping=True, pool_recycle=3600, **kwargs,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory bound to the engine."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def create_tables(engine: AsyncEngine, tables: list[Table]) -> None:
    """Create the given tables if missing."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all, tables=tables)
