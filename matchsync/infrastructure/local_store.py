"""Local Stores — on-device document cache and analytics buffer over async SQLAlchemy.

Invariants:
    - Both stores commit before returning
    - SQLAlchemy errors surface as LocalPersistenceError (callers decide to degrade)
    - total_size counts serialized JSON characters of cached documents

Design Decisions:
    - Same device database as the action queue: one file to back up, one to clear
"""

import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncGenerator

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from matchsync.core.errors import LocalPersistenceError
from matchsync.models.analytics_event import AnalyticsEventRecord
from matchsync.models.cached_document import CachedDocument

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _local_session(
    factory: async_sessionmaker[AsyncSession], operation: str,
) -> AsyncGenerator[AsyncSession, None]:
    session = factory()
    try:
        yield session
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(f"Local storage error during {operation}: {e}")
        raise LocalPersistenceError(str(e), operation)
    finally:
        await session.close()


class SqlDocumentCache:
    """KeyValueCache implementation (cached_documents table)."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def put(self, key: str, data: dict[str, Any], cached_at: datetime) -> None:
        async with _local_session(self._session_factory, "cache_put") as db:
            await db.merge(CachedDocument(key=key, data=data, cached_at=cached_at))
            await db.commit()

    async def get(self, key: str) -> tuple[dict[str, Any], datetime] | None:
        async with _local_session(self._session_factory, "cache_get") as db:
            row = await db.get(CachedDocument, key)
            return (dict(row.data), row.cached_at) if row else None

    async def delete_older_than(self, cutoff: datetime) -> int:
        async with _local_session(self._session_factory, "cache_cleanup") as db:
            result = await db.execute(
                delete(CachedDocument).where(CachedDocument.cached_at < cutoff),
            )
            await db.commit()
            return result.rowcount or 0

    async def clear(self) -> None:
        async with _local_session(self._session_factory, "cache_clear") as db:
            await db.execute(delete(CachedDocument))
            await db.commit()

    async def total_size(self) -> int:
        async with _local_session(self._session_factory, "cache_size") as db:
            result = await db.execute(select(CachedDocument.key, CachedDocument.data))
            return sum(
                len(key) + len(json.dumps(data, ensure_ascii=False))
                for key, data in result.all()
            )


class SqlEventBuffer:
    """EventBufferStorage implementation (analytics_buffer table)."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def append(self, event: dict[str, Any]) -> None:
        async with _local_session(self._session_factory, "analytics_append") as db:
            db.add(AnalyticsEventRecord(event=event))
            await db.commit()

    async def load_all(self) -> list[tuple[int, dict[str, Any]]]:
        async with _local_session(self._session_factory, "analytics_load") as db:
            result = await db.execute(
                select(AnalyticsEventRecord).order_by(AnalyticsEventRecord.id),
            )
            return [(r.id, dict(r.event)) for r in result.scalars().all()]

    async def delete_ids(self, ids: list[int]) -> None:
        if not ids:
            return
        async with _local_session(self._session_factory, "analytics_delete") as db:
            await db.execute(
                delete(AnalyticsEventRecord).where(AnalyticsEventRecord.id.in_(ids)),
            )
            await db.commit()
