"""Offline Cache — last-known copies of remote documents for reads while offline.

Invariants:
    - Online reads refresh the cache; offline reads never touch the remote store
    - A remote failure or a read slower than read_timeout_seconds while nominally
      online falls back to the cached copy
    - cleanup() removes entries older than max_age and nothing else

Design Decisions:
    - Key is "<collection>/<doc_id>": the same naming as the executor's entity keys
    - Cache write failures are logged, not raised: the remote read already succeeded
"""

import asyncio
import logging
from datetime import timedelta
from typing import Any, Callable

from matchsync.core.errors import MatchSyncError
from matchsync.core.repository_protocols import Clock, KeyValueCache, RemoteStore

logger = logging.getLogger(__name__)


def cache_key(collection: str, doc_id: str) -> str:
    return f"{collection}/{doc_id}"


class OfflineCache:
    """Read-through cache in front of the remote store."""

    def __init__(
        self,
        cache: KeyValueCache,
        store: RemoteStore,
        clock: Clock,
        is_online: Callable[[], bool],
        read_timeout_seconds: float | None = None,
    ):
        self._cache = cache
        self._store = store
        self._clock = clock
        self._is_online = is_online
        self._read_timeout = read_timeout_seconds

    async def put(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        await self._cache.put(cache_key(collection, doc_id), data, self._clock.now())

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        entry = await self._cache.get(cache_key(collection, doc_id))
        return entry[0] if entry else None

    async def fetch_with_offline_fallback(
        self, collection: str, doc_id: str,
    ) -> dict[str, Any] | None:
        if self._is_online():
            try:
                doc = await asyncio.wait_for(
                    self._store.get(collection, doc_id), self._read_timeout,
                )
            except asyncio.TimeoutError:
                logger.warning(
                    f"Remote read of {collection}/{doc_id} timed out after "
                    f"{self._read_timeout}s, using cache",
                )
            except MatchSyncError as e:
                logger.warning(
                    f"Remote read of {collection}/{doc_id} failed, using cache: {e.message}",
                )
            else:
                if doc is not None:
                    try:
                        await self.put(collection, doc_id, doc)
                    except MatchSyncError as e:
                        logger.warning(f"Cache write failed: {e.message}")
                return doc
        return await self.get(collection, doc_id)

    async def cleanup(self, max_age: timedelta) -> int:
        removed = await self._cache.delete_older_than(self._clock.now() - max_age)
        if removed:
            logger.info(f"Removed {removed} stale cache entries")
        return removed

    async def clear(self) -> None:
        await self._cache.clear()

    async def size(self) -> int:
        return await self._cache.total_size()
