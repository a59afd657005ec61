"""Sync Service — the reconnect sequence: drain actions, expire matches, flush analytics, prune cache.

Invariants:
    - Offline: sync() is a no-op returning an empty report
    - Never raises; each step's failure is logged and the next step still runs
    - Expiry runs after the drain so queued messages are judged by delivery time first
"""

import logging
from datetime import timedelta

from matchsync.core.repository_protocols import RemoteStore
from matchsync.services.analytics import AnalyticsBuffer
from matchsync.services.connectivity import ConnectivityMonitor
from matchsync.services.match_lifecycle_manager import MatchLifecycleManager
from matchsync.services.offline_cache import OfflineCache
from matchsync.services.retry_executor import DrainReport, RetryExecutor

logger = logging.getLogger(__name__)


class SyncService:
    def __init__(
        self,
        executor: RetryExecutor,
        analytics: AnalyticsBuffer,
        cache: OfflineCache,
        store: RemoteStore,
        monitor: ConnectivityMonitor,
        cache_max_age: timedelta = timedelta(days=7),
        lifecycle: MatchLifecycleManager | None = None,
        local_user_id: str | None = None,
    ):
        self._executor = executor
        self._analytics = analytics
        self._cache = cache
        self._store = store
        self._monitor = monitor
        self._cache_max_age = cache_max_age
        self._lifecycle = lifecycle
        self._local_user_id = local_user_id

    async def sync(self) -> DrainReport:
        if not self._monitor.is_online():
            return DrainReport()

        report = await self._executor.drain()
        if self._lifecycle is not None and self._local_user_id:
            try:
                await self._lifecycle.expire_matches(self._local_user_id)
            except Exception as e:
                logger.error(f"Match expiry step failed: {e}", exc_info=True)
        try:
            await self._analytics.flush(self._store)
        except Exception as e:
            logger.error(f"Analytics flush step failed: {e}", exc_info=True)
        try:
            await self._cache.cleanup(self._cache_max_age)
        except Exception as e:
            logger.error(f"Cache cleanup step failed: {e}", exc_info=True)
        return report
