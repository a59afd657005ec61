"""Runtime — wires stores, queue, engines and monitors into one owned object graph.

Invariants:
    - Exactly one ActionQueue / RetryExecutor / ConnectivityMonitor per runtime
    - start() never raises on a corrupt local queue (the queue degrades to empty)
    - stop() cancels background tasks before disposing engines

Design Decisions:
    - Singleton runtime initialized on startup: FastAPI lifespan manages lifecycle
      (ADR: no global import side effects)
    - build() takes an optional remote store: tests swap in an in-memory store
      without touching the wiring
"""

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncEngine

from matchsync.config import Settings
from matchsync.core.events import MatchCreated
from matchsync.core.repository_protocols import Clock, RemoteStore
from matchsync.db.session import create_engine_for, create_session_factory, create_tables
from matchsync.infrastructure.clock import SystemClock
from matchsync.infrastructure.document_store import SqlDocumentStore
from matchsync.infrastructure.event_bus import EventBus
from matchsync.infrastructure.local_store import SqlDocumentCache, SqlEventBuffer
from matchsync.infrastructure.queue_storage import SqlQueueStorage
from matchsync.models import LOCAL_TABLES, REMOTE_TABLES
from matchsync.services.action_appliers import ActionAppliers
from matchsync.services.action_queue import ActionQueue
from matchsync.services.action_service import ActionService
from matchsync.services.analytics import AnalyticsBuffer
from matchsync.services.connectivity import ConnectivityMonitor
from matchsync.services.match_engine import MatchEngine
from matchsync.services.match_lifecycle_manager import MatchLifecycleManager
from matchsync.services.offline_cache import OfflineCache
from matchsync.services.retry_executor import RetryExecutor
from matchsync.services.sync_service import SyncService

logger = logging.getLogger(__name__)


@dataclass
class MatchSyncRuntime:
    settings: Settings
    clock: Clock
    events: EventBus
    store: RemoteStore
    queue: ActionQueue
    engine: MatchEngine
    lifecycle: MatchLifecycleManager
    executor: RetryExecutor
    monitor: ConnectivityMonitor
    analytics: AnalyticsBuffer
    cache: OfflineCache
    sync: SyncService
    actions: ActionService
    engines: list[AsyncEngine] = field(default_factory=list)
    _tasks: list[asyncio.Task] = field(default_factory=list)

    @classmethod
    def build(
        cls,
        settings: Settings,
        store: RemoteStore | None = None,
        clock: Clock | None = None,
    ) -> "MatchSyncRuntime":
        clock = clock or SystemClock()
        events = EventBus()

        local_engine = create_engine_for(settings.local_database_url)
        local_factory = create_session_factory(local_engine)
        engines = [local_engine]
        if store is None:
            remote_engine = create_engine_for(
                settings.remote_database_url,
                pool_size=settings.remote_pool_size,
                max_overflow=settings.remote_max_overflow,
            )
            engines.append(remote_engine)
            store = SqlDocumentStore(create_session_factory(remote_engine), clock)

        queue = ActionQueue(SqlQueueStorage(local_factory), clock)
        engine = MatchEngine(
            store, events, clock,
            settings.match_ttl_hours, settings.premium_match_ttl_hours,
        )
        lifecycle = MatchLifecycleManager(store, clock)
        monitor = ConnectivityMonitor(store, events)
        executor = RetryExecutor(
            queue,
            ActionAppliers(store, engine, lifecycle, clock),
            events,
            base_delay_ms=settings.retry_base_delay_ms,
            max_delay_ms=settings.retry_max_delay_ms,
            max_attempts=settings.retry_max_attempts,
            jitter=settings.retry_jitter,
            timeout_seconds=settings.action_timeout_seconds,
            concurrency=settings.drain_concurrency,
            is_online=monitor.is_online,
        )
        analytics = AnalyticsBuffer(SqlEventBuffer(local_factory), clock)
        cache = OfflineCache(
            SqlDocumentCache(local_factory), store, clock, monitor.is_online,
            read_timeout_seconds=settings.action_timeout_seconds,
        )
        sync = SyncService(
            executor, analytics, cache, store, monitor,
            timedelta(days=settings.offline_cache_max_age_days),
            lifecycle=lifecycle,
            local_user_id=settings.local_user_id,
        )
        monitor.set_on_reconnect(sync.sync)

        return cls(
            settings=settings,
            clock=clock,
            events=events,
            store=store,
            queue=queue,
            engine=engine,
            lifecycle=lifecycle,
            executor=executor,
            monitor=monitor,
            analytics=analytics,
            cache=cache,
            sync=sync,
            actions=ActionService(queue, monitor, cache, analytics, clock),
            engines=engines,
        )

    async def start(self, create_schema: bool = True, poll: bool = True) -> None:
        if create_schema:
            await create_tables(self.engines[0], LOCAL_TABLES)
            if len(self.engines) > 1:
                await create_tables(self.engines[1], REMOTE_TABLES)
        await self.queue.load()
        for error in self.queue.integrity_errors:
            logger.warning(f"Queue integrity issue at startup: {error.message}")

        self._tasks.append(asyncio.create_task(self._track_matches()))
        if poll and self.settings.connectivity_poll_seconds > 0:
            self._tasks.append(asyncio.create_task(
                self.monitor.run(self.settings.connectivity_poll_seconds),
            ))
        logger.info(f"Runtime started with {len(self.queue)} pending action(s)")

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks.clear()
        await self.monitor.wait_idle()
        for engine in self.engines:
            await engine.dispose()

    async def _track_matches(self) -> None:
        subscription = self.events.subscribe(MatchCreated)
        try:
            async for event in subscription:
                await self.analytics.track_match(event.match_id, list(event.users))
        finally:
            subscription.cancel()


# Singleton (initialized on startup)
runtime: MatchSyncRuntime | None = None


async def init_runtime(settings: Settings) -> MatchSyncRuntime:
    global runtime
    runtime = MatchSyncRuntime.build(settings)
    await runtime.start(create_schema=settings.create_schema_on_startup)
    return runtime


async def shutdown_runtime() -> None:
    global runtime
    if runtime is not None:
        await runtime.stop()
        runtime = None


def get_runtime() -> MatchSyncRuntime:
    """FastAPI dependency for the runtime."""
    if runtime is None:
        raise RuntimeError("Runtime not initialized")
    return runtime
