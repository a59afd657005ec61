"""Service test fixtures — in-memory remote store, queue storage and wired services.

Invariants:
    - Every test gets fresh fakes (no shared state between tests)
    - Backoff sleeps are replaced by no_sleep: retry tests never wait on real timers
    - The monitor starts online so enqueue-side tests exercise the sync kick

Design Decisions:
    - Services wired by hand here, not via MatchSyncRuntime: each test sees exactly
      the collaborators it asserts on
"""

import pytest

from matchsync.core.domain_types import USERS
from matchsync.infrastructure.event_bus import EventBus
from matchsync.services.action_appliers import ActionAppliers
from matchsync.services.action_queue import ActionQueue
from matchsync.services.analytics import AnalyticsBuffer
from matchsync.services.connectivity import ConnectivityMonitor
from matchsync.services.match_engine import MatchEngine
from matchsync.services.match_lifecycle_manager import MatchLifecycleManager
from matchsync.services.offline_cache import OfflineCache
from matchsync.services.retry_executor import RetryExecutor
from tests.services.fakes import (
    FakeClock, InMemoryCache, InMemoryDocumentStore, InMemoryEventBuffer,
    InMemoryQueueStorage, no_sleep,
)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return InMemoryDocumentStore(clock)


@pytest.fixture
def events():
    return EventBus()


@pytest.fixture
def queue_storage():
    return InMemoryQueueStorage()


@pytest.fixture
async def queue(queue_storage, clock):
    q = ActionQueue(queue_storage, clock)
    await q.load()
    return q


@pytest.fixture
def engine(store, events, clock):
    return MatchEngine(store, events, clock)


@pytest.fixture
def lifecycle(store, clock):
    return MatchLifecycleManager(store, clock)


@pytest.fixture
def appliers(store, engine, lifecycle, clock):
    return ActionAppliers(store, engine, lifecycle, clock)


@pytest.fixture
def monitor(store, events):
    return ConnectivityMonitor(store, events, initially_online=True)


@pytest.fixture
def executor(queue, appliers, events, monitor):
    return RetryExecutor(
        queue, appliers, events,
        base_delay_ms=10, max_delay_ms=100, max_attempts=5, jitter=0.0,
        timeout_seconds=1.0, concurrency=4,
        is_online=monitor.is_online, sleep=no_sleep,
    )


@pytest.fixture
def analytics(clock):
    return AnalyticsBuffer(InMemoryEventBuffer(), clock)


@pytest.fixture
def offline_cache(store, clock, monitor):
    return OfflineCache(InMemoryCache(), store, clock, monitor.is_online)


@pytest.fixture
def seed_users(store):
    """Seed plain users; returns a helper for custom ones."""
    def _seed(*user_ids: str, **fields):
        for user_id in user_ids:
            store.seed(USERS, user_id, {
                "name": user_id,
                "likedProfiles": [],
                "swipedProfiles": [],
                "matches": [],
                "blockedUsers": [],
                **fields,
            })
    _seed("alice", "bob")
    return _seed
