"""Analytics buffer and offline cache — best-effort local state around the remote store."""

from datetime import timedelta

from matchsync.core.domain_types import ANALYTICS, MATCHES, USERS, ActionKind, SwipeDirection
from matchsync.services.analytics import AnalyticsBuffer
from matchsync.services.sync_service import SyncService


# ─── Analytics ───────────────────────────────────────────────────

async def test_flush_writes_batch_and_clears_buffer(analytics, store):
    await analytics.track_swipe("alice", "bob", "like")
    await analytics.track_message_sent("m1", "alice", 5)

    assert await analytics.flush(store) == 2

    events = sorted(e["event"] for e in store.collection(ANALYTICS).values())
    assert events == ["message_sent", "swipe"]
    assert await analytics.flush(store) == 0


async def test_failed_flush_keeps_events(analytics, store):
    await analytics.track("profile_view", {"userId": "alice"})
    store.fail_next(1)

    assert await analytics.flush(store) == 0
    assert store.collection(ANALYTICS) == {}
    assert await analytics.flush(store) == 1


async def test_track_never_raises(clock):
    class BrokenBuffer:
        async def append(self, event):
            raise OSError("disk full")

    await AnalyticsBuffer(BrokenBuffer(), clock).track("swipe")


# ─── Offline cache ───────────────────────────────────────────────

async def test_online_read_refreshes_cache(offline_cache, store, seed_users):
    doc = await offline_cache.fetch_with_offline_fallback(USERS, "alice")

    assert doc["name"] == "alice"
    assert (await offline_cache.get(USERS, "alice"))["name"] == "alice"


async def test_offline_read_uses_cache_only(offline_cache, store, monitor, seed_users):
    await offline_cache.fetch_with_offline_fallback(USERS, "alice")
    monitor.set_online(False)
    store.seed(USERS, "alice", {"name": "changed"})

    doc = await offline_cache.fetch_with_offline_fallback(USERS, "alice")

    assert doc["name"] == "alice"


async def test_remote_failure_falls_back_to_cache(offline_cache, store, seed_users):
    await offline_cache.fetch_with_offline_fallback(USERS, "alice")
    store.fail_next(1)

    doc = await offline_cache.fetch_with_offline_fallback(USERS, "alice")

    assert doc["name"] == "alice"


async def test_cleanup_removes_only_stale_entries(offline_cache, clock):
    await offline_cache.put(USERS, "old", {"x": 1})
    clock.advance(days=8)
    await offline_cache.put(USERS, "new", {"x": 2})

    assert await offline_cache.cleanup(timedelta(days=7)) == 1
    assert await offline_cache.get(USERS, "old") is None
    assert await offline_cache.get(USERS, "new") == {"x": 2}


async def test_clear_and_size(offline_cache):
    await offline_cache.put(USERS, "a", {"x": 1})
    assert await offline_cache.size() > 0
    await offline_cache.clear()
    assert await offline_cache.size() == 0


# ─── Sync sequence ───────────────────────────────────────────────

async def test_sync_offline_is_noop(executor, analytics, offline_cache, store, monitor):
    monitor.set_online(False)
    sync = SyncService(executor, analytics, offline_cache, store, monitor)

    report = await sync.sync()

    assert report.to_dict()["applied"] == 0


async def test_sync_drains_and_flushes(executor, analytics, offline_cache, store, monitor, queue, seed_users):
    await queue.enqueue(ActionKind.UPDATE_PROFILE, {"userId": "alice", "partial": {"bio": "b"}})
    await analytics.track("app_open")
    sync = SyncService(executor, analytics, offline_cache, store, monitor)

    report = await sync.sync()

    assert len(report.applied) == 1
    assert len(store.collection(ANALYTICS)) == 1


async def test_sync_persists_expiry_of_local_users_matches(
    executor, analytics, offline_cache, store, monitor, engine, lifecycle, clock, seed_users,
):
    await engine.record_swipe("bob", "alice", SwipeDirection.LIKE)
    match_id = (await engine.record_swipe("alice", "bob", SwipeDirection.LIKE)).match_id
    clock.advance(hours=25)
    sync = SyncService(
        executor, analytics, offline_cache, store, monitor,
        lifecycle=lifecycle, local_user_id="alice",
    )

    await sync.sync()

    assert store.doc(MATCHES, match_id)["state"] == "expired"
