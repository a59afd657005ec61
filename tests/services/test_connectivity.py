"""Connectivity Monitor — edge-triggered transitions and coalesced syncs.

Tests:
    - Repeating the current state is a no-op
    - One offline->online transition runs exactly one sync
    - Flapping while a sync runs collapses into a single follow-up sync
    - A failing sync never propagates into the signal path
"""

import asyncio

from matchsync.core.events import ConnectivityChanged
from matchsync.services.connectivity import ConnectivityMonitor


class _CountingSync:
    def __init__(self, gate: asyncio.Event | None = None):
        self.calls = 0
        self.gate = gate

    async def __call__(self):
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()


async def test_only_transitions_publish(store, events):
    sync = _CountingSync()
    monitor = ConnectivityMonitor(store, events, sync)
    changes = monitor.subscribe()

    assert monitor.set_online(False) is False
    assert monitor.set_online(True) is True
    assert monitor.set_online(True) is False
    await monitor.wait_idle()

    assert changes.pending() == [ConnectivityChanged(True)]
    assert sync.calls == 1


async def test_each_reconnect_triggers_one_sync(store, events):
    sync = _CountingSync()
    monitor = ConnectivityMonitor(store, events, sync)

    for _ in range(3):
        monitor.set_online(True)
        await monitor.wait_idle()
        monitor.set_online(False)

    assert sync.calls == 3


async def test_flapping_during_sync_is_coalesced(store, events):
    gate = asyncio.Event()
    sync = _CountingSync(gate)
    monitor = ConnectivityMonitor(store, events, sync)

    monitor.set_online(True)
    await asyncio.sleep(0)
    for online in (False, True, False, True):
        monitor.set_online(online)
    assert monitor.sync_in_progress

    gate.set()
    await monitor.wait_idle()

    assert sync.calls == 2
    assert not monitor.sync_in_progress


async def test_no_follow_up_when_offline_at_end(store, events):
    gate = asyncio.Event()
    sync = _CountingSync(gate)
    monitor = ConnectivityMonitor(store, events, sync)

    monitor.set_online(True)
    await asyncio.sleep(0)
    monitor.set_online(False)
    monitor.set_online(True)
    monitor.set_online(False)
    gate.set()
    await monitor.wait_idle()

    assert sync.calls == 1


async def test_failing_sync_is_contained(store, events):
    async def broken():
        raise RuntimeError("drain exploded")

    monitor = ConnectivityMonitor(store, events, broken)
    monitor.set_online(True)
    await monitor.wait_idle()

    assert monitor.is_online()


async def test_check_follows_store_reachability(store, events):
    sync = _CountingSync()
    monitor = ConnectivityMonitor(store, events, sync)

    assert await monitor.check() is True
    await monitor.wait_idle()
    store.reachable = False
    assert await monitor.check() is False

    assert not monitor.is_online()
    assert sync.calls == 1


async def test_request_sync_without_callback_is_noop(store, events):
    monitor = ConnectivityMonitor(store, events, initially_online=True)
    monitor.request_sync()
    assert not monitor.sync_in_progress
