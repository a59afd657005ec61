"""Connectivity Monitor — edge-triggered online/offline transitions that kick a sync.

Invariants:
    - Only transitions publish ConnectivityChanged; repeating the current state is a no-op
    - Each offline->online transition requests exactly one sync
    - Never two syncs at once: a reconnect while a sync runs is coalesced into a single
      follow-up sync that starts after the running one finishes
    - A failing sync is logged, never raised into the signal path

Design Decisions:
    - on_reconnect injected as a coroutine function: the monitor knows nothing about
      queues or executors, only that something must run after coming back online
    - Probe-based polling (check/run) and external signals (set_online) share one
      transition path
"""

import asyncio
import logging
from typing import Awaitable, Callable

from matchsync.core.events import ConnectivityChanged
from matchsync.core.repository_protocols import RemoteStore
from matchsync.infrastructure.event_bus import EventBus, Subscription

logger = logging.getLogger(__name__)

OnReconnect = Callable[[], Awaitable[object]]


class ConnectivityMonitor:
    """Tracks remote reachability and schedules syncs on reconnect."""

    def __init__(
        self,
        store: RemoteStore,
        events: EventBus,
        on_reconnect: OnReconnect | None = None,
        initially_online: bool = False,
    ):
        self._store = store
        self._events = events
        self._on_reconnect = on_reconnect
        self._online = initially_online
        self._sync_task: asyncio.Task | None = None
        self._resync_requested = False

    def is_online(self) -> bool:
        return self._online

    def subscribe(self) -> Subscription:
        return self._events.subscribe(ConnectivityChanged)

    def set_on_reconnect(self, on_reconnect: OnReconnect) -> None:
        self._on_reconnect = on_reconnect

    @property
    def sync_in_progress(self) -> bool:
        return self._sync_task is not None and not self._sync_task.done()

    def set_online(self, online: bool) -> bool:
        """Apply a connectivity signal. Returns True if it was a transition."""
        if online == self._online:
            return False
        self._online = online
        logger.info(
            f"Connectivity changed: {'online' if online else 'offline'}",
            extra={"online": online},
        )
        self._events.publish(ConnectivityChanged(online))
        if online:
            self.request_sync()
        return True

    def request_sync(self) -> None:
        """Start a sync, or mark one pending if a sync is already running."""
        if self._on_reconnect is None:
            return
        if self.sync_in_progress:
            self._resync_requested = True
            return
        self._sync_task = asyncio.get_running_loop().create_task(self._sync_loop())

    async def wait_idle(self) -> None:
        """Wait for the current sync (and any coalesced follow-up) to finish."""
        while self.sync_in_progress:
            await asyncio.shield(self._sync_task)

    async def check(self) -> bool:
        """Probe the remote store and apply the result as a signal."""
        reachable = await self._store.is_reachable()
        self.set_online(reachable)
        return reachable

    async def run(self, interval_seconds: float) -> None:
        """Poll until cancelled."""
        while True:
            await self.check()
            await asyncio.sleep(interval_seconds)

    async def _sync_loop(self) -> None:
        while True:
            self._resync_requested = False
            try:
                await self._on_reconnect()
            except Exception as e:
                logger.error(f"Sync after reconnect failed: {e}", exc_info=True)
            if not (self._resync_requested and self._online):
                return
            logger.info("Running coalesced follow-up sync")
