"""Event Bus — in-process fan-out of outbound events over per-subscription channels.

Invariants:
    - publish() never blocks and never raises
    - Each Subscription owns one asyncio.Queue; cancel() detaches it and ends iteration
    - A subscription filtered by event types only receives those types
    - Events published before subscribe() are not replayed

Design Decisions:
    - Channels over callbacks: subscribers pull at their own pace and cancel explicitly
      (ADR: no nested callback chains)
    - Unbounded queues: event volume is human-scale (swipes, matches, drains)
"""

import asyncio
import logging
from typing import AsyncIterator

from matchsync.core.events import Event

logger = logging.getLogger(__name__)

_CLOSED = object()


class Subscription:
    """One subscriber's channel. Iterate with `async for`, stop with cancel()."""

    def __init__(self, bus: "EventBus", event_types: tuple[type, ...]):
        self._bus = bus
        self._event_types = event_types
        self._queue: asyncio.Queue = asyncio.Queue()
        self.cancelled = False

    def wants(self, event: Event) -> bool:
        return not self._event_types or isinstance(event, self._event_types)

    def deliver(self, event: Event) -> None:
        if not self.cancelled:
            self._queue.put_nowait(event)

    def cancel(self) -> None:
        if self.cancelled:
            return
        self.cancelled = True
        self._bus._detach(self)
        self._queue.put_nowait(_CLOSED)

    def get_nowait(self) -> Event | None:
        """Next pending event or None (never blocks)."""
        try:
            item = self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None
        return None if item is _CLOSED else item

    def pending(self) -> list[Event]:
        """Drain all currently queued events."""
        events = []
        while (event := self.get_nowait()) is not None:
            events.append(event)
        return events

    async def get(self) -> Event | None:
        """Wait for the next event; None once cancelled."""
        item = await self._queue.get()
        return None if item is _CLOSED else item

    def __aiter__(self) -> AsyncIterator[Event]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[Event]:
        while True:
            event = await self.get()
            if event is None:
                return
            yield event


class EventBus:
    """Publishes events to every matching subscription."""

    def __init__(self):
        self._subscriptions: list[Subscription] = []

    def subscribe(self, *event_types: type) -> Subscription:
        subscription = Subscription(self, event_types)
        self._subscriptions.append(subscription)
        return subscription

    def publish(self, event: Event) -> None:
        for subscription in list(self._subscriptions):
            try:
                if subscription.wants(event):
                    subscription.deliver(event)
            except Exception as e:
                logger.error(f"Event delivery failed: {e}", exc_info=True)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def _detach(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
