"""Event Bus — typed subscriptions, cancellation and no replay."""

from matchsync.core.events import ConnectivityChanged, DrainCompleted
from matchsync.infrastructure.event_bus import EventBus


async def test_filtered_subscription_receives_only_its_types():
    bus = EventBus()
    drains = bus.subscribe(DrainCompleted)
    everything = bus.subscribe()

    bus.publish(ConnectivityChanged(True))
    bus.publish(DrainCompleted(1, 0))

    assert drains.pending() == [DrainCompleted(1, 0)]
    assert everything.pending() == [ConnectivityChanged(True), DrainCompleted(1, 0)]


async def test_events_before_subscribe_are_not_replayed():
    bus = EventBus()
    bus.publish(DrainCompleted(1, 0))
    late = bus.subscribe()
    assert late.pending() == []


async def test_cancel_ends_iteration_and_detaches():
    bus = EventBus()
    subscription = bus.subscribe()
    bus.publish(ConnectivityChanged(False))
    subscription.cancel()
    bus.publish(ConnectivityChanged(True))

    received = [event async for event in subscription]

    assert received == [ConnectivityChanged(False)]
    assert bus.subscriber_count == 0


async def test_sse_envelopes():
    assert DrainCompleted(2, 1).to_sse_event() == {
        "type": "drain_completed", "data": {"applied": 2, "failed": 1},
    }
    assert ConnectivityChanged(True).to_sse_event()["type"] == "connectivity_changed"
