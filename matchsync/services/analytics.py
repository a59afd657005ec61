"""Analytics Buffer — fire-and-forget telemetry, buffered locally and flushed in batches.

Invariants:
    - track() never raises: telemetry must never break a user action
    - flush() deletes buffered events only after the remote batch committed
    - A failed flush keeps every event for the next sync (no retry ceiling)

Design Decisions:
    - Not routed through the action queue: no ordering, no dead letters, best effort
    - One atomic_multi_update per flush: a partial batch never lands remotely
"""

import logging
import uuid
from typing import Any

from matchsync.core.domain_types import ANALYTICS
from matchsync.core.repository_protocols import (
    SET, Clock, DocumentWrite, EventBufferStorage, RemoteStore,
)

logger = logging.getLogger(__name__)


class AnalyticsBuffer:
    """Local buffer of analytics events."""

    def __init__(self, storage: EventBufferStorage, clock: Clock):
        self._storage = storage
        self._clock = clock

    async def track(self, event_name: str, properties: dict[str, Any] | None = None) -> None:
        event = {
            "id": str(uuid.uuid4()),
            "event": event_name,
            "properties": properties or {},
            "timestamp": self._clock.now().isoformat(),
        }
        try:
            await self._storage.append(event)
        except Exception as e:
            logger.warning(f"Analytics event '{event_name}' dropped: {e}")

    async def track_swipe(self, actor_id: str, target_id: str, direction: str) -> None:
        await self.track("swipe", {
            "userId": actor_id, "targetId": target_id, "direction": direction,
        })

    async def track_match(self, match_id: str, users: list[str]) -> None:
        await self.track("match_created", {"matchId": match_id, "users": users})

    async def track_message_sent(self, match_id: str, sender_id: str, length: int) -> None:
        await self.track("message_sent", {
            "matchId": match_id, "senderId": sender_id, "messageLength": length,
        })

    async def flush(self, store: RemoteStore) -> int:
        """Write buffered events remotely as one batch. Returns the count flushed."""
        try:
            buffered = await self._storage.load_all()
        except Exception as e:
            logger.warning(f"Analytics buffer unreadable: {e}")
            return 0
        if not buffered:
            return 0

        writes = [
            DocumentWrite(SET, ANALYTICS, event.get("id") or str(row_id), event)
            for row_id, event in buffered
        ]
        try:
            await store.atomic_multi_update(writes)
            await self._storage.delete_ids([row_id for row_id, _ in buffered])
        except Exception as e:
            logger.warning(f"Analytics flush failed, keeping {len(buffered)} events: {e}")
            return 0
        logger.info(f"Flushed {len(buffered)} analytics events")
        return len(buffered)
