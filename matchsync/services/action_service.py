"""Action Service — the UI-facing operations: record an intent, return optimistically.

Invariants:
    - Every operation returns the queued PendingAction once it is durable locally
    - Only ValidationError, MatchExpiredError (messages) and LocalPersistenceError
      surface to the caller; remote outcomes arrive later as events
    - When online, each enqueue kicks a background sync (coalesced by the monitor)

Design Decisions:
    - Messages to an expired match are refused before enqueue, using the freshest
      copy available (remote when online, cached offline); an unknown match is queued
      and left for delivery-time checks
    - Super likes travel as RECORD_LIKE so they are distinguishable in the queue
"""

import logging

from matchsync.core.domain_types import MATCHES, ActionKind, SwipeDirection
from matchsync.core.errors import MatchExpiredError
from matchsync.core.field_values import encode_partial
from matchsync.core.match_lifecycle import ensure_can_message
from matchsync.core.pending_action import PendingAction
from matchsync.core.repository_protocols import Clock
from matchsync.services.action_queue import ActionQueue
from matchsync.services.analytics import AnalyticsBuffer
from matchsync.services.connectivity import ConnectivityMonitor
from matchsync.services.offline_cache import OfflineCache

logger = logging.getLogger(__name__)


class ActionService:
    """Enqueue-side facade over the action queue."""

    def __init__(
        self,
        queue: ActionQueue,
        monitor: ConnectivityMonitor,
        cache: OfflineCache,
        analytics: AnalyticsBuffer,
        clock: Clock,
    ):
        self._queue = queue
        self._monitor = monitor
        self._cache = cache
        self._analytics = analytics
        self._clock = clock

    async def enqueue_swipe(
        self, actor_id: str, target_id: str, direction: SwipeDirection,
    ) -> PendingAction:
        kind = (
            ActionKind.RECORD_LIKE if direction == SwipeDirection.SUPER_LIKE
            else ActionKind.RECORD_SWIPE
        )
        action = await self._enqueue(kind, {
            "actorId": actor_id, "targetId": target_id, "direction": direction.value,
        })
        await self._analytics.track_swipe(actor_id, target_id, direction.value)
        return action

    async def enqueue_profile_update(self, user_id: str, partial: dict) -> PendingAction:
        return await self._enqueue(ActionKind.UPDATE_PROFILE, {
            "userId": user_id, "partial": encode_partial(partial),
        })

    async def enqueue_message(self, match_id: str, sender_id: str, text: str) -> PendingAction:
        match = await self._cache.fetch_with_offline_fallback(MATCHES, match_id)
        if match is not None:
            try:
                ensure_can_message(match, match_id, self._clock.now())
            except MatchExpiredError as e:
                logger.info(
                    "Message refused locally: match not active",
                    extra={"match_id": match_id, "user_id": sender_id},
                )
                e.context.user_id = sender_id
                raise
        action = await self._enqueue(ActionKind.SEND_MESSAGE, {
            "matchId": match_id, "senderId": sender_id, "text": text,
        })
        await self._analytics.track_message_sent(match_id, sender_id, len(text))
        return action

    async def enqueue_report(
        self, reporter_id: str, target_id: str, reason: str, details: str | None = None,
    ) -> PendingAction:
        payload = {"reporterId": reporter_id, "reportedUserId": target_id, "reason": reason}
        if details:
            payload["details"] = details
        return await self._enqueue(ActionKind.REPORT_USER, payload)

    async def enqueue_create_match(self, user_a: str, user_b: str) -> PendingAction:
        return await self._enqueue(ActionKind.CREATE_MATCH, {"users": [user_a, user_b]})

    async def request_unmatch(self, match_id: str, by_user_id: str) -> PendingAction:
        return await self._enqueue(ActionKind.UNMATCH, {
            "matchId": match_id, "byUserId": by_user_id,
        })

    async def request_block(self, by_user_id: str, target_id: str) -> PendingAction:
        return await self._enqueue(ActionKind.BLOCK_USER, {
            "byUserId": by_user_id, "targetId": target_id,
        })

    async def _enqueue(self, kind: ActionKind, payload: dict) -> PendingAction:
        action = await self._queue.enqueue(kind, payload)
        if self._monitor.is_online():
            self._monitor.request_sync()
        return action

