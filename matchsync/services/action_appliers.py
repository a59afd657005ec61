"""Action Appliers — explicit routing from ActionKind to the remote mutation it performs.

Invariants:
    - Every kind->applier mapping is visible; no getattr magic, no auto-discovery
    - Every applier is idempotent under replay of the same action id:
      message and report ids ARE the action id, swipes carry it as idempotency key,
      profile partials are set-semantics
    - Unknown kinds raise PermanentError (dead-lettered, never retried)
    - Appliers raise MatchSyncError subclasses only; the executor decides retry policy

Design Decisions:
    - Explicit dict over getattr: every mapping visible in one place
    - Message delivery re-checks the match at apply time: a match that expired while
      the message sat in the queue rejects it permanently (MatchExpiredError)
"""

import logging
from typing import Awaitable, Callable

from matchsync.core.domain_types import (
    MATCHES, MESSAGES, REPORTS, USERS, ActionKind, SwipeDirection,
)
from matchsync.core.errors import ErrorContext, PermanentError, ResourceNotFoundError
from matchsync.core.field_values import SERVER_TIMESTAMP, decode_partial
from matchsync.core.match_lifecycle import ensure_can_message
from matchsync.core.pending_action import PendingAction
from matchsync.core.repository_protocols import Clock, RemoteStore
from matchsync.services.match_engine import MatchEngine
from matchsync.services.match_lifecycle_manager import MatchLifecycleManager

logger = logging.getLogger(__name__)

Applier = Callable[[PendingAction], Awaitable[None]]


class ActionAppliers:
    """Routes PendingAction.kind -> remote applier."""

    def __init__(
        self,
        store: RemoteStore,
        engine: MatchEngine,
        lifecycle: MatchLifecycleManager,
        clock: Clock,
    ):
        self._store = store
        self._engine = engine
        self._lifecycle = lifecycle
        self._clock = clock

        # every mapping explicit: adding a kind requires editing this dict
        self._appliers: dict[ActionKind, Applier] = {
            ActionKind.UPDATE_PROFILE: self._update_profile,
            ActionKind.SEND_MESSAGE: self._send_message,
            ActionKind.CREATE_MATCH: self._create_match,
            ActionKind.REPORT_USER: self._report_user,
            ActionKind.RECORD_SWIPE: self._record_swipe,
            ActionKind.RECORD_LIKE: self._record_swipe,
            ActionKind.UNMATCH: self._unmatch,
            ActionKind.BLOCK_USER: self._block_user,
        }

    async def apply(self, action: PendingAction) -> None:
        applier = self._appliers.get(action.kind)
        if applier is None:
            raise PermanentError(
                f"No applier for action kind '{action.kind}'",
                "UNKNOWN_ACTION_KIND",
                context=ErrorContext(action_id=action.id, action_kind=str(action.kind)),
            )
        await applier(action)

    # ─── Appliers ────────────────────────────────────────────────

    async def _update_profile(self, action: PendingAction) -> None:
        partial = decode_partial(action.payload["partial"])
        partial["updatedAt"] = SERVER_TIMESTAMP
        await self._store.update(USERS, action.payload["userId"], partial)

    async def _send_message(self, action: PendingAction) -> None:
        payload = action.payload
        match_id = payload["matchId"]
        async with self._store.transaction() as txn:
            if await txn.get(MESSAGES, action.id) is not None:
                return
            match = await txn.get(MATCHES, match_id)
            if match is None:
                raise ResourceNotFoundError(
                    "Match", match_id, ErrorContext(action_id=action.id, match_id=match_id),
                )
            ensure_can_message(match, match_id, self._clock.now())
            if payload["senderId"] not in (match.get("users") or []):
                raise PermanentError(
                    "Sender is not a participant of this match",
                    "NOT_A_PARTICIPANT",
                    context=ErrorContext(action_id=action.id, match_id=match_id),
                    http_status=403,
                )
            txn.set(MESSAGES, action.id, {
                "matchId": match_id,
                "senderId": payload["senderId"],
                "text": payload["text"],
                "sentAt": SERVER_TIMESTAMP,
                "clientSeq": action.seq,
                "read": False,
            })
            txn.update(MATCHES, match_id, {
                "lastMessage": payload["text"],
                "lastMessageAt": SERVER_TIMESTAMP,
            })

    async def _create_match(self, action: PendingAction) -> None:
        user_a, user_b = action.payload["users"]
        await self._engine.ensure_match(user_a, user_b, idempotency_key=action.id)

    async def _report_user(self, action: PendingAction) -> None:
        payload = action.payload
        async with self._store.transaction() as txn:
            if await txn.get(REPORTS, action.id) is not None:
                return
            txn.set(REPORTS, action.id, {
                "reporterId": payload["reporterId"],
                "reportedUserId": payload["reportedUserId"],
                "reason": payload["reason"],
                "details": payload.get("details") or "",
                "status": "pending",
                "createdAt": SERVER_TIMESTAMP,
            })
        logger.info(
            "Report filed",
            extra={"action_id": action.id, "user_id": payload["reporterId"]},
        )

    async def _record_swipe(self, action: PendingAction) -> None:
        payload = action.payload
        default = (
            SwipeDirection.SUPER_LIKE if action.kind == ActionKind.RECORD_LIKE
            else SwipeDirection.PASS
        )
        direction = SwipeDirection(payload.get("direction", default.value))
        await self._engine.record_swipe(
            payload["actorId"], payload["targetId"], direction,
            idempotency_key=action.id,
        )

    async def _unmatch(self, action: PendingAction) -> None:
        await self._lifecycle.unmatch(action.payload["matchId"], action.payload["byUserId"])

    async def _block_user(self, action: PendingAction) -> None:
        await self._lifecycle.block(action.payload["byUserId"], action.payload["targetId"])
