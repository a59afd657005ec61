"""Like/Match Engine — records swipes and creates matches atomically, once per pair.

Invariants:
    - Every swipe unions target into actor.swipedProfiles (set semantics, append-only)
    - Every like/match transaction reads AND writes the pair document
      (match_pairs/<pair key>), so two concurrent likes on one pair can never both commit
      on a stale snapshot: the loser gets ConflictError and is retried by the executor
    - A match is created only inside the transaction that observed the reciprocal like,
      together with: consuming the target's like, both users' matches, the pair's
      activeMatchId — all-or-nothing
    - At most one active match per pair; a time-expired one is marked expired before a
      new one may be created
    - With an idempotency key, a replay returns the first outcome without re-deciding

Design Decisions:
    - Pair document as the serialization point over per-user locks: one document both
      sides must touch, keyed by the unordered pair (ADR: pair-key upsert)
    - Decision logic lives in core/like_resolution.py; this module only reads, asks, writes
    - MatchCreated published after commit, never from inside the transaction
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime

from matchsync.core.domain_types import (
    APPLIED_ACTIONS, MATCH_PAIRS, MATCHES, USERS,
    MatchState, SwipeDirection, SwipeResult, pair_key,
)
from matchsync.core.errors import ErrorContext, PermanentError, ResourceNotFoundError
from matchsync.core.events import MatchCreated
from matchsync.core.field_values import SERVER_TIMESTAMP, ArrayRemove, ArrayUnion
from matchsync.core.like_resolution import (
    has_active_match, is_blocked_pair, is_premium_active, resolve_swipe,
)
from matchsync.core.match_lifecycle import (
    DEFAULT_TTL_HOURS, PREMIUM_TTL_HOURS,
    build_match_document, end_match_fields, match_state, match_ttl,
)
from matchsync.core.repository_protocols import Clock, RemoteStore, RemoteTransaction
from matchsync.infrastructure.event_bus import EventBus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SwipeOutcome:
    result: SwipeResult
    match_id: str | None = None
    replayed: bool = False


class MatchEngine:
    """Swipe recording and reciprocal-like match creation."""

    def __init__(
        self,
        store: RemoteStore,
        events: EventBus,
        clock: Clock,
        ttl_hours: int = DEFAULT_TTL_HOURS,
        premium_ttl_hours: int = PREMIUM_TTL_HOURS,
    ):
        self._store = store
        self._events = events
        self._clock = clock
        self._ttl_hours = ttl_hours
        self._premium_ttl_hours = premium_ttl_hours

    async def record_swipe(
        self,
        actor_id: str,
        target_id: str,
        direction: SwipeDirection,
        idempotency_key: str | None = None,
    ) -> SwipeOutcome:
        """Record a pass/like/super-like; create the match when the like is reciprocal."""
        key = pair_key(actor_id, target_id)
        created: MatchCreated | None = None

        async with self._store.transaction() as txn:
            replay = await self._read_marker(txn, idempotency_key)
            if replay is not None:
                return replay

            actor = await txn.get(USERS, actor_id)
            if actor is None:
                raise ResourceNotFoundError(
                    "User", actor_id, ErrorContext(user_id=actor_id),
                )
            target = await txn.get(USERS, target_id)
            now = self._clock.now()

            if direction == SwipeDirection.SUPER_LIKE and not is_premium_active(actor, now):
                raise PermanentError(
                    "Super like requires an active premium subscription",
                    "PREMIUM_REQUIRED", context=ErrorContext(user_id=actor_id),
                )

            pair = None
            active_match = None
            if target is not None and direction != SwipeDirection.PASS:
                pair = await txn.get(MATCH_PAIRS, key)
                if pair and pair.get("activeMatchId"):
                    active_match = await txn.get(MATCHES, pair["activeMatchId"])

            result = resolve_swipe(
                actor_id, actor, target_id, target, direction, active_match, now,
            )
            txn.update(USERS, actor_id, {"swipedProfiles": ArrayUnion(target_id)})
            match_id = None
            if result == SwipeResult.ALREADY_MATCHED:
                match_id = pair["activeMatchId"]

            if result == SwipeResult.TARGET_MISSING:
                logger.warning(
                    f"Swipe target {target_id} not found; recorded as pass",
                    extra={"user_id": actor_id},
                )
            elif result in (SwipeResult.LIKED, SwipeResult.MATCHED):
                self._expire_stale_active(txn, key, pair, active_match, now)
                if result == SwipeResult.MATCHED:
                    match_id, created = self._create_match(
                        txn, actor_id, actor, target_id, target, key, now,
                    )
                else:
                    txn.update(USERS, actor_id, {"likedProfiles": ArrayUnion(target_id)})
                    self._touch_pair(txn, key, actor_id, target_id, direction)

            self._write_marker(txn, idempotency_key, result, match_id)

        if created is not None:
            self._events.publish(created)
            logger.info(
                f"Match created for pair {key}",
                extra={"match_id": created.match_id, "user_id": actor_id},
            )
        return SwipeOutcome(result=result, match_id=match_id)

    async def ensure_match(
        self, user_a: str, user_b: str, idempotency_key: str | None = None,
    ) -> SwipeOutcome:
        """Explicit match creation as an upsert keyed by the pair."""
        key = pair_key(user_a, user_b)
        created: MatchCreated | None = None

        async with self._store.transaction() as txn:
            replay = await self._read_marker(txn, idempotency_key)
            if replay is not None:
                return replay

            first = await txn.get(USERS, user_a)
            second = await txn.get(USERS, user_b)
            for user_id, doc in ((user_a, first), (user_b, second)):
                if doc is None:
                    raise ResourceNotFoundError("User", user_id, ErrorContext(user_id=user_id))
            pair = await txn.get(MATCH_PAIRS, key)
            active_match = None
            if pair and pair.get("activeMatchId"):
                active_match = await txn.get(MATCHES, pair["activeMatchId"])
            now = self._clock.now()

            if is_blocked_pair(first, user_a, second, user_b):
                result, match_id = SwipeResult.BLOCKED, None
            elif has_active_match(active_match, now):
                result, match_id = SwipeResult.ALREADY_MATCHED, pair["activeMatchId"]
            else:
                self._expire_stale_active(txn, key, pair, active_match, now)
                match_id, created = self._create_match(
                    txn, user_a, first, user_b, second, key, now,
                )
                result = SwipeResult.MATCHED
            self._write_marker(txn, idempotency_key, result, match_id)

        if created is not None:
            self._events.publish(created)
        return SwipeOutcome(result=result, match_id=match_id)

    # ─── Transaction helpers ─────────────────────────────────────

    def _create_match(
        self,
        txn: RemoteTransaction,
        actor_id: str,
        actor: dict,
        target_id: str,
        target: dict,
        key: str,
        now: datetime,
    ) -> tuple[str, MatchCreated]:
        """Stage the match and every side effect of it into the transaction."""
        match_id = str(uuid.uuid4())
        premium = is_premium_active(actor, now) or is_premium_active(target, now)
        ttl = match_ttl(premium, self._ttl_hours, self._premium_ttl_hours)
        match_doc = build_match_document([actor_id, target_id], key, now, ttl)

        txn.set(MATCHES, match_id, match_doc)
        txn.update(USERS, target_id, {
            "likedProfiles": ArrayRemove(actor_id),
            "matches": ArrayUnion(match_id),
        })
        txn.update(USERS, actor_id, {
            "likedProfiles": ArrayRemove(target_id),
            "matches": ArrayUnion(match_id),
        })
        txn.set(MATCH_PAIRS, key, {
            "users": match_doc["users"],
            "activeMatchId": match_id,
            "matchIds": ArrayUnion(match_id),
            "updatedAt": SERVER_TIMESTAMP,
        }, merge=True)
        users = tuple(match_doc["users"])
        return match_id, MatchCreated(match_id, users, match_doc["expiresAt"])

    @staticmethod
    def _touch_pair(
        txn: RemoteTransaction,
        key: str,
        actor_id: str,
        target_id: str,
        direction: SwipeDirection,
    ) -> None:
        """Write the pair document so a concurrent like on this pair conflicts."""
        fields = {
            "users": sorted([actor_id, target_id]),
            "updatedAt": SERVER_TIMESTAMP,
        }
        if direction == SwipeDirection.SUPER_LIKE:
            fields["superLikedBy"] = ArrayUnion(actor_id)
        txn.set(MATCH_PAIRS, key, fields, merge=True)

    @staticmethod
    def _expire_stale_active(
        txn: RemoteTransaction,
        key: str,
        pair: dict | None,
        active_match: dict | None,
        now: datetime,
    ) -> None:
        """An active-flagged match past its expiry is closed before anything new."""
        if not pair or not pair.get("activeMatchId"):
            return
        match_id = pair["activeMatchId"]
        if active_match is not None and active_match.get("isActive") and (
            match_state(active_match, now) == MatchState.EXPIRED
        ):
            txn.update(MATCHES, match_id, end_match_fields(MatchState.EXPIRED, None, now))
        txn.set(MATCH_PAIRS, key, {"activeMatchId": None}, merge=True)

    @staticmethod
    async def _read_marker(
        txn: RemoteTransaction, idempotency_key: str | None,
    ) -> SwipeOutcome | None:
        if not idempotency_key:
            return None
        marker = await txn.get(APPLIED_ACTIONS, idempotency_key)
        if marker is None:
            return None
        logger.info(
            "Replayed action already applied; returning recorded outcome",
            extra={"action_id": idempotency_key},
        )
        return SwipeOutcome(
            result=SwipeResult(marker["result"]),
            match_id=marker.get("matchId"),
            replayed=True,
        )

    @staticmethod
    def _write_marker(
        txn: RemoteTransaction,
        idempotency_key: str | None,
        result: SwipeResult,
        match_id: str | None,
    ) -> None:
        if not idempotency_key:
            return
        txn.set(APPLIED_ACTIONS, idempotency_key, {
            "result": result.value,
            "matchId": match_id,
            "appliedAt": SERVER_TIMESTAMP,
        })
