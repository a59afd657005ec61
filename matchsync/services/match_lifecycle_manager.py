"""Match Lifecycle Manager — unmatch, block and expiry sweeps over remote matches.

Invariants:
    - Terminal states stick: an ended match is never reactivated or re-ended. A match
      whose time ran out counts as expired even before a sweep stored it
    - unmatch / block are idempotent: replaying one on an ended match is a no-op
    - Every mutation touching a pair also writes the pair document, so it serializes
      with concurrent likes on that pair
    - A block ends every active match of the pair and consumes pending likes both ways

Design Decisions:
    - Expiry is computed on read (core/match_lifecycle.py); expire_matches only persists
      what the clock already decided, so display never depends on a sweep having run
    - Expired matches stay in users' matches (history); unmatched/blocked ones leave it
"""

import logging
from datetime import datetime

from matchsync.core.domain_types import MATCH_PAIRS, MATCHES, USERS, MatchState, pair_key
from matchsync.core.errors import ErrorContext, PermanentError, ResourceNotFoundError
from matchsync.core.field_values import SERVER_TIMESTAMP, ArrayRemove, ArrayUnion
from matchsync.core.match_lifecycle import end_match_fields, match_state
from matchsync.core.repository_protocols import Clock, RemoteStore

logger = logging.getLogger(__name__)


class MatchLifecycleManager:
    """Remote-side state transitions of matches."""

    def __init__(self, store: RemoteStore, clock: Clock):
        self._store = store
        self._clock = clock

    async def unmatch(self, match_id: str, by_user_id: str) -> bool:
        """End a match by one participant. Returns False if it was already ended."""
        async with self._store.transaction() as txn:
            match = await txn.get(MATCHES, match_id)
            if match is None:
                raise ResourceNotFoundError(
                    "Match", match_id, ErrorContext(match_id=match_id, user_id=by_user_id),
                )
            users = match.get("users") or []
            if by_user_id not in users:
                raise PermanentError(
                    "Only a participant can unmatch",
                    "NOT_A_PARTICIPANT",
                    context=ErrorContext(match_id=match_id, user_id=by_user_id),
                    http_status=403,
                )
            key = match.get("pairKey") or pair_key(users[0], users[1])
            pair = await txn.get(MATCH_PAIRS, key)
            now = self._clock.now()
            state = match_state(match, now)
            if state != MatchState.ACTIVE:
                if state == MatchState.EXPIRED and match.get("isActive", False):
                    self._persist_expiry(txn, match_id, key, pair, now)
                return False

            txn.update(MATCHES, match_id, end_match_fields(MatchState.UNMATCHED, by_user_id, now))
            for user_id in users:
                txn.update(USERS, user_id, {"matches": ArrayRemove(match_id)})
            pair_fields = {"updatedAt": SERVER_TIMESTAMP}
            if pair and pair.get("activeMatchId") == match_id:
                pair_fields["activeMatchId"] = None
            txn.set(MATCH_PAIRS, key, pair_fields, merge=True)

        logger.info(
            "Match unmatched",
            extra={"match_id": match_id, "user_id": by_user_id},
        )
        return True

    async def block(self, by_user_id: str, target_id: str) -> list[str]:
        """Block target for by_user; ends the pair's active matches. Returns their ids."""
        key = pair_key(by_user_id, target_id)
        ended: list[str] = []

        async with self._store.transaction() as txn:
            blocker = await txn.get(USERS, by_user_id)
            if blocker is None:
                raise ResourceNotFoundError(
                    "User", by_user_id, ErrorContext(user_id=by_user_id),
                )
            target = await txn.get(USERS, target_id)
            pair = await txn.get(MATCH_PAIRS, key) or {}
            candidates = list(pair.get("matchIds") or [])
            now = self._clock.now()
            active_matches = {}
            for match_id in candidates:
                match = await txn.get(MATCHES, match_id)
                if match is None or not match.get("isActive", False):
                    continue
                if match_state(match, now) == MatchState.ACTIVE:
                    active_matches[match_id] = match
                else:
                    txn.update(MATCHES, match_id, end_match_fields(MatchState.EXPIRED, None, now))

            blocker_fields = {
                "blockedUsers": ArrayUnion(target_id),
                "likedProfiles": ArrayRemove(target_id),
            }
            target_fields = {"likedProfiles": ArrayRemove(by_user_id)}
            if active_matches:
                blocker_fields["matches"] = ArrayRemove(*active_matches)
                target_fields["matches"] = ArrayRemove(*active_matches)
            txn.update(USERS, by_user_id, blocker_fields)
            if target is not None:
                txn.update(USERS, target_id, target_fields)
            for match_id in active_matches:
                txn.update(MATCHES, match_id, end_match_fields(MatchState.BLOCKED, by_user_id, now))
                ended.append(match_id)
            txn.set(MATCH_PAIRS, key, {
                "users": sorted([by_user_id, target_id]),
                "activeMatchId": None,
                "blockedBy": ArrayUnion(by_user_id),
                "updatedAt": SERVER_TIMESTAMP,
            }, merge=True)

        logger.info(
            f"User blocked; {len(ended)} match(es) ended",
            extra={"user_id": by_user_id},
        )
        return ended

    async def expire_matches(self, user_id: str, now: datetime | None = None) -> list[str]:
        """Persist the expired state of the user's time-expired matches."""
        now = now or self._clock.now()
        user = await self._store.get(USERS, user_id)
        if user is None:
            return []

        expired: list[str] = []
        for match_id in user.get("matches") or []:
            if await self._expire_one(match_id, now):
                expired.append(match_id)
        if expired:
            logger.info(
                f"Expired {len(expired)} match(es)",
                extra={"user_id": user_id},
            )
        return expired

    async def _expire_one(self, match_id: str, now: datetime) -> bool:
        async with self._store.transaction() as txn:
            match = await txn.get(MATCHES, match_id)
            if match is None or not match.get("isActive", False):
                return False
            if match_state(match, now) != MatchState.EXPIRED:
                return False
            users = match.get("users") or []
            key = match.get("pairKey") or pair_key(users[0], users[1])
            pair = await txn.get(MATCH_PAIRS, key)
            self._persist_expiry(txn, match_id, key, pair, now)
        return True

    @staticmethod
    def _persist_expiry(txn, match_id: str, key: str, pair: dict | None, now: datetime) -> None:
        txn.update(MATCHES, match_id, end_match_fields(MatchState.EXPIRED, None, now))
        if pair and pair.get("activeMatchId") == match_id:
            txn.set(MATCH_PAIRS, key, {"activeMatchId": None}, merge=True)
