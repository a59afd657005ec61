"""Like Resolution — pure decision of what a swipe does, given a consistent snapshot.

Invariants:
    - A missing target makes any swipe pass-equivalent (TARGET_MISSING)
    - A blocked pair (either direction) never produces a like or a match
    - An active, unexpired match for the pair yields ALREADY_MATCHED — never a second match
    - MATCHED iff direction is a like and the target's likedProfiles holds the actor

Design Decisions:
    - Decision separated from the transaction shell: the engine reads a snapshot inside a
      transaction, asks this module, then writes — the rule is testable with plain dicts
    - likedProfiles holds the ids its owner liked (not the ids that liked the owner)
"""

from datetime import datetime

from matchsync.core.domain_types import MatchState, SwipeDirection, SwipeResult
from matchsync.core.match_lifecycle import match_state, parse_timestamp


def is_premium_active(user: dict, now: datetime) -> bool:
    """Premium flag honoured only until premiumExpiresAt (when set)."""
    if not user.get("isPremium", False):
        return False
    expires_at = parse_timestamp(user.get("premiumExpiresAt"))
    return expires_at is None or expires_at > parse_timestamp(now)


def is_blocked_pair(actor: dict, actor_id: str, target: dict, target_id: str) -> bool:
    return (
        target_id in (actor.get("blockedUsers") or [])
        or actor_id in (target.get("blockedUsers") or [])
    )


def has_active_match(active_match: dict | None, now: datetime) -> bool:
    return active_match is not None and match_state(active_match, now) == MatchState.ACTIVE


def resolve_swipe(
    actor_id: str,
    actor: dict,
    target_id: str,
    target: dict | None,
    direction: SwipeDirection,
    active_match: dict | None,
    now: datetime,
) -> SwipeResult:
    """Outcome of a swipe against the snapshot read in the current transaction."""
    if target is None:
        return SwipeResult.TARGET_MISSING
    if direction == SwipeDirection.PASS:
        return SwipeResult.PASSED
    if is_blocked_pair(actor, actor_id, target, target_id):
        return SwipeResult.BLOCKED
    if has_active_match(active_match, now):
        return SwipeResult.ALREADY_MATCHED
    if actor_id in (target.get("likedProfiles") or []):
        return SwipeResult.MATCHED
    return SwipeResult.LIKED
