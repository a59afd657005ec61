"""Match Lifecycle — pure expiry and state computations over match documents.

Invariants:
    - is_expired(match, now) == time_remaining(match, now) <= 0
    - Expiry is monotonic: once expired at t1, expired at every t2 > t1
    - match_state never returns ACTIVE for an inactive match (terminal states stick)
    - TTL is fixed at creation: premium upgrades never move expiresAt

Design Decisions:
    - Operates on plain dicts (remote documents), not ORM rows: the same functions run
      on cached offline copies and on documents read inside a transaction
    - expiresAt stored as ISO-8601 string: documents are JSON
"""

from datetime import datetime, timedelta, timezone

from matchsync.core.domain_types import MatchState
from matchsync.core.errors import MatchExpiredError

DEFAULT_TTL_HOURS = 24
PREMIUM_TTL_HOURS = 48


def match_ttl(
    is_premium: bool,
    standard_hours: int = DEFAULT_TTL_HOURS,
    premium_hours: int = PREMIUM_TTL_HOURS,
) -> timedelta:
    return timedelta(hours=premium_hours if is_premium else standard_hours)


def compute_expires_at(created_at: datetime, ttl: timedelta) -> datetime:
    return created_at + ttl


def parse_timestamp(value: datetime | str | None) -> datetime | None:
    """Parse a stored timestamp; naive values are taken as UTC."""
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def time_remaining(match: dict, now: datetime) -> timedelta:
    """expiresAt - now (negative once expired)."""
    expires_at = parse_timestamp(match.get("expiresAt"))
    if expires_at is None:
        return timedelta(0)
    return expires_at - parse_timestamp(now)


def is_expired(match: dict, now: datetime) -> bool:
    return time_remaining(match, now) <= timedelta(0)


def match_state(match: dict, now: datetime) -> MatchState:
    """Effective state: stored terminal state, or EXPIRED once time runs out."""
    if not match.get("isActive", False):
        stored = match.get("state")
        if stored and stored != MatchState.ACTIVE.value:
            return MatchState(stored)
        return MatchState.EXPIRED
    if is_expired(match, now):
        return MatchState.EXPIRED
    return MatchState.ACTIVE


def format_time_remaining(match: dict, now: datetime) -> str:
    """Human label: '3h 12m left', '45m left' or 'Expired'."""
    remaining = time_remaining(match, now)
    if remaining <= timedelta(0):
        return "Expired"
    total_minutes = int(remaining.total_seconds() // 60)
    hours, minutes = divmod(total_minutes, 60)
    if hours > 0:
        return f"{hours}h {minutes}m left"
    return f"{minutes}m left"


def ensure_can_message(match: dict, match_id: str, now: datetime) -> None:
    """Raise MatchExpiredError unless the match accepts messages at `now`."""
    state = match_state(match, now)
    if state != MatchState.ACTIVE:
        raise MatchExpiredError(match_id, state.value)


def build_match_document(
    users: list[str],
    key: str,
    created_at: datetime,
    ttl: timedelta,
) -> dict:
    """Fresh active match document. users stored sorted (unordered pair)."""
    return {
        "users": sorted(users),
        "pairKey": key,
        "createdAt": created_at.isoformat(),
        "expiresAt": compute_expires_at(created_at, ttl).isoformat(),
        "isActive": True,
        "state": MatchState.ACTIVE.value,
        "lastMessage": None,
        "lastMessageAt": None,
    }


def end_match_fields(state: MatchState, ended_by: str | None, now: datetime) -> dict:
    """Partial update moving a match to a terminal state."""
    return {
        "isActive": False,
        "state": state.value,
        "endedBy": ended_by,
        "endedAt": now.isoformat(),
    }
