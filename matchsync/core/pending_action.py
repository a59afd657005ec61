"""Pending Action — the durable record of a user intent not yet confirmed remotely.

Invariants:
    - id is assigned at creation and doubles as the remote idempotency key
    - seq is the queue position; processing order is ascending seq
    - attempts starts at 0 and only grows
    - entity_key names the remote entity mutated; equal keys apply in seq order
    - validate_payload rejects any payload missing its kind's required fields

Design Decisions:
    - Frozen dataclass + dataclasses.replace: queue state changes are explicit copies
      (ADR: no hidden mutation shared between queue and executor)
    - Payloads are plain JSON dicts: records survive a process restart unchanged
    - Swipes, likes and blocks share the pair entity so a block queued after a like
      on the same pair is never applied before it
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from matchsync.core.domain_types import (
    ActionKind, SwipeDirection, ReportReason, UserType, MATCHES, MATCH_PAIRS, PAIR_SEPARATOR,
    REPORTS, USERS, pair_key,
)
from matchsync.core.errors import ValidationError
from matchsync.core.field_values import ArrayUnion, decode_partial
from matchsync.core.match_lifecycle import parse_timestamp


# Required payload fields per kind
REQUIRED_FIELDS: dict[ActionKind, tuple[str, ...]] = {
    ActionKind.UPDATE_PROFILE: ("userId", "partial"),
    ActionKind.SEND_MESSAGE: ("matchId", "senderId", "text"),
    ActionKind.CREATE_MATCH: ("users",),
    ActionKind.REPORT_USER: ("reporterId", "reportedUserId", "reason"),
    ActionKind.RECORD_SWIPE: ("actorId", "targetId", "direction"),
    ActionKind.RECORD_LIKE: ("actorId", "targetId"),
    ActionKind.UNMATCH: ("matchId", "byUserId"),
    ActionKind.BLOCK_USER: ("byUserId", "targetId"),
}

# User fields only the match engine and lifecycle manager write
MATCH_OWNED_FIELDS = ("likedProfiles", "matches", "blockedUsers")

# Fields whose ids end up in a pair key
PAIR_ID_FIELDS: dict[ActionKind, tuple[str, ...]] = {
    ActionKind.CREATE_MATCH: ("users",),
    ActionKind.RECORD_SWIPE: ("actorId", "targetId"),
    ActionKind.RECORD_LIKE: ("actorId", "targetId"),
    ActionKind.BLOCK_USER: ("byUserId", "targetId"),
}

MAX_MESSAGE_LENGTH = 2000
MAX_REPORT_DETAILS_LENGTH = 1000


@dataclass(frozen=True)
class PendingAction:
    """A queued user intent."""
    id: str
    kind: ActionKind
    payload: dict[str, Any]
    enqueued_at: datetime
    seq: int = 0
    attempts: int = 0
    last_error: str | None = None

    @property
    def entity_key(self) -> str:
        return entity_key(self.kind, self.payload, self.id)

    def with_failure(self, error: str) -> "PendingAction":
        return replace(self, attempts=self.attempts + 1, last_error=error)

    def to_record(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "payload": self.payload,
            "enqueued_at": self.enqueued_at,
            "seq": self.seq,
            "attempts": self.attempts,
            "last_error": self.last_error,
        }

    @classmethod
    def from_record(cls, record: dict) -> "PendingAction":
        """Rebuild from a persisted record. Raises ValueError/KeyError/ValidationError if corrupt."""
        kind = ActionKind(record["kind"])
        payload = record["payload"]
        if not isinstance(payload, dict):
            raise ValueError(f"payload must be an object, got {type(payload).__name__}")
        validate_payload(kind, payload)
        return cls(
            id=str(record["id"]),
            kind=kind,
            payload=payload,
            enqueued_at=parse_timestamp(record["enqueued_at"]),
            seq=int(record.get("seq") or 0),
            attempts=int(record.get("attempts") or 0),
            last_error=record.get("last_error"),
        )


@dataclass(frozen=True)
class DeadLetter:
    """An action removed from the retry path, retained for inspection."""
    action: PendingAction
    last_error: str
    dead_lettered_at: datetime
    extra: dict[str, Any] = field(default_factory=dict)


def entity_key(kind: ActionKind, payload: dict, action_id: str) -> str:
    """Remote entity an action mutates (serialization unit for the executor)."""
    match kind:
        case ActionKind.UPDATE_PROFILE:
            return f"{USERS}/{payload['userId']}"
        case ActionKind.SEND_MESSAGE | ActionKind.UNMATCH:
            return f"{MATCHES}/{payload['matchId']}"
        case ActionKind.CREATE_MATCH:
            a, b = payload["users"]
            return f"{MATCH_PAIRS}/{pair_key(a, b)}"
        case ActionKind.RECORD_SWIPE | ActionKind.RECORD_LIKE:
            return f"{MATCH_PAIRS}/{pair_key(payload['actorId'], payload['targetId'])}"
        case ActionKind.BLOCK_USER:
            return f"{MATCH_PAIRS}/{pair_key(payload['byUserId'], payload['targetId'])}"
        case ActionKind.REPORT_USER:
            return f"{REPORTS}/{action_id}"
    raise ValueError(f"Unknown action kind: {kind}")


def validate_payload(kind: ActionKind, payload: dict) -> None:
    """Check required fields and kind-specific rules. Raises ValidationError."""
    missing = [f for f in REQUIRED_FIELDS[kind] if payload.get(f) in (None, "")]
    if missing:
        raise ValidationError(
            f"{kind.value} payload missing: {', '.join(missing)}", missing[0],
        )

    match kind:
        case ActionKind.UPDATE_PROFILE:
            if not isinstance(payload["partial"], dict) or not payload["partial"]:
                raise ValidationError("partial must be a non-empty object", "partial")
            partial = payload["partial"]
            for name in MATCH_OWNED_FIELDS:
                if name in partial:
                    raise ValidationError(f"{name} cannot be changed by a profile update", name)
            if "swipedProfiles" in partial and not _is_union(partial["swipedProfiles"]):
                raise ValidationError("swipedProfiles only accepts additions", "swipedProfiles")
            user_type = partial.get("userType")
            if user_type is not None and user_type not in {t.value for t in UserType}:
                raise ValidationError(f"unknown user type: {user_type}", "userType")
        case ActionKind.SEND_MESSAGE:
            text = payload["text"]
            if not isinstance(text, str) or not text.strip():
                raise ValidationError("message text cannot be empty", "text")
            if len(text) > MAX_MESSAGE_LENGTH:
                raise ValidationError(
                    f"message exceeds {MAX_MESSAGE_LENGTH} characters", "text",
                )
        case ActionKind.CREATE_MATCH:
            users = payload["users"]
            if not isinstance(users, list) or len(users) != 2 or users[0] == users[1]:
                raise ValidationError("users must be two distinct ids", "users")
        case ActionKind.REPORT_USER:
            if payload["reason"] not in {r.value for r in ReportReason}:
                raise ValidationError(f"unknown report reason: {payload['reason']}", "reason")
            details = payload.get("details") or ""
            if payload["reason"] == ReportReason.OTHER.value and not details.strip():
                raise ValidationError("details required for reason 'other'", "details")
            if len(details) > MAX_REPORT_DETAILS_LENGTH:
                raise ValidationError("details too long", "details")
            if payload["reporterId"] == payload["reportedUserId"]:
                raise ValidationError("cannot report yourself", "reportedUserId")
        case ActionKind.RECORD_SWIPE | ActionKind.RECORD_LIKE:
            if payload["actorId"] == payload["targetId"]:
                raise ValidationError("cannot swipe on yourself", "targetId")
            direction = payload.get("direction", SwipeDirection.SUPER_LIKE.value)
            if direction not in {d.value for d in SwipeDirection}:
                raise ValidationError(f"unknown swipe direction: {direction}", "direction")
        case ActionKind.BLOCK_USER:
            if payload["byUserId"] == payload["targetId"]:
                raise ValidationError("cannot block yourself", "targetId")

    for name in PAIR_ID_FIELDS.get(kind, ()):
        values = payload[name] if isinstance(payload[name], list) else [payload[name]]
        if any(PAIR_SEPARATOR in str(v) for v in values):
            raise ValidationError(f"user ids cannot contain {PAIR_SEPARATOR!r}", name)


def _is_union(encoded: Any) -> bool:
    if not isinstance(encoded, dict) or len(encoded) != 1:
        return False
    if not isinstance(next(iter(encoded.values())), list):
        return False
    return isinstance(decode_partial({"value": encoded})["value"], ArrayUnion)
