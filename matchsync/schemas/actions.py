"""Action Schemas — Pydantic request/response models for the action and queue endpoints.

Invariants:
    - Ids are non-empty, stripped strings
    - MessageCreate.text: 1-2000 chars after strip
    - ReportCreate requires details when reason is "other"
    - Responses expose queue state, never payload internals beyond what the client sent

Design Decisions:
    - Domain enums (SwipeDirection, ReportReason) as field types: Pydantic rejects
      unknown values at the boundary, the queue re-validates on enqueue
"""

from datetime import datetime
from typing import Annotated, Any

from pydantic import BaseModel, Field, StringConstraints, field_validator, model_validator

from matchsync.core.domain_types import ReportReason, SwipeDirection
from matchsync.core.pending_action import (
    MAX_MESSAGE_LENGTH, MAX_REPORT_DETAILS_LENGTH, DeadLetter, PendingAction,
)

Id = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=128)]


class SwipeCreate(BaseModel):
    actor_id: Id
    target_id: Id
    direction: SwipeDirection


class ProfileUpdate(BaseModel):
    """Partial profile update; array deltas use {"$union": [...]} / {"$remove": [...]}."""
    user_id: Id
    partial: dict[str, Any] = Field(min_length=1)


class MessageCreate(BaseModel):
    match_id: Id
    sender_id: Id
    text: str = Field(min_length=1, max_length=MAX_MESSAGE_LENGTH)

    @field_validator("text")
    @classmethod
    def strip_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("text cannot be empty or whitespace")
        return v


class ReportCreate(BaseModel):
    reporter_id: Id
    reported_user_id: Id
    reason: ReportReason
    details: str | None = Field(None, max_length=MAX_REPORT_DETAILS_LENGTH)

    @model_validator(mode="after")
    def check_details_for_other(self) -> "ReportCreate":
        if self.reason == ReportReason.OTHER and not (self.details or "").strip():
            raise ValueError("details are required when reason is 'other'")
        return self


class MatchCreate(BaseModel):
    user_a: Id
    user_b: Id


class UnmatchRequest(BaseModel):
    match_id: Id
    by_user_id: Id


class BlockRequest(BaseModel):
    by_user_id: Id
    target_id: Id


class ConnectivityUpdate(BaseModel):
    online: bool


# --- Responses ---------------------------------------------------------------

class ActionResponse(BaseModel):
    id: str
    kind: str
    seq: int
    entity_key: str
    enqueued_at: datetime
    attempts: int
    last_error: str | None = None
    payload: dict[str, Any]

    @classmethod
    def from_action(cls, action: PendingAction) -> "ActionResponse":
        return cls(
            id=action.id,
            kind=str(getattr(action.kind, "value", action.kind)),
            seq=action.seq,
            entity_key=_safe_entity_key(action),
            enqueued_at=action.enqueued_at,
            attempts=action.attempts,
            last_error=action.last_error,
            payload=action.payload,
        )


class DeadLetterResponse(BaseModel):
    action: ActionResponse
    last_error: str
    dead_lettered_at: datetime

    @classmethod
    def from_dead_letter(cls, dead: DeadLetter) -> "DeadLetterResponse":
        return cls(
            action=ActionResponse.from_action(dead.action),
            last_error=dead.last_error,
            dead_lettered_at=dead.dead_lettered_at,
        )


class QueueResponse(BaseModel):
    pending: list[ActionResponse]
    dead_letters: list[DeadLetterResponse]
    draining: bool


class MatchStatusResponse(BaseModel):
    match_id: str
    state: str
    is_expired: bool
    seconds_remaining: int
    time_remaining_label: str
    expires_at: str | None = None


def _safe_entity_key(action: PendingAction) -> str:
    # Quarantined dead letters may carry a payload that no longer maps to an entity
    try:
        return action.entity_key
    except (KeyError, TypeError, ValueError):
        return "unknown"
