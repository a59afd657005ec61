"""Outbound Events — notifications consumed by the UI layer and other collaborators.

Invariants:
    - Events are immutable values; publishing never mutates them
    - Every event renders to the SSE envelope {"type": ..., "data": {...}}
    - ActionDeadLettered is emitted exactly once per dead-lettered action

Design Decisions:
    - Dataclasses over dicts: subscribers filter by type, not by string keys
    - to_sse_event mirrors MatchSyncError.to_sse_event: one envelope shape for the stream
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class MatchCreated:
    match_id: str
    users: tuple[str, str]
    expires_at: str

    def to_sse_event(self) -> dict:
        return {
            "type": "match_created",
            "data": {
                "match_id": self.match_id,
                "users": list(self.users),
                "expires_at": self.expires_at,
            },
        }


@dataclass(frozen=True)
class ActionDeadLettered:
    action_id: str
    action_kind: str
    error_code: str
    error: str
    attempts: int

    def to_sse_event(self) -> dict:
        return {
            "type": "action_dead_lettered",
            "data": {
                "action_id": self.action_id,
                "action_kind": self.action_kind,
                "error_code": self.error_code,
                "error": self.error,
                "attempts": self.attempts,
            },
        }


@dataclass(frozen=True)
class DrainCompleted:
    applied: int
    failed: int

    def to_sse_event(self) -> dict:
        return {
            "type": "drain_completed",
            "data": {"applied": self.applied, "failed": self.failed},
        }


@dataclass(frozen=True)
class ConnectivityChanged:
    online: bool

    def to_sse_event(self) -> dict:
        return {"type": "connectivity_changed", "data": {"online": self.online}}


Event = MatchCreated | ActionDeadLettered | DrainCompleted | ConnectivityChanged
