"""Domain Types — rich types that replace bare primitives across the codebase.

Invariants:
    - UserId, MatchId, ActionId wrap str — never use bare str ids in domain logic
    - PairKey is order-independent: pair_key(a, b) == pair_key(b, a)
    - All valid states encoded as Enums — no raw string matching

Design Decisions:
    - NewType over dataclass wrappers: zero runtime cost, full type-checker support
    - str Enums: serialize to JSON without custom encoders (ADR: queue payloads are JSON)
"""

from enum import Enum
from typing import NewType


# ─── Identity Types ──────────────────────────────────────────────

UserId = NewType("UserId", str)
MatchId = NewType("MatchId", str)
ActionId = NewType("ActionId", str)
PairKey = NewType("PairKey", str)


# ─── Collections (remote document store) ─────────────────────────

USERS = "users"
MATCHES = "matches"
MATCH_PAIRS = "match_pairs"
MESSAGES = "messages"
REPORTS = "reports"
ANALYTICS = "analytics"
APPLIED_ACTIONS = "applied_actions"


# ─── Enums ───────────────────────────────────────────────────────

class ActionKind(str, Enum):
    """Kinds of user intent recorded in the durable queue."""
    UPDATE_PROFILE = "update_profile"
    SEND_MESSAGE = "send_message"
    CREATE_MATCH = "create_match"
    REPORT_USER = "report_user"
    RECORD_SWIPE = "record_swipe"
    RECORD_LIKE = "record_like"
    UNMATCH = "unmatch"
    BLOCK_USER = "block_user"


class SwipeDirection(str, Enum):
    """Swipe outcome. SUPER_LIKE is premium-only and travels as RECORD_LIKE."""
    PASS = "pass"
    LIKE = "like"
    SUPER_LIKE = "super_like"


class UserType(str, Enum):
    MODEL = "model"
    BRAND = "brand"


class MatchState(str, Enum):
    """Match lifecycle. ACTIVE is the only non-terminal state."""
    ACTIVE = "active"
    EXPIRED = "expired"
    UNMATCHED = "unmatched"
    BLOCKED = "blocked"


class SwipeResult(str, Enum):
    """What a swipe did to remote state."""
    PASSED = "passed"
    LIKED = "liked"
    MATCHED = "matched"
    ALREADY_MATCHED = "already_matched"
    TARGET_MISSING = "target_missing"
    BLOCKED = "blocked"


class ReportReason(str, Enum):
    INAPPROPRIATE_CONTENT = "inappropriate_content"
    SPAM_OR_FAKE = "spam_or_fake_profile"
    HARASSMENT = "harassment_or_bullying"
    UNDERAGE = "underage_user"
    INAPPROPRIATE_BEHAVIOR = "inappropriate_behavior"
    OTHER = "other"


PAIR_SEPARATOR = "__"


def pair_key(user_a: str, user_b: str) -> PairKey:
    """Canonical unordered key for a two-user relationship.

    Ids containing PAIR_SEPARATOR are rejected: ("a__b", "c") and ("a", "b__c")
    would otherwise share a key.
    """
    for user_id in (user_a, user_b):
        if PAIR_SEPARATOR in user_id:
            raise ValueError(f"user id {user_id!r} contains {PAIR_SEPARATOR!r}")
    low, high = sorted((user_a, user_b))
    return PairKey(f"{low}{PAIR_SEPARATOR}{high}")
