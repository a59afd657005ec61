"""Action Appliers — each kind's remote mutation, replay safety and permanent failures."""

from datetime import timedelta

import pytest

from matchsync.core.domain_types import (
    MATCHES, MESSAGES, REPORTS, USERS, ActionKind, SwipeDirection,
)
from matchsync.core.errors import MatchExpiredError, PermanentError, ResourceNotFoundError
from matchsync.core.field_values import ArrayUnion, encode_partial
from matchsync.core.match_lifecycle import build_match_document
from matchsync.core.pending_action import PendingAction
from tests.services.fakes import T0


def _action(kind: ActionKind, payload: dict, action_id: str = "act-1", seq: int = 1):
    return PendingAction(action_id, kind, payload, T0, seq=seq)


@pytest.fixture
def match(store, seed_users):
    store.seed(MATCHES, "m1", build_match_document(
        ["alice", "bob"], "alice__bob", T0, timedelta(hours=24),
    ))
    return "m1"


async def test_profile_update_applies_deltas(appliers, store, seed_users):
    partial = encode_partial({"bio": "hello", "interests": ArrayUnion("surf")})

    await appliers.apply(_action(ActionKind.UPDATE_PROFILE, {"userId": "alice", "partial": partial}))

    user = store.doc(USERS, "alice")
    assert user["bio"] == "hello"
    assert user["interests"] == ["surf"]
    assert user["updatedAt"] == T0.isoformat()


async def test_profile_update_for_missing_user_is_permanent(appliers, store):
    with pytest.raises(ResourceNotFoundError):
        await appliers.apply(_action(
            ActionKind.UPDATE_PROFILE, {"userId": "ghost", "partial": {"bio": "x"}},
        ))


async def test_message_delivered_once(appliers, store, match):
    action = _action(
        ActionKind.SEND_MESSAGE, {"matchId": match, "senderId": "alice", "text": "hey"}, seq=7,
    )

    await appliers.apply(action)
    await appliers.apply(action)

    assert list(store.collection(MESSAGES)) == ["act-1"]
    message = store.doc(MESSAGES, "act-1")
    assert message["clientSeq"] == 7
    assert message["read"] is False
    assert store.doc(MATCHES, match)["lastMessage"] == "hey"


async def test_message_to_expired_match_rejected_at_delivery(appliers, store, clock, match):
    clock.advance(hours=25)
    action = _action(ActionKind.SEND_MESSAGE, {"matchId": match, "senderId": "alice", "text": "late"})

    with pytest.raises(MatchExpiredError):
        await appliers.apply(action)
    assert store.collection(MESSAGES) == {}


async def test_message_from_outsider_rejected(appliers, match):
    action = _action(ActionKind.SEND_MESSAGE, {"matchId": match, "senderId": "eve", "text": "hi"})
    with pytest.raises(PermanentError) as exc:
        await appliers.apply(action)
    assert exc.value.code == "NOT_A_PARTICIPANT"


async def test_message_to_missing_match(appliers, seed_users):
    action = _action(ActionKind.SEND_MESSAGE, {"matchId": "gone", "senderId": "alice", "text": "hi"})
    with pytest.raises(ResourceNotFoundError):
        await appliers.apply(action)


async def test_report_filed_once(appliers, store, seed_users):
    action = _action(ActionKind.REPORT_USER, {
        "reporterId": "alice", "reportedUserId": "bob", "reason": "spam_or_fake_profile",
    })

    await appliers.apply(action)
    await appliers.apply(action)

    assert list(store.collection(REPORTS)) == ["act-1"]
    assert store.doc(REPORTS, "act-1")["status"] == "pending"


async def test_swipe_replay_uses_action_id(appliers, store, seed_users):
    await appliers.apply(_action(
        ActionKind.RECORD_SWIPE, {"actorId": "bob", "targetId": "alice", "direction": "like"},
        action_id="s1",
    ))
    like = _action(
        ActionKind.RECORD_SWIPE, {"actorId": "alice", "targetId": "bob", "direction": "like"},
        action_id="s2",
    )
    await appliers.apply(like)
    await appliers.apply(like)

    assert len(store.collection(MATCHES)) == 1


async def test_record_like_defaults_to_super_like(appliers, seed_users):
    action = _action(ActionKind.RECORD_LIKE, {"actorId": "alice", "targetId": "bob"})
    with pytest.raises(PermanentError) as exc:
        await appliers.apply(action)
    assert exc.value.code == "PREMIUM_REQUIRED"


async def test_create_match_and_unmatch(appliers, store, seed_users):
    await appliers.apply(_action(ActionKind.CREATE_MATCH, {"users": ["alice", "bob"]}, "c1"))
    [match_id] = store.collection(MATCHES)

    await appliers.apply(_action(ActionKind.UNMATCH, {"matchId": match_id, "byUserId": "bob"}, "u1"))

    assert store.doc(MATCHES, match_id)["state"] == "unmatched"


async def test_block_user(appliers, store, seed_users):
    await appliers.apply(_action(ActionKind.BLOCK_USER, {"byUserId": "bob", "targetId": "alice"}))
    assert store.doc(USERS, "bob")["blockedUsers"] == ["alice"]


async def test_unknown_kind_is_permanent(appliers):
    action = PendingAction("x", "teleport", {}, T0)
    with pytest.raises(PermanentError) as exc:
        await appliers.apply(action)
    assert exc.value.code == "UNKNOWN_ACTION_KIND"


async def test_swipe_direction_roundtrips_through_payload(appliers, store, seed_users):
    await appliers.apply(_action(
        ActionKind.RECORD_SWIPE,
        {"actorId": "alice", "targetId": "bob", "direction": SwipeDirection.PASS.value},
    ))
    assert store.doc(USERS, "alice")["swipedProfiles"] == ["bob"]
    assert store.doc(USERS, "alice")["likedProfiles"] == []
