"""Match Lifecycle — TTLs, expiry and derived state.

Tests:
    - Premium matches get 48h, standard 24h
    - is_expired == time_remaining <= 0, and expiry is monotonic in time
    - Terminal stored states stick regardless of time
    - Countdown labels
"""

from datetime import datetime, timedelta, timezone

import pytest

from matchsync.core.domain_types import MatchState
from matchsync.core.errors import MatchExpiredError
from matchsync.core.match_lifecycle import (
    build_match_document, end_match_fields, ensure_can_message, format_time_remaining,
    is_expired, match_state, match_ttl, parse_timestamp, time_remaining,
)

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _match(ttl_hours: int = 24) -> dict:
    return build_match_document(["bob", "alice"], "alice__bob", T0, timedelta(hours=ttl_hours))


def test_ttl_by_premium():
    assert match_ttl(False) == timedelta(hours=24)
    assert match_ttl(True) == timedelta(hours=48)
    assert match_ttl(True, 12, 36) == timedelta(hours=36)


def test_new_match_document_shape():
    match = _match()
    assert match["users"] == ["alice", "bob"]
    assert match["isActive"] is True
    assert match["state"] == "active"
    assert parse_timestamp(match["expiresAt"]) == T0 + timedelta(hours=24)


def test_expiry_boundary_is_inclusive():
    match = _match()
    assert not is_expired(match, T0 + timedelta(hours=23, minutes=59))
    assert is_expired(match, T0 + timedelta(hours=24))


@pytest.mark.parametrize("hours", [0, 1, 23, 24, 25, 100])
def test_is_expired_agrees_with_time_remaining(hours):
    match = _match()
    now = T0 + timedelta(hours=hours)
    assert is_expired(match, now) == (time_remaining(match, now) <= timedelta(0))


def test_expiry_is_monotonic():
    match = _match()
    samples = [T0 + timedelta(minutes=m) for m in range(0, 60 * 30, 17)]
    seen_expired = False
    for now in samples:
        if seen_expired:
            assert is_expired(match, now)
        seen_expired = seen_expired or is_expired(match, now)
    assert seen_expired


def test_state_active_then_expired():
    match = _match()
    assert match_state(match, T0) == MatchState.ACTIVE
    assert match_state(match, T0 + timedelta(hours=25)) == MatchState.EXPIRED


def test_terminal_state_sticks_even_before_expiry():
    match = {**_match(), **end_match_fields(MatchState.UNMATCHED, "alice", T0)}
    assert match_state(match, T0) == MatchState.UNMATCHED
    assert match["endedBy"] == "alice"


def test_ensure_can_message_raises_for_expired_match():
    match = _match()
    ensure_can_message(match, "m1", T0)
    with pytest.raises(MatchExpiredError) as exc:
        ensure_can_message(match, "m1", T0 + timedelta(hours=24, seconds=1))
    assert exc.value.state == "expired"
    assert exc.value.context.match_id == "m1"
    assert "Premium" in exc.value.context.user_message


def test_countdown_labels():
    match = _match()
    assert format_time_remaining(match, T0 + timedelta(hours=20, minutes=48)) == "3h 12m left"
    assert format_time_remaining(match, T0 + timedelta(hours=23, minutes=15)) == "45m left"
    assert format_time_remaining(match, T0 + timedelta(hours=30)) == "Expired"


def test_parse_timestamp_treats_naive_as_utc():
    assert parse_timestamp("2026-03-01T12:00:00") == T0
    assert parse_timestamp(None) is None
