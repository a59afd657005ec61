"""Domain Types — verifies pair keys and enum values.

Tests:
    - pair_key is order-independent and distinct per pair
    - Enums serialize to their string values (queue payloads are JSON)
"""

import pytest

from matchsync.core.domain_types import (
    ActionKind, MatchState, ReportReason, SwipeDirection, pair_key,
)


def test_pair_key_is_order_independent():
    assert pair_key("alice", "bob") == pair_key("bob", "alice") == "alice__bob"


def test_pair_key_differs_per_pair():
    assert pair_key("alice", "bob") != pair_key("alice", "carol")


@pytest.mark.parametrize("ids", [("a__b", "c"), ("a", "b__c")])
def test_pair_key_rejects_ids_containing_the_separator(ids):
    with pytest.raises(ValueError):
        pair_key(*ids)


def test_action_kinds_are_json_strings():
    assert ActionKind.SEND_MESSAGE.value == "send_message"
    assert ActionKind("record_like") is ActionKind.RECORD_LIKE
    assert len(ActionKind) == 8


def test_active_is_the_only_non_terminal_state():
    terminal = {s for s in MatchState if s != MatchState.ACTIVE}
    assert terminal == {MatchState.EXPIRED, MatchState.UNMATCHED, MatchState.BLOCKED}


def test_swipe_directions():
    assert {d.value for d in SwipeDirection} == {"pass", "like", "super_like"}


def test_report_reasons_include_other():
    assert ReportReason("other") is ReportReason.OTHER
