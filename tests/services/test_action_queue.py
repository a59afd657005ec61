"""Action Queue — durable enqueue, ordering, dead letters and degraded loads.

Tests:
    - enqueue persists before returning and assigns increasing seq
    - storage failure on enqueue raises LocalPersistenceError and leaves memory untouched
    - load() restores order, quarantines corrupt records, degrades on unreadable storage
"""

import pytest

from matchsync.core.domain_types import ActionKind
from matchsync.core.errors import LocalPersistenceError, ValidationError
from matchsync.services.action_queue import ActionQueue
from tests.services.fakes import InMemoryQueueStorage


def _message(text: str = "hi") -> dict:
    return {"matchId": "m1", "senderId": "alice", "text": text}


async def test_enqueue_is_durable_and_ordered(queue, queue_storage):
    first = await queue.enqueue(ActionKind.SEND_MESSAGE, _message("one"))
    second = await queue.enqueue(ActionKind.SEND_MESSAGE, _message("two"))

    assert first.seq < second.seq
    assert [a.id for a in queue.drainable()] == [first.id, second.id]
    assert [r["id"] for r in queue_storage.pending] == [first.id, second.id]
    assert queue_storage.pending[0]["entity_key"] == "matches/m1"


async def test_invalid_payload_never_reaches_storage(queue, queue_storage):
    with pytest.raises(ValidationError):
        await queue.enqueue(ActionKind.SEND_MESSAGE, _message("   "))
    assert queue_storage.pending == []
    assert len(queue) == 0


async def test_storage_failure_surfaces_and_memory_stays_consistent(queue, queue_storage):
    queue_storage.fail_writes = True
    with pytest.raises(LocalPersistenceError):
        await queue.enqueue(ActionKind.SEND_MESSAGE, _message())
    assert len(queue) == 0


async def test_record_failure_is_persisted(queue, queue_storage):
    action = await queue.enqueue(ActionKind.SEND_MESSAGE, _message())
    updated = await queue.record_failure(action.id, "TRANSIENT_REMOTE: down")

    assert updated.attempts == 1
    assert queue.get(action.id).attempts == 1
    assert queue_storage.pending[0]["attempts"] == 1
    assert queue_storage.pending[0]["last_error"] == "TRANSIENT_REMOTE: down"


async def test_dead_letter_leaves_drainable_set(queue, queue_storage):
    action = await queue.enqueue(ActionKind.SEND_MESSAGE, _message())
    dead = await queue.move_to_dead_letter(action.id, "MATCH_NOT_ACTIVE: expired")

    assert queue.drainable() == []
    assert queue.dead_letters() == [dead]
    assert queue_storage.dead[0]["id"] == action.id
    assert queue_storage.pending == []


async def test_restart_restores_pending_in_order(queue_storage, clock):
    before = ActionQueue(queue_storage, clock)
    await before.load()
    ids = [(await before.enqueue(ActionKind.SEND_MESSAGE, _message(str(i)))).id for i in range(3)]

    after = ActionQueue(queue_storage, clock)
    await after.load()
    assert [a.id for a in after.drainable()] == ids
    assert after.integrity_errors == []


async def test_corrupt_record_is_quarantined(queue_storage, clock):
    queue_storage.pending.append({
        "id": "bad", "kind": "send_message", "payload": None, "seq": 1,
        "enqueued_at": clock.now(), "attempts": 0, "corrupt": True, "raw_payload": "{not json",
    })
    queue_storage.pending.append({
        "id": "good", "kind": "send_message", "payload": _message(), "seq": 2,
        "enqueued_at": clock.now(), "attempts": 0,
    })

    q = ActionQueue(queue_storage, clock)
    await q.load()

    assert [a.id for a in q.drainable()] == ["good"]
    assert len(q.integrity_errors) == 1
    assert queue_storage.dead[0]["id"] == "bad"
    assert queue_storage.dead[0]["payload"] == "{not json"


async def test_unreadable_storage_degrades_to_empty_queue(clock):
    storage = InMemoryQueueStorage()
    storage.fail_loads = True
    q = ActionQueue(storage, clock)

    await q.load()

    assert len(q) == 0
    assert q.integrity_errors[0].code == "LOCAL_PERSISTENCE_ERROR"


async def test_one_bad_dead_letter_does_not_discard_the_rest(clock):
    storage = InMemoryQueueStorage()
    good = {
        "id": "d1", "kind": "send_message", "payload": _message(),
        "enqueued_at": clock.now(), "seq": 1, "attempts": 5,
    }
    storage.dead = [
        {**good, "last_error": "timeout", "dead_lettered_at": clock.now()},
        {**good, "id": "d2", "last_error": "timeout", "dead_lettered_at": None},
        {**good, "id": "d3", "last_error": "timeout", "dead_lettered_at": clock.now()},
    ]
    q = ActionQueue(storage, clock)

    await q.load()

    assert [d.action.id for d in q.dead_letters()] == ["d1", "d3"]
    assert len(q.integrity_errors) == 1
    assert "d2" in q.integrity_errors[0].message
