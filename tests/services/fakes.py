"""Fakes — in-memory stand-ins for the remote store, queue storage and clock.

Invariants:
    - InMemoryDocumentStore has the same commit semantics as SqlDocumentStore:
      reads before writes, version check at commit, ConflictError on a stale read
    - yield_on_read=True inserts a scheduling point after every transactional read, so
      concurrent transactions interleave their read phases (forces real conflicts)
    - Queued failures (fail_next) are raised by the next store operations, in order

Design Decisions:
    - Flat fake classes (no inheritance): simple, explicit, easy to debug
    - Writes resolved through core.field_values: deltas behave exactly as in production
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

from matchsync.core.errors import (
    ConflictError, LocalPersistenceError, ResourceNotFoundError, TransientRemoteError,
)
from matchsync.core.field_values import apply_partial, resolve_document
from matchsync.core.repository_protocols import (
    MERGE, SET, UPDATE, DocumentWrite,
)

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = T0):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current = self.current + timedelta(**kwargs)


class _FakeTransaction:
    def __init__(self, store: "InMemoryDocumentStore"):
        self._store = store
        self.reads: dict[tuple[str, str], int | None] = {}
        self.writes: list[DocumentWrite] = []

    async def get(self, collection: str, doc_id: str) -> dict | None:
        if self.writes:
            raise RuntimeError("transaction reads must happen before writes")
        self._store._raise_queued_failure()
        entry = self._store.docs.get((collection, doc_id))
        self.reads[(collection, doc_id)] = entry[1] if entry else None
        if self._store.yield_on_read:
            await asyncio.sleep(0)
        return dict(entry[0]) if entry else None

    def set(self, collection: str, doc_id: str, data: dict, merge: bool = False) -> None:
        self.writes.append(DocumentWrite(MERGE if merge else SET, collection, doc_id, data))

    def update(self, collection: str, doc_id: str, partial: dict) -> None:
        self.writes.append(DocumentWrite(UPDATE, collection, doc_id, partial))


class InMemoryDocumentStore:
    """Versioned document store with compare-and-swap commits."""

    def __init__(self, clock: FakeClock | None = None):
        self._clock = clock or FakeClock()
        self.docs: dict[tuple[str, str], tuple[dict, int]] = {}
        self.failures: list[Exception] = []
        self.yield_on_read = False
        self.reachable = True
        self.commits = 0
        self.conflicts = 0

    # ─── Test helpers ────────────────────────────────────────────

    def seed(self, collection: str, doc_id: str, data: dict) -> None:
        self.docs[(collection, doc_id)] = (dict(data), 1)

    def doc(self, collection: str, doc_id: str) -> dict | None:
        entry = self.docs.get((collection, doc_id))
        return dict(entry[0]) if entry else None

    def collection(self, collection: str) -> dict[str, dict]:
        return {
            doc_id: dict(data)
            for (coll, doc_id), (data, _) in self.docs.items() if coll == collection
        }

    def fail_next(self, count: int = 1, error: Exception | None = None) -> None:
        for _ in range(count):
            self.failures.append(error or TransientRemoteError("network down", "fake"))

    def _raise_queued_failure(self) -> None:
        if self.failures:
            raise self.failures.pop(0)

    # ─── RemoteStore ─────────────────────────────────────────────

    async def get(self, collection: str, doc_id: str) -> dict | None:
        self._raise_queued_failure()
        return self.doc(collection, doc_id)

    async def set(self, collection: str, doc_id: str, data: dict, merge: bool = False) -> None:
        await self.atomic_multi_update(
            [DocumentWrite(MERGE if merge else SET, collection, doc_id, data)],
        )

    async def update(self, collection: str, doc_id: str, partial: dict) -> None:
        await self.atomic_multi_update([DocumentWrite(UPDATE, collection, doc_id, partial)])

    async def atomic_multi_update(self, writes: list[DocumentWrite]) -> None:
        self._raise_queued_failure()
        self._commit({}, writes)

    @asynccontextmanager
    async def transaction(self):
        txn = _FakeTransaction(self)
        yield txn
        if txn.writes:
            self._commit(txn.reads, txn.writes)

    async def is_reachable(self) -> bool:
        return self.reachable

    def _commit(self, reads: dict, writes: list[DocumentWrite]) -> None:
        for key, version in reads.items():
            entry = self.docs.get(key)
            if (entry[1] if entry else None) != version:
                self.conflicts += 1
                raise ConflictError(f"{key[0]}/{key[1]} changed during transaction")

        now = self._clock.now()
        staged: dict[tuple[str, str], tuple[dict, int]] = {}
        for write in writes:
            key = (write.collection, write.doc_id)
            if key in staged:
                base, version = staged[key]
            else:
                entry = self.docs.get(key)
                base, version = (dict(entry[0]), entry[1]) if entry else (None, 0)
            if write.op == UPDATE and base is None:
                raise ResourceNotFoundError(write.collection, write.doc_id)
            if write.op == SET:
                data = resolve_document(write.data, now)
            else:
                data = apply_partial(base, write.data, now)
            staged[key] = (data, version)

        for key, (data, version) in staged.items():
            self.docs[key] = (data, version + 1)
        self.commits += 1


class InMemoryQueueStorage:
    """QueueStorage fake; records are deep-copied so callers cannot alias them."""

    def __init__(self):
        self.pending: list[dict] = []
        self.dead: list[dict] = []
        self._seq = 0
        self.fail_writes = False
        self.fail_loads = False

    def _check(self, operation: str) -> None:
        if self.fail_writes:
            raise LocalPersistenceError("disk full", operation)

    async def load_pending(self) -> list[dict]:
        if self.fail_loads:
            raise LocalPersistenceError("file unreadable", "load_pending")
        return [dict(r) for r in sorted(self.pending, key=lambda r: r["seq"])]

    async def load_dead_letters(self) -> list[dict]:
        return [dict(r) for r in self.dead]

    async def insert_pending(self, record: dict) -> int:
        self._check("insert_pending")
        self._seq += 1
        self.pending.append({**record, "seq": self._seq})
        return self._seq

    async def update_pending(self, action_id: str, attempts: int, last_error: str | None) -> None:
        self._check("update_pending")
        for record in self.pending:
            if record["id"] == action_id:
                record["attempts"] = attempts
                record["last_error"] = last_error

    async def delete_pending(self, action_id: str) -> None:
        self._check("delete_pending")
        self.pending = [r for r in self.pending if r["id"] != action_id]

    async def move_to_dead_letter(self, record: dict, last_error: str, dead_lettered_at) -> None:
        self._check("move_to_dead_letter")
        self.dead.append({**record, "last_error": last_error, "dead_lettered_at": dead_lettered_at})
        self.pending = [r for r in self.pending if r["id"] != record["id"]]


class InMemoryEventBuffer:
    def __init__(self):
        self.rows: dict[int, dict] = {}
        self._next = 0

    async def append(self, event: dict) -> None:
        self._next += 1
        self.rows[self._next] = dict(event)

    async def load_all(self) -> list[tuple[int, dict]]:
        return sorted(self.rows.items())

    async def delete_ids(self, ids: list[int]) -> None:
        for row_id in ids:
            self.rows.pop(row_id, None)


class InMemoryCache:
    def __init__(self):
        self.entries: dict[str, tuple[dict, datetime]] = {}

    async def put(self, key: str, data: dict, cached_at: datetime) -> None:
        self.entries[key] = (dict(data), cached_at)

    async def get(self, key: str):
        return self.entries.get(key)

    async def delete_older_than(self, cutoff: datetime) -> int:
        stale = [k for k, (_, at) in self.entries.items() if at < cutoff]
        for key in stale:
            del self.entries[key]
        return len(stale)

    async def clear(self) -> None:
        self.entries.clear()

    async def total_size(self) -> int:
        return sum(len(k) + len(str(v)) for k, (v, _) in self.entries.items())


async def no_sleep(_seconds: float) -> None:
    """Backoff sleep replacement; still yields to the loop."""
    await asyncio.sleep(0)
