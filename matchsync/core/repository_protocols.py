"""Boundary Protocols — contracts between core/services and storage shells.

Invariants:
    - Services NEVER import a concrete store — dependency arrows point inward only
    - RemoteTransaction: all reads happen before any write; commit is all-or-nothing;
      a document read in the transaction and changed by someone else before commit
      raises ConflictError
    - QueueStorage: every mutating call is durable when it returns

Design Decisions:
    - Protocol over ABC: structural subtyping, test fakes need no inheritance
    - Async in Protocol: implementations do IO; pure core functions never await
"""

from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol


class Clock(Protocol):
    """Injected time source."""
    def now(self) -> datetime: ...


class RemoteTransaction(Protocol):
    """Optimistic read-modify-write unit over several documents."""
    async def get(self, collection: str, doc_id: str) -> dict | None: ...
    def set(
        self, collection: str, doc_id: str, data: dict, merge: bool = False,
    ) -> None: ...
    def update(self, collection: str, doc_id: str, partial: dict) -> None: ...


class RemoteStore(Protocol):
    """Remote document database consumed by the core."""
    async def get(self, collection: str, doc_id: str) -> dict | None: ...
    async def set(
        self, collection: str, doc_id: str, data: dict, merge: bool = False,
    ) -> None: ...
    async def update(self, collection: str, doc_id: str, partial: dict) -> None: ...
    async def atomic_multi_update(self, writes: list["DocumentWrite"]) -> None: ...
    def transaction(self) -> AbstractAsyncContextManager[RemoteTransaction]: ...
    async def is_reachable(self) -> bool: ...


SET = "set"
MERGE = "merge"
UPDATE = "update"


@dataclass(frozen=True)
class DocumentWrite:
    """One write in a commit: set (replace), merge, or update (document must exist)."""
    op: str
    collection: str
    doc_id: str
    data: dict


class QueueStorage(Protocol):
    """Durable local persistence for the action queue."""
    async def load_pending(self) -> list[dict]: ...
    async def load_dead_letters(self) -> list[dict]: ...
    async def insert_pending(self, record: dict) -> int: ...
    async def update_pending(self, action_id: str, attempts: int, last_error: str | None) -> None: ...
    async def delete_pending(self, action_id: str) -> None: ...
    async def move_to_dead_letter(
        self, record: dict, last_error: str, dead_lettered_at: datetime,
    ) -> None: ...


class KeyValueCache(Protocol):
    """Local document cache used for offline reads."""
    async def put(self, key: str, data: dict[str, Any], cached_at: datetime) -> None: ...
    async def get(self, key: str) -> tuple[dict[str, Any], datetime] | None: ...
    async def delete_older_than(self, cutoff: datetime) -> int: ...
    async def clear(self) -> None: ...
    async def total_size(self) -> int: ...


class EventBufferStorage(Protocol):
    """Local buffer for fire-and-forget analytics events."""
    async def append(self, event: dict[str, Any]) -> None: ...
    async def load_all(self) -> list[tuple[int, dict[str, Any]]]: ...
    async def delete_ids(self, ids: list[int]) -> None: ...
