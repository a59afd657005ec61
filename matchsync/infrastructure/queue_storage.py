"""SQL Queue Storage — durable on-device persistence for pending actions and dead letters.

Invariants:
    - Every mutating method commits before returning (no fire-and-forget)
    - load_pending returns rows in seq order with payload decoded; rows whose payload is
      not valid JSON come back with payload=None and a "corrupt" marker, never raise
    - move_to_dead_letter inserts the dead letter and deletes the pending row in one commit
    - SQLAlchemy errors surface as LocalPersistenceError

Design Decisions:
    - SQLite file via aiosqlite by default: the device database survives process restarts
    - JSON encoded by hand into Text columns: isolates corruption to a single row
"""

import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncGenerator

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from matchsync.core.errors import LocalPersistenceError
from matchsync.models.dead_letter import DeadLetterRecord
from matchsync.models.pending_action import PendingActionRecord

logger = logging.getLogger(__name__)


class SqlQueueStorage:
    """QueueStorage implementation over the device database."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncGenerator[AsyncSession, None]:
        session = self._session_factory()
        try:
            yield session
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"Local queue storage error during {operation}: {e}")
            raise LocalPersistenceError(str(e), operation)
        finally:
            await session.close()

    async def load_pending(self) -> list[dict]:
        async with self._session("load_pending") as db:
            result = await db.execute(
                select(PendingActionRecord).order_by(PendingActionRecord.seq),
            )
            return [_pending_to_record(r) for r in result.scalars().all()]

    async def load_dead_letters(self) -> list[dict]:
        async with self._session("load_dead_letters") as db:
            result = await db.execute(
                select(DeadLetterRecord).order_by(DeadLetterRecord.pk),
            )
            return [
                {
                    "id": r.id,
                    "kind": r.kind,
                    "payload": _decode(r.payload),
                    "enqueued_at": r.enqueued_at,
                    "seq": r.original_seq,
                    "attempts": r.attempts,
                    "last_error": r.last_error,
                    "dead_lettered_at": r.dead_lettered_at,
                }
                for r in result.scalars().all()
            ]

    async def insert_pending(self, record: dict) -> int:
        """Persist a new action; returns its assigned seq."""
        async with self._session("insert_pending") as db:
            row = PendingActionRecord(
                id=record["id"],
                kind=record["kind"],
                payload=json.dumps(record["payload"], ensure_ascii=False),
                entity_key=record["entity_key"],
                enqueued_at=record["enqueued_at"],
                attempts=record.get("attempts", 0),
                last_error=record.get("last_error"),
            )
            db.add(row)
            await db.commit()
            return row.seq

    async def update_pending(
        self, action_id: str, attempts: int, last_error: str | None,
    ) -> None:
        async with self._session("update_pending") as db:
            await db.execute(
                update(PendingActionRecord)
                .where(PendingActionRecord.id == action_id)
                .values(attempts=attempts, last_error=last_error),
            )
            await db.commit()

    async def delete_pending(self, action_id: str) -> None:
        async with self._session("delete_pending") as db:
            await db.execute(
                delete(PendingActionRecord).where(PendingActionRecord.id == action_id),
            )
            await db.commit()

    async def move_to_dead_letter(
        self, record: dict, last_error: str, dead_lettered_at: datetime,
    ) -> None:
        async with self._session("move_to_dead_letter") as db:
            payload = record.get("payload")
            db.add(DeadLetterRecord(
                id=record["id"],
                original_seq=record.get("seq"),
                kind=str(record.get("kind")),
                payload=(
                    payload if isinstance(payload, str)
                    else json.dumps(payload, ensure_ascii=False)
                ),
                enqueued_at=record.get("enqueued_at"),
                attempts=record.get("attempts", 0),
                last_error=last_error,
                dead_lettered_at=dead_lettered_at,
            ))
            await db.execute(
                delete(PendingActionRecord).where(PendingActionRecord.id == record["id"]),
            )
            await db.commit()


def _decode(raw: str):
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        return None


def _pending_to_record(row: PendingActionRecord) -> dict:
    payload = _decode(row.payload)
    record = {
        "id": row.id,
        "kind": row.kind,
        "payload": payload,
        "enqueued_at": row.enqueued_at,
        "seq": row.seq,
        "attempts": row.attempts,
        "last_error": row.last_error,
    }
    if payload is None:
        record["corrupt"] = True
        record["raw_payload"] = row.payload
    return record
