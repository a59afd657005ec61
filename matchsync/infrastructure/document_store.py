"""SQL Document Store — the remote document database over async SQLAlchemy.

Invariants:
    - Every write bumps the document version by exactly 1
    - A transaction commits only if every document it read still has the version it read
      (ConflictError otherwise) — genuine compare-and-swap, no read-then-blind-write
    - atomic_multi_update and transaction commits are all-or-nothing (one DB transaction)
    - update() on a missing document raises ResourceNotFoundError
    - SQLAlchemy exceptions never escape: IntegrityError -> ConflictError,
      OperationalError / DBAPIError / other -> TransientRemoteError

Design Decisions:
    - Core UPDATE ... WHERE version = :v over SELECT FOR UPDATE: works on SQLite and
      PostgreSQL alike and never holds row locks across awaits
    - Reads before writes (enforced): mirrors document-database transaction semantics so
      callers cannot accidentally read their own uncommitted writes
    - Writes staged per document: several deltas to one document in one commit collapse
      into a single versioned row update
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncGenerator

from sqlalchemy import insert, select, text, update
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from matchsync.core.errors import (
    ConflictError, MatchSyncError, ResourceNotFoundError, TransientRemoteError,
)
from matchsync.core.field_values import apply_partial, resolve_document
from matchsync.core.repository_protocols import (
    MERGE, SET, UPDATE, Clock, DocumentWrite,
)
from matchsync.infrastructure.clock import SystemClock
from matchsync.models.document import Document

logger = logging.getLogger(__name__)


class SqlTransaction:
    """Collects reads (with versions) and writes until the store commits them."""

    def __init__(self, session: AsyncSession):
        self._session = session
        self.reads: dict[tuple[str, str], int | None] = {}
        self.writes: list[DocumentWrite] = []

    async def get(self, collection: str, doc_id: str) -> dict | None:
        if self.writes:
            raise RuntimeError("transaction reads must happen before writes")
        row = await _select(self._session, collection, doc_id)
        self.reads[(collection, doc_id)] = row.version if row else None
        return dict(row.data) if row else None

    def set(self, collection: str, doc_id: str, data: dict, merge: bool = False) -> None:
        self.writes.append(DocumentWrite(MERGE if merge else SET, collection, doc_id, data))

    def update(self, collection: str, doc_id: str, partial: dict) -> None:
        self.writes.append(DocumentWrite(UPDATE, collection, doc_id, partial))


class SqlDocumentStore:
    """Remote store implementation: documents table with optimistic versions."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncGenerator[AsyncSession, None]:
        """Session with rollback and SQLAlchemy -> MatchSyncError mapping."""
        session = self._session_factory()
        try:
            yield session
        except MatchSyncError:
            await session.rollback()
            raise
        except IntegrityError as e:
            await session.rollback()
            logger.warning(f"Remote integrity conflict during {operation}: {e}")
            raise ConflictError(f"Concurrent write detected during {operation}")
        except (OperationalError, DBAPIError) as e:
            await session.rollback()
            logger.warning(f"Remote store unavailable during {operation}: {e}")
            raise TransientRemoteError("connection or operational error", operation)
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"Remote store error during {operation}: {e}")
            raise TransientRemoteError("database operation failed", operation)
        finally:
            await session.close()

    async def get(self, collection: str, doc_id: str) -> dict | None:
        async with self._session("get") as session:
            row = await _select(session, collection, doc_id)
            return dict(row.data) if row else None

    async def set(
        self, collection: str, doc_id: str, data: dict, merge: bool = False,
    ) -> None:
        await self.atomic_multi_update(
            [DocumentWrite(MERGE if merge else SET, collection, doc_id, data)],
        )

    async def update(self, collection: str, doc_id: str, partial: dict) -> None:
        await self.atomic_multi_update([DocumentWrite(UPDATE, collection, doc_id, partial)])

    async def atomic_multi_update(self, writes: list[DocumentWrite]) -> None:
        """Apply all writes in one DB transaction, or none."""
        if not writes:
            return
        async with self._session("batch") as session:
            async with session.begin():
                await _commit(session, {}, writes, self._clock.now())

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[SqlTransaction, None]:
        """Optimistic read-modify-write. Commits on clean exit; ConflictError if any read went stale."""
        async with self._session("transaction") as session:
            txn = SqlTransaction(session)
            yield txn
            if txn.writes:
                await _commit(session, txn.reads, txn.writes, self._clock.now())
            await session.commit()

    async def is_reachable(self) -> bool:
        """Connectivity probe (SELECT 1)."""
        try:
            async with self._session("probe") as session:
                await session.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.info(f"Remote store unreachable: {e}")
            return False


async def _select(session: AsyncSession, collection: str, doc_id: str):
    result = await session.execute(
        select(Document.data, Document.version)
        .where(Document.collection == collection)
        .where(Document.doc_id == doc_id),
    )
    return result.one_or_none()


async def _commit(
    session: AsyncSession,
    reads: dict[tuple[str, str], int | None],
    writes: list[DocumentWrite],
    now: datetime,
) -> None:
    """Validate read versions, stage writes per document, then CAS each row."""
    for (collection, doc_id), read_version in reads.items():
        row = await _select(session, collection, doc_id)
        current = row.version if row else None
        if current != read_version:
            raise ConflictError(
                f"{collection}/{doc_id} changed during transaction "
                f"(read v{read_version}, now v{current})",
            )

    staged: dict[tuple[str, str], tuple[dict, int | None]] = {}
    for write in writes:
        key = (write.collection, write.doc_id)
        if key in staged:
            base, version = staged[key]
        else:
            row = await _select(session, write.collection, write.doc_id)
            base, version = (dict(row.data), row.version) if row else (None, None)

        if write.op == UPDATE and base is None:
            raise ResourceNotFoundError(write.collection, write.doc_id)

        if write.op == SET:
            data = resolve_document(write.data, now)
        else:
            data = apply_partial(base, write.data, now)
        staged[key] = (data, version)

    for (collection, doc_id), (data, version) in staged.items():
        if version is None:
            await session.execute(
                insert(Document).values(
                    collection=collection, doc_id=doc_id,
                    data=data, version=1, updated_at=now,
                ),
            )
            continue
        result = await session.execute(
            update(Document)
            .where(Document.collection == collection)
            .where(Document.doc_id == doc_id)
            .where(Document.version == version)
            .values(data=data, version=version + 1, updated_at=now),
        )
        if result.rowcount != 1:
            raise ConflictError(f"{collection}/{doc_id} version moved past v{version}")
