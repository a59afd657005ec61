"""PendingActionRecord ORM — durable queue row on the device database.

Invariants:
    - seq is the autoincrement primary key and defines processing order
    - id (uuid string) is unique and is the remote idempotency key
    - payload is stored as JSON text and decoded by the storage adapter

Design Decisions:
    - Text over JSON column for payload: a corrupt row fails to decode on its own
      instead of failing the whole load (ADR: startup never blocked by one bad record)
    - entity_key denormalized: drain grouping needs no payload parsing in SQL
"""

from datetime import datetime

from sqlalchemy import String, Text, Integer, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from matchsync.db.base import Base


class PendingActionRecord(Base):
    """Queued action awaiting remote confirmation."""
    __tablename__ = "pending_actions"

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(36), unique=True, nullable=False)
    kind: Mapped[str] = mapped_column(String(32), nullable=False)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    entity_key: Mapped[str] = mapped_column(String(400), nullable=False, index=True)
    enqueued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
