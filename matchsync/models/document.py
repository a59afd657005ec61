"""Document ORM — one remote document (collection + id) with an optimistic version.

Invariants:
    - (collection, doc_id) is the primary key
    - version starts at 1 and increments on every write
    - data is a flat JSON object; timestamps inside are ISO-8601 strings

Design Decisions:
    - Generic document table over per-entity tables: the remote store contract is a
      document database (get/set/update with array deltas), not a relational schema
    - version column enables compare-and-swap commits without row locks
"""

from datetime import datetime, timezone

from sqlalchemy import String, Integer, DateTime, JSON
from sqlalchemy.orm import Mapped, mapped_column

from matchsync.db.base import Base


class Document(Base):
    """Remote document row."""
    __tablename__ = "documents"

    collection: Mapped[str] = mapped_column(String(64), primary_key=True)
    doc_id: Mapped[str] = mapped_column(String(300), primary_key=True)
    data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
