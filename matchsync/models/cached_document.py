"""CachedDocument ORM — last-known copy of a remote document for offline reads.

Invariants:
    - key is "<collection>/<doc_id>"
    - cached_at drives age-based cleanup
"""

from datetime import datetime

from sqlalchemy import String, DateTime, JSON
from sqlalchemy.orm import Mapped, mapped_column

from matchsync.db.base import Base


class CachedDocument(Base):
    __tablename__ = "cached_documents"

    key: Mapped[str] = mapped_column(String(400), primary_key=True)
    data: Mapped[dict] = mapped_column(JSON, nullable=False)
    cached_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
