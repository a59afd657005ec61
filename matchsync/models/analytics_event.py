"""AnalyticsEventRecord ORM — locally buffered telemetry awaiting a batch flush."""

from datetime import datetime, timezone

from sqlalchemy import Integer, DateTime, JSON
from sqlalchemy.orm import Mapped, mapped_column

from matchsync.db.base import Base


class AnalyticsEventRecord(Base):
    __tablename__ = "analytics_buffer"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event: Mapped[dict] = mapped_column(JSON, nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
