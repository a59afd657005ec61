"""ORM Models — SQLAlchemy declarative models for local and remote tables.

Invariants:
    - All models inherit from Base (db/base.py)
    - LOCAL_TABLES live on the device database, REMOTE_TABLES on the remote store

Design Decisions:
    - One file per table for locality (ADR: max 3-4 files to understand a feature)
    - All models imported here so Base.metadata is complete before create_all / alembic
"""

from matchsync.models.document import Document  # noqa: F401
from matchsync.models.pending_action import PendingActionRecord  # noqa: F401
from matchsync.models.dead_letter import DeadLetterRecord  # noqa: F401
from matchsync.models.analytics_event import AnalyticsEventRecord  # noqa: F401
from matchsync.models.cached_document import CachedDocument  # noqa: F401

LOCAL_TABLES = [
    PendingActionRecord.__table__,
    DeadLetterRecord.__table__,
    AnalyticsEventRecord.__table__,
    CachedDocument.__table__,
]
REMOTE_TABLES = [Document.__table__]
