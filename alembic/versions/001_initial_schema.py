"""Initial schema — remote documents, or the local queue/dead-letter/analytics/cache tables.

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-17

Run with `-x db=remote` (default) for the document store, `-x db=local` for the
device database.
"""
from typing import Sequence, Union

from alembic import context, op
import sqlalchemy as sa

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _is_local() -> bool:
    return context.get_x_argument(as_dictionary=True).get("db", "remote") == "local"


def upgrade() -> None:
    if not _is_local():
        op.create_table(
            "documents",
            sa.Column("collection", sa.String(64), primary_key=True),
            sa.Column("doc_id", sa.String(300), primary_key=True),
            sa.Column("data", sa.JSON, nullable=False),
            sa.Column("version", sa.Integer, nullable=False, server_default="1"),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        )
        return

    op.create_table(
        "pending_actions",
        sa.Column("seq", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("id", sa.String(36), nullable=False, unique=True),
        sa.Column("kind", sa.String(32), nullable=False),
        sa.Column("payload", sa.Text, nullable=False),
        sa.Column("entity_key", sa.String(400), nullable=False),
        sa.Column("enqueued_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("attempts", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text, nullable=True),
    )
    op.create_index("ix_pending_actions_entity_key", "pending_actions", ["entity_key"])

    op.create_table(
        "dead_letters",
        sa.Column("pk", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("original_seq", sa.Integer, nullable=True),
        sa.Column("kind", sa.String(32), nullable=False),
        sa.Column("payload", sa.Text, nullable=False),
        sa.Column("enqueued_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("attempts", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text, nullable=False),
        sa.Column("dead_lettered_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_dead_letters_id", "dead_letters", ["id"])

    op.create_table(
        "analytics_buffer",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("event", sa.JSON, nullable=False),
        sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "cached_documents",
        sa.Column("key", sa.String(400), primary_key=True),
        sa.Column("data", sa.JSON, nullable=False),
        sa.Column("cached_at", sa.DateTime(timezone=True), nullable=False),
    )


def downgrade() -> None:
    if not _is_local():
        op.drop_table("documents")
        return
    op.drop_table("cached_documents")
    op.drop_table("analytics_buffer")
    op.drop_index("ix_dead_letters_id", table_name="dead_letters")
    op.drop_table("dead_letters")
    op.drop_index("ix_pending_actions_entity_key", table_name="pending_actions")
    op.drop_table("pending_actions")
