"""Comment and notification lookup indexes

Revision ID: 0002_lookup_indexes
Revises: 0001_initial_schema
Create Date: 2026-10-19

"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0002_lookup_indexes"
down_revision = "0001_initial_schema"
branch_labels = None
depends_on = None

INDEXES: list[tuple[str, str, list[str]]] = [
    ("comments", "ix_comments_entity", ["entity_type", "entity_id"]),
    ("notifications", "ix_notifications_recipient_unread", ["recipient_id", "is_read"]),
]


def _existing_indexes(table: str) -> set[str]:
    insp = sa.inspect(op.get_bind())
    if table not in insp.get_table_names():
        return set()
    return {idx["name"] for idx in insp.get_indexes(table)}


def upgrade() -> None:
    # 0001 builds from current metadata, so these may already exist
    for table, name, columns in INDEXES:
        if name not in _existing_indexes(table):
            op.create_index(name, table, columns, unique=False)


def downgrade() -> None:
    for table, name, _columns in INDEXES:
        if name in _existing_indexes(table):
            op.drop_index(name, table_name=table)
