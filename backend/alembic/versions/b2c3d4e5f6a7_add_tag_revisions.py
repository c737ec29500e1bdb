"""Add tag revision history and widen tags.name_key.

Revision ID: b2c3d4e5f6a7
Revises: a1b2c3d4e5f6
Create Date: 2026-10-19 12:00:00.000000

This migration:
1. Creates tag_revisions (one snapshot per tag create or update)
2. Widens tags.name_key to hold lower-cased names that grew in length
"""
from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "b2c3d4e5f6a7"
down_revision: str | None = "a1b2c3d4e5f6"
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    """Create tag_revisions and widen name_key."""
    # 1. tag_revisions
    op.create_table(
        "tag_revisions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "tag_id",
            sa.String(36),
            sa.ForeignKey("tags.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("revision_number", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column("created_by", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint(
            "tag_id", "revision_number", name="uq_tag_revisions_number"
        ),
    )
    op.create_index("ix_tag_revisions_tag_id", "tag_revisions", ["tag_id"])

    # 2. tags.name_key (batch mode so SQLite recreates the table)
    with op.batch_alter_table("tags") as batch_op:
        batch_op.alter_column(
            "name_key",
            existing_type=sa.String(100),
            type_=sa.String(200),
            existing_nullable=False,
        )


def downgrade() -> None:
    """Drop tag_revisions and restore the original name_key width."""
    with op.batch_alter_table("tags") as batch_op:
        batch_op.alter_column(
            "name_key",
            existing_type=sa.String(200),
            type_=sa.String(100),
            existing_nullable=False,
        )

    op.drop_index("ix_tag_revisions_tag_id", table_name="tag_revisions")
    op.drop_table("tag_revisions")
