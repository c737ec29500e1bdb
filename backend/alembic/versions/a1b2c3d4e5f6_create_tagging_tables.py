"""Create tags, logs and association tables.

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-19 00:00:00.000000

This migration:
1. Creates the tags table with a unique lower-cased name_key
2. Creates the logs table
3. Creates log_tag_associations (ordered log -> tag references)
4. Creates tag_associations (ordered tag -> tag references, no self links)
"""
from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "a1b2c3d4e5f6"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    """Create tagging tables."""
    # 1. tags
    op.create_table(
        "tags",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("name_key", sa.String(100), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column("created_by", sa.String(64), nullable=False),
        sa.Column("usage_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_tags_usage_count", "tags", ["usage_count"])
    op.create_index("ix_tags_updated_at", "tags", ["updated_at"])

    # 2. logs
    op.create_table(
        "logs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("title", sa.String(200), nullable=True),
        sa.Column("content_md", sa.Text(), nullable=False),
        sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_logs_user_id", "logs", ["user_id"])
    op.create_index("ix_logs_is_public_created_at", "logs", ["is_public", "created_at"])

    # 3. log_tag_associations
    op.create_table(
        "log_tag_associations",
        sa.Column(
            "log_id",
            sa.String(36),
            sa.ForeignKey("logs.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "tag_id",
            sa.String(36),
            sa.ForeignKey("tags.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("association_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_log_tag_associations_tag_id", "log_tag_associations", ["tag_id"])
    op.create_index(
        "ix_log_tag_associations_tag_log", "log_tag_associations", ["tag_id", "log_id"]
    )

    # 4. tag_associations
    op.create_table(
        "tag_associations",
        sa.Column(
            "tag_id",
            sa.String(36),
            sa.ForeignKey("tags.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "associated_tag_id",
            sa.String(36),
            sa.ForeignKey("tags.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("association_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "tag_id != associated_tag_id", name="ck_tag_associations_no_self"
        ),
    )
    op.create_index(
        "ix_tag_associations_associated_tag_id",
        "tag_associations",
        ["associated_tag_id"],
    )


def downgrade() -> None:
    """Drop tagging tables."""
    op.drop_index("ix_tag_associations_associated_tag_id", table_name="tag_associations")
    op.drop_table("tag_associations")
    op.drop_index("ix_log_tag_associations_tag_log", table_name="log_tag_associations")
    op.drop_index("ix_log_tag_associations_tag_id", table_name="log_tag_associations")
    op.drop_table("log_tag_associations")
    op.drop_index("ix_logs_is_public_created_at", table_name="logs")
    op.drop_index("ix_logs_user_id", table_name="logs")
    op.drop_table("logs")
    op.drop_index("ix_tags_updated_at", table_name="tags")
    op.drop_index("ix_tags_usage_count", table_name="tags")
    op.drop_table("tags")
