"""TagAssociation model for tag-to-tag references."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from hobbylog.db.base import Base


class TagAssociation(Base):
    """Ordered reference from a tag's description to another tag.

    ``tag_id`` is the referring tag, ``associated_tag_id`` the tag it mentions.
    """

    __tablename__ = "tag_associations"

    # Composite primary key via foreign keys
    tag_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True
    )
    associated_tag_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True
    )

    # Zero-based position in the referring tag's description
    association_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    # Indexes
    __table_args__ = (
        CheckConstraint("tag_id != associated_tag_id", name="ck_tag_associations_no_self"),
        Index("ix_tag_associations_associated_tag_id", "associated_tag_id"),
    )
