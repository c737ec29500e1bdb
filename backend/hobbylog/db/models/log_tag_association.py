"""LogTagAssociation model for log-tag references."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from hobbylog.db.base import Base


class LogTagAssociation(Base):
    """Ordered reference from a log to a tag it mentions."""

    __tablename__ = "log_tag_associations"

    # Composite primary key via foreign keys
    log_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("logs.id", ondelete="CASCADE"), primary_key=True
    )
    tag_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True
    )

    # Zero-based position in the log's tag list
    association_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    # Indexes
    __table_args__ = (
        Index("ix_log_tag_associations_tag_id", "tag_id"),
        Index("ix_log_tag_associations_tag_log", "tag_id", "log_id"),
    )
