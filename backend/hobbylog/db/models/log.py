"""Log model for user-written Markdown entries."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from hobbylog.db.base import Base


class Log(Base):
    """A Markdown log entry whose body is scanned for hashtags."""

    __tablename__ = "logs"

    # Primary key
    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )

    # Ownership (immutable after creation)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)

    # Content
    title: Mapped[str | None] = mapped_column(String(200), nullable=True)
    content_md: Mapped[str] = mapped_column(Text, nullable=False)
    is_public: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    # Indexes
    __table_args__ = (
        Index("ix_logs_user_id", "user_id"),
        Index("ix_logs_is_public_created_at", "is_public", "created_at"),
    )
