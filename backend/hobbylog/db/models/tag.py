"""Tag model for content references."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from hobbylog.db.base import Base


def tag_name_key(name: str) -> str:
    """Return the case-insensitive uniqueness key for a tag name."""
    return name.strip().lower()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Tag(Base):
    """A globally unique (case-insensitively) named tag.

    ``name`` keeps the spelling of whoever created the tag; ``name_key`` holds
    the lower-cased form and carries the unique constraint that makes
    concurrent creators converge on one row.
    """

    __tablename__ = "tags"

    # Primary key (generated client side so new tags can be referenced before commit)
    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )

    # Tag data
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    # lower() can lengthen a name ("\u0130" becomes two codepoints)
    name_key: Mapped[str] = mapped_column(String(200), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    # "metadata" is reserved on declarative classes
    tag_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSON, nullable=False, default=dict
    )

    # Ownership
    created_by: Mapped[str] = mapped_column(String(64), nullable=False)

    # Number of association rows pointing at this tag
    usage_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )

    __table_args__ = (
        Index("ix_tags_usage_count", "usage_count"),
        Index("ix_tags_updated_at", "updated_at"),
    )
