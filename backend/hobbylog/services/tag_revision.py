"""Numbered snapshots of tag state."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from hobbylog.core.logging import get_logger
from hobbylog.db.models import Tag, TagRevision

logger = get_logger(__name__)


def revision_to_dict(revision: TagRevision) -> dict[str, Any]:
    """Serialize a revision for API responses."""
    return {
        "id": revision.id,
        "tag_id": revision.tag_id,
        "revision_number": revision.revision_number,
        "name": revision.name,
        "description": revision.description,
        "metadata": revision.revision_metadata or {},
        "created_by": revision.created_by,
        "created_at": revision.created_at,
    }


class TagRevisionStore:
    """Append-only history over the ``tag_revisions`` table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(self, tag: Tag, user_id: str) -> TagRevision:
        """Snapshot the tag's current name, description and metadata.

        Numbers start at 0 and increase by one per snapshot of the same tag.
        """
        latest = (
            await self.db.execute(
                select(func.max(TagRevision.revision_number)).where(
                    TagRevision.tag_id == tag.id
                )
            )
        ).scalar()

        revision = TagRevision(
            tag_id=tag.id,
            revision_number=0 if latest is None else latest + 1,
            name=tag.name,
            description=tag.description,
            revision_metadata=dict(tag.tag_metadata or {}),
            created_by=user_id,
            created_at=datetime.now(timezone.utc),
        )
        self.db.add(revision)
        await self.db.flush()

        logger.debug(
            "tag_revision_recorded",
            tag_id=tag.id,
            revision_number=revision.revision_number,
        )
        return revision

    async def list_for_tag(self, tag_id: str) -> list[TagRevision]:
        """All revisions of a tag, oldest first."""
        result = await self.db.execute(
            select(TagRevision)
            .where(TagRevision.tag_id == tag_id)
            .order_by(TagRevision.revision_number)
        )
        return list(result.scalars().all())
