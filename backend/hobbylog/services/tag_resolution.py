"""Turn explicit tag names plus hashtags in text into persisted tags."""

from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from hobbylog.core.logging import get_logger
from hobbylog.db.models import Tag, tag_name_key
from hobbylog.services.hashtag import extract_hashtags
from hobbylog.services.tag_store import TagStore, validate_tag_name

logger = get_logger(__name__)


def merge_tag_names(explicit_names: Sequence[str], text: str | None) -> list[str]:
    """Combine explicit names and hashtags from ``text`` into one ordered list.

    Explicit names come first in the order given, followed by hashtags in
    order of appearance. Names are deduplicated case-insensitively, keeping
    the spelling of the first occurrence.

    Raises:
        ValidationError: If any name is blank or too long.
    """
    merged: dict[str, str] = {}
    for name in [*explicit_names, *extract_hashtags(text)]:
        trimmed = validate_tag_name(name)
        merged.setdefault(tag_name_key(trimmed), trimmed)
    return list(merged.values())


class TagResolutionService:
    """Resolve tag references with a bounded number of store round trips."""

    def __init__(self, db: AsyncSession, tag_store: TagStore | None = None):
        """Initialize the resolution service.

        Args:
            db: The database session.
            tag_store: Store to resolve against; one is created on ``db`` if
                not given.
        """
        self.db = db
        self.tag_store = tag_store or TagStore(db)

    async def resolve(
        self,
        explicit_names: Sequence[str],
        text: str | None,
        owner_id: str,
    ) -> list[Tag]:
        """Resolve explicit names and hashtags in ``text`` to tags.

        Missing tags are created with ``owner_id`` as their creator. All names
        are validated before the store is touched.

        Args:
            explicit_names: Names supplied directly by the caller.
            text: Markdown to scan for hashtags.
            owner_id: The acting user.

        Returns:
            Tags in merged order: explicit names first, then hashtags. This is
            the order persisted as ``association_order``.
        """
        return await self.resolve_names(merge_tag_names(explicit_names, text), owner_id)

    async def resolve_names(self, names: Sequence[str], owner_id: str) -> list[Tag]:
        """Resolve names already merged by :func:`merge_tag_names`."""
        if not names:
            return []

        resolved = await self.tag_store.find_or_create_batch(names, owner_id)
        tags = [resolved[name] for name in names]

        logger.debug("tags_resolved", count=len(tags), owner_id=owner_id)
        return tags
