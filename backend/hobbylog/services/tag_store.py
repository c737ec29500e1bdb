"""Tag persistence with case-insensitive, race-tolerant batch creation."""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, insert, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from hobbylog.core.config import settings
from hobbylog.core.logging import get_logger
from hobbylog.db.models import Tag, tag_name_key
from hobbylog.services.exceptions import (
    StorageError,
    TagConflictError,
    TagNotFoundError,
    ValidationError,
)

logger = get_logger(__name__)

# Fields a caller may change through TagStore.update
UPDATABLE_FIELDS = frozenset({"name", "description", "metadata"})


def validate_tag_name(name: Any) -> str:
    """Validate a tag name and return it trimmed.

    Raises:
        ValidationError: If the name is not a string, is blank, or is too long.
    """
    if not isinstance(name, str):
        raise ValidationError("Tag name must be a string")
    trimmed = name.strip()
    if not trimmed:
        raise ValidationError("Tag name must not be empty")
    if len(trimmed) > settings.tag_name_max_length:
        raise ValidationError(
            f"Tag name must be {settings.tag_name_max_length} characters or fewer"
        )
    return trimmed


def validate_tag_description(description: Any) -> str | None:
    """Validate an optional tag description."""
    if description is None:
        return None
    if not isinstance(description, str):
        raise ValidationError("Description must be a string or null")
    if len(description) > settings.tag_description_max_length:
        raise ValidationError(
            f"Description must be {settings.tag_description_max_length} characters or fewer"
        )
    return description


def validate_tag_metadata(metadata: Any) -> dict[str, Any]:
    """Validate tag metadata, treating ``None`` as an empty map."""
    if metadata is None:
        return {}
    if not isinstance(metadata, dict):
        raise ValidationError("Metadata must be an object")
    return metadata


def chunked(items: Sequence[Any], size: int) -> Iterable[Sequence[Any]]:
    """Split a sequence into consecutive slices of at most ``size`` items."""
    for start in range(0, len(items), size):
        yield items[start:start + size]


@dataclass
class TagBatch:
    """Result of a batch find-or-create.

    Attributes:
        tags: Resolved tags keyed by case-insensitive name key.
        created: Tags inserted by this call, in request order.
    """

    tags: dict[str, Tag] = field(default_factory=dict)
    created: list[Tag] = field(default_factory=list)

    def lookup(self, name: str) -> Tag:
        """Return the tag resolved for ``name`` (any casing)."""
        return self.tags[tag_name_key(name)]

    def was_created(self, tag: Tag) -> bool:
        return any(created.id == tag.id for created in self.created)


class TagStore:
    """CRUD and batch lookup/insert over the ``tags`` table.

    The batch primitives ``fetch_by_keys`` and ``insert_many`` are the only
    places that issue multi-row tag queries; everything else composes them.
    """

    def __init__(self, db: AsyncSession, batch_size: int | None = None):
        """Initialize the tag store.

        Args:
            db: The database session.
            batch_size: Maximum bound parameters per statement. Defaults to
                ``settings.db_batch_size``.
        """
        self.db = db
        self.batch_size = batch_size or settings.db_batch_size

    # -------------------------------------------------------------------------
    # Single-row lookups
    # -------------------------------------------------------------------------

    async def find_by_id(self, tag_id: str) -> Tag | None:
        return await self.db.get(Tag, tag_id)

    async def find_by_name(self, name: str) -> Tag | None:
        """Look up a tag by name, ignoring case."""
        key = tag_name_key(name)
        if not key:
            return None
        result = await self.db.execute(select(Tag).where(Tag.name_key == key))
        return result.scalar_one_or_none()

    async def find_by_id_or_name(self, value: str) -> Tag | None:
        """Look up a tag by name first, then by id."""
        tag = await self.find_by_name(value)
        if tag is None:
            tag = await self.find_by_id(value)
        return tag

    async def get(self, value: str) -> Tag:
        """Like ``find_by_id_or_name`` but raises when nothing matches."""
        tag = await self.find_by_id_or_name(value)
        if tag is None:
            raise TagNotFoundError()
        return tag

    # -------------------------------------------------------------------------
    # Batch primitives
    # -------------------------------------------------------------------------

    async def fetch_by_keys(self, keys: Sequence[str]) -> dict[str, Tag]:
        """Fetch every tag whose name key is in ``keys``.

        Returns:
            Mapping of name key to Tag for the keys that exist.
        """
        found: dict[str, Tag] = {}
        for chunk in chunked(list(keys), self.batch_size):
            result = await self.db.execute(select(Tag).where(Tag.name_key.in_(chunk)))
            for tag in result.scalars():
                found[tag.name_key] = tag
        return found

    async def insert_many(self, rows: Sequence[dict[str, Any]]) -> None:
        """Insert tag rows as a single executemany batch."""
        if rows:
            await self.db.execute(insert(Tag), list(rows))

    # -------------------------------------------------------------------------
    # Find-or-create
    # -------------------------------------------------------------------------

    async def find_or_create(self, names: Sequence[str], owner_id: str) -> TagBatch:
        """Resolve names to tags, creating the missing ones in one batch.

        Names are folded by case-insensitive key; the first spelling of a key
        is the one stored for a new tag. If a concurrent writer inserts one of
        the names first, the unique constraint on ``name_key`` rejects our
        insert; the savepoint is rolled back, the winning rows are re-read and
        only the still-missing names are inserted again.

        Args:
            names: Tag names, possibly repeated or differently cased.
            owner_id: User recorded as ``created_by`` on new tags.

        Returns:
            The resolved tags and which of them this call created.

        Raises:
            ValidationError: If any name is blank or too long.
            StorageError: If inserts keep conflicting after all retries.
        """
        spelling: dict[str, str] = {}
        for name in names:
            trimmed = validate_tag_name(name)
            spelling.setdefault(tag_name_key(trimmed), trimmed)

        batch = TagBatch()
        if not spelling:
            return batch

        batch.tags = await self.fetch_by_keys(list(spelling))
        missing = [key for key in spelling if key not in batch.tags]

        attempt = 0
        while missing:
            attempt += 1
            now = datetime.now(timezone.utc)
            rows = [
                {
                    "id": str(uuid.uuid4()),
                    "name": spelling[key],
                    "name_key": key,
                    "description": None,
                    "tag_metadata": {},
                    "created_by": owner_id,
                    "usage_count": 0,
                    "created_at": now,
                    "updated_at": now,
                }
                for key in missing
            ]

            try:
                async with self.db.begin_nested():
                    await self.insert_many(rows)
            except IntegrityError as e:
                logger.info(
                    "tag_insert_conflict",
                    names=[spelling[key] for key in missing],
                    attempt=attempt,
                )
                if attempt >= settings.tag_conflict_retries:
                    raise StorageError(
                        "Could not create tags after repeated name conflicts"
                    ) from e
                batch.tags.update(await self.fetch_by_keys(missing))
                missing = [key for key in missing if key not in batch.tags]
                continue

            inserted = await self.fetch_by_keys(missing)
            batch.tags.update(inserted)
            batch.created.extend(inserted[key] for key in missing if key in inserted)
            missing = [key for key in missing if key not in inserted]

        if batch.created:
            logger.info(
                "tags_created",
                count=len(batch.created),
                names=[tag.name for tag in batch.created],
                created_by=owner_id,
            )

        return batch

    async def find_or_create_batch(
        self, names: Sequence[str], owner_id: str
    ) -> dict[str, Tag]:
        """Resolve names to tags, creating missing ones.

        Returns:
            Mapping from every input name (as given) to its Tag.
        """
        batch = await self.find_or_create(names, owner_id)
        return {name: batch.lookup(name) for name in names}

    # -------------------------------------------------------------------------
    # Updates
    # -------------------------------------------------------------------------

    async def update(self, tag_id: str, changes: dict[str, Any]) -> Tag:
        """Update name, description and/or metadata of a tag.

        Does not touch associations; re-resolving the description is the
        caller's job.

        Args:
            tag_id: The tag ID.
            changes: Subset of ``name``, ``description``, ``metadata``.

        Raises:
            ValidationError: If no fields are given or a value is invalid.
            TagNotFoundError: If the tag does not exist.
            TagConflictError: If the new name belongs to another tag.
        """
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown tag fields: {', '.join(sorted(unknown))}")
        if not changes:
            raise ValidationError("No fields to update")

        name = validate_tag_name(changes["name"]) if "name" in changes else None
        description = (
            validate_tag_description(changes["description"])
            if "description" in changes
            else None
        )
        metadata = (
            validate_tag_metadata(changes["metadata"]) if "metadata" in changes else None
        )

        tag = await self.find_by_id(tag_id)
        if tag is None:
            raise TagNotFoundError()

        if name is not None:
            key = tag_name_key(name)
            if key != tag.name_key:
                other = await self.find_by_name(name)
                if other is not None and other.id != tag.id:
                    raise TagConflictError(name)
            tag.name = name
            tag.name_key = key
        if "description" in changes:
            tag.description = description
        if metadata is not None:
            tag.tag_metadata = metadata
        tag.updated_at = datetime.now(timezone.utc)

        try:
            await self.db.flush()
        except IntegrityError as e:
            # Another request took the name between our check and the flush
            raise TagConflictError(name or tag.name) from e

        logger.info("tag_updated", tag_id=tag.id, fields=sorted(changes))
        return tag

    # -------------------------------------------------------------------------
    # Listing
    # -------------------------------------------------------------------------

    async def search(
        self,
        query: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Tag], int]:
        """Search tags by name or description, newest update first.

        Args:
            query: Case-insensitive substring; ``None`` or blank lists all tags.
            limit: Maximum results to return.
            offset: Number of results to skip.

        Returns:
            The page of tags and the total number of matches.
        """
        conditions = []
        needle = (query or "").strip().lower()
        if needle:
            conditions.append(
                or_(
                    Tag.name_key.contains(needle, autoescape=True),
                    func.lower(Tag.description).contains(needle, autoescape=True),
                )
            )

        total = (
            await self.db.execute(select(func.count(Tag.id)).where(*conditions))
        ).scalar() or 0

        result = await self.db.execute(
            select(Tag)
            .where(*conditions)
            .order_by(Tag.updated_at.desc(), Tag.name_key)
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all()), total

    async def popular(self, limit: int = 20) -> list[Tag]:
        """Get the most referenced tags."""
        result = await self.db.execute(
            select(Tag)
            .where(Tag.usage_count > 0)
            .order_by(Tag.usage_count.desc(), Tag.name_key)
            .limit(limit)
        )
        return list(result.scalars().all())
