"""Tag service for creating, editing and browsing tags."""

from __future__ import annotations

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from hobbylog.core.config import settings
from hobbylog.core.logging import get_logger
from hobbylog.db.models import (
    AssociationKind,
    AssociationSort,
    Tag,
    TagRevision,
    tag_name_key,
)
from hobbylog.services.association import AssociationService
from hobbylog.services.exceptions import (
    PermissionDeniedError,
    SelfReferenceError,
    TagNotFoundError,
)
from hobbylog.services.log import LogService, log_to_dict
from hobbylog.services.tag_resolution import merge_tag_names
from hobbylog.services.tag_revision import TagRevisionStore
from hobbylog.services.tag_store import (
    TagStore,
    validate_tag_description,
    validate_tag_metadata,
    validate_tag_name,
)

logger = get_logger(__name__)


def reject_self_reference(
    tag_id: str | None, name: str, description: str | None
) -> None:
    """Raise if ``description`` mentions the tag called ``name``.

    Raises:
        ValidationError: If a hashtag in the description is malformed.
        SelfReferenceError: If one of its hashtags resolves to ``name``.
    """
    key = tag_name_key(name)
    if any(tag_name_key(n) == key for n in merge_tag_names([], description)):
        raise SelfReferenceError(tag_id)


def tag_to_dict(tag: Tag) -> dict[str, Any]:
    """Serialize a tag for API responses."""
    return {
        "id": tag.id,
        "name": tag.name,
        "description": tag.description,
        "metadata": tag.tag_metadata or {},
        "created_by": tag.created_by,
        "usage_count": tag.usage_count,
        "created_at": tag.created_at,
        "updated_at": tag.updated_at,
    }


class TagService:
    """Service for tags and the tag-to-tag reference graph.

    Creating a tag or changing its name or description re-resolves the
    hashtags in its description into ``tag_associations``.
    """

    def __init__(self, db: AsyncSession):
        """Initialize the tag service.

        Args:
            db: The database session.
        """
        self.db = db
        self.store = TagStore(db)
        self.associations = AssociationService(db, self.store)
        self.revisions = TagRevisionStore(db)

    async def get_tag(self, tag_id_or_name: str) -> Tag:
        """Get a tag by name (case-insensitive) or id.

        Raises:
            TagNotFoundError: If neither matches.
        """
        return await self.store.get(tag_id_or_name)

    async def create_tag(
        self,
        name: str,
        created_by: str,
        description: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> tuple[Tag, bool]:
        """Create a tag, or return the existing one with the same name.

        A name matching an existing tag case-insensitively returns that tag
        untouched; the supplied description and metadata are ignored. A new
        tag gets revision 0.

        Args:
            name: The tag name.
            created_by: The acting user.
            description: Optional Markdown description, scanned for hashtags.
            metadata: Optional free-form metadata.

        Returns:
            The tag and whether this call created it.

        Raises:
            ValidationError: If any field is invalid.
            SelfReferenceError: If the description references the tag itself.
        """
        name = validate_tag_name(name)
        description = validate_tag_description(description)
        metadata = validate_tag_metadata(metadata)

        existing = await self.store.find_by_name(name)
        if existing is not None:
            logger.debug("tag_create_existing", tag_id=existing.id, name=existing.name)
            return existing, False

        reject_self_reference(None, name, description)

        batch = await self.store.find_or_create([name], created_by)
        tag = batch.lookup(name)
        if not batch.was_created(tag):
            # Created by a concurrent request since the lookup above
            logger.debug("tag_create_existing", tag_id=tag.id, name=tag.name)
            return tag, False

        tag.description = description
        tag.tag_metadata = metadata
        await self.db.flush()

        if description:
            await self.associations.associate(
                tag.id, AssociationKind.TAG, [], description, created_by
            )
        await self.revisions.record(tag, created_by)

        logger.info("tag_created", tag_id=tag.id, name=tag.name, created_by=created_by)
        return tag, True

    async def update_tag(
        self,
        tag_id_or_name: str,
        changes: dict[str, Any],
        user_id: str,
    ) -> Tag:
        """Update a tag owned by ``user_id`` and append a revision.

        The self-reference check runs before anything is written.

        Args:
            tag_id_or_name: Tag id or name.
            changes: Subset of ``name``, ``description``, ``metadata``.
            user_id: The acting user.

        Raises:
            TagNotFoundError: If the tag does not exist.
            PermissionDeniedError: If the user did not create the tag.
            TagConflictError: If renaming onto another tag's name.
            SelfReferenceError: If the description would reference the tag.
        """
        tag = await self.get_tag(tag_id_or_name)
        if tag.created_by != user_id:
            raise PermissionDeniedError("Not tag owner")

        relink = "name" in changes or "description" in changes
        if relink:
            reject_self_reference(
                tag.id,
                validate_tag_name(changes["name"]) if "name" in changes else tag.name,
                validate_tag_description(changes["description"])
                if "description" in changes
                else tag.description,
            )

        tag = await self.store.update(tag.id, changes)

        if relink:
            await self.associations.associate(
                tag.id, AssociationKind.TAG, [], tag.description, user_id
            )
        await self.revisions.record(tag, user_id)

        return tag

    async def get_revisions(self, tag_id_or_name: str) -> list[TagRevision]:
        """Edit history of a tag, revision 0 first."""
        tag = await self.get_tag(tag_id_or_name)
        return await self.revisions.list_for_tag(tag.id)

    async def get_associations(
        self,
        tag_id_or_name: str,
        sort: AssociationSort | str = AssociationSort.ORDER,
    ) -> list[Tag]:
        """Tags referenced by a tag's description."""
        tag = await self.get_tag(tag_id_or_name)
        if AssociationSort(sort) is AssociationSort.RECENT:
            return await self.associations.get_recent(tag.id, AssociationKind.TAG)
        return await self.associations.get_ordered(tag.id, AssociationKind.TAG)

    async def get_referrers(
        self, tag_id_or_name: str, limit: int | None = None
    ) -> list[Tag]:
        """Tags whose descriptions reference this tag, newest link first."""
        tag = await self.get_tag(tag_id_or_name)
        return await self.associations.get_referrers(tag.id, limit)

    async def add_tag_association(
        self,
        tag_id_or_name: str,
        associated_tag_id: str,
        user_id: str,
    ) -> bool:
        """Manually append a reference from one tag to another.

        Returns:
            True if added, False if it already existed.
        """
        tag = await self.get_tag(tag_id_or_name)
        if tag.created_by != user_id:
            raise PermissionDeniedError("Not tag owner")

        target = await self.store.find_by_id(associated_tag_id)
        if target is None:
            raise TagNotFoundError("Associated tag not found")

        return await self.associations.store(AssociationKind.TAG).add_association(
            tag.id, target.id
        )

    async def remove_tag_association(
        self,
        tag_id_or_name: str,
        associated_tag_id: str,
        user_id: str,
    ) -> bool:
        """Manually remove a reference from one tag to another.

        Returns:
            True if removed, False if it did not exist.
        """
        tag = await self.get_tag(tag_id_or_name)
        if tag.created_by != user_id:
            raise PermissionDeniedError("Not tag owner")

        return await self.associations.store(AssociationKind.TAG).remove_association(
            tag.id, associated_tag_id
        )

    async def get_tag_detail(self, tag_id_or_name: str) -> dict[str, Any]:
        """Get a tag with its references, referrers and recent logs.

        Returns:
            Tag fields plus ``associated_tags``, ``referring_tags``,
            ``log_count`` and ``recent_logs``.
        """
        tag = await self.get_tag(tag_id_or_name)

        associated = await self.associations.get_ordered(tag.id, AssociationKind.TAG)
        referrers = await self.associations.get_referrers(tag.id)
        log_count = await self.associations.store(AssociationKind.LOG).count_for_tag(tag.id)
        recent_logs = await LogService(self.db).list_recent_logs_for_tag(
            tag.id, settings.recent_logs_limit
        )

        return {
            **tag_to_dict(tag),
            "associated_tags": [tag_to_dict(t) for t in associated],
            "referring_tags": [tag_to_dict(t) for t in referrers],
            "log_count": log_count,
            "recent_logs": [log_to_dict(log) for log in recent_logs],
        }

    async def search_tags(
        self,
        query: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> dict[str, Any]:
        """Search tags by name or description.

        Returns:
            Dictionary with ``items``, ``total``, ``limit``, ``offset`` and
            ``has_more``.
        """
        tags, total = await self.store.search(query, limit=limit, offset=offset)
        return {
            "items": tags,
            "total": total,
            "limit": limit,
            "offset": offset,
            "has_more": offset + limit < total,
        }

    async def get_popular_tags(self, limit: int = 20) -> list[Tag]:
        """Get the most referenced tags."""
        return await self.store.popular(limit)
