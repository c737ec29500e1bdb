"""Link logs and tags to the tags their text references."""

from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from hobbylog.core.config import settings
from hobbylog.core.logging import get_logger
from hobbylog.db.models import AssociationKind, AssociationSort, Tag, tag_name_key
from hobbylog.services.association_store import AssociationStore
from hobbylog.services.exceptions import SelfReferenceError
from hobbylog.services.tag_resolution import TagResolutionService, merge_tag_names
from hobbylog.services.tag_store import TagStore

logger = get_logger(__name__)


class AssociationService:
    """Resolve-then-replace orchestration for both association kinds.

    Invoked on log creation, log content update, tag creation and tag
    description update. Associations are always recomputed from scratch
    from the latest text, never merged with what was stored before.
    """

    def __init__(self, db: AsyncSession, tag_store: TagStore | None = None):
        """Initialize the association service.

        Args:
            db: The database session.
            tag_store: Optional shared tag store.
        """
        self.db = db
        self.tag_store = tag_store or TagStore(db)
        self.resolver = TagResolutionService(db, self.tag_store)
        self._stores = {
            kind: AssociationStore(db, kind, batch_size=self.tag_store.batch_size)
            for kind in AssociationKind
        }

    def store(self, kind: AssociationKind) -> AssociationStore:
        """Get the association store for a content kind."""
        return self._stores[AssociationKind(kind)]

    async def associate(
        self,
        content_id: str,
        kind: AssociationKind,
        explicit_names: Sequence[str],
        text: str | None,
        owner_id: str,
    ) -> list[Tag]:
        """Re-link a content entity to the tags it references.

        Resolution finishes (all tag ids known) before any association row is
        written. For the tag variant, names are checked against the referring
        tag before any missing tag is created.

        Args:
            content_id: Log id or tag id.
            kind: Which association variant ``content_id`` belongs to.
            explicit_names: Names given directly, placed before hashtags.
            text: Markdown body or description to scan.
            owner_id: User recorded on any newly created tag.

        Returns:
            The associated tags in stored order.

        Raises:
            ValidationError: If a referenced name is invalid.
            SelfReferenceError: If a tag would reference itself. Nothing is
                written.
        """
        kind = AssociationKind(kind)
        names = merge_tag_names(explicit_names, text)

        if kind is AssociationKind.TAG:
            await self._check_names_against_tag(content_id, names)

        tags = await self.resolver.resolve_names(names, owner_id)

        # Backstop for a referring tag the name check could not load
        if kind is AssociationKind.TAG and any(tag.id == content_id for tag in tags):
            logger.info("tag_self_reference_rejected", tag_id=content_id)
            raise SelfReferenceError(content_id)

        await self.store(kind).replace_associations(content_id, [tag.id for tag in tags])

        logger.info(
            "content_associated",
            kind=kind.value,
            content_id=content_id,
            tags=[tag.name for tag in tags],
        )
        return tags

    async def _check_names_against_tag(self, tag_id: str, names: Sequence[str]) -> None:
        tag = await self.tag_store.find_by_id(tag_id)
        if tag is None:
            return
        if any(tag_name_key(name) == tag.name_key for name in names):
            logger.info("tag_self_reference_rejected", tag_id=tag_id)
            raise SelfReferenceError(tag_id)

    async def get_ordered(self, content_id: str, kind: AssociationKind) -> list[Tag]:
        """Associated tags in order of appearance."""
        return await self.store(kind).list_by_content(content_id, AssociationSort.ORDER)

    async def get_recent(
        self,
        content_id: str,
        kind: AssociationKind,
        limit: int | None = None,
    ) -> list[Tag]:
        """Associated tags, most recently linked first."""
        return await self.store(kind).list_by_content(
            content_id, AssociationSort.RECENT, limit=limit
        )

    async def get_referrers(self, tag_id: str, limit: int | None = None) -> list[Tag]:
        """Tags whose descriptions reference ``tag_id``, newest link first."""
        return await self.store(AssociationKind.TAG).list_referrers(
            tag_id, limit or settings.referrer_limit
        )
