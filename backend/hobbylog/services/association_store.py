"""Ordered content-to-tag association storage.

Two tables share one shape and are handled by the same code, selected by
:class:`AssociationKind`:

* ``log_tag_associations``: a log references a tag
* ``tag_associations``: a tag's description references another tag

Every row carries a dense zero-based ``association_order`` and a
``created_at`` timestamp. Writes keep ``Tag.usage_count`` equal to the number
of rows (of either kind) pointing at the tag.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import InstrumentedAttribute

from hobbylog.core.config import settings
from hobbylog.core.logging import get_logger
from hobbylog.db.models import (
    AssociationKind,
    AssociationSort,
    LogTagAssociation,
    Tag,
    TagAssociation,
)
from hobbylog.services.exceptions import SelfReferenceError
from hobbylog.services.tag_store import chunked

logger = get_logger(__name__)


@dataclass(frozen=True)
class AssociationTable:
    """Columns of one association variant."""

    model: Any
    content_column: InstrumentedAttribute
    tag_column: InstrumentedAttribute

    @property
    def order_column(self) -> InstrumentedAttribute:
        return self.model.association_order

    @property
    def created_column(self) -> InstrumentedAttribute:
        return self.model.created_at


ASSOCIATION_TABLES: dict[AssociationKind, AssociationTable] = {
    AssociationKind.LOG: AssociationTable(
        model=LogTagAssociation,
        content_column=LogTagAssociation.log_id,
        tag_column=LogTagAssociation.tag_id,
    ),
    AssociationKind.TAG: AssociationTable(
        model=TagAssociation,
        content_column=TagAssociation.tag_id,
        tag_column=TagAssociation.associated_tag_id,
    ),
}


class AssociationStore:
    """Reads and writes one association variant."""

    def __init__(
        self,
        db: AsyncSession,
        kind: AssociationKind,
        batch_size: int | None = None,
    ):
        """Initialize the association store.

        Args:
            db: The database session.
            kind: Which association table to operate on.
            batch_size: Maximum bound parameters per IN (...) list.
        """
        self.db = db
        self.kind = kind
        self.table = ASSOCIATION_TABLES[kind]
        self.batch_size = batch_size or settings.db_batch_size

    def _check_self_reference(self, content_id: str, tag_ids: Sequence[str]) -> None:
        if self.kind is AssociationKind.TAG and content_id in tag_ids:
            raise SelfReferenceError(content_id)

    def _row(
        self, content_id: str, tag_id: str, order: int, created_at: datetime
    ) -> dict[str, Any]:
        return {
            self.table.content_column.key: content_id,
            self.table.tag_column.key: tag_id,
            "association_order": order,
            "created_at": created_at,
        }

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def replace_associations(
        self, content_id: str, ordered_tag_ids: Sequence[str]
    ) -> None:
        """Replace every association of a content entity.

        Existing rows are deleted and one row per tag id is inserted with
        ``association_order`` set to its position. A tag id present before and
        after keeps its original ``created_at``. The statement count does not
        depend on the number of tag ids.

        Args:
            content_id: Log id or referring tag id.
            ordered_tag_ids: Tag ids in the order to persist. Repeats are
                folded into their first position.

        Raises:
            SelfReferenceError: For the tag variant, if ``content_id`` is
                among the tag ids. Nothing is written in that case.
        """
        tag_ids = list(dict.fromkeys(ordered_tag_ids))
        self._check_self_reference(content_id, tag_ids)

        table = self.table
        result = await self.db.execute(
            select(table.tag_column, table.created_column).where(
                table.content_column == content_id
            )
        )
        previous: dict[str, datetime] = {tag_id: created for tag_id, created in result.all()}

        await self.db.execute(
            delete(table.model)
            .where(table.content_column == content_id)
            .execution_options(synchronize_session=False)
        )

        now = datetime.now(timezone.utc)
        rows = [
            self._row(content_id, tag_id, order, previous.get(tag_id, now))
            for order, tag_id in enumerate(tag_ids)
        ]
        if rows:
            await self.db.execute(insert(table.model), rows)

        kept = set(tag_ids)
        added = [tag_id for tag_id in tag_ids if tag_id not in previous]
        removed = [tag_id for tag_id in previous if tag_id not in kept]
        await self._adjust_usage(added, 1)
        await self._adjust_usage(removed, -1)

        logger.debug(
            "associations_replaced",
            kind=self.kind.value,
            content_id=content_id,
            count=len(tag_ids),
            added=len(added),
            removed=len(removed),
        )

    async def clear(self, content_id: str) -> None:
        """Remove every association of a content entity."""
        await self.replace_associations(content_id, [])

    async def add_association(self, content_id: str, tag_id: str) -> bool:
        """Append one association after the existing ones.

        Returns:
            True if a row was added, False if it already existed.
        """
        self._check_self_reference(content_id, [tag_id])
        table = self.table

        existing = await self.db.execute(
            select(table.order_column).where(
                table.content_column == content_id,
                table.tag_column == tag_id,
            )
        )
        if existing.scalar_one_or_none() is not None:
            return False

        max_order = (
            await self.db.execute(
                select(func.max(table.order_column)).where(
                    table.content_column == content_id
                )
            )
        ).scalar()
        next_order = 0 if max_order is None else max_order + 1

        await self.db.execute(
            insert(table.model),
            [self._row(content_id, tag_id, next_order, datetime.now(timezone.utc))],
        )
        await self._adjust_usage([tag_id], 1)

        logger.debug(
            "association_added",
            kind=self.kind.value,
            content_id=content_id,
            tag_id=tag_id,
            order=next_order,
        )
        return True

    async def remove_association(self, content_id: str, tag_id: str) -> bool:
        """Remove one association and close the gap in the order sequence.

        Returns:
            True if a row was removed, False if none existed.
        """
        table = self.table
        result = await self.db.execute(
            select(table.order_column).where(
                table.content_column == content_id,
                table.tag_column == tag_id,
            )
        )
        removed_order = result.scalar_one_or_none()
        if removed_order is None:
            return False

        await self.db.execute(
            delete(table.model)
            .where(
                table.content_column == content_id,
                table.tag_column == tag_id,
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(
            update(table.model)
            .where(
                table.content_column == content_id,
                table.order_column > removed_order,
            )
            .values(association_order=table.order_column - 1)
            .execution_options(synchronize_session=False)
        )
        await self._adjust_usage([tag_id], -1)

        logger.debug(
            "association_removed",
            kind=self.kind.value,
            content_id=content_id,
            tag_id=tag_id,
        )
        return True

    async def _adjust_usage(self, tag_ids: Sequence[str], delta: int) -> None:
        """Apply a +1/-1 usage delta to tags with one UPDATE per chunk.

        Plain arithmetic keeps the statement evaluable in Python, so tags
        already loaded in the session see the new count without a reload.
        """
        if not tag_ids:
            return

        for chunk in chunked(list(tag_ids), self.batch_size):
            await self.db.execute(
                update(Tag)
                .where(Tag.id.in_(chunk), Tag.usage_count + delta >= 0)
                .values(usage_count=Tag.usage_count + delta)
                .execution_options(synchronize_session="evaluate")
            )

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def list_by_content(
        self,
        content_id: str,
        sort: AssociationSort | str = AssociationSort.ORDER,
        limit: int | None = None,
    ) -> list[Tag]:
        """List the tags a content entity references.

        Args:
            content_id: Log id or referring tag id.
            sort: ``order`` for position in the text, ``recent`` for newest
                association first (ties broken by position).
            limit: Optional cap on the number of tags.
        """
        table = self.table
        sort = AssociationSort(sort)

        if sort is AssociationSort.RECENT:
            ordering = (table.created_column.desc(), table.order_column.asc())
        else:
            ordering = (table.order_column.asc(),)

        query = (
            select(Tag)
            .join(table.model, table.tag_column == Tag.id)
            .where(table.content_column == content_id)
            .order_by(*ordering)
        )
        if limit is not None:
            query = query.limit(limit)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def list_by_contents(
        self, content_ids: Sequence[str]
    ) -> dict[str, list[Tag]]:
        """List ordered tags for many content entities at once.

        Returns:
            Mapping of content id to its tags in stored order. Every requested
            id is present, possibly with an empty list.
        """
        table = self.table
        tags_by_content: dict[str, list[Tag]] = {content_id: [] for content_id in content_ids}

        for chunk in chunked(list(tags_by_content), self.batch_size):
            result = await self.db.execute(
                select(table.content_column, Tag)
                .join(table.model, table.tag_column == Tag.id)
                .where(table.content_column.in_(chunk))
                .order_by(table.content_column, table.order_column)
            )
            for content_id, tag in result.all():
                tags_by_content[content_id].append(tag)

        return tags_by_content

    async def list_referrers(self, tag_id: str, limit: int = 10) -> list[Tag]:
        """List tags whose descriptions reference ``tag_id``, newest link first."""
        if self.kind is not AssociationKind.TAG:
            raise ValueError("Referrers are only defined for tag-to-tag associations")

        result = await self.db.execute(
            select(Tag)
            .join(TagAssociation, TagAssociation.tag_id == Tag.id)
            .where(TagAssociation.associated_tag_id == tag_id)
            .order_by(TagAssociation.created_at.desc(), Tag.name_key)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def count_for_tag(self, tag_id: str) -> int:
        """Count content entities of this kind referencing a tag."""
        table = self.table
        result = await self.db.execute(
            select(func.count(table.content_column)).where(table.tag_column == tag_id)
        )
        return result.scalar() or 0
