"""Log service for Markdown entries and their tag references."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from hobbylog.core.config import settings
from hobbylog.core.logging import get_logger
from hobbylog.db.models import (
    AssociationKind,
    AssociationSort,
    Log,
    LogTagAssociation,
    Tag,
)
from hobbylog.services.association import AssociationService
from hobbylog.services.exceptions import (
    LogNotFoundError,
    PermissionDeniedError,
    ValidationError,
)

logger = get_logger(__name__)

# Fields a caller may change through LogService.update_log
UPDATABLE_FIELDS = frozenset({"title", "content_md", "is_public", "tag_names"})


@dataclass
class LogWithTags:
    """A log together with its associated tags in stored order."""

    log: Log
    tags: list[Tag] = field(default_factory=list)


def log_to_dict(log: Log) -> dict[str, Any]:
    """Serialize a log (without tags) for API responses."""
    return {
        "id": log.id,
        "user_id": log.user_id,
        "title": log.title,
        "content_md": log.content_md,
        "is_public": log.is_public,
        "created_at": log.created_at,
        "updated_at": log.updated_at,
    }


def validate_title(title: Any) -> str | None:
    if title is None:
        return None
    if not isinstance(title, str):
        raise ValidationError("Title must be a string")
    if len(title) > settings.log_title_max_length:
        raise ValidationError(
            f"Title must be {settings.log_title_max_length} characters or fewer"
        )
    return title or None


def validate_content(content_md: Any) -> str:
    if not isinstance(content_md, str) or not content_md.strip():
        raise ValidationError("Content is required")
    if len(content_md) > settings.log_content_max_length:
        raise ValidationError(
            f"Content must be {settings.log_content_max_length} characters or fewer"
        )
    return content_md


def validate_tag_names(tag_names: Any) -> list[str]:
    if tag_names is None:
        return []
    if not isinstance(tag_names, list) or not all(isinstance(n, str) for n in tag_names):
        raise ValidationError("tag_names must be a list of strings")
    return tag_names


class LogService:
    """Service for log CRUD.

    Every save that touches ``content_md`` or ``tag_names`` recomputes the
    log's tag associations from scratch.
    """

    def __init__(self, db: AsyncSession):
        """Initialize the log service.

        Args:
            db: The database session.
        """
        self.db = db
        self.associations = AssociationService(db)

    async def _get_owned_log(self, log_id: str, user_id: str) -> Log:
        log = await self.db.get(Log, log_id)
        if log is None:
            raise LogNotFoundError()
        if log.user_id != user_id:
            raise PermissionDeniedError("Not log owner")
        return log

    async def create_log(
        self,
        user_id: str,
        content_md: str,
        title: str | None = None,
        is_public: bool = False,
        tag_names: list[str] | None = None,
    ) -> LogWithTags:
        """Create a log and associate the tags it references.

        Args:
            user_id: The owner.
            content_md: Markdown body, scanned for hashtags.
            title: Optional title.
            is_public: Whether other users can see the log.
            tag_names: Explicit tags, placed before hashtags from the body.

        Returns:
            The new log with its tags.
        """
        content_md = validate_content(content_md)
        title = validate_title(title)
        tag_names = validate_tag_names(tag_names)

        now = datetime.now(timezone.utc)
        log = Log(
            user_id=user_id,
            title=title,
            content_md=content_md,
            is_public=bool(is_public),
            created_at=now,
            updated_at=now,
        )
        self.db.add(log)
        await self.db.flush()

        tags = await self.associations.associate(
            log.id, AssociationKind.LOG, tag_names, content_md, user_id
        )

        logger.info("log_created", log_id=log.id, user_id=user_id, tag_count=len(tags))
        return LogWithTags(log=log, tags=tags)

    async def update_log(
        self,
        log_id: str,
        user_id: str,
        changes: dict[str, Any],
    ) -> LogWithTags:
        """Update a log owned by ``user_id``.

        Args:
            log_id: The log ID.
            user_id: The acting user.
            changes: Subset of ``title``, ``content_md``, ``is_public``,
                ``tag_names``.

        Raises:
            ValidationError: If no fields are given or a value is invalid.
            LogNotFoundError: If the log does not exist.
            PermissionDeniedError: If the user does not own the log.
        """
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown log fields: {', '.join(sorted(unknown))}")
        if not changes:
            raise ValidationError("No fields to update")

        content_md = validate_content(changes["content_md"]) if "content_md" in changes else None
        title = validate_title(changes.get("title"))
        tag_names = validate_tag_names(changes.get("tag_names"))

        log = await self._get_owned_log(log_id, user_id)

        if content_md is not None:
            log.content_md = content_md
        if "title" in changes:
            log.title = title
        if "is_public" in changes:
            log.is_public = bool(changes["is_public"])
        log.updated_at = datetime.now(timezone.utc)
        await self.db.flush()

        if "content_md" in changes or "tag_names" in changes:
            tags = await self.associations.associate(
                log.id, AssociationKind.LOG, tag_names, log.content_md, user_id
            )
        else:
            tags = await self.associations.get_ordered(log.id, AssociationKind.LOG)

        logger.info("log_updated", log_id=log.id, fields=sorted(changes))
        return LogWithTags(log=log, tags=tags)

    async def delete_log(self, log_id: str, user_id: str) -> None:
        """Delete a log owned by ``user_id`` along with its associations."""
        log = await self._get_owned_log(log_id, user_id)

        # Clear through the store so usage counts are decremented
        await self.associations.store(AssociationKind.LOG).clear(log.id)
        await self.db.delete(log)
        await self.db.flush()

        logger.info("log_deleted", log_id=log_id, user_id=user_id)

    async def get_log(
        self,
        log_id: str,
        viewer_id: str | None = None,
        sort: AssociationSort | str = AssociationSort.ORDER,
        limit: int | None = None,
    ) -> LogWithTags:
        """Get a log visible to ``viewer_id``.

        Tags come in stored order, or most recently linked first when
        ``sort`` is ``recent``. ``limit`` caps the number of tags.

        Raises:
            LogNotFoundError: If the log does not exist.
            PermissionDeniedError: If the log is private and not the viewer's.
        """
        log = await self.db.get(Log, log_id)
        if log is None:
            raise LogNotFoundError()
        if not log.is_public and log.user_id != viewer_id:
            raise PermissionDeniedError("Access denied")

        if AssociationSort(sort) is AssociationSort.RECENT:
            tags = await self.associations.get_recent(log.id, AssociationKind.LOG, limit)
        else:
            tags = await self.associations.get_ordered(log.id, AssociationKind.LOG)
            if limit is not None:
                tags = tags[:limit]
        return LogWithTags(log=log, tags=tags)

    async def list_logs(
        self,
        limit: int = 20,
        offset: int = 0,
        user_id: str | None = None,
        tag_id: str | None = None,
        viewer_id: str | None = None,
    ) -> tuple[list[LogWithTags], int]:
        """List logs newest first, with tags loaded in one batch.

        Private logs are included only when listing the viewer's own logs.

        Returns:
            The page of logs and the total number of matches.
        """
        conditions = []
        if user_id is not None:
            conditions.append(Log.user_id == user_id)
        if user_id is None or user_id != viewer_id:
            conditions.append(Log.is_public.is_(True))
        if tag_id is not None:
            conditions.append(
                Log.id.in_(
                    select(LogTagAssociation.log_id).where(LogTagAssociation.tag_id == tag_id)
                )
            )

        total = (
            await self.db.execute(select(func.count(Log.id)).where(*conditions))
        ).scalar() or 0

        result = await self.db.execute(
            select(Log)
            .where(*conditions)
            .order_by(Log.created_at.desc(), Log.id)
            .limit(limit)
            .offset(offset)
        )
        logs = list(result.scalars().all())

        tags_by_log = await self.associations.store(AssociationKind.LOG).list_by_contents(
            [log.id for log in logs]
        )
        return [LogWithTags(log=log, tags=tags_by_log[log.id]) for log in logs], total

    async def list_recent_logs_for_tag(self, tag_id: str, limit: int = 10) -> list[Log]:
        """Public logs referencing a tag, newest log first."""
        result = await self.db.execute(
            select(Log)
            .join(LogTagAssociation, LogTagAssociation.log_id == Log.id)
            .where(
                LogTagAssociation.tag_id == tag_id,
                Log.is_public.is_(True),
            )
            .order_by(Log.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
