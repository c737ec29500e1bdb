"""Log API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from hobbylog.api.deps import get_current_user_id, get_optional_user_id, http_error
from hobbylog.core.logging import get_logger
from hobbylog.db import get_db
from hobbylog.schemas.log import (
    CreateLogRequest,
    LogListResponse,
    LogResponse,
    UpdateLogRequest,
)
from hobbylog.schemas.tag import AssociationSortParam, TagResponse
from hobbylog.services.exceptions import HobbyLogError
from hobbylog.services.log import LogService, LogWithTags, log_to_dict
from hobbylog.services.tag import tag_to_dict

logger = get_logger(__name__)

router = APIRouter(prefix="/logs", tags=["logs"])


def _log_response(item: LogWithTags) -> LogResponse:
    return LogResponse(
        **log_to_dict(item.log),
        associated_tags=[TagResponse(**tag_to_dict(t)) for t in item.tags],
    )


@router.get("", response_model=LogListResponse)
async def list_logs(
    user_id: str | None = Query(None, description="Only logs by this user"),
    tag_id: str | None = Query(None, description="Only logs referencing this tag"),
    limit: int = Query(20, ge=1, le=100, description="Max results"),
    offset: int = Query(0, ge=0, description="Results to skip"),
    viewer_id: str | None = Depends(get_optional_user_id),
    db: AsyncSession = Depends(get_db),
) -> LogListResponse:
    """List logs newest first.

    Private logs are only included when a user lists their own logs.
    """
    service = LogService(db)
    items, total = await service.list_logs(
        limit=limit,
        offset=offset,
        user_id=user_id,
        tag_id=tag_id,
        viewer_id=viewer_id,
    )

    return LogListResponse(
        items=[_log_response(item) for item in items],
        total=total,
        limit=limit,
        offset=offset,
        has_more=offset + limit < total,
    )


@router.post("", response_model=LogResponse, status_code=201)
async def create_log(
    request: CreateLogRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> LogResponse:
    """Create a log.

    Tags named in ``tag_names`` and hashtags in ``content_md`` are created
    if missing and associated in order: explicit names first.
    """
    service = LogService(db)
    try:
        item = await service.create_log(
            user_id=user_id,
            content_md=request.content_md,
            title=request.title,
            is_public=request.is_public,
            tag_names=request.tag_names,
        )
    except HobbyLogError as e:
        raise http_error(e) from e

    await db.commit()

    return _log_response(item)


@router.get("/{log_id}", response_model=LogResponse)
async def get_log(
    log_id: str,
    sort: AssociationSortParam = Query("order", description="order or recent"),
    limit: int | None = Query(None, ge=1, le=100, description="Max tags to return"),
    viewer_id: str | None = Depends(get_optional_user_id),
    db: AsyncSession = Depends(get_db),
) -> LogResponse:
    """Get a log with its tags in stored order, or most recently linked first."""
    service = LogService(db)
    try:
        item = await service.get_log(log_id, viewer_id, sort=sort, limit=limit)
    except HobbyLogError as e:
        raise http_error(e) from e

    return _log_response(item)


@router.put("/{log_id}", response_model=LogResponse)
async def update_log(
    log_id: str,
    request: UpdateLogRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> LogResponse:
    """Update a log. Only the fields present in the body are changed."""
    changes = request.model_dump(exclude_unset=True)
    # null visibility means "leave as is"
    if changes.get("is_public", False) is None:
        del changes["is_public"]

    service = LogService(db)
    try:
        item = await service.update_log(log_id, user_id, changes)
    except HobbyLogError as e:
        raise http_error(e) from e

    await db.commit()

    return _log_response(item)


@router.delete("/{log_id}", status_code=204)
async def delete_log(
    log_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> None:
    """Delete a log and its tag associations."""
    service = LogService(db)
    try:
        await service.delete_log(log_id, user_id)
    except HobbyLogError as e:
        raise http_error(e) from e

    await db.commit()
