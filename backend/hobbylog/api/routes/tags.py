"""Tag API endpoints for tags and the tag reference graph."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from hobbylog.api.deps import get_current_user_id, http_error
from hobbylog.core.logging import get_logger
from hobbylog.db import get_db
from hobbylog.schemas.tag import (
    AssociationSortParam,
    CreateTagAssociationRequest,
    CreateTagRequest,
    TagDetailResponse,
    TagListResponse,
    TagResponse,
    TagRevisionResponse,
    UpdateTagRequest,
)
from hobbylog.services.exceptions import HobbyLogError
from hobbylog.services.tag import TagService, tag_to_dict
from hobbylog.services.tag_revision import revision_to_dict

logger = get_logger(__name__)

router = APIRouter(prefix="/tags", tags=["tags"])


class TagAssociationChangeResponse(BaseModel):
    """Response after adding or removing a manual tag reference."""

    tag_id: str
    associated_tag_id: str
    changed: bool


# =============================================================================
# Tag Endpoints
# =============================================================================


@router.get("", response_model=TagListResponse)
async def list_tags(
    q: str | None = Query(None, description="Search name or description"),
    limit: int = Query(20, ge=1, le=100, description="Max results"),
    offset: int = Query(0, ge=0, description="Results to skip"),
    db: AsyncSession = Depends(get_db),
) -> TagListResponse:
    """List or search tags, most recently updated first."""
    service = TagService(db)
    page = await service.search_tags(query=q, limit=limit, offset=offset)

    return TagListResponse(
        items=[TagResponse(**tag_to_dict(t)) for t in page["items"]],
        total=page["total"],
        limit=page["limit"],
        offset=page["offset"],
        has_more=page["has_more"],
    )


@router.get("/popular", response_model=list[TagResponse])
async def get_popular_tags(
    limit: int = Query(20, ge=1, le=100, description="Max tags to return"),
    db: AsyncSession = Depends(get_db),
) -> list[TagResponse]:
    """Get tags sorted by how often logs and other tags reference them."""
    service = TagService(db)
    tags = await service.get_popular_tags(limit)
    return [TagResponse(**tag_to_dict(t)) for t in tags]


@router.post("", response_model=TagResponse, status_code=201)
async def create_tag(
    request: CreateTagRequest,
    response: Response,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> TagResponse:
    """Create a tag.

    If a tag with the same name (ignoring case) already exists it is
    returned unchanged with status 200.
    """
    service = TagService(db)
    try:
        tag, created = await service.create_tag(
            name=request.name,
            created_by=user_id,
            description=request.description,
            metadata=request.metadata,
        )
    except HobbyLogError as e:
        raise http_error(e) from e

    await db.commit()

    if not created:
        response.status_code = 200
    return TagResponse(**tag_to_dict(tag))


@router.get("/{tag_ref}", response_model=TagDetailResponse)
async def get_tag(
    tag_ref: str,
    db: AsyncSession = Depends(get_db),
) -> TagDetailResponse:
    """Get a tag by name or id, with references, referrers and recent logs."""
    service = TagService(db)
    try:
        detail = await service.get_tag_detail(tag_ref)
    except HobbyLogError as e:
        raise http_error(e) from e

    return TagDetailResponse(**detail)


@router.put("/{tag_ref}", response_model=TagResponse)
async def update_tag(
    tag_ref: str,
    request: UpdateTagRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> TagResponse:
    """Update a tag's name, description or metadata.

    Changing the name or description re-resolves the hashtags in the
    description.
    """
    changes = request.model_dump(exclude_unset=True)

    service = TagService(db)
    try:
        tag = await service.update_tag(tag_ref, changes, user_id)
    except HobbyLogError as e:
        raise http_error(e) from e

    await db.commit()

    return TagResponse(**tag_to_dict(tag))


# =============================================================================
# Tag Reference Endpoints
# =============================================================================


@router.get("/{tag_ref}/associations", response_model=list[TagResponse])
async def get_tag_associations(
    tag_ref: str,
    sort: AssociationSortParam = Query("order", description="order or recent"),
    db: AsyncSession = Depends(get_db),
) -> list[TagResponse]:
    """Get the tags a tag's description references."""
    service = TagService(db)
    try:
        tags = await service.get_associations(tag_ref, sort)
    except HobbyLogError as e:
        raise http_error(e) from e

    return [TagResponse(**tag_to_dict(t)) for t in tags]


@router.post(
    "/{tag_ref}/associations",
    response_model=TagAssociationChangeResponse,
    status_code=201,
)
async def add_tag_association(
    tag_ref: str,
    request: CreateTagAssociationRequest,
    response: Response,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> TagAssociationChangeResponse:
    """Append a reference from this tag to another tag."""
    service = TagService(db)
    try:
        tag = await service.get_tag(tag_ref)
        added = await service.add_tag_association(
            tag.id, request.associated_tag_id, user_id
        )
    except HobbyLogError as e:
        raise http_error(e) from e

    await db.commit()

    if not added:
        response.status_code = 200

    logger.info(
        "tag_association_added",
        tag_id=tag.id,
        associated_tag_id=request.associated_tag_id,
        added=added,
    )

    return TagAssociationChangeResponse(
        tag_id=tag.id,
        associated_tag_id=request.associated_tag_id,
        changed=added,
    )


@router.delete(
    "/{tag_ref}/associations/{associated_tag_id}",
    response_model=TagAssociationChangeResponse,
)
async def remove_tag_association(
    tag_ref: str,
    associated_tag_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> TagAssociationChangeResponse:
    """Remove a reference from this tag to another tag."""
    service = TagService(db)
    try:
        tag = await service.get_tag(tag_ref)
        removed = await service.remove_tag_association(
            tag.id, associated_tag_id, user_id
        )
    except HobbyLogError as e:
        raise http_error(e) from e

    if not removed:
        raise HTTPException(status_code=404, detail="Association not found")

    await db.commit()

    return TagAssociationChangeResponse(
        tag_id=tag.id,
        associated_tag_id=associated_tag_id,
        changed=True,
    )


@router.get("/{tag_ref}/referrers", response_model=list[TagResponse])
async def get_tag_referrers(
    tag_ref: str,
    limit: int = Query(10, ge=1, le=100, description="Max tags to return"),
    db: AsyncSession = Depends(get_db),
) -> list[TagResponse]:
    """Get tags whose descriptions reference this tag, newest link first."""
    service = TagService(db)
    try:
        tags = await service.get_referrers(tag_ref, limit)
    except HobbyLogError as e:
        raise http_error(e) from e

    return [TagResponse(**tag_to_dict(t)) for t in tags]


@router.get("/{tag_ref}/revisions", response_model=list[TagRevisionResponse])
async def get_tag_revisions(
    tag_ref: str,
    db: AsyncSession = Depends(get_db),
) -> list[TagRevisionResponse]:
    """Get the edit history of a tag, oldest revision first."""
    service = TagService(db)
    try:
        revisions = await service.get_revisions(tag_ref)
    except HobbyLogError as e:
        raise http_error(e) from e

    return [TagRevisionResponse(**revision_to_dict(r)) for r in revisions]
