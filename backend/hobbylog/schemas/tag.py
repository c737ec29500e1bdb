"""Pydantic schemas for Tag API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


class TagResponse(BaseModel):
    """Tag response schema."""

    id: str
    name: str
    description: str | None = None
    metadata: dict[str, Any] = {}
    created_by: str
    usage_count: int
    created_at: datetime
    updated_at: datetime


class TagListResponse(BaseModel):
    """Paginated list of tags."""

    items: list[TagResponse]
    total: int
    limit: int
    offset: int
    has_more: bool


class TagLogSummary(BaseModel):
    """Recent log shown on a tag's detail page."""

    id: str
    user_id: str
    title: str | None = None
    content_md: str
    is_public: bool
    created_at: datetime
    updated_at: datetime


class TagDetailResponse(TagResponse):
    """Tag with its reference graph neighbourhood."""

    associated_tags: list[TagResponse]
    referring_tags: list[TagResponse]
    log_count: int
    recent_logs: list[TagLogSummary]


class CreateTagRequest(BaseModel):
    """Request to create a tag."""

    name: str = Field(..., min_length=1)
    description: str | None = None
    metadata: dict[str, Any] | None = None


class UpdateTagRequest(BaseModel):
    """Request to update a tag. Only fields that are sent are changed."""

    name: str | None = None
    description: str | None = None
    metadata: dict[str, Any] | None = None


class CreateTagAssociationRequest(BaseModel):
    """Request to add a manual tag-to-tag reference."""

    associated_tag_id: str = Field(..., min_length=1)


AssociationSortParam = Literal["order", "recent"]


class TagRevisionResponse(BaseModel):
    """Snapshot of a tag at one point in its edit history."""

    id: str
    tag_id: str
    revision_number: int
    name: str
    description: str | None = None
    metadata: dict[str, Any] = {}
    created_by: str
    created_at: datetime
