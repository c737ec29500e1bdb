"""Pydantic schemas for Log API."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from hobbylog.schemas.tag import TagResponse


class LogResponse(BaseModel):
    """Log response with its tags in stored order."""

    id: str
    user_id: str
    title: str | None = None
    content_md: str
    is_public: bool
    created_at: datetime
    updated_at: datetime
    associated_tags: list[TagResponse]


class LogListResponse(BaseModel):
    """Paginated list of logs."""

    items: list[LogResponse]
    total: int
    limit: int
    offset: int
    has_more: bool


class CreateLogRequest(BaseModel):
    """Request to create a log."""

    content_md: str = Field(..., min_length=1)
    title: str | None = None
    is_public: bool = False
    tag_names: list[str] = Field(default_factory=list)


class UpdateLogRequest(BaseModel):
    """Request to update a log. Only fields that are sent are changed."""

    content_md: str | None = None
    title: str | None = None
    is_public: bool | None = None
    tag_names: list[str] | None = None
