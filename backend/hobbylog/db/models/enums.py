"""Enum types shared by models and services."""

from __future__ import annotations

import enum


class AssociationKind(str, enum.Enum):
    """Kind of content that references tags."""

    LOG = "LOG"  # Log body -> tag
    TAG = "TAG"  # Tag description -> tag


class AssociationSort(str, enum.Enum):
    """Ordering of associated tags when read back."""

    ORDER = "order"  # Position in the source text
    RECENT = "recent"  # Newest association first
