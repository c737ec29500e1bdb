"""Database models for HobbyLog."""

from hobbylog.db.models.enums import AssociationKind, AssociationSort
from hobbylog.db.models.log import Log
from hobbylog.db.models.log_tag_association import LogTagAssociation
from hobbylog.db.models.tag import Tag, tag_name_key
from hobbylog.db.models.tag_association import TagAssociation
from hobbylog.db.models.tag_revision import TagRevision

__all__ = [
    # Models
    "Log",
    "LogTagAssociation",
    "Tag",
    "TagAssociation",
    "TagRevision",
    # Enums
    "AssociationKind",
    "AssociationSort",
    # Helpers
    "tag_name_key",
]
