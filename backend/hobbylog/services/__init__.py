"""Business logic services for HobbyLog."""

from hobbylog.services.association import AssociationService
from hobbylog.services.association_store import AssociationStore
from hobbylog.services.hashtag import extract_hashtags
from hobbylog.services.log import LogService, LogWithTags
from hobbylog.services.tag import TagService
from hobbylog.services.tag_resolution import TagResolutionService
from hobbylog.services.tag_revision import TagRevisionStore
from hobbylog.services.tag_store import TagBatch, TagStore

__all__ = [
    "AssociationService",
    "AssociationStore",
    "LogService",
    "LogWithTags",
    "TagBatch",
    "TagResolutionService",
    "TagRevisionStore",
    "TagService",
    "TagStore",
    "extract_hashtags",
]
