"""Tests for TagService - tag CRUD and the tag reference graph."""

from __future__ import annotations

import pytest
from sqlalchemy import func, select

from hobbylog.db.models import Tag, TagRevision
from hobbylog.services.exceptions import (
    PermissionDeniedError,
    SelfReferenceError,
    TagConflictError,
    TagNotFoundError,
)
from hobbylog.services.log import LogService
from hobbylog.services.tag import TagService, tag_to_dict

OWNER = "user-1"
OTHER = "user-2"


@pytest.fixture
def service(db_session):
    return TagService(db_session)


async def tag_count(db_session) -> int:
    return (await db_session.execute(select(func.count(Tag.id)))).scalar()


# =============================================================================
# Create Tests
# =============================================================================


class TestCreateTag:
    """Tests for TagService.create_tag."""

    async def test_creates_tag_and_links_description(self, service):
        """Test that a new tag's description hashtags become references."""
        tag, created = await service.create_tag(
            "Guitar", OWNER, description="See #music and #strings", metadata={"k": 1}
        )

        assert created is True
        assert tag.tag_metadata == {"k": 1}
        associated = await service.get_associations(tag.id)
        assert [t.name for t in associated] == ["music", "strings"]

    async def test_existing_name_returns_existing(self, service):
        """Test that a case-insensitive match returns the stored tag unchanged."""
        first, _ = await service.create_tag("Guitar", OWNER, description="original")

        again, created = await service.create_tag("GUITAR", OTHER, description="new")

        assert created is False
        assert again.id == first.id
        assert again.description == "original"
        assert again.created_by == OWNER

    async def test_self_referencing_description(self, service):
        """Test that a new tag cannot describe itself."""
        with pytest.raises(SelfReferenceError):
            await service.create_tag("loop", OWNER, description="#Loop forever")

    async def test_self_reference_writes_nothing(self, service, db_session):
        """Test that a rejected create leaves no tags from its description."""
        with pytest.raises(SelfReferenceError):
            await service.create_tag("loop", OWNER, description="#fresh #other #loop")

        assert await tag_count(db_session) == 0


# =============================================================================
# Update Tests
# =============================================================================


class TestUpdateTag:
    """Tests for TagService.update_tag."""

    async def test_description_change_relinks(self, service):
        """Test that a new description replaces the references."""
        tag, _ = await service.create_tag("Guitar", OWNER, description="#a #b")

        await service.update_tag("guitar", {"description": "#c"}, OWNER)

        assert [t.name for t in await service.get_associations(tag.id)] == ["c"]

    async def test_metadata_only_keeps_links(self, service):
        """Test that metadata changes leave references alone."""
        tag, _ = await service.create_tag("Guitar", OWNER, description="#a")

        updated = await service.update_tag(tag.id, {"metadata": {"x": True}}, OWNER)

        assert updated.tag_metadata == {"x": True}
        assert [t.name for t in await service.get_associations(tag.id)] == ["a"]

    async def test_rename_that_creates_self_reference(self, service):
        """Test that renaming onto a name in the description is rejected."""
        tag, _ = await service.create_tag("Guitar", OWNER, description="#strings")

        with pytest.raises(SelfReferenceError):
            await service.update_tag(tag.id, {"name": "Strings2", "description": "#strings2"}, OWNER)

    async def test_self_reference_update_writes_nothing(self, service, db_session):
        """Test that a rejected update creates no tags and keeps the old name."""
        tag, _ = await service.create_tag("Guitar", OWNER, description="#strings")
        before = await tag_count(db_session)

        with pytest.raises(SelfReferenceError):
            await service.update_tag(
                tag.id, {"name": "Bass", "description": "#unseen #bass"}, OWNER
            )

        assert await tag_count(db_session) == before
        assert (await service.get_tag(tag.id)).name == "Guitar"
        assert [t.name for t in await service.get_associations(tag.id)] == ["strings"]

    async def test_rename_conflict(self, service):
        """Test that renaming onto another tag's name is a conflict."""
        await service.create_tag("Guitar", OWNER)
        bass, _ = await service.create_tag("Bass", OWNER)

        with pytest.raises(TagConflictError):
            await service.update_tag(bass.id, {"name": "guitar"}, OWNER)

    async def test_requires_creator(self, service):
        """Test that only the creator may edit a tag."""
        tag, _ = await service.create_tag("Guitar", OWNER)

        with pytest.raises(PermissionDeniedError):
            await service.update_tag(tag.id, {"description": "mine"}, OTHER)

    async def test_missing_tag(self, service):
        """Test that updating an unknown tag raises TagNotFoundError."""
        with pytest.raises(TagNotFoundError):
            await service.update_tag("nope", {"description": "x"}, OWNER)


# =============================================================================
# Manual Reference Tests
# =============================================================================


class TestManualReferences:
    """Tests for add_tag_association / remove_tag_association."""

    async def test_add_and_remove(self, service):
        """Test appending and removing a manual reference."""
        tag, _ = await service.create_tag("Guitar", OWNER, description="#a")
        target, _ = await service.create_tag("Amp", OTHER)

        assert await service.add_tag_association("Guitar", target.id, OWNER) is True
        assert [t.name for t in await service.get_associations(tag.id)] == ["a", "Amp"]

        assert await service.remove_tag_association("Guitar", target.id, OWNER) is True
        assert await service.remove_tag_association("Guitar", target.id, OWNER) is False

    async def test_add_unknown_target(self, service):
        """Test that the referenced tag must exist."""
        await service.create_tag("Guitar", OWNER)

        with pytest.raises(TagNotFoundError):
            await service.add_tag_association("Guitar", "missing-id", OWNER)

    async def test_add_requires_creator(self, service):
        """Test that only the creator may add references."""
        await service.create_tag("Guitar", OWNER)
        target, _ = await service.create_tag("Amp", OWNER)

        with pytest.raises(PermissionDeniedError):
            await service.add_tag_association("Guitar", target.id, OTHER)


# =============================================================================
# Read Tests
# =============================================================================


class TestReadTags:
    """Tests for detail, search and popular."""

    async def test_tag_detail(self, service, db_session):
        """Test the detail view combines references, referrers and logs."""
        music, _ = await service.create_tag("Music", OWNER, description="#Sound")
        await service.create_tag("Guitar", OWNER, description="#music")
        log_service = LogService(db_session)
        public = await log_service.create_log(OWNER, "Played #music", is_public=True)
        await log_service.create_log(OWNER, "Secret #music")

        detail = await service.get_tag_detail("MUSIC")

        assert detail["id"] == music.id
        assert [t["name"] for t in detail["associated_tags"]] == ["Sound"]
        assert [t["name"] for t in detail["referring_tags"]] == ["Guitar"]
        assert detail["log_count"] == 2
        assert [log["id"] for log in detail["recent_logs"]] == [public.log.id]

    async def test_search_pagination(self, service):
        """Test that search reports has_more."""
        for name in ("aa", "ab", "ac"):
            await service.create_tag(name, OWNER)

        page = await service.search_tags("a", limit=2, offset=0)

        assert page["total"] == 3
        assert len(page["items"]) == 2
        assert page["has_more"] is True

    async def test_popular(self, service, db_session):
        """Test that popular tags are ordered by usage."""
        log_service = LogService(db_session)
        await log_service.create_log(OWNER, "#hot #warm")
        await log_service.create_log(OWNER, "#hot")

        popular = await service.get_popular_tags(10)

        assert [t.name for t in popular] == ["hot", "warm"]

    async def test_tag_to_dict(self, service):
        """Test serialization exposes metadata under its public name."""
        tag, _ = await service.create_tag("Guitar", OWNER, metadata={"a": 1})

        data = tag_to_dict(tag)

        assert data["metadata"] == {"a": 1}
        assert data["usage_count"] == 0


class TestReferenceScenarios:
    """End-to-end reference scenarios across services."""

    async def test_description_reorder_leaves_three_rows(self, service):
        """Test that reordering and extending a description keeps one row per tag."""
        tag, _ = await service.create_tag("Game", OWNER, description="#RPG #Strategy")

        await service.update_tag(tag.id, {"description": "#Strategy #RPG #Action"}, OWNER)

        associated = await service.get_associations(tag.id)
        assert [t.name for t in associated] == ["Strategy", "RPG", "Action"]

    async def test_shared_hashtag_creates_one_tag(self, service, db_session):
        """Test that two logs naming a new hashtag share a single tag."""
        log_service = LogService(db_session)
        await log_service.create_log(OWNER, "Watching #attack-on-titan")
        await log_service.create_log(OTHER, "Also #attack-on-titan")

        page = await service.search_tags("attack-on-titan")

        assert page["total"] == 1
        assert page["items"][0].usage_count == 2

    async def test_explicit_names_keep_given_order(self, db_session):
        """Test that explicit names with no hashtags keep the caller's order."""
        item = await LogService(db_session).create_log(
            OWNER, "no hashtags here", tag_names=["Tag3", "Tag1", "Tag2"]
        )

        assert [t.name for t in item.tags] == ["Tag3", "Tag1", "Tag2"]


# =============================================================================
# Revision Tests
# =============================================================================


class TestTagRevisions:
    """Tests for the tag edit history."""

    async def test_create_records_revision_zero(self, service):
        """Test that a new tag starts at revision 0 with a full snapshot."""
        tag, _ = await service.create_tag(
            "Guitar", OWNER, description="#music", metadata={"strings": 6}
        )

        revisions = await service.get_revisions(tag.id)

        assert len(revisions) == 1
        first = revisions[0]
        assert first.revision_number == 0
        assert first.tag_id == tag.id
        assert first.name == "Guitar"
        assert first.description == "#music"
        assert first.revision_metadata == {"strings": 6}
        assert first.created_by == OWNER

    async def test_existing_name_adds_no_revision(self, service):
        """Test that creating an existing name does not touch its history."""
        await service.create_tag("Guitar", OWNER)
        await service.create_tag("guitar", OTHER)

        assert [r.revision_number for r in await service.get_revisions("Guitar")] == [0]

    async def test_updates_number_densely(self, service):
        """Test that each update appends the next number with its snapshot."""
        tag, _ = await service.create_tag("Guitar", OWNER, description="v0")

        await service.update_tag(tag.id, {"description": "v1"}, OWNER)
        await service.update_tag(tag.id, {"name": "Electric Guitar"}, OWNER)

        revisions = await service.get_revisions("electric guitar")
        assert [r.revision_number for r in revisions] == [0, 1, 2]
        assert [r.description for r in revisions] == ["v0", "v1", "v1"]
        assert [r.name for r in revisions] == ["Guitar", "Guitar", "Electric Guitar"]

    async def test_metadata_update_snapshots_everything(self, service):
        """Test that a metadata-only update still records name and description."""
        tag, _ = await service.create_tag("Guitar", OWNER, description="desc")

        await service.update_tag(tag.id, {"metadata": {"color": "red"}}, OWNER)

        latest = (await service.get_revisions(tag.id))[-1]
        assert latest.revision_number == 1
        assert latest.name == "Guitar"
        assert latest.description == "desc"
        assert latest.revision_metadata == {"color": "red"}

    async def test_histories_are_per_tag(self, service):
        """Test that numbering is independent for each tag."""
        guitar, _ = await service.create_tag("Guitar", OWNER)
        bass, _ = await service.create_tag("Bass", OWNER)
        await service.update_tag(guitar.id, {"description": "a"}, OWNER)
        await service.update_tag(guitar.id, {"description": "b"}, OWNER)

        assert [r.revision_number for r in await service.get_revisions(guitar.id)] == [0, 1, 2]
        assert [r.revision_number for r in await service.get_revisions(bass.id)] == [0]

    async def test_rejected_update_adds_no_revision(self, service, db_session):
        """Test that a failed update leaves the history alone."""
        tag, _ = await service.create_tag("Guitar", OWNER)

        with pytest.raises(SelfReferenceError):
            await service.update_tag(tag.id, {"description": "#guitar"}, OWNER)
        with pytest.raises(PermissionDeniedError):
            await service.update_tag(tag.id, {"description": "x"}, OTHER)

        count = (
            await db_session.execute(
                select(func.count(TagRevision.id)).where(TagRevision.tag_id == tag.id)
            )
        ).scalar()
        assert count == 1

    async def test_unknown_tag(self, service):
        """Test that the history of a missing tag raises TagNotFoundError."""
        with pytest.raises(TagNotFoundError):
            await service.get_revisions("nope")


# =============================================================================
# Name Key Tests
# =============================================================================


class TestNameKey:
    """Tests for the stored case-insensitive key."""

    async def test_key_that_grows_when_lowered_fits(self, service):
        """Test that a maximal name whose lower-case form is longer is stored."""
        name = "İ" * 100

        tag, created = await service.create_tag(name, OWNER)

        assert created is True
        assert len(tag.name_key) == 200
        assert len(tag.name_key) <= Tag.__table__.c.name_key.type.length
        assert (await service.get_tag(name)).id == tag.id
