"""Tests for tag resolution and association replacement."""

from __future__ import annotations

import asyncio
from unittest.mock import patch

import pytest
from sqlalchemy import event, func, select

from hobbylog.db.models import AssociationKind, Log, LogTagAssociation, Tag, TagAssociation
from hobbylog.services.association import AssociationService
from hobbylog.services.association_store import AssociationStore
from hobbylog.services.exceptions import SelfReferenceError, ValidationError
from hobbylog.services.tag_resolution import TagResolutionService, merge_tag_names

OWNER = "user-1"


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def service(db_session):
    return AssociationService(db_session)


@pytest.fixture
async def make_log(db_session):
    """Factory for persisted logs."""

    async def _make(content_md: str = "body") -> Log:
        log = Log(user_id=OWNER, content_md=content_md)
        db_session.add(log)
        await db_session.flush()
        return log

    return _make


@pytest.fixture
async def make_tag(service):
    """Factory for persisted tags."""

    async def _make(name: str) -> Tag:
        batch = await service.tag_store.find_or_create([name], OWNER)
        return batch.lookup(name)

    return _make


async def usage(db_session, name: str) -> int:
    result = await db_session.execute(
        select(Tag.usage_count).where(Tag.name_key == name.lower())
    )
    return result.scalar_one()


async def log_rows(db_session, log_id: str) -> list[tuple[str, int]]:
    result = await db_session.execute(
        select(Tag.name, LogTagAssociation.association_order)
        .join(LogTagAssociation, LogTagAssociation.tag_id == Tag.id)
        .where(LogTagAssociation.log_id == log_id)
        .order_by(LogTagAssociation.association_order)
    )
    return [tuple(row) for row in result.all()]


# =============================================================================
# Name Merging Tests
# =============================================================================


class TestMergeTagNames:
    """Tests for merge_tag_names."""

    def test_explicit_names_come_first(self):
        """Test that explicit names precede hashtags."""
        assert merge_tag_names(["Zeta"], "#alpha #beta") == ["Zeta", "alpha", "beta"]

    def test_case_insensitive_dedup_keeps_first_spelling(self):
        """Test that later case variants fold into the first one."""
        assert merge_tag_names(["Guitar"], "#guitar #GUITAR #bass") == ["Guitar", "bass"]

    def test_rejects_blank_explicit_name(self):
        """Test that a blank explicit name is a validation error."""
        with pytest.raises(ValidationError):
            merge_tag_names(["  "], "#ok")


class TestTagResolutionService:
    """Tests for TagResolutionService.resolve."""

    async def test_empty_input_touches_nothing(self, db_session):
        """Test that nothing to resolve means no store calls."""
        resolver = TagResolutionService(db_session)

        with patch.object(resolver.tag_store, "find_or_create_batch") as mock_batch:
            assert await resolver.resolve([], "no tags here", OWNER) == []
            mock_batch.assert_not_called()

    async def test_resolves_in_merged_order(self, db_session):
        """Test that tags come back explicit-first, then by appearance."""
        resolver = TagResolutionService(db_session)

        tags = await resolver.resolve(["Zeta"], "#alpha #zeta #beta", OWNER)

        assert [t.name for t in tags] == ["Zeta", "alpha", "beta"]


# =============================================================================
# Log Association Tests
# =============================================================================


class TestLogAssociations:
    """Tests for associate() on logs."""

    async def test_explicit_then_hashtags_in_order(self, service, make_log, db_session):
        """Test stored order: explicit names, then hashtags by appearance."""
        log = await make_log()

        tags = await service.associate(
            log.id, AssociationKind.LOG, ["Zeta"], "text #alpha #zeta #beta", OWNER
        )

        assert [t.name for t in tags] == ["Zeta", "alpha", "beta"]
        assert await log_rows(db_session, log.id) == [("Zeta", 0), ("alpha", 1), ("beta", 2)]
        ordered = await service.get_ordered(log.id, AssociationKind.LOG)
        assert [t.name for t in ordered] == ["Zeta", "alpha", "beta"]

    async def test_resave_is_idempotent(self, service, make_log, db_session):
        """Test that saving the same content twice leaves the same rows."""
        log = await make_log()
        text = "#one #two #three"

        await service.associate(log.id, AssociationKind.LOG, [], text, OWNER)
        await service.associate(log.id, AssociationKind.LOG, [], text, OWNER)

        assert await log_rows(db_session, log.id) == [("one", 0), ("two", 1), ("three", 2)]
        for name in ("one", "two", "three"):
            assert await usage(db_session, name) == 1

    async def test_same_tag_shared_across_logs(self, service, make_log, db_session):
        """Test that two logs naming a tag differently share one Tag row."""
        first = await make_log()
        second = await make_log()

        a = await service.associate(first.id, AssociationKind.LOG, [], "#Guitar", OWNER)
        b = await service.associate(second.id, AssociationKind.LOG, [], "#guitar", "user-2")

        assert a[0].id == b[0].id
        assert b[0].name == "Guitar"
        count = (
            await db_session.execute(select(func.count(Tag.id)).where(Tag.name_key == "guitar"))
        ).scalar()
        assert count == 1
        assert await usage(db_session, "guitar") == 2

    async def test_content_without_tags_clears(self, service, make_log, db_session):
        """Test that removing every hashtag removes every association."""
        log = await make_log()
        await service.associate(log.id, AssociationKind.LOG, [], "#a #b", OWNER)

        tags = await service.associate(log.id, AssociationKind.LOG, [], "no tags", OWNER)

        assert tags == []
        assert await log_rows(db_session, log.id) == []
        assert await usage(db_session, "a") == 0

    async def test_usage_counts_follow_changes(self, service, make_log, db_session):
        """Test that usage goes up on add, down on removal, never below zero."""
        log = await make_log()
        store = service.store(AssociationKind.LOG)

        await service.associate(log.id, AssociationKind.LOG, [], "#a #b", OWNER)
        await service.associate(log.id, AssociationKind.LOG, [], "#b #c", OWNER)

        assert await usage(db_session, "a") == 0
        assert await usage(db_session, "b") == 1
        assert await usage(db_session, "c") == 1

        await store.clear(log.id)
        await store.clear(log.id)

        for name in ("a", "b", "c"):
            assert await usage(db_session, name) == 0

    async def test_recent_sort_puts_new_links_first(self, service, make_log):
        """Test that sort=recent lists newly linked tags before kept ones."""
        log = await make_log()
        await service.associate(log.id, AssociationKind.LOG, [], "#a #b", OWNER)
        await asyncio.sleep(0.01)

        await service.associate(log.id, AssociationKind.LOG, [], "#b #c #a", OWNER)

        ordered = await service.get_ordered(log.id, AssociationKind.LOG)
        recent = await service.get_recent(log.id, AssociationKind.LOG)
        assert [t.name for t in ordered] == ["b", "c", "a"]
        assert [t.name for t in recent] == ["c", "b", "a"]

        limited = await service.get_recent(log.id, AssociationKind.LOG, limit=1)
        assert [t.name for t in limited] == ["c"]

    async def test_invalid_name_writes_nothing(self, service, make_log, db_session):
        """Test that a validation failure leaves stored associations alone."""
        log = await make_log()
        await service.associate(log.id, AssociationKind.LOG, [], "#keep", OWNER)

        with pytest.raises(ValidationError):
            await service.associate(
                log.id, AssociationKind.LOG, [], "#{" + "x" * 101 + "}", OWNER
            )

        assert await log_rows(db_session, log.id) == [("keep", 0)]

    async def test_list_by_contents_batches(self, service, make_log):
        """Test that many logs' tags load together, keyed by log id."""
        first = await make_log()
        second = await make_log()
        empty = await make_log()
        await service.associate(first.id, AssociationKind.LOG, [], "#x #y", OWNER)
        await service.associate(second.id, AssociationKind.LOG, [], "#y", OWNER)

        by_log = await service.store(AssociationKind.LOG).list_by_contents(
            [first.id, second.id, empty.id]
        )

        assert [t.name for t in by_log[first.id]] == ["x", "y"]
        assert [t.name for t in by_log[second.id]] == ["y"]
        assert by_log[empty.id] == []


# =============================================================================
# Batching Tests
# =============================================================================


class TestBatching:
    """Tests that store round trips do not grow with the number of tags."""

    async def test_store_calls_are_constant(self, service, make_log):
        """Test that 100 new tags take one lookup, one insert, one re-read."""
        log = await make_log()
        names = " ".join(f"#tag{i}" for i in range(100))
        tag_store = service.tag_store

        with patch.object(
            tag_store, "fetch_by_keys", wraps=tag_store.fetch_by_keys
        ) as mock_fetch, patch.object(
            tag_store, "insert_many", wraps=tag_store.insert_many
        ) as mock_insert:
            tags = await service.associate(log.id, AssociationKind.LOG, [], names, OWNER)

            assert len(tags) == 100
            assert mock_fetch.call_count == 2
            assert mock_insert.call_count == 1

            # Second save: everything exists already
            await service.associate(log.id, AssociationKind.LOG, [], names, OWNER)
            assert mock_fetch.call_count == 3
            assert mock_insert.call_count == 1

    async def test_statement_count_independent_of_tag_count(
        self, service, make_log, db_engine
    ):
        """Test that 10 and 100 tags issue the same number of statements."""
        small = await make_log()
        large = await make_log()
        statements: list[str] = []

        def record(conn, cursor, statement, parameters, context, executemany):
            statements.append(statement)

        event.listen(db_engine.sync_engine, "before_cursor_execute", record)
        try:
            await service.associate(
                small.id,
                AssociationKind.LOG,
                [],
                " ".join(f"#small{i}" for i in range(10)),
                OWNER,
            )
            small_count = len(statements)
            statements.clear()

            await service.associate(
                large.id,
                AssociationKind.LOG,
                [],
                " ".join(f"#large{i}" for i in range(100)),
                OWNER,
            )
            large_count = len(statements)
        finally:
            event.remove(db_engine.sync_engine, "before_cursor_execute", record)

        assert large_count == small_count


# =============================================================================
# Tag Reference Tests
# =============================================================================


class TestTagReferences:
    """Tests for tag-to-tag associations."""

    async def test_self_reference_rejected_without_changes(
        self, service, make_tag, db_session
    ):
        """Test that a description naming its own tag changes nothing."""
        guitar = await make_tag("Guitar")
        await service.associate(guitar.id, AssociationKind.TAG, [], "#music", OWNER)

        with pytest.raises(SelfReferenceError):
            await service.associate(
                guitar.id, AssociationKind.TAG, [], "#strings #GUITAR", OWNER
            )

        associated = await service.get_ordered(guitar.id, AssociationKind.TAG)
        assert [t.name for t in associated] == ["music"]
        assert await usage(db_session, "music") == 1

    async def test_self_reference_creates_no_tags(self, service, make_tag, db_session):
        """Test that a rejected self reference leaves no new tags behind."""
        drums = await make_tag("Drums")
        await service.associate(drums.id, AssociationKind.TAG, [], "#rhythm", OWNER)
        tag_count = (await db_session.execute(select(func.count(Tag.id)))).scalar()
        assert tag_count == 2

        with pytest.raises(SelfReferenceError):
            await service.associate(
                drums.id, AssociationKind.TAG, [], "#Brand #New #{drums}", OWNER
            )

        assert (await db_session.execute(select(func.count(Tag.id)))).scalar() == 2
        associated = await service.get_ordered(drums.id, AssociationKind.TAG)
        assert [t.name for t in associated] == ["rhythm"]

    async def test_store_rejects_self_reference(self, db_session, make_tag):
        """Test that the store refuses a self link on its own as well."""
        tag = await make_tag("loop")
        store = AssociationStore(db_session, AssociationKind.TAG)

        with pytest.raises(SelfReferenceError):
            await store.replace_associations(tag.id, [tag.id])
        with pytest.raises(SelfReferenceError):
            await store.add_association(tag.id, tag.id)

    async def test_cycles_are_allowed(self, service, make_tag):
        """Test that A -> B -> A is permitted."""
        a = await make_tag("A")
        b = await make_tag("B")

        await service.associate(a.id, AssociationKind.TAG, [], "#B", OWNER)
        await service.associate(b.id, AssociationKind.TAG, [], "#A", OWNER)

        assert [t.id for t in await service.get_ordered(a.id, AssociationKind.TAG)] == [b.id]
        assert [t.id for t in await service.get_ordered(b.id, AssociationKind.TAG)] == [a.id]

    async def test_referrers_newest_first(self, service, make_tag):
        """Test that referrers list the most recent link first."""
        target = await make_tag("target")
        older = await make_tag("older")
        newer = await make_tag("newer")

        await service.associate(older.id, AssociationKind.TAG, [], "#target", OWNER)
        await asyncio.sleep(0.01)
        await service.associate(newer.id, AssociationKind.TAG, [], "#target", OWNER)

        referrers = await service.get_referrers(target.id)
        assert [t.name for t in referrers] == ["newer", "older"]
        assert [t.name for t in await service.get_referrers(target.id, limit=1)] == ["newer"]

    async def test_referrers_only_for_tag_kind(self, service):
        """Test that asking a log store for referrers is an error."""
        with pytest.raises(ValueError):
            await service.store(AssociationKind.LOG).list_referrers("any")

    async def test_add_and_remove_keep_order_dense(self, service, make_tag, db_session):
        """Test manual add appends and remove closes the gap."""
        owner = await make_tag("owner")
        await service.associate(owner.id, AssociationKind.TAG, [], "#a #b #c", OWNER)
        extra = await make_tag("d")
        store = service.store(AssociationKind.TAG)
        b_id = (await service.tag_store.find_by_name("b")).id

        assert await store.remove_association(owner.id, b_id) is True
        assert await store.remove_association(owner.id, b_id) is False
        assert await store.add_association(owner.id, extra.id) is True
        assert await store.add_association(owner.id, extra.id) is False

        result = await db_session.execute(
            select(Tag.name, TagAssociation.association_order)
            .join(TagAssociation, TagAssociation.associated_tag_id == Tag.id)
            .where(TagAssociation.tag_id == owner.id)
            .order_by(TagAssociation.association_order)
        )
        assert [tuple(row) for row in result.all()] == [("a", 0), ("c", 1), ("d", 2)]
        assert await usage(db_session, "b") == 0
        assert await usage(db_session, "d") == 1

    async def test_usage_counts_both_kinds(self, service, make_tag, make_log, db_session):
        """Test that usage counts links from logs and tags alike."""
        log = await make_log()
        parent = await make_tag("parent")

        await service.associate(log.id, AssociationKind.LOG, [], "#shared", OWNER)
        await service.associate(parent.id, AssociationKind.TAG, [], "#shared", OWNER)

        assert await usage(db_session, "shared") == 2
        assert await service.store(AssociationKind.LOG).count_for_tag(
            (await service.tag_store.find_by_name("shared")).id
        ) == 1
