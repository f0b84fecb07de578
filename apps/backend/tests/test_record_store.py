"""Tests for the record stores and the typed stores built on them."""

import copy
from types import SimpleNamespace

import pytest
import pytest_asyncio

from agents.generation.exceptions import (
    ConcurrencyConflictError,
    LoadError,
    SaveError,
    StatusMutationError,
    ValidationError,
)
from agents.persistence.record_store import InMemoryRecordStore, SupabaseRecordStore
from models.draft import Draft
from models.presentation import PresentationStatus, Slide, TokenUsage


class FakeQuery:
    """Just enough of the postgrest query builder for SupabaseRecordStore."""

    def __init__(self, db, table):
        self.db = db
        self.table = table
        self.action = "select"
        self.payload = None
        self.filters = []

    def select(self, *_):
        self.action = "select"
        return self

    def insert(self, row):
        self.action, self.payload = "insert", row
        return self

    def update(self, changes):
        self.action, self.payload = "update", changes
        return self

    def delete(self):
        self.action = "delete"
        return self

    def eq(self, key, value):
        self.filters.append(lambda r: r.get(key) == value)
        return self

    def ilike(self, key, pattern):
        needle = pattern.strip("%").lower()
        self.filters.append(lambda r: needle in str(r.get(key) or "").lower())
        return self

    def limit(self, _):
        return self

    def order(self, *_, **__):
        return self

    def execute(self):
        if self.db.fail:
            raise RuntimeError("permission denied")
        rows = self.db.tables.setdefault(self.table, {})
        if self.action == "insert":
            rows[self.payload["id"]] = copy.deepcopy(self.payload)
            return SimpleNamespace(data=[copy.deepcopy(self.payload)])

        matched = [r for r in rows.values() if all(f(r) for f in self.filters)]
        if self.action == "update":
            if self.db.before_update:
                self.db.before_update(rows)
                self.db.before_update = None
                matched = [r for r in rows.values() if all(f(r) for f in self.filters)]
            for r in matched:
                r.update(copy.deepcopy(self.payload))
        elif self.action == "delete":
            for r in matched:
                del rows[r["id"]]
        return SimpleNamespace(data=[copy.deepcopy(r) for r in matched])


class FakeSupabase:
    def __init__(self):
        self.tables = {}
        self.fail = False
        self.before_update = None

    def table(self, name):
        return FakeQuery(self, name)


@pytest.fixture
def fake_supabase(monkeypatch):
    client = FakeSupabase()
    monkeypatch.setattr("agents.persistence.record_store.get_supabase_client", lambda: client)
    return client


@pytest.fixture(params=["memory", "supabase"])
def store(request):
    if request.param == "memory":
        return InMemoryRecordStore("presentations")
    request.getfixturevalue("fake_supabase")
    return SupabaseRecordStore("presentations")


@pytest.mark.unit
class TestRecordStoreContract:
    @pytest.mark.asyncio
    async def test_create_stamps_version(self, store):
        row = await store.create({"id": "a", "user_id": "u1", "title": "Alpha"})
        assert row["version"] == 1
        assert row["created_at"] and row["updated_at"]

    @pytest.mark.asyncio
    async def test_update_bumps_version(self, store):
        await store.create({"id": "a", "user_id": "u1", "title": "Alpha"})
        row = await store.update("a", {"title": "Beta"})
        assert (row["title"], row["version"]) == ("Beta", 2)
        assert (await store.get("a"))["title"] == "Beta"

    @pytest.mark.asyncio
    async def test_unmet_precondition_raises(self, store):
        await store.create({"id": "a", "user_id": "u1", "status": "completed"})
        with pytest.raises(ConcurrencyConflictError):
            await store.update("a", {"status": "failed"}, expected={"status": "generating"})
        assert (await store.get("a"))["status"] == "completed"

    @pytest.mark.asyncio
    async def test_missing_record_is_none(self, store):
        assert await store.get("nope") is None
        assert await store.update("nope", {"title": "x"}) is None
        assert await store.delete("nope") is False

    @pytest.mark.asyncio
    async def test_owner_scoping(self, store):
        await store.create({"id": "a", "user_id": "u1", "title": "Alpha"})
        assert await store.get("a", "u2") is None
        assert await store.update("a", {"title": "x"}, owner_id="u2") is None
        assert await store.delete("a", "u2") is False
        assert (await store.get("a", "u1"))["title"] == "Alpha"

    @pytest.mark.asyncio
    async def test_list_and_search(self, store):
        await store.create({"id": "a", "user_id": "u1", "title": "Growth plan"})
        await store.create({"id": "b", "user_id": "u1", "title": "Hiring"})
        await store.create({"id": "c", "user_id": "u2", "title": "Growth too"})

        assert sorted(r["id"] for r in await store.list_by_owner("u1")) == ["a", "b"]
        assert [r["id"] for r in await store.search("u1", "growth")] == ["a"]


@pytest.mark.unit
class TestSupabaseRecordStore:
    @pytest.mark.asyncio
    async def test_concurrent_write_is_retried(self, fake_supabase):
        store = SupabaseRecordStore("presentations")
        await store.create({"id": "a", "user_id": "u1", "title": "Alpha"})

        def other_writer(rows):
            rows["a"]["title"] = "Other"
            rows["a"]["version"] = 2

        fake_supabase.before_update = other_writer
        row = await store.update("a", {"status": "failed"})

        assert row["version"] == 3
        assert row["title"] == "Other"

    @pytest.mark.asyncio
    async def test_status_race_surfaces_as_conflict(self, fake_supabase):
        store = SupabaseRecordStore("presentations")
        await store.create({"id": "a", "user_id": "u1", "status": "generating"})

        def finisher(rows):
            rows["a"]["status"] = "completed"
            rows["a"]["version"] = 2

        fake_supabase.before_update = finisher
        with pytest.raises(ConcurrencyConflictError):
            await store.update("a", {"status": "failed"}, expected={"status": "generating"})

    @pytest.mark.asyncio
    async def test_sdk_errors_are_wrapped(self, fake_supabase):
        store = SupabaseRecordStore("presentations")
        fake_supabase.fail = True
        with pytest.raises(LoadError):
            await store.get("a")
        with pytest.raises(SaveError):
            await store.create({"id": "a", "user_id": "u1"})


@pytest.mark.unit
class TestPresentationStore:
    @pytest.mark.asyncio
    async def test_protected_fields_rejected(self, presentations, make_presentation):
        await presentations.create(make_presentation())
        for field in ("status", "version", "error_message", "id", "user_id"):
            with pytest.raises(StatusMutationError):
                await presentations.update("pres-1", {field: "x"})

    @pytest.mark.asyncio
    async def test_null_values_rejected_before_write(self, presentations, make_presentation):
        await presentations.create(make_presentation())
        with pytest.raises(ValidationError, match="cannot be null: title"):
            await presentations.update("pres-1", {"title": None})
        stored = await presentations.get("pres-1")
        assert (stored.title, stored.version) == ("Growth plan", 1)

    @pytest.mark.asyncio
    async def test_expected_version(self, presentations, make_presentation):
        await presentations.create(make_presentation())
        updated = await presentations.update("pres-1", {"title": "New"}, expected_version=1)
        assert updated.version == 2
        with pytest.raises(ConcurrencyConflictError):
            await presentations.update("pres-1", {"title": "Newer"}, expected_version=1)

    @pytest.mark.asyncio
    async def test_terminal_write_happens_once(self, presentations, make_presentation):
        await presentations.create(make_presentation())
        done = await presentations.mark_completed("pres-1", [Slide(index=0, title="A")], TokenUsage(slides=3, total=3))
        assert done.status == PresentationStatus.COMPLETED

        with pytest.raises(ConcurrencyConflictError):
            await presentations.mark_failed("pres-1", "late failure")
        assert (await presentations.get("pres-1")).error_message is None

    @pytest.mark.asyncio
    async def test_terminal_write_on_missing_record(self, presentations):
        assert await presentations.mark_failed("nope", "x") is None

    @pytest.mark.asyncio
    async def test_duplicate(self, presentations, make_presentation):
        await presentations.create(make_presentation(status=PresentationStatus.COMPLETED))
        copy_ = await presentations.duplicate("pres-1", "user-1")

        assert copy_.id != "pres-1"
        assert copy_.title == "Growth plan (Copy)"
        assert copy_.status == PresentationStatus.COMPLETED
        assert copy_.version == 1
        assert await presentations.duplicate("pres-1", "user-2") is None


@pytest.mark.unit
class TestDraftStore:
    @pytest_asyncio.fixture
    async def saved(self, drafts, outline):
        return await drafts.save(Draft(id="d1", title="Growth plan", prompt="growth", outline=outline))

    @pytest.mark.asyncio
    async def test_save_duplicate_id_fails(self, drafts, saved):
        with pytest.raises(SaveError):
            await drafts.save(saved)

    @pytest.mark.asyncio
    async def test_update_bullet(self, drafts, saved):
        draft = await drafts.update_bullet("d1", 1, 0, "Hire two engineers")
        assert draft.outline.slides[1].bullets == ["Hire two engineers", "Ship"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("index,bullet_index", [(5, 0), (-1, 0), (0, 9)])
    async def test_out_of_range_edits(self, drafts, saved, index, bullet_index):
        with pytest.raises(ValidationError):
            await drafts.update_bullet("d1", index, bullet_index, "x")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("order", [[0, 1], [0, 1, 1], [0, 1, 3]])
    async def test_reorder_requires_permutation(self, drafts, saved, order):
        with pytest.raises(ValidationError, match="permutation"):
            await drafts.reorder_slides("d1", order)

    @pytest.mark.asyncio
    async def test_edits_on_missing_draft(self, drafts):
        assert await drafts.update_slide_title("nope", 0, "x") is None
        assert await drafts.reorder_slides("nope", [0]) is None

    @pytest.mark.asyncio
    async def test_rename(self, drafts, saved):
        assert (await drafts.rename("d1", "Renamed")).title == "Renamed"
