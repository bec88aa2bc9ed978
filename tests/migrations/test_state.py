"""Tests for the migration state store."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from docmigrate.migrations.base import VersionDirection, VersionRecord
from docmigrate.migrations.state import (
    COMPLETION_INDEX_NAME,
    MigrationState,
    MigrationStateStore,
)
from docmigrate.store import DESCENDING, MemoryCollection, StoreError


@pytest.fixture
def collection():
    """Create an empty state collection."""
    return MemoryCollection("migration_state")


@pytest.fixture
def state_store(collection, clock):
    """Create a state store for the "app" database."""
    return MigrationStateStore(collection, "app", clock)


async def apply_versions(state_store, *versions, direction=VersionDirection.UP):
    for version in versions:
        record = await state_store.begin_step(version, direction)
        await state_store.complete_step(record)


class TestEnsurePrepared:
    """Tests for index preparation."""

    @pytest.mark.asyncio
    async def test_creates_completion_index(self, state_store, collection):
        """Test the completion index is created."""
        await state_store.ensure_prepared()

        assert await collection.list_indexes() == [COMPLETION_INDEX_NAME]
        assert collection._indexes[COMPLETION_INDEX_NAME] == [("completed_at", DESCENDING)]

    @pytest.mark.asyncio
    async def test_idempotent(self, state_store, collection):
        """Test a second call does not create the index again."""
        await state_store.ensure_prepared()
        collection.create_index = AsyncMock()

        await state_store.ensure_prepared()

        collection.create_index.assert_not_called()


class TestGetState:
    """Tests for reading state."""

    @pytest.mark.asyncio
    async def test_empty_state(self, state_store):
        """Test a fresh database has no version."""
        state = await state_store.get_state()

        assert state.applied_count == 0
        assert state.current is None
        assert state.earliest is None
        assert state.current_version is None
        assert state.is_corrupt is False

    @pytest.mark.asyncio
    async def test_current_is_latest_completion(self, state_store):
        """Test the current version is the most recently completed."""
        await apply_versions(state_store, 1, 2, 3)
        await apply_versions(state_store, 2, direction=VersionDirection.DOWN)

        state = await state_store.get_state()

        assert state.applied_count == 4
        assert state.current_version == 2
        assert state.current.direction == VersionDirection.DOWN
        assert state.earliest.version == 1

    @pytest.mark.asyncio
    async def test_completion_ties_use_insertion_order(self, collection, frozen_clock):
        """Test equal completion times resolve to the last inserted record."""
        state_store = MigrationStateStore(collection, "app", frozen_clock)
        await apply_versions(state_store, 1, 2, 3)

        state = await state_store.get_state()

        assert state.current_version == 3

    @pytest.mark.asyncio
    async def test_incomplete_records_mark_corruption(self, state_store):
        """Test records without completion are reported."""
        await apply_versions(state_store, 1)
        await state_store.begin_step(2, VersionDirection.UP)

        state = await state_store.get_state()

        assert state.is_corrupt is True
        assert state.incomplete_versions == [2]
        assert state.current_version == 1

    @pytest.mark.asyncio
    async def test_scoped_to_database_alias(self, state_store, collection, clock):
        """Test records of other databases sharing the collection are ignored."""
        other = MigrationStateStore(collection, "other", clock)
        await apply_versions(other, 7)
        await other.begin_step(8, VersionDirection.UP)
        await apply_versions(state_store, 1)

        state = await state_store.get_state()

        assert state.applied_count == 1
        assert state.current_version == 1
        assert state.incomplete_versions == []


class TestSteps:
    """Tests for recording steps."""

    @pytest.mark.asyncio
    async def test_begin_step_writes_incomplete_record(self, state_store, collection):
        """Test beginning a step persists the destination version."""
        record = await state_store.begin_step(5, VersionDirection.UP)

        documents = await collection.find()
        assert len(documents) == 1
        assert documents[0]["database"] == "app"
        assert documents[0]["version"] == 5
        assert documents[0]["direction"] == "up"
        assert documents[0]["started_at"] == datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert documents[0]["completed_at"] is None
        assert record.id == documents[0]["id"]
        assert record.is_complete is False

    @pytest.mark.asyncio
    async def test_complete_step_sets_completion_time(self, state_store, collection):
        """Test completing a step stamps the record."""
        record = await state_store.begin_step(5, VersionDirection.UP)

        completed = await state_store.complete_step(record)

        assert completed.is_complete is True
        documents = await collection.find()
        assert documents[0]["completed_at"] == datetime(2024, 1, 1, 0, 0, 1, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_complete_missing_record(self, state_store):
        """Test completing an unknown record fails."""
        record = VersionRecord(
            database="app",
            version=1,
            direction=VersionDirection.UP,
            started_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
            id="missing",
        )

        with pytest.raises(StoreError, match="disappeared"):
            await state_store.complete_step(record)

    @pytest.mark.asyncio
    async def test_history_in_insertion_order(self, state_store):
        """Test history returns every record of the database."""
        await apply_versions(state_store, 1, 2)
        await state_store.begin_step(3, VersionDirection.UP)

        history = await state_store.history()

        assert [r.version for r in history] == [1, 2, 3]
        assert [r.is_complete for r in history] == [True, True, False]


class TestVersionRecord:
    """Tests for VersionRecord persistence."""

    def test_from_document_parses_iso_strings(self):
        """Test timestamps stored as strings are parsed."""
        record = VersionRecord.from_document(
            {
                "id": "abc",
                "database": "app",
                "version": "3",
                "direction": "down",
                "started_at": "2024-01-01T00:00:00.000000+00:00",
                "completed_at": "2024-01-01T00:00:05Z",
            }
        )

        assert record.version == 3
        assert record.direction == VersionDirection.DOWN
        assert record.completed_at == datetime(2024, 1, 1, 0, 0, 5, tzinfo=timezone.utc)
        assert record.id == "abc"

    def test_missing_completion(self):
        """Test a document without completed_at is incomplete."""
        record = VersionRecord.from_document(
            {
                "database": "app",
                "version": 1,
                "direction": "up",
                "started_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
            }
        )

        assert record.is_complete is False


class TestMigrationState:
    """Tests for MigrationState properties."""

    def test_defaults(self):
        state = MigrationState()
        assert state.current_version is None
        assert state.is_corrupt is False
