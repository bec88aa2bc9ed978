"""Pytest fixtures for docmigrate tests."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from docmigrate.config import MigratableDatabase, SurrealConfig, set_settings, set_surreal_config
from docmigrate.migrations.base import MigrationStep
from docmigrate.store import clear_memory_stores, get_memory_store


class FakeClock:
    """Clock returning a fixed sequence of UTC timestamps."""

    def __init__(self, step: timedelta = timedelta(seconds=1)):
        self.current = datetime(2024, 1, 1, tzinfo=timezone.utc)
        self.step = step

    def now(self) -> datetime:
        value = self.current
        self.current += self.step
        return value


class RecordingMigration:
    """Migration body appending ("up"|"down", down, up) to a journal."""

    def __init__(self, journal: list, down_version: int, up_version: int, fail=None):
        self.journal = journal
        self.down_version = down_version
        self.up_version = up_version
        self.fail = fail

    async def up(self, store) -> None:
        self.journal.append(("up", self.down_version, self.up_version))
        if self.fail == "up":
            raise RuntimeError(f"up {self.down_version}->{self.up_version} failed")

    async def down(self, store) -> None:
        self.journal.append(("down", self.down_version, self.up_version))
        if self.fail == "down":
            raise RuntimeError(f"down {self.up_version}->{self.down_version} failed")


# -------------------------------------------------------------------
# Global state
# -------------------------------------------------------------------


@pytest.fixture(autouse=True)
def reset_global_state():
    """Reset shared in-memory stores and global configuration."""
    clear_memory_stores()
    set_settings(None)
    set_surreal_config(None)
    yield
    clear_memory_stores()
    set_settings(None)
    set_surreal_config(None)


# -------------------------------------------------------------------
# Migration fixtures
# -------------------------------------------------------------------


@pytest.fixture
def clock():
    """Clock advancing one second per reading."""
    return FakeClock()


@pytest.fixture
def frozen_clock():
    """Clock returning the same timestamp on every reading."""
    return FakeClock(step=timedelta(0))


@pytest.fixture
def journal():
    """Shared list of executed migration bodies."""
    return []


@pytest.fixture
def make_step(journal):
    """Factory for steps with recording bodies."""

    def factory(down, up, database="app", fail=None, description=None):
        body = RecordingMigration(journal, down, up, fail)
        return MigrationStep(database, down, up, body, description)

    return factory


@pytest.fixture
def app_database():
    """In-memory database with alias "app"."""
    return MigratableDatabase(
        alias="app",
        name="app_db",
        connection_string="memory://tests",
    )


@pytest.fixture
def app_store(app_database):
    """The shared in-memory store behind app_database."""
    return get_memory_store("tests", app_database.name)


@pytest.fixture
def state_collection(app_store, app_database):
    """The version record collection of app_database."""
    return app_store.get_collection(app_database.state_collection_name)


# -------------------------------------------------------------------
# SurrealDB fixtures
# -------------------------------------------------------------------


@pytest.fixture
def mock_surreal_client():
    """Create a mock SurrealDB client."""
    client = MagicMock()
    client.connect = AsyncMock()
    client.signin = AsyncMock()
    client.authenticate = AsyncMock()
    client.use = AsyncMock()
    client.close = AsyncMock()
    client.query = AsyncMock(return_value=[])
    return client


@pytest.fixture
def mock_surreal_config():
    """Create a SurrealDB configuration for tests."""
    return SurrealConfig(
        namespace="test",
        user="root",
        password="root",
        connect_timeout=5.0,
        query_timeout=30.0,
        skip_ssl_verify=False,
    )
