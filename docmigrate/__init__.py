"""Versioned migrations for document stores.

Provides:
- Store backends for in-memory, SurrealDB and MongoDB databases
- Migration path resolution over arbitrary version graphs
- Durable per-step state tracking with crash detection
- Concurrent migration runs with completion notification

Usage:
    from docmigrate import MigratableDatabase
    from docmigrate.migrations import BaseMigration, MigrationService, discover_migrations

    ACCOUNTS = MigratableDatabase(
        alias="accounts",
        name="accounts",
        connection_string="ws://localhost:8000",
    )

    class AddEmailIndex(BaseMigration):
        database = "accounts"
        down_version = 0
        up_version = 1

        async def up(self, store):
            await store.get_collection("users").create_index("email_idx", [("email", 1)])

    outcomes = await MigrationService(discover_migrations("myapp.migrations")).run()

Environment Variables:
    DOCMIGRATE_STATE_COLLECTION: Default collection for version records
    DOCMIGRATE_STOP_TIMEOUT: Seconds to wait for a cancelled run
    DOCMIGRATE_CONNECT_TIMEOUT: Store connection timeout
    SURREAL_NAMESPACE: SurrealDB namespace
    SURREAL_USER: SurrealDB username
    SURREAL_PASS: SurrealDB password
    SURREAL_CONNECT_TIMEOUT: SurrealDB connection timeout
    SURREAL_QUERY_TIMEOUT: SurrealDB query timeout
    SURREAL_SKIP_SSL_VERIFY: Skip certificate checks for wss:// (true/false)
"""

from .clock import Clock, SystemClock

from .config import (
    MigratableDatabase,
    MigrationSettings,
    SurrealConfig,
    get_settings,
    set_settings,
    get_surreal_config,
    set_surreal_config,
)

__version__ = "0.1.0"

__all__ = [
    # Clock
    "Clock",
    "SystemClock",
    # Config
    "MigratableDatabase",
    "MigrationSettings",
    "SurrealConfig",
    "get_settings",
    "set_settings",
    "get_surreal_config",
    "set_surreal_config",
]
