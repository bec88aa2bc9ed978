"""Document store layer.

Provides:
- Store / DocumentCollection: the collection surface the migration core uses
- MemoryStore: process-local backend (memory://)
- SurrealStore: SurrealDB backend (ws://, wss://)
- MongoStore: MongoDB backend (mongodb://, mongodb+srv://)
- open_store: backend selection by connection-string scheme

Usage:
    from docmigrate.store import open_store

    async with open_store(database) as store:
        collection = store.get_collection("migration_state")
        await collection.insert_one({"database": "app", "version": 1})
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Optional

from ..config import (
    MigratableDatabase,
    MigrationSettings,
    SurrealConfig,
    get_settings,
)
from .base import (
    ASCENDING,
    DESCENDING,
    NATURAL,
    Document,
    DocumentCollection,
    SortSpec,
    Store,
    StoreError,
)
from .memory import MemoryCollection, MemoryStore, clear_memory_stores, get_memory_store
from .mongo import MongoCollection, MongoStore
from .surreal import SurrealCollection, SurrealStore

logger = logging.getLogger(__name__)

MEMORY_SCHEMES = ("memory",)
SURREAL_SCHEMES = ("ws", "wss")
MONGO_SCHEMES = ("mongodb", "mongodb+srv")


def create_store(
    database: MigratableDatabase,
    surreal_config: Optional[SurrealConfig] = None,
    settings: Optional[MigrationSettings] = None,
) -> Store:
    """Create an unopened store for a database's connection string.

    Args:
        database: Database definition
        surreal_config: SurrealDB credentials (uses global if not provided)
        settings: Migration settings (uses global if not provided)

    Returns:
        Store for the backend matching the URL scheme

    Raises:
        StoreError: If the scheme is not supported
    """
    url = database.connection_string
    scheme, _, location = url.partition("://")
    scheme = scheme.lower()
    settings = settings or get_settings()

    if scheme in MEMORY_SCHEMES:
        return get_memory_store(location, database.name)
    if scheme in SURREAL_SCHEMES:
        return SurrealStore(url, database.name, surreal_config)
    if scheme in MONGO_SCHEMES:
        return MongoStore.from_url(url, database.name, settings.connect_timeout)

    raise StoreError(f"Unsupported store URL scheme for '{database.alias}': {scheme!r}")


@asynccontextmanager
async def open_store(
    database: MigratableDatabase,
    surreal_config: Optional[SurrealConfig] = None,
    settings: Optional[MigrationSettings] = None,
) -> AsyncGenerator[Store, None]:
    """Context manager for a database's store.

    Usage:
        async with open_store(database) as store:
            ...

    Args:
        database: Database definition
        surreal_config: SurrealDB credentials (uses global if not provided)
        settings: Migration settings (uses global if not provided)

    Yields:
        Store handle, closed on exit
    """
    store = create_store(database, surreal_config, settings)
    logger.debug(f"Opened {type(store).__name__} for {database.alias} ({database.name})")
    async with store:
        yield store


__all__ = [
    "ASCENDING",
    "DESCENDING",
    "NATURAL",
    "Document",
    "DocumentCollection",
    "SortSpec",
    "Store",
    "StoreError",
    "MemoryCollection",
    "MemoryStore",
    "get_memory_store",
    "clear_memory_stores",
    "SurrealCollection",
    "SurrealStore",
    "MongoCollection",
    "MongoStore",
    "MEMORY_SCHEMES",
    "SURREAL_SCHEMES",
    "MONGO_SCHEMES",
    "create_store",
    "open_store",
]
