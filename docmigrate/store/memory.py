"""In-process document store.

Used for tests and for embedding the runner where no external store is
available. Stores opened through `memory://` URLs are shared by name for
the lifetime of the process, so state survives between runs.
"""

import asyncio
import copy
import uuid
from typing import Any, Optional

from .base import (
    DESCENDING,
    NATURAL,
    Document,
    DocumentCollection,
    SortSpec,
    Store,
)


def matches(document: Document, filter: Optional[Document]) -> bool:
    """Check a document against the shared filter language."""
    for field_name, expected in (filter or {}).items():
        actual = document.get(field_name)
        if isinstance(expected, dict) and "$ne" in expected:
            if actual == expected["$ne"]:
                return False
        elif actual != expected:
            return False
    return True


def _sort_key(value: Any) -> tuple:
    # Missing/null values order first, as in MongoDB
    return (value is not None, value)


class MemoryCollection(DocumentCollection):
    """A list-backed collection preserving insertion order."""

    def __init__(self, name: str):
        self.name = name
        self._documents: list[tuple[int, str, Document]] = []
        self._indexes: dict[str, SortSpec] = {}
        self._sequence = 0
        self._lock = asyncio.Lock()

    async def insert_one(self, document: Document) -> str:
        async with self._lock:
            document_id = uuid.uuid4().hex
            self._sequence += 1
            stored = copy.deepcopy(document)
            stored.pop("id", None)
            self._documents.append((self._sequence, document_id, stored))
            return document_id

    async def find(
        self,
        filter: Optional[Document] = None,
        sort: Optional[SortSpec] = None,
        limit: Optional[int] = None,
    ) -> list[Document]:
        async with self._lock:
            entries = [entry for entry in self._documents if matches(entry[2], filter)]

        # Stable multi-key sort: apply keys from least to most significant
        for field_name, direction in reversed(sort or []):
            if field_name == NATURAL:
                entries.sort(key=lambda entry: entry[0], reverse=direction == DESCENDING)
            else:
                entries.sort(
                    key=lambda entry, f=field_name: _sort_key(entry[2].get(f)),
                    reverse=direction == DESCENDING,
                )

        if limit is not None:
            entries = entries[:limit]
        return [{**copy.deepcopy(document), "id": document_id} for _, document_id, document in entries]

    async def count(self, filter: Optional[Document] = None) -> int:
        async with self._lock:
            return sum(1 for _, _, document in self._documents if matches(document, filter))

    async def update_one(self, document_id: Any, fields: Document) -> bool:
        async with self._lock:
            for _, stored_id, document in self._documents:
                if stored_id == document_id:
                    document.update(copy.deepcopy(fields))
                    return True
            return False

    async def list_indexes(self) -> list[str]:
        return list(self._indexes)

    async def create_index(self, name: str, keys: SortSpec) -> None:
        self._indexes.setdefault(name, list(keys))

    def __len__(self) -> int:
        return len(self._documents)


class MemoryStore(Store):
    """A named set of in-memory collections."""

    def __init__(self, name: str = "memory"):
        self.name = name
        self._collections: dict[str, MemoryCollection] = {}

    def get_collection(self, name: str) -> MemoryCollection:
        if name not in self._collections:
            self._collections[name] = MemoryCollection(name)
        return self._collections[name]

    @property
    def collection_names(self) -> list[str]:
        return list(self._collections)


# Process-wide stores for memory:// URLs, keyed by (location, database name)
_memory_stores: dict[tuple[str, str], MemoryStore] = {}


def get_memory_store(location: str, name: str) -> MemoryStore:
    """Get or create the shared in-memory store for a URL location.

    Args:
        location: Part of the connection string after memory://
        name: Database name

    Returns:
        MemoryStore shared by all callers using the same location and name
    """
    key = (location, name)
    if key not in _memory_stores:
        _memory_stores[key] = MemoryStore(name)
    return _memory_stores[key]


def clear_memory_stores() -> None:
    """Drop every shared in-memory store."""
    _memory_stores.clear()
