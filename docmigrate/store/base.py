"""Document store abstractions.

The migration core only needs a small collection-oriented surface:
insert, find with sort/limit, count, update by id, and index management.
Backends implement `Store` and `DocumentCollection`.

Filter language (shared by all backends):
    {"field": value}           equality
    {"field": None}            field is missing or null
    {"field": {"$ne": value}}  inequality ({"$ne": None} means "is set")

Sort keys are (field, ASCENDING | DESCENDING) pairs. The pseudo-field
NATURAL orders by insertion.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

ASCENDING = 1
DESCENDING = -1
NATURAL = "$natural"

Document = dict[str, Any]
SortSpec = list[tuple[str, int]]


class StoreError(Exception):
    """Document store error."""

    pass


class DocumentCollection(ABC):
    """A named collection of documents.

    Documents returned by `find` carry their opaque identifier under "id".
    """

    name: str

    @abstractmethod
    async def insert_one(self, document: Document) -> Any:
        """Insert a document and return its identifier."""

    @abstractmethod
    async def find(
        self,
        filter: Optional[Document] = None,
        sort: Optional[SortSpec] = None,
        limit: Optional[int] = None,
    ) -> list[Document]:
        """Find documents matching `filter`, ordered by `sort`."""

    @abstractmethod
    async def count(self, filter: Optional[Document] = None) -> int:
        """Count documents matching `filter`."""

    @abstractmethod
    async def update_one(self, document_id: Any, fields: Document) -> bool:
        """Set `fields` on the document with `document_id`.

        Returns:
            True if a document was updated
        """

    @abstractmethod
    async def list_indexes(self) -> list[str]:
        """List index names defined on the collection."""

    @abstractmethod
    async def create_index(self, name: str, keys: SortSpec) -> None:
        """Create the index `name` unless it already exists."""

    async def find_one(
        self,
        filter: Optional[Document] = None,
        sort: Optional[SortSpec] = None,
    ) -> Optional[Document]:
        """Find the first document matching `filter` in `sort` order."""
        documents = await self.find(filter, sort=sort, limit=1)
        return documents[0] if documents else None

    async def create_index_if_absent(self, name: str, keys: SortSpec) -> bool:
        """Create an index only when no index with `name` exists.

        Returns:
            True if the index was created
        """
        if name in await self.list_indexes():
            return False
        await self.create_index(name, keys)
        return True


class Store(ABC):
    """Handle to one physical database."""

    name: str

    @abstractmethod
    def get_collection(self, name: str) -> DocumentCollection:
        """Get a collection by name."""

    async def close(self) -> None:
        """Release the underlying connection."""

    async def __aenter__(self) -> "Store":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
