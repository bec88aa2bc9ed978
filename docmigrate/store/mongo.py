"""MongoDB document store backend using motor.

The shared filter language is a subset of MongoDB's query language, so
filters pass through unchanged. Natural order maps to `_id`, which is
insertion-ordered for ObjectIds generated by the driver.
"""

import logging
from typing import Any, Optional

from motor.motor_asyncio import (
    AsyncIOMotorClient,
    AsyncIOMotorCollection,
    AsyncIOMotorDatabase,
)

from .base import NATURAL, Document, DocumentCollection, SortSpec, Store

logger = logging.getLogger(__name__)


def _mongo_keys(keys: Optional[SortSpec]) -> list[tuple[str, int]]:
    return [("_id" if field_name == NATURAL else field_name, direction) for field_name, direction in keys or []]


class MongoCollection(DocumentCollection):
    """A motor collection exposed through the store interface."""

    def __init__(self, collection: AsyncIOMotorCollection):
        self.collection = collection
        self.name = collection.name

    async def insert_one(self, document: Document) -> Any:
        data = {k: v for k, v in document.items() if k != "id"}
        result = await self.collection.insert_one(data)
        return result.inserted_id

    async def find(
        self,
        filter: Optional[Document] = None,
        sort: Optional[SortSpec] = None,
        limit: Optional[int] = None,
    ) -> list[Document]:
        cursor = self.collection.find(filter or {})
        if sort:
            cursor = cursor.sort(_mongo_keys(sort))
        if limit is not None:
            cursor = cursor.limit(limit)

        documents = await cursor.to_list(length=None)
        return [{**{k: v for k, v in doc.items() if k != "_id"}, "id": doc["_id"]} for doc in documents]

    async def count(self, filter: Optional[Document] = None) -> int:
        return await self.collection.count_documents(filter or {})

    async def update_one(self, document_id: Any, fields: Document) -> bool:
        result = await self.collection.update_one({"_id": document_id}, {"$set": fields})
        return result.matched_count > 0

    async def list_indexes(self) -> list[str]:
        return [index["name"] async for index in self.collection.list_indexes()]

    async def create_index(self, name: str, keys: SortSpec) -> None:
        await self.collection.create_index(
            [key for key in _mongo_keys(keys) if key[0] != "_id"],
            name=name,
        )
        logger.debug(f"Ensured index {name} on {self.name}")


class MongoStore(Store):
    """Store backed by one MongoDB database.

    Migration bodies that need the full driver API can use `database`.
    """

    def __init__(self, client: AsyncIOMotorClient, name: str):
        self.client = client
        self.name = name
        self.database: AsyncIOMotorDatabase = client[name]

    @classmethod
    def from_url(cls, url: str, name: str, connect_timeout: float) -> "MongoStore":
        timeout_ms = int(connect_timeout * 1000)
        client = AsyncIOMotorClient(
            url,
            tz_aware=True,
            connectTimeoutMS=timeout_ms,
            serverSelectionTimeoutMS=timeout_ms,
        )
        return cls(client, name)

    def get_collection(self, name: str) -> MongoCollection:
        return MongoCollection(self.database[name])

    async def close(self) -> None:
        self.client.close()
