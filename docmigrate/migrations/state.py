"""Persistent migration state for one logical database.

Each step writes a version record before it runs (`completed_at` unset)
and completes it afterwards. The latest completed record is the current
version; a record that was never completed marks a crashed or in-flight
step and makes the state corrupt.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from ..clock import Clock, SystemClock
from ..store import ASCENDING, DESCENDING, NATURAL, DocumentCollection, StoreError
from .base import VersionDirection, VersionRecord

logger = logging.getLogger(__name__)

COMPLETION_INDEX_NAME = "OrderByCompletionIndex"


@dataclass
class MigrationState:
    """Snapshot of a database's migration state."""

    applied_count: int = 0
    earliest: Optional[VersionRecord] = None
    current: Optional[VersionRecord] = None
    incomplete_versions: list[int] = field(default_factory=list)

    @property
    def current_version(self) -> Optional[int]:
        return self.current.version if self.current else None

    @property
    def is_corrupt(self) -> bool:
        return bool(self.incomplete_versions)


class MigrationStateStore:
    """Reads and writes version records in the state collection."""

    def __init__(
        self,
        collection: DocumentCollection,
        database_alias: str,
        clock: Optional[Clock] = None,
    ):
        """Initialize the state store.

        Args:
            collection: Collection holding the version records
            database_alias: Alias the records are scoped to
            clock: Timestamp source (system UTC clock if not provided)
        """
        self.collection = collection
        self.database_alias = database_alias
        self.clock = clock or SystemClock()

    def _filter(self, **conditions) -> dict:
        return {"database": self.database_alias, **conditions}

    async def ensure_prepared(self) -> None:
        """Create the completion index unless it already exists."""
        created = await self.collection.create_index_if_absent(
            COMPLETION_INDEX_NAME, [("completed_at", DESCENDING)]
        )
        if created:
            logger.debug(f"Created {COMPLETION_INDEX_NAME} on {self.collection.name}")

    async def get_state(self) -> MigrationState:
        """Read the current state.

        Returns:
            State with the applied count, earliest and current completed
            records, and versions of incomplete records
        """
        completed = self._filter(completed_at={"$ne": None})

        applied_count = await self.collection.count(completed)
        if applied_count == 0:
            earliest = current = None
        else:
            earliest_doc = await self.collection.find_one(completed, sort=[(NATURAL, ASCENDING)])
            current_doc = await self.collection.find_one(
                completed, sort=[("completed_at", DESCENDING), (NATURAL, DESCENDING)]
            )
            earliest = VersionRecord.from_document(earliest_doc) if earliest_doc else None
            current = VersionRecord.from_document(current_doc) if current_doc else None

        incomplete = await self.collection.find(
            self._filter(completed_at=None), sort=[(NATURAL, ASCENDING)]
        )

        return MigrationState(
            applied_count=applied_count,
            earliest=earliest,
            current=current,
            incomplete_versions=[int(doc["version"]) for doc in incomplete],
        )

    async def begin_step(self, version: int, direction: VersionDirection) -> VersionRecord:
        """Record that the database is being migrated to `version`.

        Args:
            version: Destination version of the step
            direction: Direction the step is applied in

        Returns:
            The incomplete record, used as handle for `complete_step`
        """
        record = VersionRecord(
            database=self.database_alias,
            version=version,
            direction=direction,
            started_at=self.clock.now(),
        )
        record.id = await self.collection.insert_one(record.to_document())
        return record

    async def complete_step(self, record: VersionRecord) -> VersionRecord:
        """Mark a record created by `begin_step` as completed.

        Raises:
            StoreError: If the record no longer exists
        """
        completed_at = self.clock.now()
        updated = await self.collection.update_one(record.id, {"completed_at": completed_at})
        if not updated:
            raise StoreError(
                f"Version record {record.id!r} for {self.database_alias} disappeared before completion"
            )
        record.completed_at = completed_at
        return record

    async def history(self) -> list[VersionRecord]:
        """All records of the database in insertion order."""
        documents = await self.collection.find(self._filter(), sort=[(NATURAL, ASCENDING)])
        return [VersionRecord.from_document(doc) for doc in documents]
