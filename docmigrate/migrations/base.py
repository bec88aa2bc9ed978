"""Base classes for the migration system.

Defines the core abstractions:
- BaseMigration: Abstract base class for tagged migration bodies
- MigrationStep: A migration edge between two versions of one database
- VersionRecord: Persisted record of an applied or in-flight step
- MigrationCompleted: Notification that a database finished migrating
- MigrationOutcome: Result of one database's migration run
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Optional, Protocol

from ..store import Store
from .errors import MigrationError

logger = logging.getLogger(__name__)


class VersionDirection(str, Enum):
    """Direction in which a version was reached."""

    UP = "up"
    DOWN = "down"


class MigrationBody(Protocol):
    """Anything with async up/down callables taking the store."""

    async def up(self, store: Store) -> None:
        ...

    async def down(self, store: Store) -> None:
        ...


@dataclass(frozen=True)
class MigrationStep:
    """A migration between two versions of a logical database.

    Attributes:
        database: Alias of the logical database
        down_version: Version `up()` migrates from and `down()` migrates to
        up_version: Version `up()` migrates to and `down()` migrates from
        migration: The body performing the migration
        description: Optional human-readable description
    """

    database: str
    down_version: int
    up_version: int
    migration: MigrationBody
    description: Optional[str] = None

    def source_version(self, direction: VersionDirection) -> int:
        """Version the database is at before applying in `direction`."""
        return self.down_version if direction == VersionDirection.UP else self.up_version

    def target_version(self, direction: VersionDirection) -> int:
        """Version the database is at after applying in `direction`."""
        return self.up_version if direction == VersionDirection.UP else self.down_version

    async def apply(self, store: Store, direction: VersionDirection) -> None:
        """Run the body in the given direction."""
        if direction == VersionDirection.UP:
            await self.migration.up(store)
        else:
            await self.migration.down(store)

    def __str__(self) -> str:
        return f"{self.database}: {self.down_version} -> {self.up_version}"


class BaseMigration(ABC):
    """Abstract base class for migrations.

    Subclasses tag themselves with the database alias and the two versions
    they connect:

        class AddEmailIndex(BaseMigration):
            database = "accounts"
            down_version = 3
            up_version = 4
            description = "Unique index on users.email"

            async def up(self, store):
                ...

    Attributes:
        database: Alias of the logical database
        down_version: Version `up()` migrates from
        up_version: Version `up()` migrates to
        description: Optional human-readable description
    """

    database: ClassVar[str]
    down_version: ClassVar[int]
    up_version: ClassVar[int]
    description: ClassVar[Optional[str]] = None

    def __init_subclass__(cls, **kwargs):
        """Validate subclass attributes."""
        super().__init_subclass__(**kwargs)

        if not getattr(cls, "database", None):
            raise TypeError(f"Migration {cls.__name__} must define 'database'")
        for attr in ("down_version", "up_version"):
            value = getattr(cls, attr, None)
            if not isinstance(value, int) or isinstance(value, bool):
                raise TypeError(f"Migration {cls.__name__} must define integer '{attr}'")

    @abstractmethod
    async def up(self, store: Store) -> None:
        """Migrate from `down_version` to `up_version`."""

    async def down(self, store: Store) -> None:
        """Migrate from `up_version` back to `down_version`.

        Raises:
            NotImplementedError: If downgrade is not supported
        """
        raise NotImplementedError(f"Migration {self.full_name} does not support downgrade")

    @property
    def full_name(self) -> str:
        return f"{self.database}_{self.down_version}_{self.up_version}"

    def step(self) -> MigrationStep:
        """Describe this migration as a step of its database."""
        return MigrationStep(
            database=self.database,
            down_version=self.down_version,
            up_version=self.up_version,
            migration=self,
            description=self.description or type(self).__doc__,
        )

    def __repr__(self) -> str:
        return f"<Migration {self.full_name}>"


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


@dataclass
class VersionRecord:
    """Record of a version the database was migrated to.

    A version is only valid once `completed_at` is set; a record without
    it marks a step that started but never finished.
    """

    database: str
    version: int
    direction: VersionDirection
    started_at: datetime
    completed_at: Optional[datetime] = None
    id: Any = None

    @property
    def is_complete(self) -> bool:
        return self.completed_at is not None

    def to_document(self) -> dict[str, Any]:
        return {
            "database": self.database,
            "version": self.version,
            "direction": self.direction.value,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
        }

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> "VersionRecord":
        return cls(
            database=document["database"],
            version=int(document["version"]),
            direction=VersionDirection(document["direction"]),
            started_at=_parse_timestamp(document["started_at"]),
            completed_at=_parse_timestamp(document.get("completed_at")),
            id=document.get("id"),
        )


@dataclass(frozen=True)
class MigrationCompleted:
    """Message notifying that all migrations of a database have run.

    Completion means the run finished, not that it succeeded.
    """

    database_name: str
    database_alias: str
    version: int


@dataclass
class MigrationOutcome:
    """Result of migrating one logical database."""

    database_alias: str
    version: int
    direction: Optional[VersionDirection] = None
    applied: list[MigrationStep] = field(default_factory=list)
    error: Optional[MigrationError] = None

    @property
    def success(self) -> bool:
        return self.error is None
