"""Migration service running every registered database.

Databases migrate concurrently, each with its own processor and store
connection. A failure in one database never stops the others, and every
database is marked completed when its run ends, successful or not, so
waiters are always released.

Usage:
    service = MigrationService(discover_migrations("myapp.migrations"))

    async with service:
        await service.wait("accounts", timeout=60)

Leaving the block cancels databases that are still migrating.
"""

import asyncio
import logging
from typing import Optional

from ..clock import Clock
from ..config import MigratableDatabase, MigrationSettings, get_settings
from .base import MigrationCompleted, MigrationOutcome
from .completion import MigrationCompletion
from .errors import MigrationCancelledError, MigrationError
from .processor import Connector, DatabaseMigrationProcessor
from .registry import MigrationRegistry

logger = logging.getLogger(__name__)


class MigrationService:
    """Runs the migrations of all databases in a registry."""

    def __init__(
        self,
        registry: MigrationRegistry,
        completion: Optional[MigrationCompletion] = None,
        clock: Optional[Clock] = None,
        connector: Optional[Connector] = None,
        settings: Optional[MigrationSettings] = None,
    ):
        """Initialize the service.

        Args:
            registry: Databases and their steps
            completion: Notifier to signal (a new one if not provided)
            clock: Timestamp source passed to every processor
            connector: Store opener passed to every processor
            settings: Migration settings (uses global if not provided)
        """
        self.registry = registry
        self.completion = completion or MigrationCompletion()
        self.clock = clock
        self.connector = connector
        self.settings = settings or get_settings()
        self.outcomes: dict[str, MigrationOutcome] = {}
        self._task: Optional[asyncio.Task] = None

    @property
    def task(self) -> Optional[asyncio.Task]:
        return self._task

    def _prepare(self) -> list[MigratableDatabase]:
        """Collect databases by alias and announce them to the notifier."""
        databases: dict[str, MigratableDatabase] = {}
        for database in self.registry.databases():
            databases.setdefault(database.alias, database)

        for alias in self.registry.orphaned_aliases():
            logger.warning(f"Migrations registered for unknown database '{alias}' are ignored")

        self.outcomes = {}
        self.completion.set_known_aliases(databases)
        return list(databases.values())

    async def run(self) -> dict[str, MigrationOutcome]:
        """Migrate every registered database.

        Returns:
            Outcome per database alias
        """
        return await self._run(self._prepare())

    async def _run(self, databases: list[MigratableDatabase]) -> dict[str, MigrationOutcome]:
        logger.info(f"Running migrations for {len(databases)} databases")

        await asyncio.gather(
            *(self._migrate(database) for database in databases),
            return_exceptions=True,
        )

        failed = [alias for alias, outcome in self.outcomes.items() if not outcome.success]
        if failed:
            logger.error(f"Migrations failed for {len(failed)} databases: {', '.join(failed)}")
        else:
            logger.info(f"Migrations completed for {len(databases)} databases")
        return dict(self.outcomes)

    async def _migrate(self, database: MigratableDatabase) -> MigrationOutcome:
        alias = database.alias
        processor = DatabaseMigrationProcessor(database, self.clock, self.connector)
        outcome = MigrationOutcome(database_alias=alias, version=processor.version)

        try:
            outcome = await processor.run(self.registry.steps_for(alias))
        except asyncio.CancelledError:
            logger.warning(f"Migration of {alias} cancelled at version {processor.version}")
            outcome = MigrationOutcome(
                database_alias=alias,
                version=processor.version,
                error=MigrationCancelledError(alias, processor.version),
            )
            raise
        except Exception as e:
            logger.exception(f"Unexpected error migrating {alias}")
            error = MigrationError(f"Unexpected error migrating {alias}: {e}", database=alias)
            error.__cause__ = e
            outcome = MigrationOutcome(database_alias=alias, version=processor.version, error=error)
        finally:
            self.outcomes[alias] = outcome
            self.completion.mark_completed(MigrationCompleted(database.name, alias, outcome.version))

        return outcome

    def start(self) -> asyncio.Task:
        """Run the migrations in a background task.

        Known aliases are registered before returning, so `wait()` blocks
        for every managed database from the moment this call completes.

        Raises:
            MigrationError: If a run is already in progress
        """
        if self._task is not None and not self._task.done():
            raise MigrationError("Migrations are already running")

        databases = self._prepare()
        self._task = asyncio.create_task(self._run(databases), name="docmigrate-run")
        return self._task

    async def stop(self, timeout: Optional[float] = None) -> None:
        """Cancel a background run and wait for it to wind down.

        Args:
            timeout: Seconds to wait (settings' stop timeout if None)
        """
        task = self._task
        if task is None:
            return

        if not task.done():
            logger.info("Stopping migrations")
            task.cancel()

        timeout = self.settings.stop_timeout if timeout is None else timeout
        _, pending = await asyncio.wait({task}, timeout=timeout)
        if pending:
            logger.warning(f"Migrations did not stop within {timeout}s")
            return

        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Migration run failed: {task.exception()}")

    async def wait(
        self, alias: str, timeout: Optional[float] = None
    ) -> Optional[MigrationCompleted]:
        """Wait for a database to finish migrating. See `MigrationCompletion.wait`."""
        return await self.completion.wait(alias, timeout)

    async def __aenter__(self) -> "MigrationService":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()
