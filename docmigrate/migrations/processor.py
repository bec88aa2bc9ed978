"""Migration execution for a single logical database.

The processor reads the database's state, resolves the steps between the
current and the target version, and applies them strictly in order. Each
step is recorded before it runs and completed after it succeeds, so a
crash leaves an incomplete record behind and the next run refuses to
continue until it is dealt with.
"""

import logging
from collections.abc import Callable, Iterable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from typing import Optional

from ..clock import Clock, SystemClock
from ..config import MigratableDatabase
from ..store import Store, open_store
from .base import MigrationOutcome, MigrationStep, VersionDirection
from .errors import CorruptStateError, MigrationError, StepExecutionError
from .graph import is_downgrade, resolve_path
from .state import MigrationState, MigrationStateStore

logger = logging.getLogger(__name__)

Connector = Callable[[MigratableDatabase], AbstractAsyncContextManager[Store]]


@dataclass
class MigrationPlan:
    """Steps a run would apply, without applying them."""

    database_alias: str
    state: MigrationState
    target_version: Optional[int]
    direction: VersionDirection
    steps: list[MigrationStep] = field(default_factory=list)

    @property
    def current_version(self) -> Optional[int]:
        return self.state.current_version

    @property
    def final_version(self) -> Optional[int]:
        """Version the database ends at once every step ran."""
        if not self.steps:
            return self.current_version
        return self.steps[-1].target_version(self.direction)


class DatabaseMigrationProcessor:
    """Applies migrations to one logical database."""

    def __init__(
        self,
        database: MigratableDatabase,
        clock: Optional[Clock] = None,
        connector: Optional[Connector] = None,
    ):
        """Initialize the processor.

        Args:
            database: Database to migrate
            clock: Timestamp source for version records
            connector: Opens the database's store (backend chosen by URL if not provided)
        """
        self.database = database
        self.clock = clock or SystemClock()
        self.connector = connector or open_store
        # Last durably completed version, kept current while steps run
        self.version = 0

    @property
    def alias(self) -> str:
        return self.database.alias

    def _state_store(self, store: Store) -> MigrationStateStore:
        collection = store.get_collection(self.database.state_collection_name)
        return MigrationStateStore(collection, self.alias, self.clock)

    def _resolve(self, state: MigrationState, steps: Iterable[MigrationStep]) -> MigrationPlan:
        current = state.current_version
        target = self.database.fixed_target_version
        direction = VersionDirection.DOWN if is_downgrade(current, target) else VersionDirection.UP

        if target is None:
            logger.debug(f"No fixed target for {self.alias}, migrating to the latest version")
        elif direction == VersionDirection.DOWN:
            logger.info(f"Downgrading {self.alias} from {current} to {target}")

        path = resolve_path(steps, current, target, database=self.alias)
        return MigrationPlan(self.alias, state, target, direction, path)

    async def plan(self, steps: Iterable[MigrationStep]) -> MigrationPlan:
        """Resolve the steps a run would apply without mutating the store.

        Raises:
            CorruptStateError: If incomplete records exist
            PathResolutionError: If no path exists
        """
        async with self.connector(self.database) as store:
            state = await self._state_store(store).get_state()

        if state.is_corrupt:
            raise CorruptStateError(self.alias, state.incomplete_versions)
        return self._resolve(state, steps)

    async def run(self, steps: Iterable[MigrationStep]) -> MigrationOutcome:
        """Bring the database to its target version.

        Migration errors end the run and are reported in the outcome;
        cancellation propagates with `version` holding the progress made.

        Args:
            steps: Every known step of this database, in registration order

        Returns:
            Outcome with the version reached and the steps applied
        """
        outcome = MigrationOutcome(database_alias=self.alias, version=self.version)
        logger.info(f"Migrating {self.alias} ({self.database.name})")

        try:
            async with self.connector(self.database) as store:
                state_store = self._state_store(store)
                state = await state_store.get_state()
                self.version = outcome.version = state.current_version or 0

                if state.is_corrupt:
                    logger.critical(
                        f"Found {len(state.incomplete_versions)} incomplete migrations for "
                        f"{self.alias}: {', '.join(str(v) for v in state.incomplete_versions)}"
                    )
                    raise CorruptStateError(self.alias, state.incomplete_versions)

                plan = self._resolve(state, steps)
                outcome.direction = plan.direction
                if not plan.steps:
                    logger.info(f"{self.alias} is up to date at version {self.version}")
                    return outcome

                await state_store.ensure_prepared()
                for step in plan.steps:
                    await self._apply(store, state_store, step, plan.direction)
                    outcome.applied.append(step)
                    outcome.version = self.version

        except MigrationError as e:
            logger.error(f"Migration of {self.alias} stopped at version {self.version}: {e}")
            outcome.error = e
            outcome.version = self.version
            return outcome

        logger.info(
            f"Migrated {self.alias} to version {self.version} "
            f"({len(outcome.applied)} steps {outcome.direction.value})"
        )
        return outcome

    async def _apply(
        self,
        store: Store,
        state_store: MigrationStateStore,
        step: MigrationStep,
        direction: VersionDirection,
    ) -> None:
        source = step.source_version(direction)
        target = step.target_version(direction)
        suffix = f": {step.description}" if step.description else ""
        logger.debug(f"Migrating {self.alias} from {source} to {target}{suffix}")

        record = await state_store.begin_step(target, direction)
        try:
            await step.apply(store, direction)
        except Exception as e:
            raise StepExecutionError(
                self.alias, source, target, step.description, direction.value
            ) from e

        await state_store.complete_step(record)
        self.version = target
