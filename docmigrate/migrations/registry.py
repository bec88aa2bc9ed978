"""Migration registry for databases and their migration steps.

Provides:
- Explicit registration of databases and migrations
- Discovery of both from a package of migration modules
- Steps per database in registration order (the path tie-break order)
"""

import importlib
import inspect
import logging
import pkgutil
from types import ModuleType
from typing import Optional, Union

from ..config import MigratableDatabase
from .base import BaseMigration, MigrationStep
from .errors import MigrationError

logger = logging.getLogger(__name__)

Registrable = Union[BaseMigration, type[BaseMigration], MigrationStep]


class MigrationRegistry:
    """Registry of migratable databases and their migration steps."""

    def __init__(self):
        """Initialize empty registry."""
        self._databases: dict[str, MigratableDatabase] = {}
        self._steps: dict[str, list[MigrationStep]] = {}

    def register_database(self, database: MigratableDatabase) -> None:
        """Register a database.

        Args:
            database: Database definition

        Raises:
            MigrationError: If the definition is invalid or the alias is taken
        """
        errors = database.validate()
        if errors:
            raise MigrationError(
                f"Invalid database '{database.alias}': {'; '.join(errors)}",
                database=database.alias,
            )

        existing = self._databases.get(database.alias)
        if existing is not None:
            raise MigrationError(
                f"Duplicate database alias '{database.alias}': "
                f"{existing.name} and {database.name}",
                database=database.alias,
            )

        self._databases[database.alias] = database

    def register(self, migration: Registrable) -> MigrationStep:
        """Register a migration.

        Args:
            migration: Migration class, instance, or prebuilt step

        Returns:
            The registered step
        """
        if isinstance(migration, type):
            migration = migration()
        step = migration if isinstance(migration, MigrationStep) else migration.step()

        self._steps.setdefault(step.database, []).append(step)
        return step

    def databases(self) -> list[MigratableDatabase]:
        """Get all databases in registration order."""
        return list(self._databases.values())

    def get_database(self, alias: str) -> Optional[MigratableDatabase]:
        return self._databases.get(alias)

    def steps_for(self, alias: str) -> list[MigrationStep]:
        """Get the steps of a database in registration order."""
        return list(self._steps.get(alias, []))

    def orphaned_aliases(self) -> list[str]:
        """Aliases that have steps but no registered database."""
        return [alias for alias in self._steps if alias not in self._databases]


def _iter_modules(package: ModuleType):
    yield package
    if not hasattr(package, "__path__"):
        return
    for info in pkgutil.walk_packages(package.__path__, prefix=f"{package.__name__}."):
        yield importlib.import_module(info.name)


def discover_migrations(
    package: Union[str, ModuleType],
    registry: Optional[MigrationRegistry] = None,
) -> MigrationRegistry:
    """Discover databases and migrations in a package.

    Every module of the package is imported. Module-level
    `MigratableDatabase` instances are registered as databases and
    concrete `BaseMigration` subclasses defined in the module are
    registered as migrations, in module and definition order.

    Args:
        package: Package (or its dotted name) holding migration modules
        registry: Registry to fill (a new one if not provided)

    Returns:
        Registry with discovered databases and migrations

    Raises:
        MigrationError: If a module cannot be imported
    """
    registry = registry or MigrationRegistry()
    package_name = package if isinstance(package, str) else package.__name__

    try:
        root = importlib.import_module(package_name)
        modules = list(_iter_modules(root))
    except ImportError as e:
        raise MigrationError(f"Could not import migrations package {package_name}: {e}") from e

    for module in modules:
        for name, attr in vars(module).items():
            if isinstance(attr, MigratableDatabase):
                if registry.get_database(attr.alias) == attr:
                    continue
                registry.register_database(attr)
                logger.debug(f"Discovered database: {attr.alias} ({module.__name__}.{name})")
            elif (
                isinstance(attr, type)
                and issubclass(attr, BaseMigration)
                and attr.__module__ == module.__name__
                and not inspect.isabstract(attr)
            ):
                step = registry.register(attr)
                logger.debug(f"Discovered migration: {step}")

    return registry
