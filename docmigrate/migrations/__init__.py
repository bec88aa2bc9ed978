"""Versioned migrations for document stores.

Provides a migration framework with:
- Arbitrary migration graphs resolved by shortest path
- Up/down migration support
- Durable per-step version records with crash detection
- Concurrent runs across databases with completion notification
- CLI operations for migrate/status/plan

Usage:
    from docmigrate.migrations import MigrationService, discover_migrations

    registry = discover_migrations("myapp.migrations")
    outcomes = await MigrationService(registry).run()

CLI Usage:
    python -m docmigrate.migrations migrate --package myapp.migrations
    python -m docmigrate.migrations status --package myapp.migrations
    python -m docmigrate.migrations plan --package myapp.migrations --database accounts
"""

from .base import (
    BaseMigration,
    MigrationCompleted,
    MigrationOutcome,
    MigrationStep,
    VersionDirection,
    VersionRecord,
)

from .errors import (
    CorruptStateError,
    MigrationCancelledError,
    MigrationError,
    PathProblem,
    PathProblemKind,
    PathResolutionError,
    StepExecutionError,
)

from .graph import MigrationGraph, is_downgrade, resolve_path
from .state import COMPLETION_INDEX_NAME, MigrationState, MigrationStateStore
from .processor import DatabaseMigrationProcessor, MigrationPlan
from .completion import MigrationCompletion
from .registry import MigrationRegistry, discover_migrations
from .service import MigrationService

__all__ = [
    # Base classes
    "BaseMigration",
    "MigrationCompleted",
    "MigrationOutcome",
    "MigrationStep",
    "VersionDirection",
    "VersionRecord",
    # Errors
    "CorruptStateError",
    "MigrationCancelledError",
    "MigrationError",
    "PathProblem",
    "PathProblemKind",
    "PathResolutionError",
    "StepExecutionError",
    # Path resolution
    "MigrationGraph",
    "is_downgrade",
    "resolve_path",
    # State
    "COMPLETION_INDEX_NAME",
    "MigrationState",
    "MigrationStateStore",
    # Execution
    "DatabaseMigrationProcessor",
    "MigrationPlan",
    "MigrationCompletion",
    "MigrationService",
    # Registry
    "MigrationRegistry",
    "discover_migrations",
]
