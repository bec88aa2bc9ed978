"""CLI for document store migrations.

Usage:
    python -m docmigrate.migrations migrate --package myapp.migrations
    python -m docmigrate.migrations migrate --package myapp.migrations --database accounts --target 3
    python -m docmigrate.migrations status --package myapp.migrations
    python -m docmigrate.migrations plan --package myapp.migrations --database accounts
"""

import argparse
import asyncio
import dataclasses
import logging
import sys
from textwrap import dedent
from typing import Optional

from ..config import MigratableDatabase, get_surreal_config
from ..store import SURREAL_SCHEMES, open_store
from .base import MigrationOutcome
from .errors import MigrationError, PathResolutionError
from .processor import DatabaseMigrationProcessor
from .registry import MigrationRegistry, discover_migrations
from .service import MigrationService
from .state import MigrationStateStore

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for CLI."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def select_databases(
    registry: MigrationRegistry,
    alias: Optional[str] = None,
    target: Optional[int] = None,
) -> MigrationRegistry:
    """Narrow a registry to one database and optionally override its target.

    Args:
        registry: Discovered registry
        alias: Database to keep (all if None)
        target: Fixed target version for the kept database

    Returns:
        Registry holding the selected databases and their steps

    Raises:
        MigrationError: If the alias is not registered
    """
    if alias is None:
        return registry

    database = registry.get_database(alias)
    if database is None:
        raise MigrationError(f"Unknown database: {alias}", database=alias)
    if target is not None:
        database = dataclasses.replace(database, fixed_target_version=target)

    selected = MigrationRegistry()
    selected.register_database(database)
    for step in registry.steps_for(alias):
        selected.register(step)
    return selected


def _check_surreal_config(databases: list[MigratableDatabase]) -> list[str]:
    uses_surreal = any(
        db.connection_string.partition("://")[0].lower() in SURREAL_SCHEMES for db in databases
    )
    return get_surreal_config().validate() if uses_surreal else []


def _print_outcome(outcome: MigrationOutcome) -> None:
    if outcome.success:
        if outcome.applied:
            print(
                f"[x] {outcome.database_alias}: version {outcome.version} "
                f"({len(outcome.applied)} step(s) {outcome.direction.value})"
            )
            for step in outcome.applied:
                print(f"    + {step}")
        else:
            print(f"[x] {outcome.database_alias}: up to date at version {outcome.version}")
    else:
        print(f"[!] {outcome.database_alias}: stopped at version {outcome.version}")
        print(f"    Error: {outcome.error}")
        if isinstance(outcome.error, PathResolutionError):
            for problem in outcome.error.problems:
                print(f"      - {problem.kind.value}: {problem.message}")


async def cmd_migrate(args: argparse.Namespace, registry: MigrationRegistry) -> int:
    """Migrate all (or one) databases."""
    service = MigrationService(registry)
    outcomes = await service.run()

    if not outcomes:
        print("No databases found")
        return 0

    for outcome in outcomes.values():
        _print_outcome(outcome)

    failed = sum(1 for outcome in outcomes.values() if not outcome.success)
    print(f"\nTotal: {len(outcomes)} | Succeeded: {len(outcomes) - failed} | Failed: {failed}")
    return 1 if failed else 0


async def cmd_status(args: argparse.Namespace, registry: MigrationRegistry) -> int:
    """Show the state and history of each database."""
    databases = registry.databases()
    if not databases:
        print("No databases found")
        return 0

    for database in databases:
        async with open_store(database) as store:
            state_store = MigrationStateStore(
                store.get_collection(database.state_collection_name), database.alias
            )
            state = await state_store.get_state()
            history = await state_store.history()

        versions = [step.up_version for step in registry.steps_for(database.alias)]
        latest = max(versions) if versions else None
        target = database.fixed_target_version

        print(f"Migration status for database: {database.alias} ({database.name})")
        print("-" * 60)
        print(f"Current version: {state.current_version if state.current_version is not None else '-'}")
        print(f"Target version:  {target if target is not None else f'latest ({latest})'}")
        print(f"Applied records: {state.applied_count}")
        if state.is_corrupt:
            versions_str = ", ".join(str(v) for v in state.incomplete_versions)
            print(f"CORRUPT: incomplete migrations to version(s) {versions_str}")

        for record in history:
            icon = "[x]" if record.is_complete else "[!]"
            line = f"{icon} {record.version} ({record.direction.value})"
            line += f" started: {record.started_at.strftime('%Y-%m-%d %H:%M:%S')}"
            if record.completed_at:
                line += f" completed: {record.completed_at.strftime('%Y-%m-%d %H:%M:%S')}"
            print(line)

        print("-" * 60)
        print()

    return 0


async def cmd_plan(args: argparse.Namespace, registry: MigrationRegistry) -> int:
    """Print the steps a migration run would apply."""
    database = registry.get_database(args.database)
    processor = DatabaseMigrationProcessor(database)
    plan = await processor.plan(registry.steps_for(database.alias))

    current = plan.current_version if plan.current_version is not None else "-"
    if not plan.steps:
        print(f"{database.alias} is up to date at version {current}")
        return 0

    print(f"Plan for {database.alias}: {current} -> {plan.final_version} ({plan.direction.value})")
    for step in plan.steps:
        source = step.source_version(plan.direction)
        target = step.target_version(plan.direction)
        description = f"  {step.description}" if step.description else ""
        print(f"  {source} -> {target}{description}")

    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser."""
    parser = argparse.ArgumentParser(
        prog="python -m docmigrate.migrations",
        description="Versioned document store migrations",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=dedent("""
            Examples:
              # Migrate every database to its target version
              python -m docmigrate.migrations migrate --package myapp.migrations

              # Downgrade one database to version 3
              python -m docmigrate.migrations migrate --package myapp.migrations --database accounts --target 3

              # Check status
              python -m docmigrate.migrations status --package myapp.migrations

              # Preview the path without applying it
              python -m docmigrate.migrations plan --package myapp.migrations --database accounts
        """),
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose output",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # migrate command
    migrate_parser = subparsers.add_parser(
        "migrate",
        help="Migrate databases to their target versions",
    )
    migrate_parser.add_argument(
        "--package", "-p",
        required=True,
        help="Package holding databases and migrations",
    )
    migrate_parser.add_argument(
        "--database", "-d",
        help="Only migrate the database with this alias",
    )
    migrate_parser.add_argument(
        "--target",
        type=int,
        help="Target version (requires --database)",
    )

    # status command
    status_parser = subparsers.add_parser(
        "status",
        help="Show migration status",
    )
    status_parser.add_argument(
        "--package", "-p",
        required=True,
        help="Package holding databases and migrations",
    )
    status_parser.add_argument(
        "--database", "-d",
        help="Only show the database with this alias",
    )

    # plan command
    plan_parser = subparsers.add_parser(
        "plan",
        help="Show the steps a migration would apply",
    )
    plan_parser.add_argument(
        "--package", "-p",
        required=True,
        help="Package holding databases and migrations",
    )
    plan_parser.add_argument(
        "--database", "-d",
        required=True,
        help="Database alias",
    )
    plan_parser.add_argument(
        "--target",
        type=int,
        help="Target version",
    )

    return parser


async def async_main(args: argparse.Namespace) -> int:
    """Async main entry point."""
    try:
        registry = discover_migrations(args.package)
        registry = select_databases(registry, args.database, getattr(args, "target", None))
    except MigrationError as e:
        print(f"Error: {e}")
        return 1

    config_errors = _check_surreal_config(registry.databases())
    if config_errors:
        print("Error: SurrealDB is not configured")
        for error in config_errors:
            print(f"  - {error}")
        return 1

    # Dispatch command
    try:
        if args.command == "migrate":
            return await cmd_migrate(args, registry)
        elif args.command == "status":
            return await cmd_status(args, registry)
        elif args.command == "plan":
            return await cmd_plan(args, registry)
        else:
            print(f"Unknown command: {args.command}")
            return 1
    except MigrationError as e:
        print(f"Error: {e}")
        return 1


def main(argv: Optional[list[str]] = None) -> None:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if getattr(args, "target", None) is not None and not args.database:
        parser.error("--target requires --database")

    setup_logging(args.verbose)

    exit_code = asyncio.run(async_main(args))
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
