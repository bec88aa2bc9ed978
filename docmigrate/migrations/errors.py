"""Migration-specific exceptions.

Every error is scoped to one logical database's run and carries the
database alias plus structured details for callers to inspect.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class MigrationError(Exception):
    """Base exception for migration errors."""

    def __init__(self, message: str, database: Optional[str] = None):
        super().__init__(message)
        self.database = database


class PathProblemKind(str, Enum):
    """Reasons a migration path cannot be resolved."""

    TARGET_UNREACHABLE = "target_unreachable"
    START_DISCONNECTED = "start_disconnected"
    INTERMEDIATE_GAP = "intermediate_gap"


@dataclass(frozen=True)
class PathProblem:
    """One validation failure found while resolving a path."""

    kind: PathProblemKind
    version: int
    message: str


class PathResolutionError(MigrationError):
    """No connected path exists between the current and target version.

    All problems found are reported together in `problems`.
    """

    def __init__(
        self,
        problems: list[PathProblem],
        start_version: Optional[int],
        end_version: Optional[int],
        database: Optional[str] = None,
    ):
        if len(problems) == 1:
            message = problems[0].message
        else:
            details = "; ".join(p.message for p in problems)
            message = (
                f"Invalid migration set: no path from {start_version} to {end_version} exists "
                f"({details})"
            )
        super().__init__(message, database=database)
        self.problems = problems
        self.start_version = start_version
        self.end_version = end_version

    @property
    def kinds(self) -> list[PathProblemKind]:
        return [p.kind for p in self.problems]


class CorruptStateError(MigrationError):
    """Incomplete version records were found from a previous run."""

    def __init__(self, database: str, incomplete_versions: list[int]):
        versions = ", ".join(str(v) for v in incomplete_versions)
        super().__init__(
            "Cannot apply migrations because of a corrupt database: "
            f"Found {len(incomplete_versions)} incomplete migrations for {database}: {versions}.",
            database=database,
        )
        self.incomplete_versions = incomplete_versions


class StepExecutionError(MigrationError):
    """A migration step body failed.

    The underlying exception is available as `__cause__`.
    """

    def __init__(
        self,
        database: str,
        from_version: int,
        to_version: int,
        description: Optional[str] = None,
        direction: Optional[str] = None,
    ):
        message = f"Failed to migrate {database} from {from_version} to {to_version}"
        if description:
            message += f": {description}"
        super().__init__(message, database=database)
        self.from_version = from_version
        self.to_version = to_version
        self.description = description
        self.direction = direction


class MigrationCancelledError(MigrationError):
    """The run was cancelled before it finished."""

    def __init__(self, database: str, version: int):
        super().__init__(
            f"Migration of {database} was cancelled at version {version}",
            database=database,
        )
        self.version = version
