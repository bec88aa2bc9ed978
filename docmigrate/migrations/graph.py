"""Migration path resolution.

Migrations form a directed graph over version numbers: each step is an
edge from its down version to its up version. Several steps may leave or
reach the same version and several may connect the same pair of versions,
so the path to apply is found with a uniform-cost (Dijkstra) search that
minimises the number of steps. Ties are broken by the order in which the
caller supplied the steps.

Downgrades are resolved as an upgrade from the target back to the current
version and then reversed into execution order.
"""

import heapq
import logging
import math
from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Optional

from .base import MigrationStep
from .errors import PathProblem, PathProblemKind, PathResolutionError

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class _Node:
    """Search state of one step."""

    step: MigrationStep
    order: int
    distance: float = math.inf
    visited: bool = False
    previous: Optional["_Node"] = None


class MigrationGraph:
    """Computes a continuous trace of migrations from one version to another."""

    def __init__(
        self,
        steps: Sequence[MigrationStep],
        start_version: int,
        end_version: int,
        allow_backtracking: bool = False,
        database: Optional[str] = None,
    ):
        """Initialize the graph.

        Args:
            steps: Steps in caller-supplied order (the tie-break order)
            start_version: Version the trace starts at
            end_version: Version the trace ends at
            allow_backtracking: Also relax edges in reverse (downgrades)
            database: Alias used in error reports
        """
        self.start_version = start_version
        self.end_version = end_version
        self.allow_backtracking = allow_backtracking
        self.database = database

        self._nodes = [_Node(step, i) for i, step in enumerate(steps)]
        self._by_down: dict[int, list[_Node]] = defaultdict(list)
        self._by_up: dict[int, list[_Node]] = defaultdict(list)
        for node in self._nodes:
            self._by_down[node.step.down_version].append(node)
            self._by_up[node.step.up_version].append(node)

    @classmethod
    def create(
        cls,
        steps: Iterable[MigrationStep],
        lower: Optional[int] = None,
        upper: Optional[int] = None,
        start: Optional[int] = None,
        end: Optional[int] = None,
        allow_backtracking: bool = False,
        database: Optional[str] = None,
    ) -> Optional["MigrationGraph"]:
        """Create a graph from the steps within [lower, upper].

        A step is out of range when its down version is below `lower` or its
        up version is above `upper`; a missing bound is unconstrained.

        Args:
            steps: Available steps in caller-supplied order
            lower: Minimum respected down version
            upper: Maximum respected up version
            start: Start version (lowest in-range down version if None)
            end: End version (highest in-range up version if None)
            allow_backtracking: Also relax edges in reverse
            database: Alias used in error reports

        Returns:
            The graph, or None if no step is in range
        """
        in_range = [
            step
            for step in steps
            if not (
                (lower is not None and step.down_version < lower)
                or (upper is not None and step.up_version > upper)
            )
        ]
        if not in_range:
            return None

        start_version = start if start is not None else min(s.down_version for s in in_range)
        end_version = end if end is not None else max(s.up_version for s in in_range)
        return cls(in_range, start_version, end_version, allow_backtracking, database)

    @property
    def steps(self) -> list[MigrationStep]:
        return [node.step for node in self._nodes]

    def _trace_distance(self) -> None:
        """Dijkstra over steps with unit cost per step.

        Afterwards every reachable node has its final distance from the
        start, its `previous` link and `visited` set.
        """
        queue: list[tuple[float, int, _Node]] = []
        for node in self._nodes:
            node.visited = False
            node.previous = None
            if node.step.down_version == self.start_version:
                node.distance = 0
                heapq.heappush(queue, (0, node.order, node))
            else:
                node.distance = math.inf

        while queue:
            _, _, root = heapq.heappop(queue)
            if root.visited:
                continue
            root.visited = True

            next_distance = root.distance + 1
            neighbours = list(self._by_down.get(root.step.up_version, ()))
            if self.allow_backtracking:
                neighbours.extend(
                    node for node in self._by_up.get(root.step.up_version, ()) if node is not root
                )

            for node in neighbours:
                if node.distance <= next_distance:
                    continue
                node.distance = next_distance
                node.previous = root
                if not node.visited:
                    heapq.heappush(queue, (next_distance, node.order, node))

    def _validate(self) -> list[PathProblem]:
        problems = []
        if not any(node.visited for node in self._by_up.get(self.end_version, ())):
            problems.append(
                PathProblem(
                    PathProblemKind.TARGET_UNREACHABLE,
                    self.end_version,
                    f"Invalid migration set: No path to the target version ({self.end_version}) "
                    "exists with the available migrations.",
                )
            )
        if not any(node.visited for node in self._by_down.get(self.start_version, ())):
            problems.append(
                PathProblem(
                    PathProblemKind.START_DISCONNECTED,
                    self.start_version,
                    f"Invalid migration set: No path from the current version ({self.start_version}) "
                    "exists with the available migrations.",
                )
            )
        return problems

    def trace(self) -> list[MigrationStep]:
        """Get the shortest sequence of steps from start to end.

        Returns:
            Steps in ascending version order (empty if start equals end)

        Raises:
            PathResolutionError: If start and end are not connected
        """
        if self.start_version == self.end_version:
            return []

        self._trace_distance()
        problems = self._validate()
        if problems:
            raise PathResolutionError(problems, self.start_version, self.end_version, self.database)

        trace: list[MigrationStep] = []
        frontier = self.end_version
        # Bounded by the node count so degenerate steps cannot loop forever
        while frontier != self.start_version and len(trace) < len(self._nodes):
            candidates = [node for node in self._by_up.get(frontier, ()) if node.visited]
            if not candidates:
                break
            # min() keeps the first of equal distances: supplied order wins
            closest = min(candidates, key=lambda node: node.distance)
            trace.append(closest.step)
            frontier = closest.step.down_version

        if frontier != self.start_version:
            raise PathResolutionError(
                [
                    PathProblem(
                        PathProblemKind.INTERMEDIATE_GAP,
                        frontier,
                        f"No path between the current version ({self.start_version}) "
                        f"and the intermediary version ({frontier}) exists.",
                    )
                ],
                self.start_version,
                self.end_version,
                self.database,
            )

        trace.reverse()
        return trace


def is_downgrade(current_version: Optional[int], target_version: Optional[int]) -> bool:
    """Check whether reaching the target requires a downgrade."""
    return (
        current_version is not None
        and target_version is not None
        and target_version < current_version
    )


def resolve_path(
    steps: Iterable[MigrationStep],
    current_version: Optional[int],
    target_version: Optional[int] = None,
    database: Optional[str] = None,
) -> list[MigrationStep]:
    """Resolve the steps needed to move from the current to the target version.

    Args:
        steps: Available steps in caller-supplied order
        current_version: Current version (None if nothing was applied yet)
        target_version: Fixed target (None migrates up to the highest version)
        database: Alias used in error reports

    Returns:
        Steps in execution order: ascending for upgrades, descending for
        downgrades. Empty if already at the target.

    Raises:
        PathResolutionError: If no connected path exists
    """
    steps = list(steps)
    downgrade = is_downgrade(current_version, target_version)

    if downgrade:
        graph = MigrationGraph.create(
            steps,
            lower=target_version,
            upper=current_version,
            start=target_version,
            end=current_version,
            allow_backtracking=True,
            database=database,
        )
    else:
        graph = MigrationGraph.create(
            steps,
            lower=current_version,
            upper=target_version,
            start=current_version,
            end=target_version,
            database=database,
        )

    if graph is None:
        effective_current = current_version if current_version is not None else 0
        if target_version is None or target_version == effective_current:
            return []
        raise PathResolutionError(
            [
                PathProblem(
                    PathProblemKind.TARGET_UNREACHABLE,
                    target_version,
                    f"Invalid migration set: No path to the target version ({target_version}) "
                    "exists with the available migrations.",
                )
            ],
            current_version,
            target_version,
            database,
        )

    trace = graph.trace()
    if downgrade:
        trace.reverse()

    if trace:
        logger.debug(
            f"Resolved {len(trace)} steps for {database or 'database'}: "
            + " -> ".join(str(v) for v in _versions(trace, downgrade))
        )
    return trace


def _versions(trace: list[MigrationStep], downgrade: bool) -> list[int]:
    if downgrade:
        return [trace[0].up_version] + [step.down_version for step in trace]
    return [trace[0].down_version] + [step.up_version for step in trace]
