"""Tests for migration path resolution."""

import pytest

from docmigrate.migrations.errors import PathProblemKind, PathResolutionError
from docmigrate.migrations.graph import MigrationGraph, is_downgrade, resolve_path


def versions(path):
    return [(step.down_version, step.up_version) for step in path]


class TestResolvePathUpgrade:
    """Tests for upgrade path resolution."""

    def test_unique_path_in_forward_order(self, make_step):
        """Test a linear chain is returned exactly, ascending."""
        steps = [make_step(1, 2), make_step(0, 1), make_step(2, 3)]

        path = resolve_path(steps, current_version=0)

        assert versions(path) == [(0, 1), (1, 2), (2, 3)]

    def test_branching_graph_scenario(self, make_step):
        """Test the shortest path through a branching and converging graph."""
        steps = [
            make_step(0, 10),
            make_step(0, 20),
            make_step(15, 50),
            make_step(20, 40),
            make_step(40, 50),
            make_step(50, 60),
            make_step(50, 80),
            make_step(60, 90),
            make_step(80, 90),
        ]

        path = resolve_path(steps, current_version=0)

        assert versions(path) == [(0, 20), (20, 40), (40, 50), (50, 60), (60, 90)]
        assert path[-1].up_version == 90

    def test_fewest_steps_chosen(self, make_step):
        """Test a direct step beats a longer chain."""
        steps = [make_step(0, 1), make_step(1, 2), make_step(2, 3), make_step(0, 3)]

        path = resolve_path(steps, current_version=0)

        assert versions(path) == [(0, 3)]

    def test_ties_follow_supplied_order(self, make_step):
        """Test equal-length branches resolve to the first supplied."""
        steps = [
            make_step(0, 50),
            make_step(50, 80),
            make_step(50, 60),
            make_step(80, 90),
            make_step(60, 90),
        ]

        path = resolve_path(steps, current_version=0)

        assert versions(path) == [(0, 50), (50, 80), (80, 90)]

    def test_parallel_edges_use_first_supplied(self, make_step):
        """Test parallel steps between the same versions pick the first."""
        first = make_step(0, 1, description="first")
        second = make_step(0, 1, description="second")

        assert resolve_path([first, second], 0) == [first]
        assert resolve_path([second, first], 0) == [second]

    def test_resolution_is_repeatable(self, make_step):
        """Test resolving twice gives the same path."""
        steps = [make_step(0, 1), make_step(0, 2), make_step(1, 3), make_step(2, 3)]

        assert resolve_path(steps, 0) == resolve_path(steps, 0)

    def test_fixed_target_limits_path(self, make_step):
        """Test steps beyond the target are ignored."""
        steps = [make_step(0, 1), make_step(1, 2), make_step(2, 3)]

        path = resolve_path(steps, current_version=0, target_version=2)

        assert versions(path) == [(0, 1), (1, 2)]

    def test_starts_from_current_version(self, make_step):
        """Test steps below the current version are ignored."""
        steps = [make_step(0, 1), make_step(1, 2), make_step(2, 3)]

        path = resolve_path(steps, current_version=1)

        assert versions(path) == [(1, 2), (2, 3)]

    def test_no_current_version_starts_at_lowest(self, make_step):
        """Test an unmigrated database starts at the lowest down version."""
        steps = [make_step(5, 6), make_step(6, 7)]

        path = resolve_path(steps, current_version=None)

        assert versions(path) == [(5, 6), (6, 7)]

    def test_already_at_latest(self, make_step):
        """Test a database at the highest version needs nothing."""
        steps = [make_step(0, 1), make_step(1, 2)]

        assert resolve_path(steps, current_version=2) == []

    def test_already_at_target(self, make_step):
        """Test current equal to target needs nothing."""
        steps = [make_step(0, 1), make_step(1, 2)]

        assert resolve_path(steps, current_version=1, target_version=1) == []

    def test_no_steps_without_target(self):
        """Test an empty step set resolves to an empty path."""
        assert resolve_path([], current_version=None) == []
        assert resolve_path([], current_version=4) == []

    def test_no_steps_with_unreachable_target(self):
        """Test an empty step set cannot reach a different target."""
        with pytest.raises(PathResolutionError) as exc_info:
            resolve_path([], current_version=0, target_version=5, database="app")

        assert exc_info.value.kinds == [PathProblemKind.TARGET_UNREACHABLE]
        assert exc_info.value.database == "app"


class TestResolvePathDowngrade:
    """Tests for downgrade path resolution."""

    def test_descending_execution_order(self, make_step):
        """Test downgrade steps are ordered from current down to target."""
        steps = [make_step(0, 1), make_step(1, 2), make_step(2, 3)]

        path = resolve_path(steps, current_version=3, target_version=1)

        assert versions(path) == [(2, 3), (1, 2)]

    def test_shortest_downgrade(self, make_step):
        """Test downgrades also minimise the number of steps."""
        steps = [make_step(0, 1), make_step(1, 2), make_step(2, 3), make_step(0, 3)]

        path = resolve_path(steps, current_version=3, target_version=0)

        assert versions(path) == [(0, 3)]

    def test_downgrade_disconnected(self, make_step):
        """Test a downgrade across a gap fails."""
        steps = [make_step(0, 1), make_step(2, 3)]

        with pytest.raises(PathResolutionError):
            resolve_path(steps, current_version=3, target_version=0)


class TestPathValidation:
    """Tests for disconnected graphs."""

    def test_unreachable_target(self, make_step):
        """Test a gap before the target is reported."""
        steps = [make_step(0, 1), make_step(2, 3)]

        with pytest.raises(PathResolutionError) as exc_info:
            resolve_path(steps, current_version=0, target_version=3)

        error = exc_info.value
        assert error.kinds == [PathProblemKind.TARGET_UNREACHABLE]
        assert error.start_version == 0
        assert error.end_version == 3
        assert "target version (3)" in str(error)

    def test_disconnected_start(self, make_step):
        """Test a current version no step departs from is reported."""
        steps = [make_step(2, 3), make_step(3, 4)]

        with pytest.raises(PathResolutionError) as exc_info:
            resolve_path(steps, current_version=1, database="app")

        error = exc_info.value
        assert PathProblemKind.START_DISCONNECTED in error.kinds
        assert error.database == "app"
        assert "current version (1)" in str(error)

    def test_both_problems_reported_together(self, make_step):
        """Test unreachable target and disconnected start are aggregated."""
        steps = [make_step(6, 7), make_step(7, 8)]

        with pytest.raises(PathResolutionError) as exc_info:
            resolve_path(steps, current_version=5, target_version=9)

        error = exc_info.value
        assert error.kinds == [
            PathProblemKind.TARGET_UNREACHABLE,
            PathProblemKind.START_DISCONNECTED,
        ]
        assert [p.version for p in error.problems] == [9, 5]
        assert "no path from 5 to 9" in str(error)


class TestMigrationGraph:
    """Tests for the MigrationGraph class."""

    def test_create_filters_out_of_range(self, make_step):
        """Test steps outside the bounds are excluded."""
        steps = [make_step(0, 1), make_step(1, 2), make_step(2, 3)]

        graph = MigrationGraph.create(steps, lower=1, upper=2)

        assert versions(graph.steps) == [(1, 2)]
        assert graph.start_version == 1
        assert graph.end_version == 2

    def test_create_returns_none_without_steps(self, make_step):
        """Test no in-range steps gives no graph."""
        assert MigrationGraph.create([make_step(0, 1)], lower=1) is None

    def test_trace_same_start_and_end(self, make_step):
        """Test a zero-length trace."""
        graph = MigrationGraph.create([make_step(0, 1)], start=1, end=1)

        assert graph.trace() == []

    def test_backtracking_relaxes_sibling_steps(self, make_step):
        """Test reverse relaxation reaches steps sharing an up version."""
        steps = [make_step(0, 2), make_step(1, 2), make_step(2, 3)]
        graph = MigrationGraph(steps, start_version=0, end_version=3, allow_backtracking=True)

        assert versions(graph.trace()) == [(0, 2), (2, 3)]


class TestIsDowngrade:
    """Tests for is_downgrade."""

    @pytest.mark.parametrize(
        "current,target,expected",
        [
            (3, 1, True),
            (1, 3, False),
            (2, 2, False),
            (None, 2, False),
            (2, None, False),
        ],
    )
    def test_is_downgrade(self, current, target, expected):
        assert is_downgrade(current, target) is expected
