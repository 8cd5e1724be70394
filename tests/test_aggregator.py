"""
Tests for dashboard snapshot aggregation.

The snapshot must render for malformed projects: bad references and cycles
become diagnostics, never exceptions.
"""

import json
from datetime import date

import pytest

from src.core.aggregator import Aggregator
from src.core.store import Project


@pytest.fixture
def aggregator():
    return Aggregator()


class TestCreateSnapshot:
    """Snapshot content for a well-formed project."""

    def test_rows_in_tree_order_with_metrics(self, aggregator, sample_project):
        snapshot = aggregator.create_snapshot(sample_project, zoom="day", today=date(2024, 3, 5))

        assert [(r.task_id, r.level) for r in snapshot.rows] == [
            ("p1", 0),
            ("c1", 1),
            ("c2", 1),
            ("r2", 0),
        ]
        rows = {r.task_id: r for r in snapshot.rows}
        assert rows["p1"].has_children
        assert rows["p1"].progress == 10
        assert rows["c1"].spi == 1.0
        assert rows["c1"].cpi == 1.25
        assert rows["c2"].spi is None
        assert rows["c1"].dependent_task_ids == ["c2"]
        assert snapshot.metrics.overall_progress == 11
        assert snapshot.diagnostics == []

    def test_schedule_variance_days(self, aggregator, sample_project):
        """c1 finished on its planned end; c2 is open and planned to end 5 days after today."""
        snapshot = aggregator.create_snapshot(sample_project, zoom="day", today=date(2024, 3, 5))
        rows = {r.task_id: r for r in snapshot.rows}

        assert rows["c1"].schedule_variance_days == 0
        assert rows["c2"].schedule_variance_days == 5

    def test_timeline_uses_requested_zoom(self, aggregator, sample_project):
        snapshot = aggregator.create_snapshot(sample_project, zoom="week", today=date(2024, 3, 5))

        assert snapshot.zoom == "week"
        assert snapshot.timeline.zoom == "week"
        assert snapshot.timeline.today_index is not None

    def test_versions_increase(self, aggregator, sample_project):
        first = aggregator.create_snapshot(sample_project)
        second = aggregator.create_snapshot(sample_project)

        assert second.snapshot_version == first.snapshot_version + 1
        assert first.snapshot_id != second.snapshot_id

    def test_to_dict_is_json_serializable(self, aggregator, sample_project):
        data = aggregator.create_snapshot(sample_project, zoom="month").to_dict()

        parsed = json.loads(json.dumps(data))
        assert parsed["project_id"] == "proj-1"
        assert parsed["metrics"]["spi_display"] == "0.11"
        assert parsed["task_dependency_graph"]["c2"] == ["c1"]

    def test_empty_project(self, aggregator):
        snapshot = aggregator.create_snapshot(Project(id="e", name="Empty"))

        assert snapshot.rows == []
        assert snapshot.timeline.is_empty
        assert snapshot.metrics.spi == 1.0


class TestDiagnostics:
    """Malformed data surfaces as diagnostics."""

    def test_unresolved_references(self, aggregator, task_factory):
        project = Project(
            id="p",
            name="Broken",
            tasks=[task_factory("a", parent_id="ghost", dependencies=["missing"])],
        )

        snapshot = aggregator.create_snapshot(project)

        kinds = sorted(d.kind for d in snapshot.diagnostics)
        assert kinds == ["unresolved_dependency", "unresolved_parent"]
        assert [r.task_id for r in snapshot.rows] == ["a"], "Task should render as a root"

    def test_parent_cycle(self, aggregator, task_factory):
        project = Project(
            id="p",
            name="Loop",
            tasks=[task_factory("a", parent_id="b"), task_factory("b", parent_id="a")],
        )

        snapshot = aggregator.create_snapshot(project)

        cycle = [d for d in snapshot.diagnostics if d.kind == "parent_cycle"]
        assert len(cycle) == 1
        assert cycle[0].task_id == "a"
        assert len(snapshot.rows) == 2

    def test_dependency_cycle(self, aggregator, task_factory):
        project = Project(
            id="p",
            name="Deps",
            tasks=[task_factory("a", dependencies=["b"]), task_factory("b", dependencies=["a"])],
        )

        snapshot = aggregator.create_snapshot(project)

        cycles = [d for d in snapshot.diagnostics if d.kind == "dependency_cycle"]
        assert len(cycles) == 1
        assert cycles[0].data["cycle_length"] == 2
