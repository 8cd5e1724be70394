"""
Tests for SPI / CPI calculation.

Indices must never be NaN, infinite or negative; undefined values are None
and render as "N/A".
"""

import math

from src.core.performance import (
    NOT_AVAILABLE,
    compute_project_metrics,
    compute_task_performance,
    format_index,
    index_color,
    task_cpi,
    task_spi,
)
from src.core.store import Configuration, Project


class TestTaskSpi:
    """Schedule performance per task."""

    def test_not_completed_is_undefined(self, task_factory, config):
        task = task_factory(
            "a",
            actual_start_date="2024-01-01T00:00:00Z",
            actual_end_date="2024-01-02T00:00:00Z",
        )

        assert task_spi(task, config) is None

    def test_missing_actual_dates_is_undefined(self, task_factory, config):
        assert task_spi(task_factory("a", status="Done"), config) is None

    def test_zero_actual_duration_is_one(self, task_factory, config):
        task = task_factory(
            "a",
            status="Done",
            actual_start_date="2024-01-01T00:00:00Z",
            actual_end_date="2024-01-01T00:00:00Z",
        )

        assert task_spi(task, config) == 1.0

    def test_planned_over_actual(self, task_factory, config):
        """4 planned days finished in 5 actual days gives 0.8."""
        task = task_factory(
            "a",
            status="Done",
            planned_start_date="2024-01-01T00:00:00Z",
            planned_end_date="2024-01-05T00:00:00Z",
            actual_start_date="2024-01-01T00:00:00Z",
            actual_end_date="2024-01-06T00:00:00Z",
        )

        assert task_spi(task, config) == 0.8

    def test_negative_actual_duration_is_undefined(self, task_factory, config):
        task = task_factory(
            "a",
            status="Done",
            planned_start_date="2024-01-01T00:00:00Z",
            planned_end_date="2024-01-05T00:00:00Z",
            actual_start_date="2024-01-06T00:00:00Z",
            actual_end_date="2024-01-01T00:00:00Z",
        )

        assert task_spi(task, config) is None

    def test_unparseable_dates_are_undefined(self, task_factory, config):
        task = task_factory(
            "a",
            status="Done",
            planned_start_date="2024-01-01",
            planned_end_date="2024-01-05",
            actual_start_date="not a date",
            actual_end_date="2024-01-06",
        )

        assert task_spi(task, config) is None


class TestTaskCpi:
    """Cost performance per task."""

    def test_planned_over_actual_hours(self, task_factory, config):
        assert task_cpi(task_factory("a", planned_hours=10, actual_hours=8), config) == 1.25

    def test_completed_without_actual_hours_is_one(self, task_factory, config):
        assert task_cpi(task_factory("a", status="Done", planned_hours=10), config) == 1.0

    def test_open_without_actual_hours_is_undefined(self, task_factory, config):
        assert task_cpi(task_factory("a", planned_hours=10), config) is None


class TestProjectMetrics:
    """Project KPIs with guarded ratios."""

    def test_empty_project_defaults_to_one(self):
        metrics = compute_project_metrics(Project(id="p", name="Empty"))

        assert metrics.spi == 1.0
        assert metrics.cpi == 1.0
        assert metrics.overall_progress == 0
        assert metrics.total_tasks == 0
        assert metrics.cost_variance == 0.0
        assert not metrics.cost_at_risk

    def test_sample_project_metrics(self, sample_project):
        """
        Leaves c1 (10h, done), c2 (90h) and r2 (1h weight, done):
        progress = round(1100 / 101) = 11.
        """
        metrics = compute_project_metrics(sample_project)

        assert metrics.total_tasks == 4
        assert metrics.completed_tasks == 2
        assert metrics.overall_progress == 11
        assert metrics.total_planned_hours == 100
        assert metrics.total_actual_hours == 8
        assert math.isclose(metrics.earned_value, 11.0)
        assert metrics.spi == 0.11
        assert metrics.cpi == 1.38
        assert metrics.actual_cost == 800.0
        assert metrics.cost_variance == 4200.0

    def test_over_budget_is_at_risk(self, task_factory):
        project = Project(
            id="p",
            name="Over",
            planned_budget=100.0,
            tasks=[task_factory("a", actual_hours=2)],
        )

        metrics = compute_project_metrics(project)

        assert metrics.cost_variance == -100.0
        assert metrics.cost_at_risk
        assert metrics.to_dict()["cost_variance_color"] == "red"

    def test_hourly_rate_comes_from_configuration(self, task_factory):
        project = Project(
            id="p",
            name="Rate",
            configuration=Configuration(hourly_rate=50.0),
            tasks=[task_factory("a", actual_hours=4)],
        )

        assert compute_project_metrics(project).actual_cost == 200.0

    def test_indices_are_finite_and_non_negative(self, sample_project):
        metrics = compute_project_metrics(sample_project)
        performance = compute_task_performance(sample_project.tasks, sample_project.configuration)

        values = [metrics.spi, metrics.cpi] + [
            v for p in performance.values() for v in (p.spi, p.cpi) if v is not None
        ]
        for value in values:
            assert math.isfinite(value) and value >= 0, f"Bad index value: {value}"


class TestFormatting:
    def test_none_renders_not_available(self):
        assert format_index(None) == NOT_AVAILABLE

    def test_two_decimals(self):
        assert format_index(1) == "1.00"
        assert format_index(0.456) == "0.46"

    def test_colors(self):
        assert index_color(0.9) == "red"
        assert index_color(1.0) == "green"
        assert index_color(None) == "gray"
