"""
Tests for Gantt timeline bucketing at day, week and month zoom.
"""

from datetime import date

import pytest

from src.core.aggregator import Aggregator
from src.core.store import Project
from src.core.timeline import MAX_COLUMNS, build_timeline, compute_bounds


@pytest.fixture
def march_tasks(task_factory):
    """Two tasks spanning 2024-03-01 .. 2024-03-05."""
    return [
        task_factory("a", planned_start_date="2024-03-01T00:00:00Z", planned_end_date="2024-03-03T00:00:00Z"),
        task_factory("b", planned_start_date="2024-03-04T00:00:00Z", planned_end_date="2024-03-05T00:00:00Z"),
    ]


class TestComputeBounds:
    def test_bounds_cover_planned_dates(self, march_tasks):
        start, end, has_dates = compute_bounds(march_tasks)

        assert (start, end, has_dates) == (date(2024, 3, 1), date(2024, 3, 5), True)

    def test_baseline_dates_extend_bounds(self, task_factory):
        task = task_factory(
            "a",
            planned_start_date="2024-03-10",
            planned_end_date="2024-03-12",
            baseline_start_date="2024-03-01",
            baseline_end_date="2024-03-20",
        )

        start, end, _ = compute_bounds([task])

        assert (start, end) == (date(2024, 3, 1), date(2024, 3, 20))

    def test_fallback_is_thirty_days_from_today(self):
        today = date(2024, 6, 1)

        start, end, has_dates = compute_bounds([], today)

        assert (start, end, has_dates) == (today, date(2024, 7, 1), False)

    def test_invalid_dates_are_skipped(self, march_tasks, task_factory):
        tasks = march_tasks + [task_factory("bad", planned_start_date="??", planned_end_date="2024-13-40")]

        start, end, _ = compute_bounds(tasks)

        assert (start, end) == (date(2024, 3, 1), date(2024, 3, 5))


class TestDayZoom:
    """Day columns, month header."""

    def test_five_day_range(self, march_tasks):
        timeline = build_timeline(march_tasks, zoom="day", today=date(2024, 4, 1))

        assert timeline.total_columns == 5
        assert [c.label for c in timeline.columns] == ["1", "2", "3", "4", "5"]
        assert timeline.columns[0].sub_label == "Fri"
        assert len(timeline.header) == 1
        assert timeline.header[0].label == "March 2024"
        assert timeline.header[0].span == 5
        assert timeline.today_index is None, "Today outside the range has no marker"
        assert timeline.today_percent() is None

    def test_bar_geometry(self, march_tasks):
        timeline = build_timeline(march_tasks, zoom="day", today=date(2024, 4, 1))

        bar_a, bar_b = timeline.bars
        assert (bar_a.bar_start, bar_a.bar_duration) == (0.0, 3.0)
        assert (bar_b.bar_start, bar_b.bar_duration) == (3.0, 2.0)
        assert timeline.bar_percentages(bar_b)["left"] == pytest.approx(60.0)
        assert timeline.bar_percentages(bar_b)["width"] == pytest.approx(40.0)

    def test_today_marker_inside_range(self, march_tasks):
        timeline = build_timeline(march_tasks, zoom="day", today=date(2024, 3, 3))

        assert timeline.today_index == 2.0
        assert timeline.today_percent() == pytest.approx(40.0)

    def test_header_spans_month_boundary(self, task_factory):
        tasks = [task_factory("a", planned_start_date="2024-03-30", planned_end_date="2024-04-02")]

        timeline = build_timeline(tasks, zoom="day", today=date(2024, 1, 1))

        assert [(h.label, h.span) for h in timeline.header] == [("March 2024", 2), ("April 2024", 2)]

    def test_baseline_bar(self, task_factory):
        task = task_factory(
            "a",
            planned_start_date="2024-03-03",
            planned_end_date="2024-03-05",
            baseline_start_date="2024-03-01",
            baseline_end_date="2024-03-02",
        )

        bar = build_timeline([task], zoom="day", today=date(2024, 1, 1)).bars[0]

        assert (bar.baseline_bar_start, bar.baseline_bar_duration) == (0.0, 2.0)
        assert (bar.bar_start, bar.bar_duration) == (2.0, 3.0)

    def test_invalid_dates_give_no_bar(self, march_tasks, task_factory):
        tasks = march_tasks + [task_factory("bad", planned_start_date="nope", planned_end_date="")]

        timeline = build_timeline(tasks, zoom="day", today=date(2024, 1, 1))

        bad = timeline.bars[-1]
        assert not bad.has_bar
        assert timeline.bar_percentages(bad) is None
        assert timeline.total_columns == 5


class TestWeekZoom:
    def test_columns_start_on_monday(self, march_tasks):
        """2024-03-01 is a Friday; the anchor is Monday 2024-02-26."""
        timeline = build_timeline(march_tasks, zoom="week", today=date(2024, 1, 1))

        assert timeline.columns[0].date == date(2024, 2, 26)
        assert timeline.columns[0].label == "W09"
        assert timeline.columns[0].sub_label == "26/02"
        assert timeline.total_columns == 2

    def test_bar_units_are_weeks(self, march_tasks):
        timeline = build_timeline(march_tasks, zoom="week", today=date(2024, 1, 1))

        bar_a = timeline.bars[0]
        assert bar_a.bar_start == pytest.approx(4 / 7)
        assert bar_a.bar_duration == pytest.approx(3 / 7)


class TestMonthZoom:
    def test_month_columns_and_year_header(self, task_factory):
        tasks = [task_factory("a", planned_start_date="2024-11-15", planned_end_date="2025-02-10")]

        timeline = build_timeline(tasks, zoom="month", today=date(2024, 1, 1))

        assert [c.label for c in timeline.columns] == ["Nov", "Dec", "Jan", "Feb"]
        assert [(h.label, h.span) for h in timeline.header] == [("2024", 2), ("2025", 2)]

    def test_month_bar_geometry(self, task_factory):
        tasks = [
            task_factory("a", planned_start_date="2024-01-01", planned_end_date="2024-01-10"),
            task_factory("b", planned_start_date="2024-03-01", planned_end_date="2024-03-30"),
        ]

        timeline = build_timeline(tasks, zoom="month", today=date(2023, 1, 1))

        bar_b = timeline.bars[1]
        assert bar_b.bar_start == 2.0
        assert bar_b.bar_duration == pytest.approx(30 / 30.44)


class TestEmptyTimeline:
    def test_no_tasks_is_empty(self):
        timeline = build_timeline([], zoom="week", today=date(2024, 1, 1))

        assert timeline.is_empty
        assert timeline.total_columns == 0
        assert timeline.bars == []
        assert timeline.today_percent() is None
        assert timeline.to_dict()["is_empty"] is True

    def test_tasks_without_dates_use_fallback_range(self, task_factory):
        timeline = build_timeline([task_factory("a")], zoom="day", today=date(2024, 1, 1))

        assert not timeline.is_empty
        assert timeline.total_columns == 31
        assert timeline.today_index == 0.0

    def test_unknown_zoom_raises(self, march_tasks):
        with pytest.raises(ValueError, match="zoom"):
            build_timeline(march_tasks, zoom="year")


class TestOpenEndedDates:
    """A 9999-12-31 end date marks an open-ended task and must not crash any zoom."""

    @pytest.fixture
    def tasks(self, march_tasks, task_factory):
        return march_tasks + [
            task_factory("forever", planned_start_date="2024-03-01", planned_end_date="9999-12-31")
        ]

    @pytest.mark.parametrize("zoom", ["day", "week", "month"])
    def test_open_ended_task_has_no_bar(self, tasks, zoom):
        timeline = build_timeline(tasks, zoom=zoom, today=date(2024, 3, 2))

        forever = next(b for b in timeline.bars if b.task_id == "forever")
        assert not forever.has_bar
        assert timeline.overall_end == date(2024, 3, 5), "Open-ended dates must not stretch the bounds"
        assert timeline.total_columns > 0

    def test_snapshot_renders_at_month_zoom(self, tasks):
        snapshot = Aggregator().create_snapshot(
            Project(id="p", name="Open", tasks=tasks), zoom="month", today=date(2024, 3, 2)
        )

        assert len(snapshot.rows) == 3
        assert snapshot.timeline.total_columns == 1

    def test_last_renderable_year_still_builds(self, task_factory):
        tasks = [task_factory("late", planned_start_date="9998-12-20", planned_end_date="9998-12-31")]

        for zoom in ("day", "week", "month"):
            timeline = build_timeline(tasks, zoom=zoom, today=date(2024, 1, 1))
            assert timeline.bars[0].has_bar, f"No bar at {zoom} zoom"

    def test_column_count_is_capped(self, task_factory):
        tasks = [task_factory("long", planned_start_date="2024-01-01", planned_end_date="2040-01-01")]

        timeline = build_timeline(tasks, zoom="day", today=date(2024, 1, 1))

        assert timeline.total_columns == MAX_COLUMNS
