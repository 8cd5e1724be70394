"""
Gantt timeline bucketing.

Given the task set and a zoom level, produces a two-row header (coarse
groups + fine columns) and per-task bar offsets/widths in zoom-relative
units, with a thinner baseline bar layer and a "today" marker.

Units by zoom:
- day:   columns are calendar days
- week:  columns are ISO weeks (Monday start); day values divided by 7
- month: columns are calendar months; durations use an average month
         length of 30.44 days (an approximation, not calendar-exact)
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Literal, Optional, Tuple

from src.core.store import Task, parse_timestamp
from src.core.tree import build_tree, flatten_tree

logger = logging.getLogger(__name__)

ZoomLevel = Literal["day", "week", "month"]
ZOOM_LEVELS: Tuple[str, ...] = ("day", "week", "month")

AVERAGE_MONTH_DAYS = 30.44
FALLBACK_SPAN_DAYS = 30

# Year 9999 is the usual open-ended marker; stepping past it overflows `date`
LAST_RENDERABLE_YEAR = 9998
MAX_COLUMNS = 5000


@dataclass
class HeaderCell:
    """Coarse header cell spanning ``span`` fine columns."""

    label: str
    span: int


@dataclass
class TimelineColumn:
    """Fine-grained header column."""

    label: str
    sub_label: str
    date: date


@dataclass
class TaskBar:
    """
    Bar geometry for one task row, in zoom-relative units.

    Parameters
    ----------
    task_id : str
        Task the row belongs to
    name : str
        Task name (embedded for display)
    level : int
        Nesting depth in the task tree
    status : str
        Task status (embedded for coloring)
    bar_start : Optional[float]
        Offset from the timeline anchor; None when planned dates are invalid
    bar_duration : Optional[float]
        Bar width; None when planned dates are invalid
    baseline_bar_start : Optional[float]
        Baseline offset; None without a (valid) baseline
    baseline_bar_duration : Optional[float]
        Baseline width; None without a (valid) baseline
    """

    task_id: str
    name: str
    level: int
    status: str
    is_milestone: bool = False
    is_critical: bool = False
    bar_start: Optional[float] = None
    bar_duration: Optional[float] = None
    baseline_bar_start: Optional[float] = None
    baseline_bar_duration: Optional[float] = None

    @property
    def has_bar(self) -> bool:
        return self.bar_start is not None and self.bar_duration is not None

    @property
    def has_baseline_bar(self) -> bool:
        return self.baseline_bar_start is not None and self.baseline_bar_duration is not None


@dataclass
class Timeline:
    """
    Complete timeline for one zoom level.

    ``is_empty`` is the explicit "nothing to render" state: no columns, no
    bars, and percentage helpers return None instead of dividing by zero.
    """

    zoom: str
    overall_start: date
    overall_end: date
    header: List[HeaderCell] = field(default_factory=list)
    columns: List[TimelineColumn] = field(default_factory=list)
    bars: List[TaskBar] = field(default_factory=list)
    today_index: Optional[float] = None
    is_empty: bool = False

    @property
    def total_columns(self) -> int:
        return len(self.columns)

    def _percent(self, value: Optional[float]) -> Optional[float]:
        if value is None or self.total_columns == 0:
            return None
        return value / self.total_columns * 100

    def bar_percentages(self, bar: TaskBar) -> Optional[Dict[str, Optional[float]]]:
        """
        Bar geometry as percentages of the total timeline width.

        Returns None when there is nothing to render or the bar has no
        valid planned dates.
        """
        if self.is_empty or not bar.has_bar:
            return None
        return {
            "left": self._percent(bar.bar_start),
            "width": self._percent(bar.bar_duration),
            "baseline_left": self._percent(bar.baseline_bar_start),
            "baseline_width": self._percent(bar.baseline_bar_duration),
        }

    def today_percent(self) -> Optional[float]:
        return self._percent(self.today_index)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert timeline to JSON-serializable dictionary.

        Returns
        -------
        dict
            Header rows, bars (with percentages) and marker
        """
        return {
            "zoom": self.zoom,
            "overall_start": self.overall_start.isoformat(),
            "overall_end": self.overall_end.isoformat(),
            "is_empty": self.is_empty,
            "total_columns": self.total_columns,
            "header": [{"label": c.label, "span": c.span} for c in self.header],
            "columns": [
                {"label": c.label, "sub_label": c.sub_label, "date": c.date.isoformat()}
                for c in self.columns
            ],
            "bars": [
                {**vars(bar), "percent": self.bar_percentages(bar)} for bar in self.bars
            ],
            "today_index": self.today_index,
            "today_percent": self.today_percent(),
        }


def _to_day(ts_str: Optional[str]) -> Optional[date]:
    """Start-of-day (UTC) date of an ISO string, None if unparseable or open-ended."""
    ts = parse_timestamp(ts_str)
    if ts is None:
        return None
    try:
        day = ts.astimezone(timezone.utc).date()
    except OverflowError:
        return None
    if day.year > LAST_RENDERABLE_YEAR:
        return None
    return day


def _today(today: Optional[date]) -> date:
    if today is not None:
        return today
    return datetime.now(timezone.utc).date()


def compute_bounds(tasks: List[Task], today: Optional[date] = None) -> Tuple[date, date, bool]:
    """
    Calculate timeline boundaries from planned and baseline dates.

    Unparseable dates are skipped per field so one bad task never corrupts
    the bounds of the others.

    Returns
    -------
    tuple
        (overall_start, overall_end, has_dates); falls back to
        today .. today + 30 days when no finite date exists
    """
    days: List[date] = []
    skipped = 0
    for task in tasks:
        for value in (
            task.planned_start_date,
            task.planned_end_date,
            task.baseline_start_date,
            task.baseline_end_date,
        ):
            if not value:
                continue
            day = _to_day(value)
            if day is None:
                skipped += 1
                continue
            days.append(day)

    if skipped:
        logger.warning(
            f"Skipped {skipped} unparseable or open-ended dates while computing timeline bounds"
        )

    if not days:
        start = _today(today)
        return start, start + timedelta(days=FALLBACK_SPAN_DAYS), False

    return min(days), max(days), True


def _anchor(overall_start: date, zoom: str) -> date:
    if zoom == "week":
        return overall_start - timedelta(days=overall_start.weekday())
    if zoom == "month":
        return overall_start.replace(day=1)
    return overall_start


def _next_month(day: date) -> date:
    if day.month == 12:
        return date(day.year + 1, 1, 1)
    return date(day.year, day.month + 1, 1)


def _build_columns(overall_start: date, overall_end: date, zoom: str) -> List[TimelineColumn]:
    columns: List[TimelineColumn] = []
    current = _anchor(overall_start, zoom)

    while current <= overall_end and len(columns) < MAX_COLUMNS:
        if zoom == "day":
            columns.append(TimelineColumn(str(current.day), current.strftime("%a"), current))
            current += timedelta(days=1)
        elif zoom == "week":
            iso_week = current.isocalendar()[1]
            columns.append(TimelineColumn(f"W{iso_week:02d}", current.strftime("%d/%m"), current))
            current += timedelta(days=7)
        else:
            columns.append(TimelineColumn(current.strftime("%b"), str(current.year), current))
            current = _next_month(current)

    if current <= overall_end:
        logger.warning(
            f"Timeline ({zoom}) truncated at {MAX_COLUMNS} columns, ending {columns[-1].date}"
        )
    return columns


def _build_header(columns: List[TimelineColumn], zoom: str) -> List[HeaderCell]:
    """Group fine columns by month (day/week zoom) or by year (month zoom)."""
    header: List[HeaderCell] = []
    last_key: Optional[Tuple[int, int]] = None

    for column in columns:
        if zoom == "month":
            key = (column.date.year, 0)
            label = str(column.date.year)
        else:
            key = (column.date.year, column.date.month)
            label = column.date.strftime("%B %Y")

        if key == last_key:
            header[-1].span += 1
        else:
            header.append(HeaderCell(label=label, span=1))
            last_key = key

    return header


def _position(day: date, anchor: date, zoom: str) -> float:
    if zoom == "month":
        return float((day.year - anchor.year) * 12 + day.month - anchor.month)
    offset = (day - anchor).days
    if zoom == "week":
        return offset / 7
    return float(offset)


def _span(start: date, end: date, zoom: str) -> float:
    days = max((end - start).days + 1, 0)
    if zoom == "month":
        return days / AVERAGE_MONTH_DAYS
    if zoom == "week":
        return days / 7
    return float(days)


def _bar(
    start_str: Optional[str], end_str: Optional[str], anchor: date, zoom: str
) -> Tuple[Optional[float], Optional[float]]:
    start = _to_day(start_str)
    end = _to_day(end_str)
    if start is None or end is None:
        return None, None
    return _position(start, anchor, zoom), _span(start, end, zoom)


def build_timeline(
    tasks: List[Task],
    zoom: str = "day",
    today: Optional[date] = None,
) -> Timeline:
    """
    Bucket the task set into a zoomable timeline.

    Parameters
    ----------
    tasks : List[Task]
        Flat task list
    zoom : str
        'day', 'week' or 'month'
    today : Optional[date]
        Reference date for the marker and the empty fallback (UTC today when None)

    Returns
    -------
    Timeline
        Header rows, bars in tree order, and the today marker
    """
    if zoom not in ZOOM_LEVELS:
        raise ValueError(f"Unknown zoom level: {zoom!r}")

    today = _today(today)
    overall_start, overall_end, has_dates = compute_bounds(tasks, today)

    if not tasks:
        logger.info("No tasks, timeline has nothing to render")
        return Timeline(
            zoom=zoom,
            overall_start=overall_start,
            overall_end=overall_end,
            is_empty=True,
        )

    anchor = _anchor(overall_start, zoom)
    columns = _build_columns(overall_start, overall_end, zoom)
    header = _build_header(columns, zoom)

    bars: List[TaskBar] = []
    for node, level in flatten_tree(build_tree(tasks)):
        task = node.task
        bar_start, bar_duration = _bar(task.planned_start_date, task.planned_end_date, anchor, zoom)
        if bar_start is None:
            logger.debug(f"Task {task.id} has invalid planned dates, no bar")
        baseline_start, baseline_duration = (None, None)
        if task.has_baseline:
            baseline_start, baseline_duration = _bar(
                task.baseline_start_date, task.baseline_end_date, anchor, zoom
            )
        bars.append(
            TaskBar(
                task_id=task.id,
                name=task.name,
                level=level,
                status=task.status,
                is_milestone=task.is_milestone,
                is_critical=task.is_critical,
                bar_start=bar_start,
                bar_duration=bar_duration,
                baseline_bar_start=baseline_start,
                baseline_bar_duration=baseline_duration,
            )
        )

    today_index: Optional[float] = None
    if overall_start <= today <= overall_end:
        today_index = _position(today, anchor, zoom)

    logger.info(
        f"Timeline ({zoom}): {overall_start} to {overall_end}, "
        f"{len(columns)} columns, {len(bars)} bars"
        + ("" if has_dates else " (fallback range)")
    )

    return Timeline(
        zoom=zoom,
        overall_start=overall_start,
        overall_end=overall_end,
        header=header,
        columns=columns,
        bars=bars,
        today_index=today_index,
        is_empty=not columns,
    )
