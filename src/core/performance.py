"""
Schedule and cost performance indices (SPI / CPI).

Every ratio guards its denominator: indices fall back to 1.00 ("on target by
default") or ``None`` (rendered as "N/A"), never NaN, infinity or a negative
number.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from src.core.progress import compute_progress, is_completed
from src.core.store import Configuration, Project, Task, parse_timestamp

logger = logging.getLogger(__name__)

NOT_AVAILABLE = "N/A"


@dataclass
class TaskPerformance:
    """Per-task indices; ``None`` means undefined."""

    task_id: str
    spi: Optional[float]
    cpi: Optional[float]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_id": self.task_id,
            "spi": self.spi,
            "cpi": self.cpi,
            "spi_display": format_index(self.spi),
            "cpi_display": format_index(self.cpi),
        }


@dataclass
class ProjectMetrics:
    """
    Pre-calculated project KPIs.

    Notes
    -----
    - ``overall_progress`` is the effort-weighted percentage (0-100)
    - SPI / CPI are rounded to 2 decimals, 1.0 when undefined
    - ``cost_at_risk`` is True when the cost variance is negative
    """

    total_tasks: int
    completed_tasks: int
    overall_progress: int

    total_planned_hours: float
    total_actual_hours: float
    earned_value: float
    spi: float
    cpi: float

    planned_budget: float
    actual_cost: float
    cost_variance: float
    cost_at_risk: bool

    def to_dict(self) -> Dict[str, Any]:
        result = dict(vars(self))
        result["spi_display"] = format_index(self.spi)
        result["cpi_display"] = format_index(self.cpi)
        result["spi_color"] = index_color(self.spi)
        result["cpi_color"] = index_color(self.cpi)
        result["cost_variance_color"] = "red" if self.cost_at_risk else "green"
        return result


def format_index(value: Optional[float]) -> str:
    """Render an index with 2 decimals, or 'N/A' when undefined."""
    if value is None:
        return NOT_AVAILABLE
    return f"{value:.2f}"


def index_color(value: Optional[float]) -> str:
    if value is None:
        return "gray"
    return "red" if value < 1 else "green"


def _duration_seconds(start: Optional[str], end: Optional[str]) -> Optional[float]:
    start_dt = parse_timestamp(start)
    end_dt = parse_timestamp(end)
    if start_dt is None or end_dt is None:
        return None
    return (end_dt - start_dt).total_seconds()


def task_spi(task: Task, config: Configuration) -> Optional[float]:
    """
    Schedule performance index of a single task.

    Defined only for completed tasks with both actual dates: planned duration
    over actual duration, 1.00 when the actual duration is zero.
    """
    if not is_completed(task, config):
        return None
    if not (task.actual_start_date and task.actual_end_date):
        return None

    actual = _duration_seconds(task.actual_start_date, task.actual_end_date)
    if actual is None or actual < 0:
        return None
    if actual == 0:
        return 1.0

    planned = _duration_seconds(task.planned_start_date, task.planned_end_date)
    if planned is None or planned < 0:
        return None
    return round(planned / actual, 2)


def task_cpi(task: Task, config: Configuration) -> Optional[float]:
    """
    Cost performance index of a single task.

    Planned hours over actual hours when actual hours are positive; 1.00 for
    a completed task with no actual hours.
    """
    if task.actual_hours > 0:
        return round(max(task.planned_hours, 0.0) / task.actual_hours, 2)
    if is_completed(task, config):
        return 1.0
    return None


def compute_task_performance(
    tasks: List[Task], config: Configuration
) -> Dict[str, TaskPerformance]:
    """Indices for every task, keyed by task id."""
    return {
        t.id: TaskPerformance(task_id=t.id, spi=task_spi(t, config), cpi=task_cpi(t, config))
        for t in tasks
    }


def compute_actual_cost(tasks: List[Task], hourly_rate: float) -> float:
    """Sum of actual hours times the fixed hourly rate."""
    return sum(t.actual_hours for t in tasks) * hourly_rate


def compute_project_metrics(
    project: Project, overall_progress: Optional[int] = None
) -> ProjectMetrics:
    """
    Calculate all project KPIs.

    Parameters
    ----------
    project : Project
        Project to measure
    overall_progress : Optional[int]
        Pre-computed progress (recomputed when omitted)

    Returns
    -------
    ProjectMetrics
        KPIs with guarded ratios
    """
    tasks = project.tasks
    config = project.configuration
    if overall_progress is None:
        overall_progress = compute_progress(tasks, config)

    total_planned = sum(t.planned_hours for t in tasks)
    total_actual = sum(t.actual_hours for t in tasks)
    earned_value = overall_progress / 100 * total_planned

    spi = earned_value / total_planned if earned_value > 0 and total_planned > 0 else 1.0
    cpi = earned_value / total_actual if earned_value > 0 and total_actual > 0 else 1.0

    actual_cost = compute_actual_cost(tasks, config.hourly_rate)
    cost_variance = project.planned_budget - actual_cost

    metrics = ProjectMetrics(
        total_tasks=len(tasks),
        completed_tasks=len([t for t in tasks if is_completed(t, config)]),
        overall_progress=overall_progress,
        total_planned_hours=total_planned,
        total_actual_hours=total_actual,
        earned_value=earned_value,
        spi=round(spi, 2),
        cpi=round(cpi, 2),
        planned_budget=project.planned_budget,
        actual_cost=actual_cost,
        cost_variance=cost_variance,
        cost_at_risk=cost_variance < 0,
    )
    logger.debug(
        f"Metrics for project {project.id}: progress={overall_progress}%, "
        f"SPI={metrics.spi}, CPI={metrics.cpi}, CV={cost_variance}"
    )
    return metrics
