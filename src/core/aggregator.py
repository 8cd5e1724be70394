"""
Dashboard snapshot aggregator for Planboard.

Runs every engine over one project in a single pass and returns an immutable
DashboardSnapshot:
1. Builds the task tree (cycle-safe)
2. Rolls up effort-weighted progress per subtree and for the project
3. Calculates task and project performance indices
4. Buckets the Gantt timeline for the requested zoom
5. Reports malformed references and cycles as diagnostics

Malformed input never raises here: it degrades into default values and
diagnostics so the dashboard still renders.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from src.core.performance import (
    ProjectMetrics,
    TaskPerformance,
    compute_project_metrics,
    compute_task_performance,
)
from src.core.progress import compute_progress, compute_subtree_progress
from src.core.scheduling import dependents_index, find_dependency_cycles
from src.core.store import Project, Task, parse_timestamp
from src.core.timeline import Timeline, build_timeline
from src.core.tree import build_tree, flatten_tree, resolve_parents

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400


@dataclass
class TaskRow:
    """
    Denormalized task row for tables and Gantt rows.

    Parameters
    ----------
    task_id : str
        Task identifier
    name : str
        Task name
    level : int
        Depth in the task tree (0 = root)
    status : str
        Task status
    progress : int
        Subtree progress 0-100
    has_children : bool
        True for parent rows
    spi : Optional[float]
        Task SPI (None = N/A)
    cpi : Optional[float]
        Task CPI (None = N/A)
    schedule_variance_days : Optional[int]
        Planned end minus actual end (today when unfinished), in days
    dependent_task_ids : List[str]
        IDs of tasks that depend on this one
    """

    task_id: str
    name: str
    level: int
    status: str
    progress: int
    has_children: bool
    spi: Optional[float]
    cpi: Optional[float]
    schedule_variance_days: Optional[int]
    assignee_name: Optional[str] = None
    is_critical: bool = False
    is_milestone: bool = False
    dependent_task_ids: List[str] = field(default_factory=list)


@dataclass
class Diagnostic:
    """Tolerated data problem surfaced to the dashboard."""

    kind: str
    severity: str
    task_id: str
    description: str
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class DashboardSnapshot:
    """
    Immutable dashboard state for one project and zoom level.

    Snapshots are versioned; create a new snapshot after every edit.
    """

    snapshot_id: str
    snapshot_version: int
    timestamp: datetime
    project_id: str
    project_name: str
    zoom: str
    metrics: ProjectMetrics
    rows: List[TaskRow] = field(default_factory=list)
    timeline: Optional[Timeline] = None
    diagnostics: List[Diagnostic] = field(default_factory=list)
    task_dependency_graph: Dict[str, List[str]] = field(default_factory=dict)
    baseline_saved_at: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate timezone-aware timestamp."""
        if self.timestamp.tzinfo is None:
            raise ValueError("Snapshot timestamp must be timezone-aware")

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert snapshot to JSON-serializable dictionary.

        Returns
        -------
        dict
            JSON-serializable representation
        """
        return {
            "snapshot_id": self.snapshot_id,
            "snapshot_version": self.snapshot_version,
            "timestamp": self.timestamp.isoformat(),
            "project_id": self.project_id,
            "project_name": self.project_name,
            "zoom": self.zoom,
            "metrics": self.metrics.to_dict(),
            "rows": [vars(row) for row in self.rows],
            "timeline": self.timeline.to_dict() if self.timeline else None,
            "diagnostics": [vars(d) for d in self.diagnostics],
            "task_dependency_graph": self.task_dependency_graph,
            "baseline_saved_at": self.baseline_saved_at,
        }


class Aggregator:
    """Builds dashboard snapshots from a project."""

    def __init__(self) -> None:
        self.snapshot_version_counter = 0

    def create_snapshot(
        self,
        project: Project,
        zoom: str = "week",
        today: Optional[date] = None,
    ) -> DashboardSnapshot:
        """
        Create a complete dashboard snapshot.

        Parameters
        ----------
        project : Project
            Project to aggregate
        zoom : str
            Timeline zoom: 'day', 'week' (default) or 'month'
        today : Optional[date]
            Reference date for the today marker and variances (UTC today when None)

        Returns
        -------
        DashboardSnapshot
            Snapshot with all metrics pre-calculated
        """
        snapshot_start = datetime.now(timezone.utc)
        self.snapshot_version_counter += 1
        tasks = project.tasks
        config = project.configuration
        today = today or snapshot_start.date()

        logger.info(
            f"Creating snapshot v{self.snapshot_version_counter}: "
            f"project_id={project.id}, zoom={zoom}, tasks={len(tasks)}"
        )

        # Step 1: Tree and progress rollup
        roots = build_tree(tasks)
        subtree_progress = compute_subtree_progress(tasks, config)
        overall_progress = compute_progress(tasks, config)

        # Step 2: Performance indices
        performance = compute_task_performance(tasks, config)
        metrics = compute_project_metrics(project, overall_progress)

        # Step 3: Denormalized rows in tree order
        rows = self._build_rows(roots, subtree_progress, performance, tasks, today)

        # Step 4: Timeline
        timeline = build_timeline(tasks, zoom=zoom, today=today)

        # Step 5: Diagnostics
        diagnostics = self._build_diagnostics(tasks)

        snapshot = DashboardSnapshot(
            snapshot_id=str(uuid.uuid4()),
            snapshot_version=self.snapshot_version_counter,
            timestamp=snapshot_start,
            project_id=project.id,
            project_name=project.name,
            zoom=zoom,
            metrics=metrics,
            rows=rows,
            timeline=timeline,
            diagnostics=diagnostics,
            task_dependency_graph={t.id: list(t.dependencies) for t in tasks},
            baseline_saved_at=project.baseline_saved_at,
        )

        elapsed_ms = (datetime.now(timezone.utc) - snapshot_start).total_seconds() * 1000
        logger.info(
            f"Snapshot v{self.snapshot_version_counter} created in {elapsed_ms:.1f}ms: "
            f"{len(rows)} rows, {len(diagnostics)} diagnostics, "
            f"progress={overall_progress}%"
        )
        return snapshot

    def _build_rows(
        self,
        roots: List[Any],
        subtree_progress: Dict[str, int],
        performance: Dict[str, TaskPerformance],
        tasks: List[Task],
        today: date,
    ) -> List[TaskRow]:
        """Flatten the tree into display rows with embedded metrics."""
        dependents = dependents_index(tasks)
        rows: List[TaskRow] = []

        for node, level in flatten_tree(roots):
            task = node.task
            perf = performance.get(task.id)
            rows.append(
                TaskRow(
                    task_id=task.id,
                    name=task.name,
                    level=level,
                    status=task.status,
                    progress=subtree_progress.get(task.id, 0),
                    has_children=not node.is_leaf,
                    spi=perf.spi if perf else None,
                    cpi=perf.cpi if perf else None,
                    schedule_variance_days=self._schedule_variance(task, today),
                    assignee_name=task.assignee.name if task.assignee else None,
                    is_critical=task.is_critical,
                    is_milestone=task.is_milestone,
                    dependent_task_ids=dependents.get(task.id, []),
                )
            )
        return rows

    def _schedule_variance(self, task: Task, today: date) -> Optional[int]:
        """Days between planned end and actual end (today when unfinished)."""
        planned_end = parse_timestamp(task.planned_end_date)
        if planned_end is None:
            return None

        actual_end = parse_timestamp(task.actual_end_date)
        if actual_end is None:
            actual_end = datetime(today.year, today.month, today.day, tzinfo=timezone.utc)

        return round((planned_end - actual_end).total_seconds() / SECONDS_PER_DAY)

    def _build_diagnostics(self, tasks: List[Task]) -> List[Diagnostic]:
        """
        Report malformed references and cycles.

        1. Unresolved parent references (task rendered as root)
        2. Parent cycles (broken by making a task a root)
        3. Unresolved dependencies (skipped during propagation)
        4. Dependency cycles
        """
        diagnostics: List[Diagnostic] = []
        known_ids = {t.id for t in tasks}
        parent_of = resolve_parents(tasks)

        for task in tasks:
            if task.parent_id and task.parent_id not in known_ids:
                diagnostics.append(
                    Diagnostic(
                        kind="unresolved_parent",
                        severity="low",
                        task_id=task.id,
                        description=f"Parent {task.parent_id!r} of task '{task.name}' does not exist",
                        data={"parent_id": task.parent_id},
                    )
                )
            elif task.parent_id and task.id not in parent_of:
                diagnostics.append(
                    Diagnostic(
                        kind="parent_cycle",
                        severity="critical",
                        task_id=task.id,
                        description=f"Task '{task.name}' closes a parent cycle and is shown as a root",
                        data={"parent_id": task.parent_id},
                    )
                )

            missing = [d for d in task.dependencies if d not in known_ids]
            if missing:
                diagnostics.append(
                    Diagnostic(
                        kind="unresolved_dependency",
                        severity="low",
                        task_id=task.id,
                        description=f"Task '{task.name}' depends on missing tasks: {', '.join(missing)}",
                        data={"missing_ids": missing},
                    )
                )

        for cycle in find_dependency_cycles(tasks):
            diagnostics.append(
                Diagnostic(
                    kind="dependency_cycle",
                    severity="critical",
                    task_id=cycle[0],
                    description=f"Circular dependency detected: {' → '.join(cycle)}",
                    data={"cycle": cycle, "cycle_length": len(cycle) - 1},
                )
            )

        if diagnostics:
            logger.warning(f"Generated {len(diagnostics)} data diagnostics")
        return diagnostics
