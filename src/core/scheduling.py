"""
Dependency-driven date propagation.

When a task is saved, its planned start is pushed to the day after the
latest planned end among its dependencies, preserving its duration. This is
a single hop: successors of the edited task are only rescheduled when they
are saved themselves.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Set

from src.core.store import Task, format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)

DEPENDENCY_GAP = timedelta(days=1)


@dataclass
class PlannedDates:
    """Planned start/end pair produced by propagation."""

    planned_start_date: str
    planned_end_date: str
    shifted: bool = False


def latest_dependency_end(task: Task, all_tasks: List[Task]) -> Optional[datetime]:
    """
    Latest parseable planned end among the task's dependencies.

    Unknown ids, self-references and repeated ids are skipped.
    """
    tasks_by_id = {t.id: t for t in all_tasks}
    seen: Set[str] = set()
    latest: Optional[datetime] = None

    for dep_id in task.dependencies:
        if dep_id == task.id:
            logger.warning(f"Task {task.id} depends on itself, ignoring")
            continue
        if dep_id in seen:
            continue
        seen.add(dep_id)

        dep_task = tasks_by_id.get(dep_id)
        if dep_task is None:
            logger.debug(f"Task {task.id}: dependency {dep_id!r} not found, skipping")
            continue

        dep_end = parse_timestamp(dep_task.planned_end_date)
        if dep_end and (latest is None or dep_end > latest):
            latest = dep_end

    return latest


def propagate_dates(task: Task, all_tasks: List[Task]) -> PlannedDates:
    """
    Recompute a task's planned dates from its dependencies.

    Parameters
    ----------
    task : Task
        Task being saved (its dependency list is the one to honour)
    all_tasks : List[Task]
        Every task in the project

    Returns
    -------
    PlannedDates
        New planned dates; identical to the current ones when no shift is needed
    """
    unchanged = PlannedDates(task.planned_start_date, task.planned_end_date)
    if not task.dependencies:
        return unchanged

    latest_end = latest_dependency_end(task, all_tasks)
    if latest_end is None:
        return unchanged

    start = parse_timestamp(task.planned_start_date)
    end = parse_timestamp(task.planned_end_date)
    if start is None or end is None:
        logger.warning(f"Task {task.id} has unparseable planned dates, not propagating")
        return unchanged

    try:
        earliest_start = latest_end + DEPENDENCY_GAP
        if start >= earliest_start:
            return unchanged

        new_start = earliest_start
        new_end = new_start + (end - start)
    except OverflowError:
        logger.warning(f"Task {task.id}: shifted dates fall past year 9999, not propagating")
        return unchanged

    logger.info(
        f"Task {task.id} starts {start.isoformat()} before dependency end "
        f"{latest_end.isoformat()}, shifting to {new_start.isoformat()}"
    )
    return PlannedDates(
        planned_start_date=format_timestamp(new_start),
        planned_end_date=format_timestamp(new_end),
        shifted=True,
    )


def dependents_index(tasks: List[Task]) -> Dict[str, List[str]]:
    """Reverse dependencies: task id -> ids of tasks that depend on it."""
    index: Dict[str, List[str]] = defaultdict(list)
    for task in tasks:
        for dep_id in task.dependencies:
            if task.id not in index[dep_id]:
                index[dep_id].append(task.id)
    return dict(index)


def find_dependency_cycles(tasks: List[Task]) -> List[List[str]]:
    """
    Detect dependency cycles.

    Iterative DFS with an explicit stack; each cycle is reported once as the
    list of ids along it, closed by repeating the first id.

    Parameters
    ----------
    tasks : List[Task]
        Tasks to analyze

    Returns
    -------
    List[List[str]]
        Detected cycles (empty when the graph is acyclic)
    """
    tasks_by_id = {t.id: t for t in tasks}
    visited: Set[str] = set()
    cycles: List[List[str]] = []
    seen_cycles: Set[frozenset] = set()

    for task in tasks:
        if task.id in visited:
            continue

        path: List[str] = []
        on_path: Set[str] = set()
        stack = [(task.id, iter(tasks_by_id[task.id].dependencies))]
        visited.add(task.id)
        path.append(task.id)
        on_path.add(task.id)

        while stack:
            node_id, deps = stack[-1]
            dep_id = next(deps, None)
            if dep_id is None:
                stack.pop()
                path.pop()
                on_path.discard(node_id)
                continue
            if dep_id not in tasks_by_id:
                continue
            if dep_id in on_path:
                cycle = path[path.index(dep_id):] + [dep_id]
                key = frozenset(cycle)
                if key not in seen_cycles:
                    seen_cycles.add(key)
                    cycles.append(cycle)
                continue
            if dep_id in visited:
                continue
            visited.add(dep_id)
            path.append(dep_id)
            on_path.add(dep_id)
            stack.append((dep_id, iter(tasks_by_id[dep_id].dependencies)))

    if cycles:
        logger.warning(f"Detected {len(cycles)} dependency cycle(s)")
    return cycles
