"""
Effort-weighted progress aggregation.

Leaf tasks contribute 100 (completed) or 0, weighted by
``max(planned_hours, 1)``. Parents ignore their own hours and sum their
children, so the rollup is effort-weighted rather than count-weighted: one
large completed leaf outweighs several small open ones.
"""

import logging
import math
from typing import Dict, List, Optional, Tuple

from src.core.store import Configuration, StatusDefinition, Task
from src.core.tree import TreeNode, build_tree, flatten_tree

logger = logging.getLogger(__name__)

MIN_LEAF_WEIGHT = 1.0


def default_status(config: Configuration) -> Optional[StatusDefinition]:
    """Status flagged default, falling back to the first configured one."""
    for status in config.statuses:
        if status.is_default:
            return status
    return config.statuses[0] if config.statuses else None


def completed_status(config: Configuration) -> Optional[StatusDefinition]:
    """Status flagged completed, if any."""
    for status in config.statuses:
        if status.is_completed:
            return status
    return None


def is_completed(task: Task, config: Configuration) -> bool:
    """True when the task's status is the configured completed status."""
    done = completed_status(config)
    if done is None:
        return False
    return task.status in (done.name, done.id)


def _rollup(
    roots: List[TreeNode], config: Configuration
) -> Dict[str, Tuple[float, float]]:
    """
    Compute ``(progress * weight, weight)`` for every node, bottom-up.

    Nodes are visited in depth-first pre-order and then processed in reverse
    so each child is settled before its parent.
    """
    totals: Dict[str, Tuple[float, float]] = {}
    ordered = [node for node, _ in flatten_tree(roots)]

    for node in reversed(ordered):
        if node.is_leaf:
            weight = max(node.task.planned_hours, MIN_LEAF_WEIGHT)
            progress = 100.0 if is_completed(node.task, config) else 0.0
            totals[node.task.id] = (progress * weight, weight)
            continue

        weighted_sum = 0.0
        weight = 0.0
        for child in node.sub_tasks:
            child_sum, child_weight = totals.get(child.task.id, (0.0, 0.0))
            weighted_sum += child_sum
            weight += child_weight
        totals[node.task.id] = (weighted_sum, weight)

    return totals


def _as_percent(weighted_sum: float, weight: float) -> int:
    if weight <= 0:
        return 0
    # Half-up rounding
    return min(max(int(math.floor(weighted_sum / weight + 0.5)), 0), 100)


def compute_subtree_progress(
    tasks: List[Task], config: Configuration
) -> Dict[str, int]:
    """
    Integer progress (0-100) of every task's subtree.

    Parameters
    ----------
    tasks : List[Task]
        Flat task list
    config : Configuration
        Project configuration (for the completed status)

    Returns
    -------
    Dict[str, int]
        task id -> subtree progress percentage
    """
    totals = _rollup(build_tree(tasks), config)
    return {task_id: _as_percent(s, w) for task_id, (s, w) in totals.items()}


def compute_progress(tasks: List[Task], config: Configuration) -> int:
    """
    Overall project progress percentage.

    Parameters
    ----------
    tasks : List[Task]
        Flat task list, may be empty
    config : Configuration
        Project configuration (for the completed status)

    Returns
    -------
    int
        0-100; 0 for an empty project
    """
    roots = build_tree(tasks)
    totals = _rollup(roots, config)

    weighted_sum = 0.0
    weight = 0.0
    for root in roots:
        root_sum, root_weight = totals[root.task.id]
        weighted_sum += root_sum
        weight += root_weight

    progress = _as_percent(weighted_sum, weight)
    logger.debug(f"Project progress {progress}% over {len(tasks)} tasks (weight {weight})")
    return progress
