"""
Task tree builder.

Turns the flat task list into a parent -> children forest using ``parent_id``
links. Unresolved parents become roots; parent cycles are broken by making
the task whose id is visited twice a root. Every traversal here is
iterative and carries a visited set.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Set, Tuple

from src.core.store import Task

logger = logging.getLogger(__name__)


@dataclass
class TreeNode:
    """A task with its ordered sub-tasks."""

    task: Task
    sub_tasks: List["TreeNode"] = field(default_factory=list)

    @property
    def is_leaf(self) -> bool:
        return not self.sub_tasks


def _unique_tasks(tasks: List[Task]) -> List[Task]:
    """Drop repeated ids, keeping the first occurrence."""
    seen: Set[str] = set()
    unique: List[Task] = []
    for task in tasks:
        if task.id in seen:
            logger.warning(f"Duplicate task id {task.id!r} ignored")
            continue
        seen.add(task.id)
        unique.append(task)
    return unique


def resolve_parents(tasks: List[Task]) -> Dict[str, str]:
    """
    Map each task id to its effective parent id.

    Tasks with an absent or unresolved parent, or whose parent link closes a
    cycle, are left out of the mapping (they are roots).

    Parameters
    ----------
    tasks : List[Task]
        Flat task list with unique ids

    Returns
    -------
    Dict[str, str]
        child id -> parent id for every link kept in the forest
    """
    parent_of = {
        t.id: t.parent_id
        for t in tasks
        if t.parent_id and t.parent_id != t.id
    }
    known_ids = {t.id for t in tasks}

    for t in tasks:
        if t.parent_id == t.id:
            logger.warning(f"Task {t.id} is its own parent, treating as root")

    for task_id in list(parent_of):
        if parent_of[task_id] not in known_ids:
            logger.debug(f"Task {task_id} has unresolved parent {parent_of[task_id]!r}")
            del parent_of[task_id]

    # 0 = unvisited, 1 = on current chain, 2 = settled
    state: Dict[str, int] = {}
    for task in tasks:
        if state.get(task.id):
            continue
        chain: List[str] = []
        current = task.id
        while True:
            state[current] = 1
            chain.append(current)
            parent = parent_of.get(current)
            if parent is None or state.get(parent) == 2:
                break
            if state.get(parent) == 1:
                # Second visit of `parent`: cut its upward link
                logger.warning(
                    f"Parent cycle detected through task {parent}, treating it as root"
                )
                del parent_of[parent]
                break
            current = parent
        for task_id in chain:
            state[task_id] = 2

    return parent_of


def build_tree(tasks: List[Task]) -> List[TreeNode]:
    """
    Build the task forest.

    Parameters
    ----------
    tasks : List[Task]
        Flat task list, may be empty

    Returns
    -------
    List[TreeNode]
        Root nodes in input order, each with sub-tasks in input order
    """
    unique = _unique_tasks(tasks)
    parent_of = resolve_parents(unique)
    nodes = {t.id: TreeNode(task=t) for t in unique}

    roots: List[TreeNode] = []
    for task in unique:
        node = nodes[task.id]
        parent_id = parent_of.get(task.id)
        if parent_id is not None:
            nodes[parent_id].sub_tasks.append(node)
        else:
            roots.append(node)

    logger.debug(f"Built task tree: {len(roots)} roots from {len(unique)} tasks")
    return roots


def flatten_tree(roots: List[TreeNode]) -> Iterator[Tuple[TreeNode, int]]:
    """Yield ``(node, level)`` depth-first, parents before children."""
    visited: Set[str] = set()
    stack: List[Tuple[TreeNode, int]] = [(node, 0) for node in reversed(roots)]
    while stack:
        node, level = stack.pop()
        if node.task.id in visited:
            continue
        visited.add(node.task.id)
        yield node, level
        for child in reversed(node.sub_tasks):
            stack.append((child, level + 1))


def children_index(tasks: List[Task]) -> Dict[str, List[str]]:
    """Raw parent id -> child ids adjacency (unvalidated links included)."""
    index: Dict[str, List[str]] = defaultdict(list)
    for task in tasks:
        if task.parent_id:
            index[task.parent_id].append(task.id)
    return dict(index)


def descendant_ids(tasks: List[Task], task_id: str) -> Set[str]:
    """
    Collect every transitive child of ``task_id``.

    Parameters
    ----------
    tasks : List[Task]
        Flat task list
    task_id : str
        Root of the subtree

    Returns
    -------
    Set[str]
        Descendant ids, excluding ``task_id`` itself
    """
    index = children_index(tasks)
    found: Set[str] = set()
    pending = list(index.get(task_id, []))
    while pending:
        child_id = pending.pop()
        if child_id in found or child_id == task_id:
            continue
        found.add(child_id)
        pending.extend(index.get(child_id, []))
    return found
