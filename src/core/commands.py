"""
Project transition functions.

Every edit to a project goes through ``apply_command``: a closed set of
command dataclasses, each handled by a pure function that returns a new
Project plus the ChangeLog entries it generated. Input projects and tasks are
never mutated.
"""

import json
import logging
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Set, Union

from src.core.baseline import delete_baseline, save_baseline
from src.core.importer import auto_map_columns, rows_to_tasks
from src.core.progress import default_status
from src.core.scheduling import propagate_dates
from src.core.store import (
    TASK_FIELD_KEYS,
    ChangeLog,
    Project,
    Task,
    User,
    format_timestamp,
    normalize_priority,
    parse_timestamp,
)
from src.core.tree import descendant_ids

logger = logging.getLogger(__name__)

STATUS_CHANGE_JUSTIFICATION = "Status changed on the Kanban board"
BULK_MOVE_JUSTIFICATION = "Moved with a bulk action"
COPY_SUFFIX = " (copy)"


@dataclass
class CreateTask:
    task: Task


@dataclass
class EditTask:
    """Edit tracked fields of an existing task (justification required)."""

    task_id: str
    changes: Dict[str, Any]
    user: str
    justification: str


@dataclass
class DeleteTask:
    task_id: str


@dataclass
class ChangeStatus:
    """Kanban drag: status change with an auto-filled justification."""

    task_id: str
    status: str
    user: str = ""


@dataclass
class SaveBaseline:
    pass


@dataclass
class DeleteBaseline:
    pass


@dataclass
class BulkDelete:
    task_ids: List[str]


@dataclass
class BulkDuplicate:
    task_ids: List[str]


@dataclass
class BulkMove:
    """Re-parent tasks; ``parent_id=None`` moves them to the root."""

    task_ids: List[str]
    parent_id: Optional[str] = None
    user: str = ""


@dataclass
class ImportTasks:
    """Mapped import rows; columns are auto-mapped when ``mapping`` is None."""

    rows: List[Dict[str, str]]
    mapping: Optional[Dict[str, str]] = None


Command = Union[
    CreateTask,
    EditTask,
    DeleteTask,
    ChangeStatus,
    SaveBaseline,
    DeleteBaseline,
    BulkDelete,
    BulkDuplicate,
    BulkMove,
    ImportTasks,
]


@dataclass
class CommandResult:
    """New project snapshot plus ChangeLog entries keyed by task id."""

    project: Project
    changes: Dict[str, List[ChangeLog]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "project": self.project.to_dict(),
            "changes": {
                task_id: [entry.to_dict() for entry in entries]
                for task_id, entries in self.changes.items()
            },
        }


def _stringify(value: Any) -> str:
    """Render a field value for the change log."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, User):
        return value.name
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else repr(value)
    if isinstance(value, list):
        return ", ".join(str(v) for v in value)
    if isinstance(value, dict):
        return json.dumps(value, sort_keys=True)
    return str(value)


def _find_task(project: Project, task_id: str) -> Task:
    for task in project.tasks:
        if task.id == task_id:
            return task
    raise ValueError(f"Task not found: {task_id}")


def _new_task_id(taken: Set[str]) -> str:
    base = f"task-{int(time.time() * 1000)}"
    candidate = base
    counter = 1
    while candidate in taken:
        candidate = f"{base}-{counter}"
        counter += 1
    taken.add(candidate)
    return candidate


def _resolve_status(project: Project, value: str) -> str:
    if not value:
        fallback = default_status(project.configuration)
        return fallback.name if fallback else ""
    status = project.configuration.find_status(value)
    if status is None:
        raise ValueError(f"Unknown status: {value!r}")
    return status.name


def _normalize_changes(project: Project, task: Task, changes: Dict[str, Any]) -> Dict[str, Any]:
    """Validate edit keys and coerce values to Task attribute types."""
    camel_to_attr = {v: k for k, v in TASK_FIELD_KEYS.items()}
    normalized: Dict[str, Any] = {}

    for key, value in changes.items():
        attr = key if key in TASK_FIELD_KEYS else camel_to_attr.get(key)
        if attr is None:
            raise ValueError(f"Field cannot be edited: {key!r}")

        if attr == "assignee":
            value = value if isinstance(value, User) or value is None else User.from_dict(value)
        elif attr == "status":
            value = _resolve_status(project, str(value))
        elif attr == "priority":
            value = normalize_priority(value)
        elif attr in ("planned_hours", "actual_hours"):
            value = float(value)
            if value < 0:
                raise ValueError(f"{TASK_FIELD_KEYS[attr]} must be non-negative")
        elif attr == "dependencies":
            value = [str(d) for d in value or [] if str(d) != task.id]
        elif attr == "parent_id":
            value = str(value) if value else None
            if value is not None:
                _check_parent(project, task.id, value)
        elif attr in ("is_milestone", "is_critical"):
            value = bool(value)
        elif attr == "custom_fields":
            value = dict(value or {})

        normalized[attr] = value

    return normalized


def _check_parent(project: Project, task_id: str, parent_id: str) -> None:
    if parent_id == task_id:
        raise ValueError(f"Task {task_id} cannot be its own parent")
    _find_task(project, parent_id)
    if parent_id in descendant_ids(project.tasks, task_id):
        raise ValueError(f"Task {parent_id} is a descendant of {task_id}")


def _diff(old: Task, new: Task, user: str, justification: str, timestamp: str) -> List[ChangeLog]:
    entries: List[ChangeLog] = []
    for attr, key in TASK_FIELD_KEYS.items():
        old_value = getattr(old, attr)
        new_value = getattr(new, attr)
        if old_value == new_value:
            continue
        entries.append(
            ChangeLog(
                field_changed=key,
                old_value=_stringify(old_value),
                new_value=_stringify(new_value),
                user=user,
                timestamp=timestamp,
                justification=justification,
            )
        )
    return entries


def _with_propagated_dates(task: Task, all_tasks: List[Task]) -> Task:
    dates = propagate_dates(task, all_tasks)
    if not dates.shifted:
        return task
    return replace(
        task,
        planned_start_date=dates.planned_start_date,
        planned_end_date=dates.planned_end_date,
    )


def _replace_task(tasks: List[Task], updated: Task) -> List[Task]:
    return [updated if t.id == updated.id else t for t in tasks]


def _remove_tasks(project: Project, root_ids: List[str]) -> Project:
    """Remove tasks with all descendants and strip them from dependency lists."""
    known = {t.id for t in project.tasks}
    doomed: Set[str] = set()
    for task_id in root_ids:
        if task_id not in known:
            logger.warning(f"Cannot delete unknown task {task_id}, skipping")
            continue
        doomed.add(task_id)
        doomed |= descendant_ids(project.tasks, task_id)

    if not doomed:
        return project

    remaining: List[Task] = []
    for task in project.tasks:
        if task.id in doomed:
            continue
        if any(dep in doomed for dep in task.dependencies):
            task = replace(task, dependencies=[d for d in task.dependencies if d not in doomed])
        remaining.append(task)

    logger.info(f"Deleted {len(doomed)} tasks from project {project.id}")
    return replace(project, tasks=remaining)


def _create_task(project: Project, command: CreateTask, timestamp: str) -> CommandResult:
    taken = {t.id for t in project.tasks}
    task_id = command.task.id
    if task_id and task_id in taken:
        raise ValueError(f"Task already exists: {task_id}")
    if command.task.parent_id and command.task.parent_id not in taken:
        raise ValueError(f"Parent task not found: {command.task.parent_id}")

    task = replace(
        command.task,
        id=task_id or _new_task_id(taken),
        status=_resolve_status(project, command.task.status),
        change_history=[],
        is_critical=False,
    )
    task = _with_propagated_dates(task, project.tasks + [task])
    logger.info(f"Created task {task.id} in project {project.id}")
    return CommandResult(project=replace(project, tasks=project.tasks + [task]))


def _edit_task(project: Project, command: EditTask, timestamp: str) -> CommandResult:
    task = _find_task(project, command.task_id)
    if not command.justification or not command.justification.strip():
        raise ValueError("A justification is required to edit a task")

    updated = replace(task, **_normalize_changes(project, task, command.changes))
    updated = _with_propagated_dates(updated, _replace_task(project.tasks, updated))

    entries = _diff(task, updated, command.user, command.justification.strip(), timestamp)
    if not entries:
        return CommandResult(project=project)

    updated = replace(updated, change_history=task.change_history + entries)
    logger.info(f"Edited task {task.id}: {[e.field_changed for e in entries]}")
    return CommandResult(
        project=replace(project, tasks=_replace_task(project.tasks, updated)),
        changes={task.id: entries},
    )


def _change_status(project: Project, command: ChangeStatus, timestamp: str) -> CommandResult:
    task = _find_task(project, command.task_id)
    status = _resolve_status(project, command.status)
    if status == task.status:
        return CommandResult(project=project)

    entry = ChangeLog(
        field_changed=TASK_FIELD_KEYS["status"],
        old_value=task.status,
        new_value=status,
        user=command.user,
        timestamp=timestamp,
        justification=STATUS_CHANGE_JUSTIFICATION,
    )
    updated = replace(task, status=status, change_history=task.change_history + [entry])
    return CommandResult(
        project=replace(project, tasks=_replace_task(project.tasks, updated)),
        changes={task.id: [entry]},
    )


def _delete_task(project: Project, command: DeleteTask, timestamp: str) -> CommandResult:
    return CommandResult(project=_remove_tasks(project, [command.task_id]))


def _bulk_delete(project: Project, command: BulkDelete, timestamp: str) -> CommandResult:
    return CommandResult(project=_remove_tasks(project, list(command.task_ids)))


def _bulk_duplicate(project: Project, command: BulkDuplicate, timestamp: str) -> CommandResult:
    selected = set(command.task_ids)
    originals = [t for t in project.tasks if t.id in selected]
    taken = {t.id for t in project.tasks}
    new_ids = {t.id: _new_task_id(taken) for t in originals}

    copies: List[Task] = []
    for task in originals:
        copies.append(
            replace(
                task,
                id=new_ids[task.id],
                name=task.name + COPY_SUFFIX,
                # Links inside the duplicated set point at the copies
                dependencies=[new_ids.get(d, d) for d in task.dependencies],
                parent_id=new_ids.get(task.parent_id, task.parent_id) if task.parent_id else None,
                baseline_start_date=None,
                baseline_end_date=None,
                is_critical=False,
                change_history=[],
                custom_fields=dict(task.custom_fields),
            )
        )

    logger.info(f"Duplicated {len(copies)} tasks in project {project.id}")
    return CommandResult(project=replace(project, tasks=project.tasks + copies))


def _bulk_move(project: Project, command: BulkMove, timestamp: str) -> CommandResult:
    if command.parent_id is not None:
        _find_task(project, command.parent_id)

    tasks = list(project.tasks)
    changes: Dict[str, List[ChangeLog]] = {}
    for task_id in command.task_ids:
        current = next((t for t in tasks if t.id == task_id), None)
        if current is None:
            logger.warning(f"Cannot move unknown task {task_id}, skipping")
            continue
        if command.parent_id is not None and (
            command.parent_id == task_id
            or command.parent_id in descendant_ids(tasks, task_id)
        ):
            logger.warning(f"Moving {task_id} under {command.parent_id} would create a cycle, skipping")
            continue
        if current.parent_id == command.parent_id:
            continue

        moved = replace(current, parent_id=command.parent_id)
        entries = _diff(current, moved, command.user, BULK_MOVE_JUSTIFICATION, timestamp)
        moved = replace(moved, change_history=current.change_history + entries)
        tasks = _replace_task(tasks, moved)
        changes[task_id] = entries

    return CommandResult(project=replace(project, tasks=tasks), changes=changes)


def _import_tasks(project: Project, command: ImportTasks, timestamp: str) -> CommandResult:
    mapping = command.mapping
    if mapping is None:
        headers = list(command.rows[0].keys()) if command.rows else []
        mapping = auto_map_columns(headers)

    converted = rows_to_tasks(command.rows, mapping, project.configuration, project.team)

    # Repeated ids within one import: first row wins
    imported: List[Task] = []
    seen: Set[str] = set()
    for task in converted:
        if task.id in seen:
            logger.warning(
                f"Import contains task id {task.id!r} more than once, keeping the first row"
            )
            continue
        seen.add(task.id)
        imported.append(task)
    by_id = {t.id: t for t in imported}

    # Imported ids that already exist replace the stored task in place
    tasks = [by_id.pop(t.id, t) for t in project.tasks]
    tasks.extend(t for t in imported if t.id in by_id)

    logger.info(
        f"Imported {len(imported)} tasks into project {project.id} "
        f"({len(imported) - len(by_id)} replaced)"
    )
    return CommandResult(project=replace(project, tasks=tasks))


def _save_baseline(project: Project, command: SaveBaseline, timestamp: str) -> CommandResult:
    return CommandResult(project=save_baseline(project, parse_timestamp(timestamp)))


def _delete_baseline(project: Project, command: DeleteBaseline, timestamp: str) -> CommandResult:
    return CommandResult(project=delete_baseline(project))


_HANDLERS: Dict[type, Callable[[Project, Any, str], CommandResult]] = {
    CreateTask: _create_task,
    EditTask: _edit_task,
    DeleteTask: _delete_task,
    ChangeStatus: _change_status,
    SaveBaseline: _save_baseline,
    DeleteBaseline: _delete_baseline,
    BulkDelete: _bulk_delete,
    BulkDuplicate: _bulk_duplicate,
    BulkMove: _bulk_move,
    ImportTasks: _import_tasks,
}


def apply_command(
    project: Project, command: Command, now: Optional[datetime] = None
) -> CommandResult:
    """
    Apply one command to a project.

    Parameters
    ----------
    project : Project
        Current project snapshot (not modified)
    command : Command
        One of the command dataclasses in this module
    now : Optional[datetime]
        Timestamp for ChangeLog entries (current UTC time when None)

    Returns
    -------
    CommandResult
        New project snapshot and the ChangeLog entries generated

    Raises
    ------
    ValueError
        If the command is unknown or invalid for this project
    """
    handler = _HANDLERS.get(type(command))
    if handler is None:
        raise ValueError(f"Unknown command: {type(command).__name__}")

    timestamp = format_timestamp(now or datetime.now(timezone.utc))
    logger.debug(f"Applying {type(command).__name__} to project {project.id}")
    return handler(project, command, timestamp)


def command_from_dict(data: Dict[str, Any]) -> Command:
    """
    Build a command from its JSON form.

    The ``type`` key names the command class; other keys are camelCase.
    """
    command_type = data.get("type")
    task_ids = [str(t) for t in data.get("taskIds", []) or []]

    if command_type == "CreateTask":
        return CreateTask(task=Task.from_dict(data.get("task") or {}))
    if command_type == "EditTask":
        return EditTask(
            task_id=str(data.get("taskId", "")),
            changes=dict(data.get("changes") or {}),
            user=str(data.get("user", "")),
            justification=str(data.get("justification", "")),
        )
    if command_type == "DeleteTask":
        return DeleteTask(task_id=str(data.get("taskId", "")))
    if command_type == "ChangeStatus":
        return ChangeStatus(
            task_id=str(data.get("taskId", "")),
            status=str(data.get("status", "")),
            user=str(data.get("user", "")),
        )
    if command_type == "SaveBaseline":
        return SaveBaseline()
    if command_type == "DeleteBaseline":
        return DeleteBaseline()
    if command_type == "BulkDelete":
        return BulkDelete(task_ids=task_ids)
    if command_type == "BulkDuplicate":
        return BulkDuplicate(task_ids=task_ids)
    if command_type == "BulkMove":
        parent_id = data.get("parentId")
        return BulkMove(
            task_ids=task_ids,
            parent_id=str(parent_id) if parent_id else None,
            user=str(data.get("user", "")),
        )
    if command_type == "ImportTasks":
        return ImportTasks(rows=list(data.get("rows") or []), mapping=data.get("mapping"))

    raise ValueError(f"Unknown command type: {command_type!r}")
