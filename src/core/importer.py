"""
Import row mapping.

CSV decoding happens at the boundary; this module only maps already-split
rows (header -> cell text) onto task fields and converts cell values.
"""

import logging
import time
from typing import Any, Dict, List, Optional

from src.core.progress import default_status
from src.core.store import Configuration, Task, normalize_priority

logger = logging.getLogger(__name__)

TASK_FIELDS: Dict[str, str] = {
    "id": "Task ID",
    "name": "Task Name",
    "assignee": "Assignee (Name or ID)",
    "status": "Status",
    "priority": "Priority",
    "plannedStartDate": "Planned Start Date",
    "plannedEndDate": "Planned End Date",
    "actualStartDate": "Actual Start Date",
    "actualEndDate": "Actual End Date",
    "plannedHours": "Planned Hours",
    "actualHours": "Actual Hours",
    "dependencies": "Dependencies (comma-separated IDs)",
    "parentId": "Parent Task ID",
    "isMilestone": "Is Milestone (true/false)",
    "isCritical": "Is Critical (true/false)",
}

TRUE_VALUES = {"true", "1", "yes", "y", "sim"}


def auto_map_columns(headers: List[str]) -> Dict[str, str]:
    """
    Match headers to task fields by key or label, case-insensitively.

    Returns
    -------
    Dict[str, str]
        header -> field key for every header that matched
    """
    mapping: Dict[str, str] = {}
    for header in headers:
        wanted = header.strip().lower()
        for key, label in TASK_FIELDS.items():
            if wanted in (key.lower(), label.lower()):
                mapping[header] = key
                break
    logger.info(f"Auto-mapped {len(mapping)}/{len(headers)} import columns")
    return mapping


def _as_float(value: str, default: float = 0.0) -> float:
    try:
        return max(float(value.replace(",", ".")), 0.0)
    except (ValueError, AttributeError):
        return default


def _as_bool(value: str) -> bool:
    return value.strip().lower() in TRUE_VALUES


def _as_list(value: str) -> List[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


def rows_to_tasks(
    rows: List[Dict[str, str]],
    mapping: Dict[str, str],
    config: Configuration,
    team: Optional[List[Any]] = None,
) -> List[Task]:
    """
    Convert mapped import rows into tasks.

    Parameters
    ----------
    rows : List[Dict[str, str]]
        Rows keyed by source header
    mapping : Dict[str, str]
        header -> task field key (unmapped headers are ignored)
    config : Configuration
        Project configuration (status validation and default)
    team : Optional[List[User]]
        Team members used to resolve the assignee by id or name

    Returns
    -------
    List[Task]
        New tasks with empty change history
    """
    fallback = default_status(config)
    fallback_name = fallback.name if fallback else ""
    members = team or []
    base_id = int(time.time() * 1000)

    tasks: List[Task] = []
    for row_number, row in enumerate(rows):
        values: Dict[str, str] = {}
        for header, key in mapping.items():
            if key in TASK_FIELDS and header in row and row[header] is not None:
                values[key] = str(row[header]).strip()

        status_value = values.get("status", "")
        status = config.find_status(status_value) if status_value else None
        if status_value and status is None:
            logger.warning(
                f"Import row {row_number}: unknown status {status_value!r}, "
                f"using {fallback_name!r}"
            )

        assignee = None
        assignee_value = values.get("assignee", "")
        if assignee_value:
            assignee = next(
                (u for u in members if assignee_value in (u.id, u.name)), None
            )

        tasks.append(
            Task(
                id=values.get("id") or f"task-{base_id}-{row_number}",
                name=values.get("name") or f"Imported task {row_number + 1}",
                status=status.name if status else fallback_name,
                assignee=assignee,
                priority=normalize_priority(values.get("priority")),
                planned_start_date=values.get("plannedStartDate", ""),
                planned_end_date=values.get("plannedEndDate", ""),
                actual_start_date=values.get("actualStartDate") or None,
                actual_end_date=values.get("actualEndDate") or None,
                planned_hours=_as_float(values.get("plannedHours", "")),
                actual_hours=_as_float(values.get("actualHours", "")),
                dependencies=_as_list(values.get("dependencies", "")),
                parent_id=values.get("parentId") or None,
                is_milestone=_as_bool(values.get("isMilestone", "")),
                is_critical=_as_bool(values.get("isCritical", "")),
            )
        )

    logger.info(f"Converted {len(tasks)} import rows to tasks")
    return tasks
