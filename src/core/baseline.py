"""
Baseline snapshots.

Both operations cover the whole task set at once, return a new Project and
leave the input untouched. Saving twice overwrites; deleting an absent
baseline is a no-op.
"""

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Optional

from src.core.store import Project, format_timestamp

logger = logging.getLogger(__name__)


def save_baseline(project: Project, now: Optional[datetime] = None) -> Project:
    """
    Freeze every task's planned dates into its baseline fields.

    Empty planned dates are stored as None so both fields round-trip.

    Parameters
    ----------
    project : Project
        Project to snapshot
    now : Optional[datetime]
        Timestamp for ``baseline_saved_at`` (current UTC time when None)

    Returns
    -------
    Project
        New project with baselines set
    """
    saved_at = format_timestamp(now or datetime.now(timezone.utc))
    tasks = [
        replace(
            t,
            baseline_start_date=t.planned_start_date or None,
            baseline_end_date=t.planned_end_date or None,
        )
        for t in project.tasks
    ]
    logger.info(f"Saved baseline for {len(tasks)} tasks in project {project.id} at {saved_at}")
    return replace(project, tasks=tasks, baseline_saved_at=saved_at)


def delete_baseline(project: Project) -> Project:
    """Clear baseline fields from every task and the project timestamp."""
    tasks = [
        replace(t, baseline_start_date=None, baseline_end_date=None)
        for t in project.tasks
    ]
    logger.info(f"Deleted baseline for project {project.id}")
    return replace(project, tasks=tasks, baseline_saved_at=None)
