"""
AI summary boundary.

The summarizer is an opaque ``async (str) -> str`` callable supplied by the
caller; this module only builds the serialized digests it receives. Timeouts
and retries belong to the caller.

Three digests are produced:
1. Status summary: KPIs, change history and known risks
2. Risk prediction: current project plus historical projects
3. Lessons learned: change justifications and replanning patterns
"""

import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from src.core.performance import compute_project_metrics
from src.core.store import Project

logger = logging.getLogger(__name__)

Summarizer = Callable[[str], Awaitable[str]]

REPLANNING_FIELDS = ("plannedStartDate", "plannedEndDate", "plannedHours")


def _kpis(project: Project) -> Dict[str, Any]:
    metrics = compute_project_metrics(project)
    kpis: Dict[str, Any] = {
        "totalTasks": metrics.total_tasks,
        "completedTasks": metrics.completed_tasks,
        "overallProgress": metrics.overall_progress,
        "plannedBudget": metrics.planned_budget,
        "actualCost": metrics.actual_cost,
        "costVariance": metrics.cost_variance,
        "spi": metrics.spi,
        "cpi": metrics.cpi,
    }
    # Stored project KPIs override computed ones with the same key
    kpis.update(project.kpis)
    return kpis


def _change_history(project: Project) -> List[Dict[str, Any]]:
    """Every task's change log, flattened and tagged with the task."""
    return [
        {"taskId": task.id, "taskName": task.name, **entry.to_dict()}
        for task in project.tasks
        for entry in task.change_history
    ]


def _project_data(project: Project) -> Dict[str, Any]:
    return {
        "projectName": project.name,
        "kpis": _kpis(project),
        "changeHistory": _change_history(project),
    }


def build_status_digest(project: Project, risks: Optional[List[str]] = None) -> str:
    """
    Serialize the inputs of a project status summary.

    Parameters
    ----------
    project : Project
        Project to summarize
    risks : Optional[List[str]]
        Known risks to include

    Returns
    -------
    str
        JSON with project name, KPIs, flattened change history and risks
    """
    return json.dumps({**_project_data(project), "risks": risks or []}, indent=2)


def build_risk_digest(
    project: Project, historical_projects: Optional[List[Project]] = None
) -> str:
    """
    Serialize the inputs of a risk prediction.

    Parameters
    ----------
    project : Project
        Project whose risks are predicted
    historical_projects : Optional[List[Project]]
        Finished or similar projects whose outcomes and change
        justifications inform the prediction

    Returns
    -------
    str
        JSON with ``projectData`` and ``historicalProjectData``
    """
    historical = [_project_data(p) for p in historical_projects or [] if p.id != project.id]
    return json.dumps(
        {"projectData": _project_data(project), "historicalProjectData": historical},
        indent=2,
    )


def build_lessons_digest(project: Project) -> str:
    """
    Serialize the inputs of a lessons-learned report.

    Besides KPIs and the change history, the digest counts replanning
    edits (planned dates and hours) per task so delay patterns stand out.
    """
    replanned: Dict[str, int] = {}
    for task in project.tasks:
        count = sum(1 for e in task.change_history if e.field_changed in REPLANNING_FIELDS)
        if count:
            replanned[task.id] = count

    return json.dumps(
        {
            "projectData": _project_data(project),
            "replannedTasks": replanned,
            "justifications": [
                entry.justification
                for task in project.tasks
                for entry in task.change_history
                if entry.justification
            ],
        },
        indent=2,
    )


async def request_summary(
    project: Project, summarize: Summarizer, risks: Optional[List[str]] = None
) -> str:
    """Send the project status digest to the summarizer and return its text."""
    digest = build_status_digest(project, risks)
    logger.info(f"Requesting AI summary for project {project.id} ({len(digest)} chars)")
    return await summarize(digest)


async def request_risk_prediction(
    project: Project,
    summarize: Summarizer,
    historical_projects: Optional[List[Project]] = None,
) -> str:
    """Send the risk digest to the summarizer; returns risks and mitigation strategies."""
    digest = build_risk_digest(project, historical_projects)
    logger.info(
        f"Requesting AI risk prediction for project {project.id} "
        f"({len(historical_projects or [])} historical projects)"
    )
    return await summarize(digest)


async def request_lessons_learned(project: Project, summarize: Summarizer) -> str:
    digest = build_lessons_digest(project)
    logger.info(f"Requesting AI lessons learned for project {project.id} ({len(digest)} chars)")
    return await summarize(digest)
