"""
FastAPI backend for the Planboard project dashboard.

Serves dashboard snapshots (progress, performance indices, Gantt timeline)
and applies edit commands to projects stored in a JSON file.
Supports CORS for local development.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Literal

# Ensure we import from the local Planboard src directory, not elsewhere
planboard_root = Path(__file__).parent.parent
if str(planboard_root) not in sys.path:
    sys.path.insert(0, str(planboard_root))

from fastapi import Body, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from backend.repository import ProjectRepository
from backend.units import normalize_effort_fields
from src.core.aggregator import Aggregator
from src.core.commands import (
    Command,
    DeleteBaseline,
    SaveBaseline,
    apply_command,
    command_from_dict,
)

logger = logging.getLogger(__name__)

# Load data path and cache settings from config
config_path = planboard_root / "config.json"
config: Dict[str, Any] = {}
try:
    with open(config_path, "r") as f:
        config = json.load(f)
        logger.info(f"Loaded config from {config_path}")
except Exception as e:
    logger.warning(f"Could not load config.json: {e}, using defaults")

data_path = planboard_root / config.get("data_path", "data/projects.json")
CACHE_TTL_SECONDS = int(config.get("snapshot_cache_ttl_seconds", 60))

# Initialize FastAPI app
app = FastAPI(
    title="Planboard API",
    description="Backend API for Planboard - project scheduling and progress dashboard",
    version="1.0.0",
)

# Configure CORS - allow all localhost origins in development
app.add_middleware(
    CORSMiddleware,
    allow_origin_regex=r"http://(localhost|127\.0\.0\.1):\d+",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

repository = ProjectRepository(data_path, cache_ttl=CACHE_TTL_SECONDS)
aggregator = Aggregator()

# Simple in-memory cache for snapshots, invalidated on every command
snapshot_cache: Dict[str, tuple[Dict[str, Any], datetime]] = {}


def invalidate_snapshots(project_id: str) -> None:
    """Drop every cached snapshot of a project."""
    for key in [k for k in snapshot_cache if k.startswith(f"{project_id}_")]:
        del snapshot_cache[key]


def _apply(project_id: str, command: Command) -> Dict[str, Any]:
    project = repository.get(project_id)
    if project is None:
        raise HTTPException(status_code=404, detail=f"Project not found: {project_id}")

    result = apply_command(project, command)
    repository.save(result.project)
    invalidate_snapshots(project_id)
    return result.to_dict()


@app.get("/")  # type: ignore[misc]
async def root() -> Dict[str, Any]:
    """
    Root endpoint with API information.

    Returns
    -------
    dict
        API information and status
    """
    return {
        "name": "Planboard API",
        "version": "1.0.0",
        "status": "running",
        "endpoints": {
            "/api/projects": "List projects",
            "/api/projects/{id}": "Get a project",
            "/api/projects/{id}/snapshot": "Get the dashboard snapshot",
            "/api/projects/{id}/commands": "Apply an edit command",
            "/api/projects/{id}/baseline": "Save (POST) or delete (DELETE) the baseline",
            "/health": "Health check",
        },
    }


@app.get("/health")  # type: ignore[misc]
async def health() -> Dict[str, str]:
    """
    Health check endpoint.

    Returns
    -------
    dict
        Health status
    """
    return {"status": "healthy"}


@app.get("/api/projects")  # type: ignore[misc]
async def get_projects() -> Dict[str, Any]:
    """
    Get list of projects.

    Returns
    -------
    dict
        Project summaries sorted by name
    """
    try:
        projects: List[Dict[str, Any]] = [
            {
                "id": p.id,
                "name": p.name,
                "description": p.description,
                "task_count": len(p.tasks),
                "baseline_saved_at": p.baseline_saved_at,
            }
            for p in repository.list_projects()
        ]
        projects.sort(key=lambda p: p["name"].lower())
        return {"projects": projects}
    except Exception as e:
        logger.error(f"Error loading projects: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error loading projects: {str(e)}")


@app.get("/api/projects/{project_id}")  # type: ignore[misc]
async def get_project(project_id: str) -> Dict[str, Any]:
    """Get a project in its persisted shape."""
    project = repository.get(project_id)
    if project is None:
        raise HTTPException(status_code=404, detail=f"Project not found: {project_id}")
    return project.to_dict()


@app.get("/api/projects/{project_id}/snapshot")  # type: ignore[misc]
async def get_snapshot(
    project_id: str,
    zoom: Literal["day", "week", "month"] = Query(
        "week", description="Timeline zoom: 'day', 'week' or 'month'"
    ),
    use_cache: bool = Query(True, description="Use cached snapshot if available"),
) -> Dict[str, Any]:
    """
    Get the dashboard snapshot of a project.

    Parameters
    ----------
    project_id : str
        Project to aggregate
    zoom : str
        Timeline zoom level (default 'week')
    use_cache : bool
        Whether to use cached snapshot if available (default True)

    Returns
    -------
    dict
        Snapshot with:
        - metrics: progress, SPI/CPI, cost variance
        - rows: tree-ordered task rows with embedded metrics
        - timeline: header rows, bars and today marker
        - diagnostics: malformed references and cycles
    """
    cache_key = f"{project_id}_{zoom}"
    if use_cache and cache_key in snapshot_cache:
        cached_snapshot, cache_time = snapshot_cache[cache_key]
        age = (datetime.now(timezone.utc) - cache_time).total_seconds()
        if age < CACHE_TTL_SECONDS:
            logger.info(f"Returning cached snapshot (age: {age:.1f}s): {cache_key}")
            return cached_snapshot

    project = repository.get(project_id)
    if project is None:
        raise HTTPException(status_code=404, detail=f"Project not found: {project_id}")

    try:
        snapshot_dict = aggregator.create_snapshot(project, zoom=zoom).to_dict()
    except Exception as e:
        logger.error(f"Error creating snapshot: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error creating snapshot: {str(e)}")

    snapshot_cache[cache_key] = (snapshot_dict, datetime.now(timezone.utc))
    return snapshot_dict


@app.post("/api/projects/{project_id}/commands")  # type: ignore[misc]
async def post_command(
    project_id: str, payload: Dict[str, Any] = Body(...)
) -> Dict[str, Any]:
    """
    Apply an edit command to a project.

    The payload names the command in ``type`` (EditTask, DeleteTask,
    ChangeStatus, BulkMove, ...). Effort fields may be given as
    ``{"value": n, "unit": "days"}`` and are converted to hours.

    Returns
    -------
    dict
        The new project and the change log entries generated
    """
    try:
        if isinstance(payload.get("changes"), dict):
            payload = {**payload, "changes": normalize_effort_fields(payload["changes"])}
        if isinstance(payload.get("task"), dict):
            payload = {**payload, "task": normalize_effort_fields(payload["task"])}
        command = command_from_dict(payload)
        return _apply(project_id, command)
    except HTTPException:
        raise
    except ValueError as e:
        logger.warning(f"Rejected command for project {project_id}: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error applying command: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error applying command: {str(e)}")


@app.post("/api/projects/{project_id}/baseline")  # type: ignore[misc]
async def post_baseline(project_id: str) -> Dict[str, Any]:
    """Save the current planned dates as the project baseline."""
    return _apply(project_id, SaveBaseline())


@app.delete("/api/projects/{project_id}/baseline")  # type: ignore[misc]
async def delete_baseline(project_id: str) -> Dict[str, Any]:
    """Remove the project baseline."""
    return _apply(project_id, DeleteBaseline())


if __name__ == "__main__":
    import uvicorn

    port = config.get("backend", {}).get("port", 4301)
    logger.info(f"Starting Planboard API on http://0.0.0.0:{port}")
    uvicorn.run(app, host="0.0.0.0", port=port, log_level="info")  # nosec B104
