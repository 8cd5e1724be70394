"""
JSON file project store.

Projects live in a single ``projects.json`` keyed by project id. Reads are
cached for a short TTL; every save rewrites the file and refreshes the
cache. Last writer wins.
"""

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from src.core.store import Project

logger = logging.getLogger(__name__)


class ProjectRepository:
    """Load and save projects from a JSON file."""

    def __init__(self, path: Path, cache_ttl: int = 60):
        """
        Initialize the repository.

        Parameters
        ----------
        path : Path
            Location of projects.json (created on first save)
        cache_ttl : int
            Seconds to keep the parsed file in memory
        """
        self.path = Path(path)
        self._cache: Optional[Dict[str, Dict[str, Any]]] = None
        self._cache_time: Optional[datetime] = None
        self._cache_ttl = cache_ttl

        logger.info(f"Initialized ProjectRepository at: {self.path}")

    def _load_raw(self) -> Dict[str, Dict[str, Any]]:
        """Load projects.json with caching."""
        now = datetime.now(timezone.utc)
        if (
            self._cache is not None
            and self._cache_time is not None
            and (now - self._cache_time).total_seconds() < self._cache_ttl
        ):
            return self._cache

        if not self.path.exists():
            logger.warning(f"Projects file not found: {self.path}")
            return {}

        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error loading projects: {e}")
            return {}

        projects = {
            key: value
            for key, value in data.items()
            if isinstance(value, dict) and "id" in value
        }
        self._cache = projects
        self._cache_time = now
        logger.info(f"Loaded {len(projects)} projects")
        return projects

    def list_projects(self) -> List[Project]:
        return [Project.from_dict(p) for p in self._load_raw().values()]

    def get(self, project_id: str) -> Optional[Project]:
        raw = self._load_raw().get(project_id)
        return Project.from_dict(raw) if raw is not None else None

    def save(self, project: Project) -> None:
        """Write a project back to the file (atomic replace)."""
        projects = dict(self._load_raw())
        projects[project.id] = project.to_dict()

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, suffix=".json")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(projects, f, indent=2)
            os.replace(tmp_name, self.path)
        except OSError:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

        self._cache = projects
        self._cache_time = datetime.now(timezone.utc)
        logger.info(f"Saved project {project.id} ({len(project.tasks)} tasks)")
