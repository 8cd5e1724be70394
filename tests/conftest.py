"""Shared fixtures for Planboard tests."""

import pytest

from src.core.store import Configuration, Project, Task


def make_task(task_id, **kwargs):
    """Build a task with sensible defaults for tests."""
    kwargs.setdefault("name", f"Task {task_id}")
    kwargs.setdefault("status", "To Do")
    return Task(id=task_id, **kwargs)


@pytest.fixture
def task_factory():
    """Factory for tasks with default name and status."""
    return make_task


@pytest.fixture
def config():
    """Default configuration (To Do / In Progress / Done / Blocked)."""
    return Configuration()


@pytest.fixture
def sample_project():
    """
    Small project with a parent, two children and a dependency.

    Tree:
        p1 (parent)
          c1 (Done, 10h)
          c2 (To Do, 90h, depends on c1)
        r2 (root, Done)
    """
    return Project(
        id="proj-1",
        name="Sample Project",
        planned_budget=5000.0,
        tasks=[
            make_task(
                "p1",
                name="Phase 1",
                planned_start_date="2024-03-01T00:00:00Z",
                planned_end_date="2024-03-10T00:00:00Z",
            ),
            make_task(
                "c1",
                name="Child 1",
                status="Done",
                parent_id="p1",
                planned_hours=10,
                actual_hours=8,
                planned_start_date="2024-03-01T00:00:00Z",
                planned_end_date="2024-03-03T00:00:00Z",
                actual_start_date="2024-03-01T00:00:00Z",
                actual_end_date="2024-03-03T00:00:00Z",
            ),
            make_task(
                "c2",
                name="Child 2",
                parent_id="p1",
                planned_hours=90,
                dependencies=["c1"],
                planned_start_date="2024-03-04T00:00:00Z",
                planned_end_date="2024-03-10T00:00:00Z",
            ),
            make_task(
                "r2",
                name="Root 2",
                status="Done",
                planned_start_date="2024-03-11T00:00:00Z",
                planned_end_date="2024-03-12T00:00:00Z",
            ),
        ],
    )
