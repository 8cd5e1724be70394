"""
Data Models for the Planboard scheduling core.

This module defines the flat task records and project container that every
engine in ``src.core`` operates on, plus their JSON round-trip.

Key principles:
- The flat ``Project.tasks`` list is the ONLY source of truth (trees are derived)
- Dates are kept as the ISO-8601 strings they were given and parsed on use
- Parsed timestamps are ALWAYS timezone-aware (UTC)
- Status is data (configured per project), never a closed enum
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

Priority = Literal["Low", "Medium", "High"]

PRIORITY_ALIASES: Dict[str, Priority] = {
    "low": "Low",
    "medium": "Medium",
    "high": "High",
    "baixa": "Low",
    "média": "Medium",
    "media": "Medium",
    "alta": "High",
}

DEFAULT_HOURLY_RATE = 100.0


def parse_timestamp(ts_str: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 string to a timezone-aware datetime (None if invalid)."""
    if not ts_str:
        return None

    try:
        ts = datetime.fromisoformat(ts_str.replace("Z", "+00:00"))
        if ts.tzinfo is None:
            # Naive timestamps are treated as UTC
            ts = ts.replace(tzinfo=timezone.utc)
        return ts
    except (ValueError, AttributeError, TypeError):
        return None


def format_timestamp(dt: datetime) -> str:
    """Format a datetime as an ISO-8601 UTC string with a 'Z' suffix."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def normalize_priority(value: Any) -> Priority:
    """Map any known priority label to Low/Medium/High (default Medium)."""
    if isinstance(value, str):
        return PRIORITY_ALIASES.get(value.strip().lower(), "Medium")
    return "Medium"


@dataclass
class User:
    """Assignee / team member reference."""

    id: str
    name: str
    avatar: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> Optional["User"]:
        if not isinstance(data, dict) or not data.get("id"):
            return None
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", "")),
            avatar=str(data.get("avatar", "")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "avatar": self.avatar}


@dataclass
class ChangeLog:
    """
    One field-level edit recorded on a task.

    Parameters
    ----------
    field_changed : str
        Persisted (camelCase) name of the changed field
    old_value : str
        Previous value, stringified
    new_value : str
        New value, stringified
    user : str
        Name of the actor
    timestamp : str
        When the change was made (ISO-8601 UTC)
    justification : str
        Why the change was made
    """

    field_changed: str
    old_value: str
    new_value: str
    user: str
    timestamp: str
    justification: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChangeLog":
        return cls(
            field_changed=str(data.get("fieldChanged", "")),
            old_value=str(data.get("oldValue", "")),
            new_value=str(data.get("newValue", "")),
            user=str(data.get("user", "")),
            timestamp=str(data.get("timestamp", "")),
            justification=str(data.get("justification", "")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fieldChanged": self.field_changed,
            "oldValue": self.old_value,
            "newValue": self.new_value,
            "user": self.user,
            "timestamp": self.timestamp,
            "justification": self.justification,
        }


@dataclass
class StatusDefinition:
    """A project-configurable task status."""

    id: str
    name: str
    color: str = "#9ca3af"
    is_default: bool = False
    is_completed: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StatusDefinition":
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            color=str(data.get("color", "#9ca3af")),
            is_default=bool(data.get("isDefault", False)),
            is_completed=bool(data.get("isCompleted", False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"id": self.id, "name": self.name, "color": self.color}
        if self.is_default:
            result["isDefault"] = True
        if self.is_completed:
            result["isCompleted"] = True
        return result


def default_statuses() -> List[StatusDefinition]:
    """Statuses used when a project has none configured."""
    return [
        StatusDefinition(id="todo", name="To Do", color="#9ca3af", is_default=True),
        StatusDefinition(id="in_progress", name="In Progress", color="#3b82f6"),
        StatusDefinition(id="done", name="Done", color="#22c55e", is_completed=True),
        StatusDefinition(id="blocked", name="Blocked", color="#ef4444"),
    ]


@dataclass
class Configuration:
    """
    Per-project configuration.

    Parameters
    ----------
    statuses : List[StatusDefinition]
        Ordered status set; one SHOULD be default, at most one completed
    visible_kpis : Dict[str, bool]
        Which KPI cards the dashboard shows
    hourly_rate : float
        Fixed rate used to derive actual cost from actual hours
    """

    statuses: List[StatusDefinition] = field(default_factory=default_statuses)
    visible_kpis: Dict[str, bool] = field(default_factory=dict)
    hourly_rate: float = DEFAULT_HOURLY_RATE

    @classmethod
    def from_dict(cls, data: Any) -> "Configuration":
        if not isinstance(data, dict):
            return cls()
        statuses = [
            StatusDefinition.from_dict(s)
            for s in data.get("statuses", [])
            if isinstance(s, dict)
        ]
        return cls(
            statuses=statuses or default_statuses(),
            visible_kpis=dict(data.get("visibleKpis", {}) or {}),
            hourly_rate=float(data.get("hourlyRate", DEFAULT_HOURLY_RATE)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "statuses": [s.to_dict() for s in self.statuses],
            "visibleKpis": self.visible_kpis,
            "hourlyRate": self.hourly_rate,
        }

    def find_status(self, value: str) -> Optional[StatusDefinition]:
        """Look up a status by name or id."""
        for status in self.statuses:
            if status.name == value or status.id == value:
                return status
        return None


@dataclass
class CustomFieldDefinition:
    """Project-level definition for a task custom field."""

    id: str
    name: str
    type: Literal["text", "number", "date"] = "text"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CustomFieldDefinition":
        field_type = data.get("type", "text")
        if field_type not in ("text", "number", "date"):
            field_type = "text"
        return cls(id=str(data.get("id", "")), name=str(data.get("name", "")), type=field_type)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "type": self.type}


# Persisted (camelCase) key for each tracked Task attribute
TASK_FIELD_KEYS: Dict[str, str] = {
    "name": "name",
    "assignee": "assignee",
    "status": "status",
    "priority": "priority",
    "planned_start_date": "plannedStartDate",
    "planned_end_date": "plannedEndDate",
    "actual_start_date": "actualStartDate",
    "actual_end_date": "actualEndDate",
    "planned_hours": "plannedHours",
    "actual_hours": "actualHours",
    "dependencies": "dependencies",
    "parent_id": "parentId",
    "is_milestone": "isMilestone",
    "is_critical": "isCritical",
    "custom_fields": "customFields",
    "color": "color",
}


@dataclass
class Task:
    """
    Flat task record.

    Parameters
    ----------
    id : str
        Unique task identifier
    name : str
        Task name
    assignee : Optional[User]
        Responsible team member
    status : str
        Status name (or id) from the project configuration
    priority : str
        One of: 'Low', 'Medium', 'High'
    planned_start_date : str
        Planned start (ISO-8601); start <= end is NOT enforced here
    planned_end_date : str
        Planned end (ISO-8601)
    actual_start_date : Optional[str]
        Actual start (ISO-8601)
    actual_end_date : Optional[str]
        Actual end (ISO-8601)
    planned_hours : float
        Planned effort in hours
    actual_hours : float
        Actual effort in hours
    dependencies : List[str]
        IDs of tasks this task waits on
    parent_id : Optional[str]
        ID of the parent task (forest, at most one parent)
    baseline_start_date : Optional[str]
        Frozen planned start snapshot
    baseline_end_date : Optional[str]
        Frozen planned end snapshot
    is_milestone : bool
        True for milestone tasks
    is_critical : bool
        Externally set critical flag (not computed)
    custom_fields : Dict[str, Any]
        Custom field id -> scalar value
    change_history : List[ChangeLog]
        Append-only edit log
    color : Optional[str]
        Display color hint
    """

    id: str
    name: str
    status: str
    planned_start_date: str = ""
    planned_end_date: str = ""
    assignee: Optional[User] = None
    priority: Priority = "Medium"
    actual_start_date: Optional[str] = None
    actual_end_date: Optional[str] = None
    planned_hours: float = 0.0
    actual_hours: float = 0.0
    dependencies: List[str] = field(default_factory=list)
    parent_id: Optional[str] = None
    baseline_start_date: Optional[str] = None
    baseline_end_date: Optional[str] = None
    is_milestone: bool = False
    is_critical: bool = False
    custom_fields: Dict[str, Any] = field(default_factory=dict)
    change_history: List[ChangeLog] = field(default_factory=list)
    color: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate effort values."""
        if self.planned_hours < 0:
            raise ValueError(f"Task {self.id}: planned_hours must be non-negative")
        if self.actual_hours < 0:
            raise ValueError(f"Task {self.id}: actual_hours must be non-negative")

    @property
    def has_baseline(self) -> bool:
        return bool(self.baseline_start_date and self.baseline_end_date)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        """Build a task from its persisted (camelCase) representation."""
        parent_id = data.get("parentId")
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            status=str(data.get("status", "")),
            planned_start_date=str(data.get("plannedStartDate") or ""),
            planned_end_date=str(data.get("plannedEndDate") or ""),
            assignee=User.from_dict(data.get("assignee")),
            priority=normalize_priority(data.get("priority")),
            actual_start_date=data.get("actualStartDate") or None,
            actual_end_date=data.get("actualEndDate") or None,
            planned_hours=max(float(data.get("plannedHours") or 0.0), 0.0),
            actual_hours=max(float(data.get("actualHours") or 0.0), 0.0),
            dependencies=[str(d) for d in data.get("dependencies", []) or []],
            parent_id=str(parent_id) if parent_id else None,
            baseline_start_date=data.get("baselineStartDate") or None,
            baseline_end_date=data.get("baselineEndDate") or None,
            is_milestone=bool(data.get("isMilestone", False)),
            is_critical=bool(data.get("isCritical", False)),
            custom_fields=dict(data.get("customFields", {}) or {}),
            change_history=[
                ChangeLog.from_dict(c)
                for c in data.get("changeHistory", []) or []
                if isinstance(c, dict)
            ],
            color=data.get("color") or None,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the persisted (camelCase) representation."""
        result: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "assignee": self.assignee.to_dict() if self.assignee else None,
            "status": self.status,
            "priority": self.priority,
            "plannedStartDate": self.planned_start_date,
            "plannedEndDate": self.planned_end_date,
            "plannedHours": self.planned_hours,
            "actualHours": self.actual_hours,
            "dependencies": list(self.dependencies),
            "parentId": self.parent_id,
            "isMilestone": self.is_milestone,
            "isCritical": self.is_critical,
            "customFields": dict(self.custom_fields),
            "changeHistory": [c.to_dict() for c in self.change_history],
        }
        # Optional fields are omitted when absent
        optional = {
            "actualStartDate": self.actual_start_date,
            "actualEndDate": self.actual_end_date,
            "baselineStartDate": self.baseline_start_date,
            "baselineEndDate": self.baseline_end_date,
            "color": self.color,
        }
        result.update({k: v for k, v in optional.items() if v is not None})
        return result


@dataclass
class Project:
    """
    Project container owning the flat task list.

    Parameters
    ----------
    id : str
        Unique project identifier
    name : str
        Project name
    tasks : List[Task]
        The full flat task set (nested views are always derived)
    configuration : Configuration
        Statuses, visible KPIs and hourly rate
    planned_budget : float
        Budget in currency units
    baseline_saved_at : Optional[str]
        When the current baseline was saved (ISO-8601 UTC)
    """

    id: str
    name: str
    tasks: List[Task] = field(default_factory=list)
    configuration: Configuration = field(default_factory=Configuration)
    description: str = ""
    manager: Optional[User] = None
    team: List[User] = field(default_factory=list)
    planned_budget: float = 0.0
    baseline_saved_at: Optional[str] = None
    custom_field_definitions: List[CustomFieldDefinition] = field(default_factory=list)
    kpis: Dict[str, Any] = field(default_factory=dict)

    @property
    def actual_cost(self) -> float:
        """Derived cost: actual hours times the configured hourly rate."""
        return sum(t.actual_hours for t in self.tasks) * self.configuration.hourly_rate

    def task_index(self) -> Dict[str, Task]:
        return {t.id: t for t in self.tasks}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Project":
        team = [User.from_dict(u) for u in data.get("team", []) or []]
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            tasks=[Task.from_dict(t) for t in data.get("tasks", []) or [] if isinstance(t, dict)],
            configuration=Configuration.from_dict(data.get("configuration")),
            description=str(data.get("description", "")),
            manager=User.from_dict(data.get("manager")),
            team=[u for u in team if u is not None],
            planned_budget=float(data.get("plannedBudget") or 0.0),
            baseline_saved_at=data.get("baselineSavedAt") or None,
            custom_field_definitions=[
                CustomFieldDefinition.from_dict(d)
                for d in data.get("customFieldDefinitions", []) or []
                if isinstance(d, dict)
            ],
            kpis=dict(data.get("kpis", {}) or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert project to JSON-serializable dictionary.

        Returns
        -------
        dict
            JSON-serializable representation (camelCase keys)
        """
        result: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "manager": self.manager.to_dict() if self.manager else None,
            "team": [u.to_dict() for u in self.team],
            "plannedBudget": self.planned_budget,
            "actualCost": self.actual_cost,
            "tasks": [t.to_dict() for t in self.tasks],
            "configuration": self.configuration.to_dict(),
            "customFieldDefinitions": [d.to_dict() for d in self.custom_field_definitions],
            "kpis": self.kpis,
        }
        if self.baseline_saved_at:
            result["baselineSavedAt"] = self.baseline_saved_at
        return result

    def to_json(self) -> str:
        """
        Convert project to JSON string.

        Returns
        -------
        str
            JSON string representation
        """
        return json.dumps(self.to_dict(), indent=2)
