"""
Effort unit conversion for form and import input.

The core only stores hours; conversions happen here at the boundary.
"""

from typing import Any, Dict

HOURS_PER_UNIT: Dict[str, float] = {
    "hours": 1.0,
    "days": 8.0,
    "weeks": 40.0,
    "months": 160.0,
}


def to_hours(value: float, unit: str = "hours") -> float:
    """
    Convert an effort value to hours.

    Parameters
    ----------
    value : float
        Effort amount (non-negative)
    unit : str
        One of 'hours', 'days', 'weeks', 'months' (singular accepted)

    Returns
    -------
    float
        Effort in hours
    """
    key = unit.strip().lower()
    if not key.endswith("s"):
        key += "s"
    if key not in HOURS_PER_UNIT:
        raise ValueError(f"Unknown effort unit: {unit!r}")
    if value < 0:
        raise ValueError("Effort must be non-negative")
    return float(value) * HOURS_PER_UNIT[key]


def normalize_effort_fields(changes: Dict[str, Any]) -> Dict[str, Any]:
    """
    Replace ``{"value": n, "unit": u}`` effort entries with plain hours.

    Applies to ``plannedHours`` / ``actualHours`` in edit payloads; plain
    numbers are passed through unchanged.
    """
    normalized = dict(changes)
    for key in ("plannedHours", "actualHours"):
        effort = normalized.get(key)
        if isinstance(effort, dict):
            normalized[key] = to_hours(float(effort.get("value", 0)), str(effort.get("unit", "hours")))
    return normalized
