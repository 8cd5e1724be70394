"""
Tests for effort unit conversion at the HTTP boundary.
"""

import pytest

from backend.units import normalize_effort_fields, to_hours


class TestToHours:
    @pytest.mark.parametrize(
        "value,unit,expected",
        [(3, "hours", 3.0), (2, "days", 16.0), (1, "week", 40.0), (0.5, "Months", 80.0)],
    )
    def test_conversion(self, value, unit, expected):
        assert to_hours(value, unit) == expected

    def test_unknown_unit_raises(self):
        with pytest.raises(ValueError, match="unit"):
            to_hours(1, "fortnights")

    def test_negative_effort_raises(self):
        with pytest.raises(ValueError, match="non-negative"):
            to_hours(-1, "days")


class TestNormalizeEffortFields:
    def test_unit_dicts_become_hours(self):
        changes = {"plannedHours": {"value": 2, "unit": "days"}, "actualHours": 5, "name": "x"}

        assert normalize_effort_fields(changes) == {"plannedHours": 16.0, "actualHours": 5, "name": "x"}

    def test_input_is_not_mutated(self):
        changes = {"plannedHours": {"value": 1, "unit": "weeks"}}

        normalize_effort_fields(changes)

        assert changes == {"plannedHours": {"value": 1, "unit": "weeks"}}
