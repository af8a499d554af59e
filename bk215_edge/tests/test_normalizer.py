"""
Unit tests for report projection.

Tests verify:
- Known numeric fields are projected to their registry states.
- Boolean fields become ``value == 1``.
- The 0xFFFF sentinel, None, negatives, non-finite and non-numeric values
  are dropped.
- Unknown field ids are ignored.
- Numeric strings are accepted.

CHANGELOG:
- 2026-10-05: Cover numeric strings
- 2026-10-04: Initial creation (STORY-008)

TODO:
- None
"""

from __future__ import annotations

import math

import pytest

from bk215_edge.src.normalizer import project_report, to_reading

# ---------------------------------------------------------------------------
# to_reading
# ---------------------------------------------------------------------------


class TestToReading:
    """Single-value sanity filter."""

    @pytest.mark.parametrize("raw", [0, 1, 55, 99.5, 3600])
    def test_plain_numbers_pass(self, raw: float) -> None:
        """Finite non-negative numbers pass through unchanged."""
        assert to_reading(raw) == raw

    @pytest.mark.parametrize(
        "raw",
        [None, 0xFFFF, -1, -0.5, math.nan, math.inf, "abc", [1], {"a": 1}, True],
    )
    def test_unusable_values_dropped(self, raw: object) -> None:
        """Sentinel, negative, non-finite and non-numeric values give None."""
        assert to_reading(raw) is None

    def test_numeric_string_integer(self) -> None:
        """An integral numeric string becomes an int."""
        result = to_reading("42")
        assert result == 42
        assert isinstance(result, int)

    def test_numeric_string_float(self) -> None:
        """A fractional numeric string becomes a float."""
        assert to_reading("12.5") == 12.5

    def test_sentinel_as_string_dropped(self) -> None:
        """The sentinel is dropped even when quoted."""
        assert to_reading("65535") is None


# ---------------------------------------------------------------------------
# project_report
# ---------------------------------------------------------------------------


class TestProjectReport:
    """Projection of a raw snapshot into registry states."""

    def test_numeric_fields_projected(self) -> None:
        """SOC and config fields map to their state ids."""
        states = project_report({"t211": 64, "t592": 70, "t363": 95})
        assert states == {
            "status.overall_soc": 64,
            "status.main_soc": 70,
            "config.system_charge_limit": 95,
        }

    def test_boolean_fields_projected(self) -> None:
        """Mode fields become True only for value 1."""
        states = project_report({"t598": 1, "t728": 0, "t700_1": 2})
        assert states == {
            "modes.local_mode": True,
            "modes.ac_active_mode": False,
            "modes.battery_charging_mode": False,
        }

    def test_sentinel_field_omitted(self) -> None:
        """A field reporting 0xFFFF produces no state."""
        states = project_report({"t593": 0xFFFF, "t592": 80})
        assert states == {"status.main_soc": 80}

    def test_unknown_fields_ignored(self) -> None:
        """Field ids outside the map are skipped."""
        assert project_report({"t9999": 5, "code": 1}) == {}

    def test_empty_input(self) -> None:
        """An empty mapping projects to an empty dict."""
        assert project_report({}) == {}

    def test_input_not_mutated(self) -> None:
        """The raw mapping is left untouched."""
        raw = {"t211": 50, "t593": 0xFFFF}
        project_report(raw)
        assert raw == {"t211": 50, "t593": 0xFFFF}
