"""
Unit tests for write validation.

CHANGELOG:
- 2026-10-06: Initial creation (STORY-010)

TODO:
- None
"""

from __future__ import annotations

import math

import pytest

from bk215_edge.src.errors import InvalidValueError
from bk215_edge.src.validation import validate_and_convert, writable_field


class TestWritableField:
    """Only writable states can be targeted."""

    def test_writable_state_returns_definition(self) -> None:
        assert writable_field("config.system_charge_limit").field_id == "t363"

    @pytest.mark.parametrize("state_id", ["status.overall_soc", "nope.nothing"])
    def test_read_only_or_unknown_rejected(self, state_id: str) -> None:
        with pytest.raises(InvalidValueError, match="not a writable state"):
            writable_field(state_id)


class TestNumericValidation:
    """Numeric states require an in-range integer."""

    @pytest.mark.parametrize("value", [70, 85, 100, 85.0, "90"])
    def test_in_range_accepted(self, value: object) -> None:
        assert validate_and_convert("config.system_charge_limit", value) == int(
            float(value)  # type: ignore[arg-type]
        )

    @pytest.mark.parametrize("value", [69, 101, 0, -5])
    def test_out_of_range_rejected(self, value: int) -> None:
        with pytest.raises(InvalidValueError, match=r"out of range \(70\.\.100\)"):
            validate_and_convert("config.system_charge_limit", value)

    @pytest.mark.parametrize("value", [85.5, "abc", None, math.nan, math.inf, True])
    def test_non_integer_rejected(self, value: object) -> None:
        with pytest.raises(InvalidValueError, match="must be an integer"):
            validate_and_convert("config.system_charge_limit", value)

    def test_zero_lower_bound(self) -> None:
        """Charging power accepts 0 as its lower bound."""
        assert validate_and_convert("config.system_charging_power", 0) == 0

    def test_invalid_value_is_value_error(self) -> None:
        """Callers catching ValueError also see validation failures."""
        with pytest.raises(ValueError):
            validate_and_convert("config.system_discharge_limit", 21)


class TestBooleanValidation:
    """Boolean states send 1 / 0."""

    @pytest.mark.parametrize(("value", "wire"), [(True, 1), (False, 0), (1, 1), (0, 0)])
    def test_boolean_conversion(self, value: object, wire: int) -> None:
        assert validate_and_convert("modes.local_mode", value) == wire
