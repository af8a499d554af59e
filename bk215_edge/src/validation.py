"""
Validation of values written to BK215 registry states.

Runs before anything goes on the wire: a value that fails here never reaches
the command correlator.

CHANGELOG:
- 2026-10-06: Initial creation (STORY-010)

TODO:
- None
"""

from __future__ import annotations

import math
from typing import Any

from bk215_edge.src.errors import InvalidValueError
from bk215_edge.src.fields import BOOLEAN, FIELDS_BY_STATE, FieldDef


def writable_field(state_id: str) -> FieldDef:
    """Return the field definition for a writable state.

    Raises:
        InvalidValueError: *state_id* is unknown or read-only.
    """
    fdef = FIELDS_BY_STATE.get(state_id)
    if fdef is None or not fdef.writable:
        raise InvalidValueError(f"{state_id}: not a writable state")
    return fdef


def validate_and_convert(state_id: str, value: Any) -> int:
    """Check *value* against the limits of *state_id* and return the wire value.

    Boolean states accept any value and send ``1`` for truthy, ``0`` otherwise.
    Numeric states require an integer inside the field's inclusive range.

    Raises:
        InvalidValueError: Unknown/read-only state, non-integer, or out of range.
    """
    fdef = writable_field(state_id)
    if fdef.kind == BOOLEAN:
        return 1 if value else 0

    n = _as_int(value, state_id)
    assert fdef.valid_range is not None
    lo, hi = fdef.valid_range
    if n < lo or n > hi:
        raise InvalidValueError(f"{state_id}: {n} out of range ({lo}..{hi})")
    return n


def _as_int(value: Any, label: str) -> int:
    if isinstance(value, bool):
        raise InvalidValueError(f"{label}: must be an integer")
    try:
        n = float(value)
    except (TypeError, ValueError):
        raise InvalidValueError(f"{label}: must be an integer") from None
    if not math.isfinite(n) or not n.is_integer():
        raise InvalidValueError(f"{label}: must be an integer")
    return int(n)
