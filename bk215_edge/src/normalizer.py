"""
Pure projection of raw BK215 report values into registry states.

Takes a ``{field_id: raw_value}`` mapping (a report, or the merged snapshot
from the report cache) and returns ``{state_id: value}`` for every known field
whose value is usable.  A value is dropped when it is:

- ``None``,
- the device's "unavailable" sentinel ``0xFFFF``,
- not numeric, not finite, or negative.

Boolean fields come out as ``value == 1``; numeric fields as numbers.  Field
ids not in :data:`~bk215_edge.src.fields.FIELDS_BY_ID` are ignored.

This is a pure function: no side effects, no I/O, no clock.

CHANGELOG:
- 2026-10-05: Treat numeric strings like numbers (older firmwares quote values)
- 2026-10-04: Initial creation (STORY-008)

TODO:
- None
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from typing import Any

from bk215_edge.src.fields import BOOLEAN, FIELDS_BY_ID
from bk215_edge.src.models import UNAVAILABLE_VALUE

logger = logging.getLogger(__name__)


def to_reading(raw: Any) -> float | int | None:
    """Return *raw* as a usable number, or ``None`` if it must be dropped."""
    if raw is None or isinstance(raw, bool):
        return None
    if raw == UNAVAILABLE_VALUE:
        return None

    if isinstance(raw, (int, float)):
        n = raw
    else:
        try:
            n = float(raw)
        except (TypeError, ValueError):
            return None
        if n.is_integer():
            n = int(n)

    if not math.isfinite(n) or n < 0 or n == UNAVAILABLE_VALUE:
        return None
    return n


def project_report(data: Mapping[str, Any]) -> dict[str, Any]:
    """Project raw field values into registry state values.

    Args:
        data: Raw ``{field_id: value}`` mapping.

    Returns:
        ``{state_id: value}`` for every known field with a usable value.
    """
    states: dict[str, Any] = {}
    for field_id, raw in data.items():
        fdef = FIELDS_BY_ID.get(field_id)
        if fdef is None:
            continue

        n = to_reading(raw)
        if n is None:
            logger.debug("Field %s: dropping unusable value %r", field_id, raw)
            continue

        states[fdef.state_id] = (n == 1) if fdef.kind == BOOLEAN else n
    return states
