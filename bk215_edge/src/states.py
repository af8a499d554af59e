"""
In-memory state registry fed by the adapter.

Holds the current value of every known registry state -- the projected device
fields plus the adapter's own ``info.*`` / ``status.raw_message`` states --
and remembers which ones changed since they were last published.

``apply`` is idempotent and tolerant: unknown state ids are ignored and states
missing from the update are left unchanged.  ``peek_changes`` / ``ack`` work
like a spool: a publisher reads the pending changes, pushes them, and acks
exactly what it pushed.  A state that changed again in the meantime stays
pending.

CHANGELOG:
- 2026-10-07: Initial creation (STORY-011)

TODO:
- None
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from bk215_edge.src.fields import ALL_FIELDS

logger = logging.getLogger(__name__)

INFO_CONNECTION = "info.connection"
INFO_ENDPOINT = "info.endpoint"
INFO_LAST_ERROR = "info.lastError"
INFO_LAST_UPDATE = "info.lastUpdate"
INFO_READ_ONLY = "info.readOnly"
STATUS_RAW_MESSAGE = "status.raw_message"

ADAPTER_STATES: tuple[str, ...] = (
    INFO_CONNECTION,
    INFO_ENDPOINT,
    INFO_LAST_ERROR,
    INFO_LAST_UPDATE,
    INFO_READ_ONLY,
    STATUS_RAW_MESSAGE,
)
"""States owned by the adapter itself rather than by a device field."""

_MISSING = object()


class StateRegistry:
    """Current state values plus a set of unpublished changes.

    Args:
        state_ids: Known state ids.  Defaults to every device field state plus
            :data:`ADAPTER_STATES`.
    """

    def __init__(self, state_ids: Iterable[str] | None = None) -> None:
        if state_ids is None:
            state_ids = [*(f.state_id for f in ALL_FIELDS), *ADAPTER_STATES]
        self._known: frozenset[str] = frozenset(state_ids)
        self._values: dict[str, Any] = {}
        self._changed: set[str] = set()

    def __contains__(self, state_id: object) -> bool:
        return state_id in self._known

    @property
    def values(self) -> dict[str, Any]:
        """Copy of every state that has a value."""
        return dict(self._values)

    def get(self, state_id: str, default: Any = None) -> Any:
        """Return the current value of *state_id*, or *default*."""
        return self._values.get(state_id, default)

    def apply(self, states: Mapping[str, Any]) -> list[str]:
        """Apply a ``{state_id: value}`` snapshot.

        Returns:
            State ids whose value actually changed.
        """
        changed: list[str] = []
        for state_id, value in states.items():
            if state_id not in self._known:
                logger.debug("Ignoring unknown state %s", state_id)
                continue
            old = self._values.get(state_id, _MISSING)
            if old is not _MISSING and type(old) is type(value) and old == value:
                continue
            self._values[state_id] = value
            self._changed.add(state_id)
            changed.append(state_id)
        return changed

    def set(self, state_id: str, value: Any) -> bool:
        """Set a single state.  Returns True if the value changed."""
        return bool(self.apply({state_id: value}))

    def peek_changes(self) -> dict[str, Any]:
        """Return ``{state_id: value}`` for every unpublished change."""
        return {sid: self._values[sid] for sid in sorted(self._changed)}

    def ack(self, published: Mapping[str, Any]) -> None:
        """Mark *published* states as delivered.

        A state whose value changed again after the peek stays pending.
        """
        for state_id, value in published.items():
            current = self._values.get(state_id, _MISSING)
            if current is not _MISSING and type(current) is type(value) and current == value:
                self._changed.discard(state_id)
