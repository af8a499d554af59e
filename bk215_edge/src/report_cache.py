"""
Report cache with optional throttling.

Data reports are partial: each carries only some fields.  The cache folds
them into one running snapshot (last write wins per field) and hands it to a
flush callback, either immediately or on a fixed interval.

- Immediate mode (interval 0): every merge flushes right away, restricted to
  the fields of that report so unrelated states are not rewritten.
- Throttled mode (interval > 0): merges only update the snapshot; a periodic
  timer flushes the *whole* snapshot when it is dirty, so fields missing from
  recent reports stay stable instead of reverting.

The snapshot stores raw values.  Filtering of the unavailable sentinel and
insane numbers happens at projection time (see
:func:`~bk215_edge.src.normalizer.project_report`).  The cache belongs to the
adapter, not the session, so the snapshot survives reconnects.

CHANGELOG:
- 2026-10-05: Initial creation (STORY-007)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from typing import Any

logger = logging.getLogger(__name__)


class ReportCache:
    """Merged snapshot of device data reports.

    Args:
        interval_s: Throttle interval in seconds; ``0`` selects immediate mode.
        on_flush: Receives a ``{field_id: raw_value}`` dict on every flush.
    """

    def __init__(
        self,
        interval_s: float,
        on_flush: Callable[[dict[str, Any]], Any],
    ) -> None:
        if interval_s < 0:
            raise ValueError("interval_s must be >= 0")
        self._interval_s = interval_s
        self._on_flush = on_flush
        self._snapshot: dict[str, Any] = {}
        self._dirty = False
        self._timer: asyncio.TimerHandle | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def immediate(self) -> bool:
        """True when every merge is flushed on arrival."""
        return self._interval_s == 0

    @property
    def dirty(self) -> bool:
        """True when the snapshot changed since the last flush."""
        return self._dirty

    @property
    def snapshot(self) -> dict[str, Any]:
        """Copy of the current merged snapshot."""
        return dict(self._snapshot)

    @property
    def running(self) -> bool:
        """Whether the throttle timer is armed."""
        return self._timer is not None

    def merge(self, data: Mapping[str, Any]) -> None:
        """Fold a data report into the snapshot.

        In immediate mode the fields of this report are flushed right away.
        """
        if not data:
            return
        self._snapshot.update(data)
        self._dirty = True

        if self.immediate:
            self._dirty = False
            self._deliver({k: self._snapshot[k] for k in data})

    def flush(self) -> dict[str, Any] | None:
        """Return the full snapshot if dirty, clearing the flag.

        Returns:
            A copy of the snapshot, or ``None`` when nothing changed since the
            last flush.
        """
        if not self._dirty:
            return None
        self._dirty = False
        return dict(self._snapshot)

    def start(self) -> None:
        """Start the throttle timer.  No-op in immediate mode or if running."""
        if self.immediate or self._timer is not None:
            return
        self._loop = asyncio.get_running_loop()
        logger.info("Report throttling every %.1fs", self._interval_s)
        self._arm()

    def stop(self) -> None:
        """Cancel the throttle timer.  The snapshot is kept."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _arm(self) -> None:
        assert self._loop is not None
        self._timer = self._loop.call_later(self._interval_s, self._tick)

    def _tick(self) -> None:
        self._arm()
        snapshot = self.flush()
        if snapshot:
            self._deliver(snapshot)

    def _deliver(self, data: dict[str, Any]) -> None:
        try:
            self._on_flush(data)
        except Exception:
            logger.error("Report flush handler failed", exc_info=True)
