"""
Command / acknowledgement correlation for BK215 field writes.

Each outstanding write is a :class:`PendingCommand`: an asyncio future paired
with a deadline timer, keyed by device field id.  Device acknowledgements are
matched strictly by field id -- one ack message may carry several fields, and
ack order need not follow issue order.

Operations:
- issue(field_id, value, timeout_s): send and await the outcome.
- handle_ack(data): resolve / reject pending entries named in an ack.
- fail_all(reason): reject every pending entry (connection lost).

CHANGELOG:
- 2026-10-07: Remove the entry when the awaiting caller is cancelled
- 2026-10-04: Initial creation (STORY-006)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from bk215_edge.src.errors import (
    CommandTimeoutError,
    ConnectionClosedError,
    DeviceRejectedError,
)
from bk215_edge.src.models import RESPONSE_SUCCESS

if TYPE_CHECKING:
    from bk215_edge.src.session import DeviceSession

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PendingCommand:
    """A write awaiting its acknowledgement.

    Attributes:
        field_id: Device field the command sets.
        value: Value that was sent.
        deadline: Event-loop time after which the command times out.
        future: Completed with ``None`` on success or an exception otherwise.
        timer: Deadline timer handle.
    """

    field_id: str
    value: Any
    deadline: float
    future: asyncio.Future[None]
    timer: asyncio.TimerHandle


class CommandCorrelator:
    """Tracks commands awaiting device acknowledgement.

    At most one entry exists per field id.  Callers serialise writes per
    field; issuing again while an entry is outstanding replaces the
    bookkeeping, and the replaced command still fails on its own deadline.

    Args:
        session: Session used to put commands on the wire (anything with a
            ``send_command(fields)`` method).
    """

    def __init__(self, session: DeviceSession) -> None:
        self._session = session
        self._pending: dict[str, PendingCommand] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def pending_fields(self) -> list[str]:
        """Field ids with an outstanding command."""
        return list(self._pending)

    def __len__(self) -> int:
        return len(self._pending)

    async def issue(self, field_id: str, value: Any, timeout_s: float) -> None:
        """Send ``{field_id: value}`` and wait for the device's verdict.

        Raises:
            DeviceRejectedError: The ack carried a non-success response code.
            CommandTimeoutError: No ack arrived within *timeout_s*.
            ConnectionClosedError: The connection dropped first.
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future[None] = loop.create_future()
        entry = PendingCommand(
            field_id=field_id,
            value=value,
            deadline=loop.time() + timeout_s,
            future=future,
            timer=loop.call_later(timeout_s, self._on_deadline, field_id, future),
        )

        replaced = self._pending.get(field_id)
        if replaced is not None:
            logger.warning("Command for %s issued while one is outstanding", field_id)
        self._pending[field_id] = entry

        logger.debug("Issuing %s=%r (timeout %.1fs)", field_id, value, timeout_s)
        self._session.send_command({field_id: value})

        try:
            await future
        finally:
            self._discard(entry)

    def handle_ack(self, data: dict[str, Any]) -> list[str]:
        """Resolve pending commands named in an acknowledgement payload.

        Args:
            data: The ack's ``data`` mapping of field id -> response code.
                An empty mapping is the handshake ack and resolves nothing.

        Returns:
            Field ids that matched a pending command.
        """
        matched: list[str] = []
        for field_id, rc_raw in data.items():
            entry = self._pending.pop(field_id, None)
            if entry is None:
                continue
            entry.timer.cancel()
            matched.append(field_id)
            if entry.future.done():
                continue

            if _response_code(rc_raw) == RESPONSE_SUCCESS:
                logger.debug("Device accepted %s", field_id)
                entry.future.set_result(None)
            else:
                logger.warning("Device rejected %s, rc=%s", field_id, rc_raw)
                entry.future.set_exception(DeviceRejectedError(field_id, rc_raw))
        return matched

    def fail_all(self, reason: str) -> int:
        """Reject every pending command with :class:`ConnectionClosedError`.

        Returns:
            Number of commands that were failed.
        """
        entries = list(self._pending.values())
        self._pending.clear()
        for entry in entries:
            entry.timer.cancel()
            if not entry.future.done():
                entry.future.set_exception(ConnectionClosedError(reason))
        if entries:
            logger.warning("Failed %d pending command(s): %s", len(entries), reason)
        return len(entries)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _on_deadline(self, field_id: str, future: asyncio.Future[None]) -> None:
        entry = self._pending.get(field_id)
        if entry is not None and entry.future is future:
            del self._pending[field_id]
        if not future.done():
            logger.warning("Command timeout for %s", field_id)
            future.set_exception(CommandTimeoutError(field_id))

    def _discard(self, entry: PendingCommand) -> None:
        entry.timer.cancel()
        if self._pending.get(entry.field_id) is entry:
            del self._pending[entry.field_id]


def _response_code(raw: Any) -> int | None:
    """Coerce a per-field ack value to an int response code."""
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None
