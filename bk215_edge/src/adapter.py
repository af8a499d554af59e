"""
BK215 adapter: composes session, correlator, report cache and state registry.

Owns the reconnect policy decisions and the routing of inbound messages:

1. **Acknowledgements** -- an ack with empty data is the handshake ack;
   otherwise every field in it is matched against a pending command.
2. **Data reports** -- merged into the :class:`ReportCache`, whose flushes are
   projected into registry states.
3. **Unknown codes** -- logged at debug level and dropped.

Connection loss fails every pending command, updates the ``info.*`` states
and schedules a reconnect with exponential backoff.  Writes go through
:meth:`Bk215Adapter.set_value`, which validates before anything is sent.

CHANGELOG:
- 2026-10-16: Health file write failures no longer abort callbacks; reconnect is
  scheduled before the health write on close
- 2026-10-09: Keep the socket error text in info.lastError across the close event
- 2026-10-08: Write health file on connection changes and reports
- 2026-10-06: Initial creation (STORY-009)

TODO:
- None
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from bk215_edge.src.commands import CommandCorrelator
from bk215_edge.src.errors import Bk215Error, NotConnectedError, ReadOnlyError
from bk215_edge.src.fields import BOOLEAN, FIELDS_BY_STATE
from bk215_edge.src.models import (
    DEFAULT_PORT,
    DEFAULT_TIMEOUT_MS,
    DeviceMessage,
    MessageKind,
)
from bk215_edge.src.normalizer import project_report
from bk215_edge.src.report_cache import ReportCache
from bk215_edge.src.session import DeviceSession
from bk215_edge.src.states import (
    INFO_CONNECTION,
    INFO_ENDPOINT,
    INFO_LAST_ERROR,
    INFO_LAST_UPDATE,
    INFO_READ_ONLY,
    STATUS_RAW_MESSAGE,
    StateRegistry,
)
from bk215_edge.src.validation import validate_and_convert

if TYPE_CHECKING:
    from bk215_edge.src.health import HealthWriter

logger = logging.getLogger(__name__)

CLOSED_REASON = "TCP connection closed"
UNLOAD_REASON = "Adapter unloading"


class Bk215Adapter:
    """Glue between one device session and the state registry.

    Args:
        host: Device IP address or hostname.  Empty refuses to start.
        port: Device TCP port.
        timeout_ms: Connect and command acknowledgement timeout.
        update_interval_s: Report throttle interval (0 = immediate).
        registry: Registry receiving projected states and ``info.*`` states.
        health: Optional health file writer.
        read_only: Reject every write with :class:`ReadOnlyError`.
        debug: Log every raw message and mirror it to ``status.raw_message``.
        idle_watchdog: Enable the session's idle watchdog.
        session_factory: Builds the :class:`DeviceSession`; receives the
            callback keyword arguments.  Tests substitute a fake.
    """

    def __init__(
        self,
        *,
        host: str,
        registry: StateRegistry,
        port: int = DEFAULT_PORT,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        update_interval_s: float = 0,
        health: HealthWriter | None = None,
        read_only: bool = False,
        debug: bool = False,
        idle_watchdog: bool = True,
        session_factory: Callable[..., DeviceSession] = DeviceSession,
    ) -> None:
        self._host = host.strip()
        self._port = port
        self._timeout_s = timeout_ms / 1000.0
        self._registry = registry
        self._health = health
        self._read_only = read_only
        self._debug = debug
        self._running = False
        self._last_error: str | None = None

        self._session = session_factory(
            on_connect=self._on_connect,
            on_close=self._on_close,
            on_error=self._on_error,
            on_message=self._on_message,
            idle_watchdog=idle_watchdog,
        )
        self._correlator = CommandCorrelator(self._session)
        self._cache = ReportCache(update_interval_s, self._on_flush)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def endpoint(self) -> str:
        """``host:port`` of the device."""
        return f"{self._host}:{self._port}"

    @property
    def connected(self) -> bool:
        """Whether the device session is connected."""
        return self._session.is_connected()

    @property
    def cache(self) -> ReportCache:
        """The report cache (snapshot survives reconnects)."""
        return self._cache

    @property
    def correlator(self) -> CommandCorrelator:
        """The command correlator."""
        return self._correlator

    def start(self) -> bool:
        """Publish initial info states, start throttling and connect.

        Returns:
            ``False`` if no host is configured (nothing is started).
        """
        self._registry.apply(
            {
                INFO_CONNECTION: False,
                INFO_LAST_ERROR: "",
                INFO_READ_ONLY: self._read_only,
                INFO_LAST_UPDATE: 0,
                INFO_ENDPOINT: self.endpoint if self._host else "no host configured",
            }
        )
        if not self._host:
            logger.error("No host configured, set BK215_HOST to the device IP.")
            return False

        self._running = True
        self._cache.start()
        self._session.connect(self._host, self._port, self._timeout_s)
        logger.info("BK215 adapter started (%s).", self.endpoint)
        return True

    def stop(self) -> None:
        """Fail pending commands and release the session and timers."""
        self._running = False
        self._correlator.fail_all(UNLOAD_REASON)
        self._cache.stop()
        self._session.destroy()
        self._registry.set(INFO_CONNECTION, False)
        logger.info("BK215 adapter stopped.")

    async def set_value(self, state_id: str, value: Any) -> None:
        """Validate and write *value* to the device field behind *state_id*.

        On success the registry state is updated to the written value.

        Raises:
            ReadOnlyError: Writes are disabled.
            InvalidValueError: Unknown/read-only state or value out of range.
            NotConnectedError: No device connection.
            CommandError: Timeout or device rejection.
            ConnectionClosedError: Connection lost while waiting.
        """
        if self._read_only:
            raise ReadOnlyError(f"Read-only mode, ignoring write to {state_id}")

        wire_value = validate_and_convert(state_id, value)
        fdef = FIELDS_BY_STATE[state_id]

        if not self._session.is_connected():
            raise NotConnectedError(f"Not connected, ignoring write to {state_id}")

        try:
            await self._correlator.issue(fdef.field_id, wire_value, self._timeout_s)
        except Bk215Error as exc:
            self._registry.set(INFO_LAST_ERROR, str(exc))
            logger.warning("Write failed (%s): %s", state_id, exc)
            raise

        self._registry.set(
            state_id, wire_value == 1 if fdef.kind == BOOLEAN else wire_value
        )
        logger.info("Wrote %s=%s (%s)", state_id, wire_value, fdef.field_id)

    # ------------------------------------------------------------------
    # Session callbacks
    # ------------------------------------------------------------------

    def _on_connect(self) -> None:
        self._last_error = None
        self._registry.apply(
            {
                INFO_CONNECTION: True,
                INFO_ENDPOINT: self.endpoint,
                INFO_LAST_ERROR: "",
            }
        )
        self._write_health("record_connection", True)
        logger.info("TCP connected.")

    def _on_error(self, exc: Exception) -> None:
        reason = f"Socket error: {exc}"
        self._last_error = reason
        self._registry.set(INFO_LAST_ERROR, reason)
        self._correlator.fail_all(reason)

    def _on_close(self) -> None:
        reason = self._last_error or CLOSED_REASON
        self._last_error = None

        self._registry.apply({INFO_CONNECTION: False, INFO_LAST_ERROR: reason})
        self._correlator.fail_all(reason)
        logger.warning("TCP disconnected: %s", reason)

        if self._running:
            delay_s = self._session.schedule_reconnect(
                self._host, self._port, self._timeout_s
            )
            if self._debug:
                logger.debug("Reconnect scheduled in %.1fs", delay_s)

        self._write_health("record_connection", False, reason)

    def _on_message(self, msg: DeviceMessage) -> None:
        if self._debug:
            raw = msg.model_dump_json()
            self._registry.set(STATUS_RAW_MESSAGE, raw)
            logger.info("RX %s", raw)

        kind = msg.kind
        if kind is MessageKind.ACK:
            if not msg.data:
                logger.debug("Handshake ACK received.")
                return
            self._correlator.handle_ack(msg.data)
        elif kind is MessageKind.DATA_REPORT:
            self._cache.merge(msg.data)
        else:
            logger.debug("Unknown message code: %s", msg.code)

    # ------------------------------------------------------------------
    # Report projection
    # ------------------------------------------------------------------

    def _on_flush(self, snapshot: dict[str, Any]) -> None:
        states = project_report(snapshot)
        changed = self._registry.apply(states)
        self._registry.set(INFO_LAST_UPDATE, int(time.time() * 1000))
        self._write_health("record_report")
        logger.debug("Projected %d state(s), %d changed", len(states), len(changed))

    # ------------------------------------------------------------------
    # Health file
    # ------------------------------------------------------------------

    def _write_health(self, method: str, *args: Any) -> None:
        """Call ``HealthWriter.<method>``; a failed write is logged, not raised."""
        if self._health is None:
            return
        try:
            getattr(self._health, method)(*args)
        except OSError:
            logger.warning("Failed to write health file", exc_info=True)
