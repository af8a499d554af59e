"""
Persistent TCP session to a BK215 inverter.

Owns one asyncio transport, drives the stream framer over inbound bytes, sends
the handshake, and reports connect / close / error / message events through
plain callbacks.  Designed to be robust:

- One authoritative :class:`ConnectionState`; stale transport callbacks from a
  torn-down connection are ignored via a generation counter.
- Exponential backoff for reconnects (x1.5 per failure, capped at
  MAX_BACKOFF_S), reset on every successful connection.
- An idle watchdog drops connections that stay silent too long.  The device
  pushes data continuously, so silence means a stalled or half-open socket.
- Never raises out of a transport callback; every failure path ends in the
  error and close callbacks.

CHANGELOG:
- 2026-10-16: Route any connect failure (e.g. an unencodable host name) through the error/close path
- 2026-10-09: Arm the watchdog from connect() so a stuck CONNECTING state is caught
- 2026-10-08: Bound the TCP connect by the configured timeout
- 2026-10-06: Decode inbound bytes incrementally (UTF-8 split across reads)
- 2026-10-03: Initial creation (STORY-005)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import codecs
import logging
from collections.abc import Callable
from enum import Enum
from typing import Any

from pydantic import ValidationError

from bk215_edge.src.errors import SessionIdleError
from bk215_edge.src.models import DeviceMessage, command_message, handshake_message
from bk215_edge.src.parser import parse_json_stream

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

BASE_BACKOFF_S: float = 5.0
"""Delay before the first reconnect attempt."""

BACKOFF_FACTOR: float = 1.5
"""Multiplier applied to the delay after each consecutive failure."""

MAX_BACKOFF_S: float = 60.0
"""Reconnect delay ceiling.  Keeps the device's connection guard happy."""

WATCHDOG_INTERVAL_S: float = 5.0
"""Period of the idle liveness check."""

IDLE_FLOOR_S: float = 60.0
"""Minimum silence tolerated before the watchdog trips."""

IDLE_MARGIN_S: float = 15.0
"""Safety margin added on top of the idle floor / configured timeout."""

MAX_BUFFER_CHARS: int = 65536
"""Unterminated tail longer than this is discarded as noise."""


def idle_limit_for(timeout_s: float) -> float:
    """Return the idle limit derived from a configured timeout."""
    return max(IDLE_FLOOR_S, timeout_s) + IDLE_MARGIN_S


class ConnectionState(Enum):
    """Connection lifecycle.  There is no closing state: teardown is immediate."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


# ---------------------------------------------------------------------------
# Backoff policy
# ---------------------------------------------------------------------------


class ReconnectBackoff:
    """Exponential reconnect delay with a ceiling.

    Args:
        base_s: First delay, and the value :meth:`reset` returns to.
        factor: Growth factor per consecutive failure.
        max_s: Delay ceiling.
    """

    def __init__(
        self,
        base_s: float = BASE_BACKOFF_S,
        factor: float = BACKOFF_FACTOR,
        max_s: float = MAX_BACKOFF_S,
    ) -> None:
        self._base_s = base_s
        self._factor = factor
        self._max_s = max_s
        self._current_s = base_s

    @property
    def current_delay(self) -> float:
        """Delay the next call to :meth:`next_delay` will return."""
        return self._current_s

    def next_delay(self) -> float:
        """Return the current delay and grow it for the next failure."""
        delay = self._current_s
        self._current_s = min(self._max_s, self._current_s * self._factor)
        return delay

    def reset(self) -> None:
        """Return to the base delay (after a successful connection)."""
        self._current_s = self._base_s


# ---------------------------------------------------------------------------
# asyncio protocol shim
# ---------------------------------------------------------------------------


class _SessionProtocol(asyncio.Protocol):
    """Forwards transport events to the session, tagged with a generation."""

    def __init__(self, session: DeviceSession, generation: int) -> None:
        self._session = session
        self._generation = generation

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self._session._on_connection_made(self._generation, transport)

    def data_received(self, data: bytes) -> None:
        self._session._on_data(self._generation, data)

    def connection_lost(self, exc: Exception | None) -> None:
        self._session._on_connection_lost(self._generation, exc)


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


class DeviceSession:
    """Long-lived TCP session with handshake, framing, watchdog and reconnect.

    All methods must be called from the event loop thread.  Callbacks run
    synchronously inside transport and timer callbacks; exceptions raised by
    them are logged and swallowed so the transport keeps working.

    Args:
        on_connect: Called once the TCP connection is up, before the handshake.
        on_close: Called after every connection loss or failed attempt.
        on_error: Called with the exception before ``on_close`` on transport
            errors, connect failures, and watchdog trips.
        on_message: Called for every framed :class:`DeviceMessage`.
        idle_watchdog: Enable the idle liveness check.
        watchdog_interval_s: Period of the liveness check.
        idle_limit_s: Fixed idle limit.  ``None`` derives it from the connect
            timeout via :func:`idle_limit_for`.
        backoff: Reconnect policy; a default :class:`ReconnectBackoff` if
            omitted.
    """

    def __init__(
        self,
        *,
        on_connect: Callable[[], Any] | None = None,
        on_close: Callable[[], Any] | None = None,
        on_error: Callable[[Exception], Any] | None = None,
        on_message: Callable[[DeviceMessage], Any] | None = None,
        idle_watchdog: bool = True,
        watchdog_interval_s: float = WATCHDOG_INTERVAL_S,
        idle_limit_s: float | None = None,
        backoff: ReconnectBackoff | None = None,
    ) -> None:
        self._on_connect = on_connect
        self._on_close = on_close
        self._on_error = on_error
        self._on_message = on_message
        self._idle_watchdog = idle_watchdog
        self._watchdog_interval_s = watchdog_interval_s
        self._idle_limit_s = idle_limit_s
        self._backoff = backoff if backoff is not None else ReconnectBackoff()

        self._loop: asyncio.AbstractEventLoop | None = None
        self._state = ConnectionState.DISCONNECTED
        self._generation = 0
        self._transport: asyncio.Transport | None = None
        self._connect_task: asyncio.Task[None] | None = None
        self._watchdog: asyncio.TimerHandle | None = None
        self._reconnect_timer: asyncio.TimerHandle | None = None
        self._timeout_s = 0.0
        self._last_data_at = 0.0
        self._endpoint = ""
        self._rx = ""
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        """Current connection state."""
        return self._state

    @property
    def backoff(self) -> ReconnectBackoff:
        """Reconnect policy used by :meth:`schedule_reconnect`."""
        return self._backoff

    @property
    def reconnect_pending(self) -> bool:
        """Whether a reconnect timer is armed."""
        return self._reconnect_timer is not None

    @property
    def idle_limit_s(self) -> float:
        """Silence tolerated before the watchdog drops the connection."""
        if self._idle_limit_s is not None:
            return self._idle_limit_s
        return idle_limit_for(self._timeout_s)

    def is_connected(self) -> bool:
        """Return True while the TCP connection is established."""
        return self._state is ConnectionState.CONNECTED

    def connect(self, host: str, port: int, timeout_s: float) -> None:
        """Tear down any prior connection and start a new attempt.

        Returns immediately.  Failure is reported through ``on_error`` and
        ``on_close``; success through ``on_connect`` followed by the handshake.

        Args:
            host: Device IP address or hostname.
            port: Device TCP port.
            timeout_s: Connect timeout; also feeds the idle limit.
        """
        self.destroy()
        self._loop = asyncio.get_running_loop()
        self._state = ConnectionState.CONNECTING
        self._timeout_s = timeout_s
        self._endpoint = f"{host}:{port}"
        self._last_data_at = self._loop.time()

        logger.info("Connecting to %s (timeout %.1fs)", self._endpoint, timeout_s)
        self._connect_task = self._loop.create_task(
            self._open(host, port, timeout_s, self._generation),
            name=f"DeviceSession.connect({self._endpoint})",
        )
        self._arm_watchdog()

    def send_command(self, fields: dict[str, Any]) -> bool:
        """Write a set-command for *fields*.

        Returns:
            ``True`` if the bytes were handed to the transport, ``False`` if
            the session is not connected and the write was dropped.
        """
        if not self.is_connected():
            logger.debug("Not connected, dropping command %s", fields)
            return False
        self._write(command_message(fields).to_wire())
        return True

    def schedule_reconnect(
        self,
        host: str,
        port: int,
        timeout_s: float,
        delay_s: float | None = None,
    ) -> float:
        """Arm a one-shot reconnect, replacing any pending one.

        Args:
            host: Device IP address or hostname.
            port: Device TCP port.
            timeout_s: Connect timeout for the new attempt.
            delay_s: Explicit delay.  ``None`` takes the next backoff delay.

        Returns:
            The delay in seconds that was scheduled.
        """
        self._cancel_reconnect()
        if delay_s is None:
            delay_s = self._backoff.next_delay()
        self._loop = asyncio.get_running_loop()

        logger.info("Reconnect to %s:%d scheduled in %.1fs", host, port, delay_s)
        self._reconnect_timer = self._loop.call_later(
            delay_s, self._fire_reconnect, host, port, timeout_s
        )
        return delay_s

    def destroy(self) -> None:
        """Release the connection and every timer.  Idempotent.

        No callback fires after this returns (until the next :meth:`connect`).
        """
        self._cancel_reconnect()
        self._teardown()

    # ------------------------------------------------------------------
    # Transport events
    # ------------------------------------------------------------------

    async def _open(self, host: str, port: int, timeout_s: float, generation: int) -> None:
        assert self._loop is not None
        try:
            await asyncio.wait_for(
                self._loop.create_connection(
                    lambda: _SessionProtocol(self, generation), host, port
                ),
                timeout=timeout_s,
            )
        except Exception as exc:
            if generation != self._generation:
                return
            self._connect_task = None
            logger.warning("Failed to connect to %s: %r", self._endpoint, exc)
            self._fail(exc)
            return

        if generation == self._generation:
            self._connect_task = None

    def _on_connection_made(self, generation: int, transport: asyncio.BaseTransport) -> None:
        if generation != self._generation or self._state is not ConnectionState.CONNECTING:
            transport.abort()  # type: ignore[attr-defined]
            return

        assert self._loop is not None
        self._transport = transport  # type: ignore[assignment]
        self._state = ConnectionState.CONNECTED
        self._last_data_at = self._loop.time()
        self._backoff.reset()
        logger.info("Connected to %s", self._endpoint)

        self._emit(self._on_connect)
        if generation == self._generation:
            self._write(handshake_message().to_wire(crlf=True))

    def _on_data(self, generation: int, data: bytes) -> None:
        if generation != self._generation:
            return

        assert self._loop is not None
        self._last_data_at = self._loop.time()

        parsed = parse_json_stream(self._rx + self._decoder.decode(data))
        self._rx = parsed.rest
        if len(self._rx) > MAX_BUFFER_CHARS:
            logger.warning(
                "Discarding %d chars of unterminated input from %s",
                len(self._rx),
                self._endpoint,
            )
            self._rx = ""

        for raw in parsed.messages:
            try:
                msg = DeviceMessage.model_validate(raw)
            except ValidationError:
                logger.debug("Dropping message without valid code/data: %s", raw)
                continue
            self._emit(self._on_message, msg)
            # A callback may have torn the connection down.
            if generation != self._generation:
                return

    def _on_connection_lost(self, generation: int, exc: Exception | None) -> None:
        if generation != self._generation:
            return

        self._teardown()
        if exc is not None:
            logger.warning("Connection to %s lost: %r", self._endpoint, exc)
            self._emit(self._on_error, exc)
        else:
            logger.info("Connection to %s closed", self._endpoint)
        self._emit(self._on_close)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _fail(self, exc: Exception) -> None:
        """Tear down and report *exc* through the error and close callbacks."""
        self._teardown()
        self._emit(self._on_error, exc)
        self._emit(self._on_close)

    def _teardown(self) -> None:
        """Drop the connection and watchdog; invalidate pending callbacks."""
        self._generation += 1
        self._cancel_watchdog()
        if self._connect_task is not None:
            self._connect_task.cancel()
            self._connect_task = None
        if self._transport is not None:
            self._transport.abort()
            self._transport = None
        self._rx = ""
        self._decoder.reset()
        self._state = ConnectionState.DISCONNECTED

    def _write(self, payload: bytes) -> None:
        if self._transport is None:
            return
        logger.debug("TX %s: %r", self._endpoint, payload)
        self._transport.write(payload)

    def _fire_reconnect(self, host: str, port: int, timeout_s: float) -> None:
        self._reconnect_timer = None
        self.connect(host, port, timeout_s)

    def _cancel_reconnect(self) -> None:
        if self._reconnect_timer is not None:
            self._reconnect_timer.cancel()
            self._reconnect_timer = None

    def _arm_watchdog(self) -> None:
        if not self._idle_watchdog or self._loop is None:
            return
        self._watchdog = self._loop.call_later(self._watchdog_interval_s, self._check_idle)

    def _cancel_watchdog(self) -> None:
        if self._watchdog is not None:
            self._watchdog.cancel()
            self._watchdog = None

    def _check_idle(self) -> None:
        self._watchdog = None
        if self._state is ConnectionState.DISCONNECTED or self._loop is None:
            return

        idle_s = self._loop.time() - self._last_data_at
        limit_s = self.idle_limit_s
        if idle_s > limit_s:
            logger.warning(
                "No data from %s for %.1fs (limit %.1fs), dropping connection",
                self._endpoint,
                idle_s,
                limit_s,
            )
            self._fail(SessionIdleError(idle_s, limit_s))
            return
        self._arm_watchdog()

    def _emit(self, callback: Callable[..., Any] | None, *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.error("Session callback %r failed", callback, exc_info=True)
