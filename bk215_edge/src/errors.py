"""
Exception hierarchy for the BK215 edge client.

Transport faults are reported through session callbacks and never raised
out of the session itself.  The exceptions below surface to callers of
:meth:`~bk215_edge.src.adapter.Bk215Adapter.set_value` and to the error
callback of :class:`~bk215_edge.src.session.DeviceSession`.

CHANGELOG:
- 2026-10-03: Add ReadOnlyError and NotConnectedError for adapter writes
- 2026-10-02: Initial creation (STORY-003)

TODO:
- None
"""

from __future__ import annotations


class Bk215Error(Exception):
    """Base class for all BK215 client errors."""


class ConnectionClosedError(Bk215Error):
    """The TCP connection went away while a command was outstanding."""


class SessionIdleError(Bk215Error):
    """No bytes were received within the idle limit (watchdog trip)."""

    def __init__(self, idle_s: float, limit_s: float) -> None:
        super().__init__(f"No data received for {idle_s:.1f}s (limit {limit_s:.1f}s)")
        self.idle_s = idle_s
        self.limit_s = limit_s


class CommandError(Bk215Error):
    """A command for a single field did not succeed."""

    def __init__(self, field_id: str, message: str) -> None:
        super().__init__(message)
        self.field_id = field_id


class CommandTimeoutError(CommandError):
    """No acknowledgement arrived before the command deadline."""

    def __init__(self, field_id: str) -> None:
        super().__init__(field_id, f"Command timeout for {field_id}")


class DeviceRejectedError(CommandError):
    """The device acknowledged the command with a non-success code."""

    def __init__(self, field_id: str, response_code: object) -> None:
        super().__init__(field_id, f"Device rejected {field_id}, rc={response_code}")
        self.response_code = response_code


class InvalidValueError(Bk215Error, ValueError):
    """A value for a writable state failed validation before sending."""


class ReadOnlyError(Bk215Error):
    """Writes are disabled by configuration."""


class NotConnectedError(Bk215Error):
    """A write was attempted while no device connection is up."""
