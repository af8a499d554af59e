"""
Protocol message model and message classification for the BK215 device.

Every message on the wire is a JSON object ``{"code": <int>, "data": {...}}``.
``data`` maps device field ids (see :mod:`bk215_edge.src.fields`) to numeric
values and may be absent, which is equivalent to an empty mapping.

Classification is a closed partition over ``code``:

- acknowledgements (handshake ack ``0`` and command ack ``0x6057``),
- data reports (``0x6052`` and the alternate ``0x6055`` seen on other
  firmwares),
- anything else is unknown and gets dropped by the caller.

CHANGELOG:
- 2026-10-04: Accept ``"data": null`` as an empty payload
- 2026-10-02: Initial creation (STORY-002)

TODO:
- None
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DATA_REPORT: int = 0x6052
"""Status data report.  Also the code the client uses for its handshake."""

DATA_REPORT_ALT: int = 0x6055
"""Alternate data report code used by some firmwares."""

COMMAND_SET: int = 0x6056
"""Client command wrapper for setting field values."""

RESPONSE_ACK: int = 0x6057
"""Device acknowledgement for a command."""

HANDSHAKE_ACK: int = 0
"""Device acknowledgement for the handshake (also seen as a generic ack)."""

ACK_CODES: frozenset[int] = frozenset({HANDSHAKE_ACK, RESPONSE_ACK})
DATA_REPORT_CODES: frozenset[int] = frozenset({DATA_REPORT, DATA_REPORT_ALT})

RESPONSE_SUCCESS: int = 0
"""Per-field response code meaning the device accepted the value."""

UNAVAILABLE_VALUE: int = 0xFFFF
"""Sentinel the device reports for a reading that is not available."""

DEFAULT_PORT: int = 8000
DEFAULT_TIMEOUT_MS: int = 2000


class MessageKind(Enum):
    """Message classes the session routes on."""

    ACK = "ack"
    DATA_REPORT = "data_report"
    UNKNOWN = "unknown"


# ---------------------------------------------------------------------------
# Message model
# ---------------------------------------------------------------------------


class DeviceMessage(BaseModel):
    """A single protocol message, inbound or outbound.

    Attributes:
        code: Message code identifying the message type.
        data: Field id -> value payload.  Absent or ``null`` on the wire is
            normalised to an empty dict.
    """

    code: int
    data: dict[str, Any] = Field(default_factory=dict)

    @field_validator("data", mode="before")
    @classmethod
    def _none_is_empty(cls, v: Any) -> Any:
        return {} if v is None else v

    @property
    def kind(self) -> MessageKind:
        """Classification of this message by its code."""
        return classify(self.code)

    def to_wire(self, *, crlf: bool = False) -> bytes:
        """Serialise to compact JSON, optionally terminated by CRLF."""
        payload = self.model_dump_json()
        if crlf:
            payload += "\r\n"
        return payload.encode("utf-8")


def classify(code: int) -> MessageKind:
    """Classify a message code.

    Args:
        code: The ``code`` field of a received message.

    Returns:
        :attr:`MessageKind.ACK`, :attr:`MessageKind.DATA_REPORT`, or
        :attr:`MessageKind.UNKNOWN`.
    """
    if code in ACK_CODES:
        return MessageKind.ACK
    if code in DATA_REPORT_CODES:
        return MessageKind.DATA_REPORT
    return MessageKind.UNKNOWN


def handshake_message() -> DeviceMessage:
    """Build the handshake sent right after TCP connect."""
    return DeviceMessage(code=DATA_REPORT, data={})


def command_message(fields: dict[str, Any]) -> DeviceMessage:
    """Build a set-command carrying *fields*."""
    return DeviceMessage(code=COMMAND_SET, data=dict(fields))
