"""
Unit tests for the protocol message model and field map.

Tests verify:
- Message codes are classified into ack / data report / unknown.
- Missing or null ``data`` becomes an empty dict.
- Handshake and command messages serialise to the expected wire bytes.
- The field map has unique ids and every writable number carries a range.

CHANGELOG:
- 2026-10-05: Cover expansion pack fields
- 2026-10-02: Initial creation (STORY-002)

TODO:
- None
"""

from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from bk215_edge.src.fields import (
    ALL_FIELDS,
    BOOLEAN,
    FIELDS_BY_ID,
    FIELDS_BY_STATE,
    NUMBER,
    WRITE_FIELD_MAP,
    FieldDef,
)
from bk215_edge.src.models import (
    COMMAND_SET,
    DATA_REPORT,
    DeviceMessage,
    MessageKind,
    classify,
    command_message,
    handshake_message,
)

# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


class TestClassify:
    """Closed partition of message codes."""

    @pytest.mark.parametrize("code", [0, 0x6057])
    def test_ack_codes(self, code: int) -> None:
        """Handshake ack and command ack are both acks."""
        assert classify(code) is MessageKind.ACK

    @pytest.mark.parametrize("code", [0x6052, 0x6055])
    def test_data_report_codes(self, code: int) -> None:
        """Primary and alternate report codes are data reports."""
        assert classify(code) is MessageKind.DATA_REPORT

    @pytest.mark.parametrize("code", [0x6056, 1, 0x6058, -1])
    def test_unknown_codes(self, code: int) -> None:
        """Everything else is unknown."""
        assert classify(code) is MessageKind.UNKNOWN


# ---------------------------------------------------------------------------
# DeviceMessage
# ---------------------------------------------------------------------------


class TestDeviceMessage:
    """Validation and serialisation of protocol messages."""

    def test_missing_data_is_empty(self) -> None:
        """A message without ``data`` gets an empty mapping."""
        msg = DeviceMessage.model_validate({"code": 0})
        assert msg.data == {}
        assert msg.kind is MessageKind.ACK

    def test_null_data_is_empty(self) -> None:
        """``"data": null`` is accepted as an empty mapping."""
        msg = DeviceMessage.model_validate({"code": 0x6052, "data": None})
        assert msg.data == {}

    def test_missing_code_rejected(self) -> None:
        """A message without ``code`` fails validation."""
        with pytest.raises(ValidationError):
            DeviceMessage.model_validate({"data": {"t211": 50}})

    def test_non_object_data_rejected(self) -> None:
        """A list payload fails validation."""
        with pytest.raises(ValidationError):
            DeviceMessage.model_validate({"code": 0x6052, "data": [1, 2]})

    def test_handshake_wire_format(self) -> None:
        """The handshake is code 0x6052 with empty data, CRLF terminated."""
        wire = handshake_message().to_wire(crlf=True)
        assert wire.endswith(b"\r\n")
        assert json.loads(wire) == {"code": DATA_REPORT, "data": {}}

    def test_command_wire_format(self) -> None:
        """A command is code 0x6056 carrying the fields, no terminator."""
        wire = command_message({"t363": 90}).to_wire()
        assert not wire.endswith(b"\n")
        assert json.loads(wire) == {"code": COMMAND_SET, "data": {"t363": 90}}

    def test_command_message_copies_fields(self) -> None:
        """Mutating the input dict does not change the built message."""
        fields = {"t598": 1}
        msg = command_message(fields)
        fields["t598"] = 0
        assert msg.data == {"t598": 1}


# ---------------------------------------------------------------------------
# Field map
# ---------------------------------------------------------------------------


class TestFieldMap:
    """Structural invariants of the field definitions."""

    def test_field_ids_unique(self) -> None:
        """No device field id is defined twice."""
        ids = [f.field_id for f in ALL_FIELDS]
        assert len(ids) == len(set(ids))
        assert len(FIELDS_BY_ID) == len(ALL_FIELDS)

    def test_state_ids_unique(self) -> None:
        """No registry state id is defined twice."""
        assert len(FIELDS_BY_STATE) == len(ALL_FIELDS)

    def test_writable_numbers_have_ranges(self) -> None:
        """Every writable numeric field declares its accepted range."""
        for fdef in ALL_FIELDS:
            if fdef.writable and fdef.kind == NUMBER:
                assert fdef.valid_range is not None, fdef.field_id
                lo, hi = fdef.valid_range
                assert lo <= hi

    def test_write_map(self) -> None:
        """The write map covers exactly the writable fields."""
        assert WRITE_FIELD_MAP["config.system_charge_limit"] == "t363"
        assert WRITE_FIELD_MAP["modes.local_mode"] == "t598"
        assert "status.overall_soc" not in WRITE_FIELD_MAP
        assert len(WRITE_FIELD_MAP) == sum(1 for f in ALL_FIELDS if f.writable)

    def test_known_ranges(self) -> None:
        """Spot-check device write limits."""
        assert FIELDS_BY_ID["t362"].valid_range == (1, 20)
        assert FIELDS_BY_ID["t363"].valid_range == (70, 100)
        assert FIELDS_BY_ID["t590"].valid_range == (0, 3600)
        assert FIELDS_BY_ID["t597"].valid_range == (5, 1440)

    def test_expansion_pack_fields(self) -> None:
        """Packs 4-7 are mapped for both SOC and BMS limits."""
        assert FIELDS_BY_ID["t1004"].state_id == "status.slave7_soc"
        assert FIELDS_BY_ID["t954"].state_id == "status.slave7_bms_min"
        assert FIELDS_BY_ID["t955"].state_id == "status.slave7_bms_max"

    def test_mode_fields_are_boolean(self) -> None:
        """All ``modes.*`` states are writable booleans."""
        modes = [f for f in ALL_FIELDS if f.state_id.startswith("modes.")]
        assert modes
        assert all(f.kind == BOOLEAN and f.writable for f in modes)

    def test_unknown_kind_rejected(self) -> None:
        """FieldDef refuses an unknown kind."""
        with pytest.raises(ValueError, match="unknown kind"):
            FieldDef("t1", "status.x", "string")

    def test_writable_number_without_range_rejected(self) -> None:
        """FieldDef refuses a writable number with no range."""
        with pytest.raises(ValueError, match="valid_range"):
            FieldDef("t1", "config.x", NUMBER, writable=True)
