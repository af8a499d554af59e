"""
BK215 device field map -- single source of truth.

Defines every device field identifier (the short ``tXXX`` keys carried in the
``data`` object of protocol messages), the registry state each field is
projected into, its value kind, and -- for writable fields -- the inclusive
range the device accepts.

Fields are organised into groups mirroring the registry channels:
``modes.*`` and ``config.*`` are read/write, ``status.*`` is read-only.  Some
firmwares include mode and config fields in their data reports, so every
group takes part in report projection.

CHANGELOG:
- 2026-10-05: Add expansion packs 4-7 (t1001-t1004, t948-t955)
- 2026-10-02: Initial creation (STORY-002)

TODO:
- None
"""

from __future__ import annotations

from dataclasses import dataclass

# ---------------------------------------------------------------------------
# Data definitions
# ---------------------------------------------------------------------------

NUMBER = "number"
BOOLEAN = "boolean"


@dataclass(frozen=True, slots=True)
class FieldDef:
    """Definition of a single device field.

    Attributes:
        field_id: Device key used in JSON payloads (e.g. ``"t363"``).
        state_id: Registry state the value is projected into
            (e.g. ``"config.system_charge_limit"``).
        kind: ``"number"`` or ``"boolean"``.  Boolean fields are transported
            as ``1`` / ``0``.
        writable: Whether a command may set this field.
        valid_range: Inclusive ``(min, max)`` accepted on write.  ``None``
            for read-only and boolean fields.
        description: Free-text description of the field.
    """

    field_id: str
    state_id: str
    kind: str
    writable: bool = False
    valid_range: tuple[int, int] | None = None
    description: str = ""

    def __post_init__(self) -> None:  # noqa: D105
        if self.kind not in (NUMBER, BOOLEAN):
            msg = f"Field '{self.field_id}': unknown kind '{self.kind}'"
            raise ValueError(msg)
        if self.writable and self.kind == NUMBER and self.valid_range is None:
            msg = f"Field '{self.field_id}': writable number needs valid_range"
            raise ValueError(msg)


# ---------------------------------------------------------------------------
# Modes (read/write, boolean)
# ---------------------------------------------------------------------------

MODE_FIELDS: list[FieldDef] = [
    FieldDef("t598", "modes.local_mode", BOOLEAN, writable=True,
             description="Local control mode"),
    FieldDef("t700_1", "modes.battery_charging_mode", BOOLEAN, writable=True,
             description="Battery charging mode"),
    FieldDef("t701_1", "modes.car_charging_mode", BOOLEAN, writable=True,
             description="Car charging mode"),
    FieldDef("t702_1", "modes.home_appliance_mode", BOOLEAN, writable=True,
             description="Home appliance mode"),
    FieldDef("t728", "modes.ac_active_mode", BOOLEAN, writable=True,
             description="AC output active"),
]

# ---------------------------------------------------------------------------
# System configuration (read/write, numeric)
# ---------------------------------------------------------------------------

CONFIG_FIELDS: list[FieldDef] = [
    FieldDef("t362", "config.system_discharge_limit", NUMBER, writable=True,
             valid_range=(1, 20), description="Minimum discharge SOC (%)"),
    FieldDef("t363", "config.system_charge_limit", NUMBER, writable=True,
             valid_range=(70, 100), description="Maximum charge SOC (%)"),
    FieldDef("t720", "config.home_discharge_cutoff", NUMBER, writable=True,
             valid_range=(5, 20), description="Home appliance minimum SOC (%)"),
    FieldDef("t721", "config.car_discharge_cutoff", NUMBER, writable=True,
             valid_range=(5, 40), description="EV charging minimum SOC (%)"),
    FieldDef("t727", "config.battery_charge_cutoff", NUMBER, writable=True,
             valid_range=(80, 100), description="Charging maximum SOC (%)"),
    FieldDef("t590", "config.system_charging_power", NUMBER, writable=True,
             valid_range=(0, 3600), description="System charging power (W)"),
    FieldDef("t596", "config.idle_shutdown_time", NUMBER, writable=True,
             valid_range=(15, 1440), description="Shutdown after no I/O (min)"),
    FieldDef("t597", "config.low_battery_shutdown_time", NUMBER, writable=True,
             valid_range=(5, 1440), description="Shutdown after DOD reached (min)"),
]

# ---------------------------------------------------------------------------
# Battery SOC (read-only)
# ---------------------------------------------------------------------------

SOC_FIELDS: list[FieldDef] = [
    FieldDef("t211", "status.overall_soc", NUMBER, description="Overall SOC (%)"),
    FieldDef("t592", "status.main_soc", NUMBER, description="Head unit SOC (%)"),
    FieldDef("t593", "status.slave1_soc", NUMBER, description="Expansion 1 SOC (%)"),
    FieldDef("t594", "status.slave2_soc", NUMBER, description="Expansion 2 SOC (%)"),
    FieldDef("t595", "status.slave3_soc", NUMBER, description="Expansion 3 SOC (%)"),
    FieldDef("t1001", "status.slave4_soc", NUMBER, description="Expansion 4 SOC (%)"),
    FieldDef("t1002", "status.slave5_soc", NUMBER, description="Expansion 5 SOC (%)"),
    FieldDef("t1003", "status.slave6_soc", NUMBER, description="Expansion 6 SOC (%)"),
    FieldDef("t1004", "status.slave7_soc", NUMBER, description="Expansion 7 SOC (%)"),
]

# ---------------------------------------------------------------------------
# BMS hardware limits (read-only)
# Each pack reports a discharge (min) and charge (max) SOC limit.
# ---------------------------------------------------------------------------


def _bms_pair(prefix: str, min_field: str, max_field: str) -> list[FieldDef]:
    return [
        FieldDef(min_field, f"status.{prefix}_bms_min", NUMBER,
                 description=f"{prefix} BMS discharge limit (%)"),
        FieldDef(max_field, f"status.{prefix}_bms_max", NUMBER,
                 description=f"{prefix} BMS charge limit (%)"),
    ]


BMS_FIELDS: list[FieldDef] = [
    *_bms_pair("main", "t507", "t508"),
    *_bms_pair("slave1", "t509", "t510"),
    *_bms_pair("slave2", "t511", "t512"),
    *_bms_pair("slave3", "t513", "t514"),
    *_bms_pair("slave4", "t948", "t949"),
    *_bms_pair("slave5", "t950", "t951"),
    *_bms_pair("slave6", "t952", "t953"),
    *_bms_pair("slave7", "t954", "t955"),
]

# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

ALL_FIELDS: list[FieldDef] = [
    *SOC_FIELDS,
    *BMS_FIELDS,
    *CONFIG_FIELDS,
    *MODE_FIELDS,
]
"""Every known field, in projection order."""

FIELDS_BY_ID: dict[str, FieldDef] = {f.field_id: f for f in ALL_FIELDS}
"""Flat lookup of every field by device field id."""

FIELDS_BY_STATE: dict[str, FieldDef] = {f.state_id: f for f in ALL_FIELDS}
"""Flat lookup of every field by registry state id."""

WRITE_FIELD_MAP: dict[str, str] = {
    f.state_id: f.field_id for f in ALL_FIELDS if f.writable
}
"""Writable registry state id -> device field id."""
