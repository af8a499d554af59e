"""
Unit tests for the health file writer.

CHANGELOG:
- 2026-10-08: Track connection state and last error
- 2026-10-02: Initial creation (STORY-013)

TODO:
- None
"""

from __future__ import annotations

import json
from pathlib import Path

from bk215_edge.src.health import HealthWriter


def _read(path: Path) -> dict:
    return json.loads(path.read_text())


class TestHealthFile:
    """Every record_* call rewrites the file."""

    def test_record_connection_writes_file(self, tmp_path: Path) -> None:
        path = tmp_path / "health.json"
        HealthWriter(path).record_connection(True)
        assert _read(path) == {
            "connected": True,
            "last_report_ts": None,
            "last_publish_ts": None,
            "last_error": None,
        }

    def test_error_kept_across_reconnect(self, tmp_path: Path) -> None:
        path = tmp_path / "health.json"
        writer = HealthWriter(path)
        writer.record_connection(False, "Socket error: reset")
        writer.record_connection(True)
        data = _read(path)
        assert data["connected"] is True
        assert data["last_error"] == "Socket error: reset"

    def test_record_report_sets_timestamp(self, tmp_path: Path) -> None:
        path = tmp_path / "health.json"
        writer = HealthWriter(path)
        writer.record_report()
        data = _read(path)
        assert data["last_report_ts"] is not None
        assert data["last_publish_ts"] is None

    def test_record_publish_does_not_touch_report_ts(self, tmp_path: Path) -> None:
        path = tmp_path / "health.json"
        writer = HealthWriter(path)
        writer.record_report()
        report_ts = _read(path)["last_report_ts"]
        writer.record_publish()
        data = _read(path)
        assert data["last_report_ts"] == report_ts
        assert data["last_publish_ts"] is not None

    def test_accepts_string_path(self, tmp_path: Path) -> None:
        path = tmp_path / "health.json"
        writer = HealthWriter(str(path))
        writer.record_publish()
        assert path.exists()
