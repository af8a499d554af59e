"""
Health file writer for the BK215 edge client.

Writes a JSON health file at a configurable path with four fields:
- connected: Whether the device TCP session is currently up.
- last_report_ts: ISO timestamp of the most recent projected data report.
- last_publish_ts: ISO timestamp of the most recent successful state publish.
- last_error: Text of the most recent transport error, or null.

The file is rewritten on every state change, providing a simple liveness
signal that Docker HEALTHCHECK or monitoring can inspect.

CHANGELOG:
- 2026-10-08: Track connection state and last error instead of spool depth
- 2026-10-02: Initial creation (STORY-013)

TODO:
- None
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path


class HealthWriter:
    """Writes client health status to a JSON file.

    Each mutating method updates the in-memory state and immediately
    rewrites the health file so it always reflects the latest status.

    Args:
        path: Filesystem path for the health JSON file. Accepts str or Path.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._connected: bool = False
        self._last_report_ts: str | None = None
        self._last_publish_ts: str | None = None
        self._last_error: str | None = None

    def record_connection(self, connected: bool, error: str | None = None) -> None:
        """Record a connection state change and write health file.

        Args:
            connected: New connection state.
            error: Error text when the change was caused by a failure.
        """
        self._connected = connected
        if error is not None:
            self._last_error = error
        self._write()

    def record_report(self) -> None:
        """Record a projected data report and write health file."""
        self._last_report_ts = datetime.now(tz=UTC).isoformat()
        self._write()

    def record_publish(self) -> None:
        """Record a successful publish and write health file."""
        self._last_publish_ts = datetime.now(tz=UTC).isoformat()
        self._write()

    def _write(self) -> None:
        """Write the health JSON file with current state."""
        data = {
            "connected": self._connected,
            "last_report_ts": self._last_report_ts,
            "last_publish_ts": self._last_publish_ts,
            "last_error": self._last_error,
        }
        self.path.write_text(json.dumps(data))
