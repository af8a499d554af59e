"""
Shared test fixtures for BK215 edge client tests.

Provides environment variable fixtures for Bk215Settings configuration tests
and a recording fake of DeviceSession for adapter tests.  All client env vars
are cleaned before each test to ensure isolation.

CHANGELOG:
- 2026-10-06: Add FakeSession fixture for adapter tests
- 2026-10-02: Initial creation (STORY-001)

TODO:
- None
"""

from __future__ import annotations

from typing import Any

import pytest

# All Bk215Settings environment variable names, used for cleanup.
_ALL_CLIENT_ENV_VARS = (
    "BK215_HOST",
    "BK215_PORT",
    "BK215_TIMEOUT_MS",
    "UPDATE_INTERVAL_S",
    "IDLE_WATCHDOG",
    "READ_ONLY",
    "DEBUG",
    "STATE_BASE_URL",
    "STATE_TOKEN",
    "PUBLISH_INTERVAL_S",
    "HEALTH_PATH",
)


@pytest.fixture(autouse=True)
def _clean_client_env(monkeypatch: pytest.MonkeyPatch, tmp_path: str) -> None:
    """Remove all client env vars and isolate from .env files before each test.

    Changes working directory to tmp_path so no .env file is accidentally
    loaded by Pydantic BaseSettings.
    """
    for var in _ALL_CLIENT_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def env_vars_full(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Set every environment variable for Bk215Settings.

    Returns the dict of env var names to values for assertion convenience.
    """
    env = {
        "BK215_HOST": "192.168.1.60",
        "BK215_PORT": "8001",
        "BK215_TIMEOUT_MS": "3000",
        "UPDATE_INTERVAL_S": "10",
        "IDLE_WATCHDOG": "false",
        "READ_ONLY": "true",
        "DEBUG": "true",
        "STATE_BASE_URL": "http://homeassistant.local:8123",
        "STATE_TOKEN": "test-state-token",
        "PUBLISH_INTERVAL_S": "15",
        "HEALTH_PATH": "/tmp/test-health.json",
    }
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env


@pytest.fixture()
def env_vars_required_only(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Set only the required environment variables (no optional ones)."""
    env = {"BK215_HOST": "10.0.0.50"}
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env


# ---------------------------------------------------------------------------
# Fake session
# ---------------------------------------------------------------------------


class FakeSession:
    """Stands in for DeviceSession; records calls and exposes the callbacks.

    Tests drive the adapter by invoking ``on_connect`` / ``on_close`` /
    ``on_error`` / ``on_message`` directly.
    """

    def __init__(self, *, idle_watchdog: bool = True, **callbacks: Any) -> None:
        self.callbacks = callbacks
        self.idle_watchdog = idle_watchdog
        self.connected = False
        self.connect_calls: list[tuple[str, int, float]] = []
        self.sent: list[dict[str, Any]] = []
        self.reconnects: list[tuple[str, int, float]] = []
        self.destroyed = 0

    def is_connected(self) -> bool:
        return self.connected

    def connect(self, host: str, port: int, timeout_s: float) -> None:
        self.connect_calls.append((host, port, timeout_s))

    def send_command(self, fields: dict[str, Any]) -> bool:
        self.sent.append(dict(fields))
        return self.connected

    def schedule_reconnect(self, host: str, port: int, timeout_s: float) -> float:
        self.reconnects.append((host, port, timeout_s))
        return 5.0

    def destroy(self) -> None:
        self.destroyed += 1
        self.connected = False

    # Helpers to simulate session events

    def fire_connect(self) -> None:
        self.connected = True
        self.callbacks["on_connect"]()

    def fire_error(self, exc: Exception) -> None:
        self.callbacks["on_error"](exc)

    def fire_close(self) -> None:
        self.connected = False
        self.callbacks["on_close"]()

    def fire_message(self, msg: Any) -> None:
        self.callbacks["on_message"](msg)


@pytest.fixture()
def fake_session_factory() -> Any:
    """Return a session factory that records the FakeSession it builds."""

    class _Factory:
        session: FakeSession | None = None

        def __call__(self, **kwargs: Any) -> FakeSession:
            self.session = FakeSession(**kwargs)
            return self.session

    return _Factory()
