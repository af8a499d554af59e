"""
BK215 edge client configuration loaded from environment variables.

Uses Pydantic BaseSettings for automatic env var loading and validation.
All configuration values come from environment variables or .env files;
no hardcoded IPs, URLs, or credentials.

The port is validated strictly.  The timeout and the update interval are
clamped into their supported ranges instead of rejected, so a slightly-off
value still starts the client.

CHANGELOG:
- 2026-10-16: Drop the unused timeout_s property
- 2026-10-08: Add STATE_BASE_URL / STATE_TOKEN / PUBLISH_INTERVAL_S
- 2026-10-02: Initial creation (STORY-001)

TODO:
- None
"""

from pydantic import field_validator
from pydantic_settings import BaseSettings

MIN_TIMEOUT_MS = 500
MAX_TIMEOUT_MS = 600_000
MAX_UPDATE_INTERVAL_S = 3600


class Bk215Settings(BaseSettings):
    """Client configuration for one BK215 device.

    Attributes:
        bk215_host: Device IP address / hostname on the local LAN.
        bk215_port: Device TCP port (default 8000).
        bk215_timeout_ms: Connect and command timeout in milliseconds,
            clamped to 500..600000 (default 2000).
        update_interval_s: Report throttle interval in seconds, clamped to
            0..3600.  0 projects every report immediately.
        idle_watchdog: Drop and reconnect silent connections.
        read_only: Reject all writes.
        debug: Log every raw device message.
        state_base_url: Base URL of the home-automation state endpoint.
            Empty disables publishing.
        state_token: Bearer token for the state endpoint.
        publish_interval_s: Seconds between publish attempts (min 1).
        health_path: Path of the JSON health file.
    """

    bk215_host: str
    bk215_port: int = 8000
    bk215_timeout_ms: int = 2000
    update_interval_s: int = 0
    idle_watchdog: bool = True
    read_only: bool = False
    debug: bool = False
    state_base_url: str = ""
    state_token: str = ""
    publish_interval_s: int = 5
    health_path: str = "/data/health.json"

    @field_validator("bk215_host")
    @classmethod
    def host_must_be_set(cls, v: str) -> str:
        """Strip the host and reject an empty value."""
        v = v.strip()
        if not v:
            raise ValueError("BK215_HOST must not be empty")
        return v

    @field_validator("bk215_port")
    @classmethod
    def port_must_be_valid(cls, v: int) -> int:
        """Validate TCP port is in valid range."""
        if v < 1 or v > 65535:
            raise ValueError("BK215_PORT must be between 1 and 65535")
        return v

    @field_validator("bk215_timeout_ms")
    @classmethod
    def clamp_timeout(cls, v: int) -> int:
        """Clamp the timeout to MIN_TIMEOUT_MS..MAX_TIMEOUT_MS."""
        return min(MAX_TIMEOUT_MS, max(MIN_TIMEOUT_MS, v))

    @field_validator("update_interval_s")
    @classmethod
    def clamp_update_interval(cls, v: int) -> int:
        """Clamp the throttle interval to 0..MAX_UPDATE_INTERVAL_S."""
        return min(MAX_UPDATE_INTERVAL_S, max(0, v))

    @field_validator("state_base_url")
    @classmethod
    def state_base_url_must_be_http(cls, v: str) -> str:
        """Validate that the state endpoint, when set, is an http(s) URL."""
        v = v.strip()
        if v and not v.lower().startswith(("http://", "https://")):
            raise ValueError("STATE_BASE_URL must start with http:// or https://")
        return v

    @field_validator("publish_interval_s")
    @classmethod
    def publish_interval_must_be_positive(cls, v: int) -> int:
        """Validate publish interval is at least one second."""
        if v < 1:
            raise ValueError("PUBLISH_INTERVAL_S must be >= 1")
        return v

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}
