"""
Edge daemon main loop for the BK215 battery inverter client.

The device side is event driven: the adapter's session reacts to socket and
timer events on its own.  The daemon adds one asyncio loop on top:

- **Publish loop**: calls publisher.publish(registry) to push changed registry
  states to the home-automation host over HTTP, waiting the publisher's
  backoff after a failure.

The loop is resilient: an exception in one iteration is logged and does not
crash the loop.  Graceful shutdown on SIGTERM/SIGINT sets a shared
asyncio.Event; the adapter is then stopped (failing pending commands and
releasing the socket) and one final publish is attempted before exiting.

Structured JSON logging is used for all events.

CHANGELOG:
- 2026-10-09: Skip the publish loop entirely when STATE_BASE_URL is empty
- 2026-10-08: Initial creation (STORY-014)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import contextlib
import hashlib
import json
import logging
import signal
import sys
from datetime import UTC, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from bk215_edge.src.adapter import Bk215Adapter
    from bk215_edge.src.health import HealthWriter
    from bk215_edge.src.publisher import StatePublisher
    from bk215_edge.src.states import StateRegistry

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Structured JSON logging setup
# ---------------------------------------------------------------------------


class JsonLogFormatter(logging.Formatter):
    """One JSON object per log line.

    Keys: ``ts`` (UTC ISO-8601), ``level``, ``logger``, ``msg`` and, when the
    record carries one, ``exception``.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, str] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def configure_logging(debug: bool = False) -> None:
    """Route all logging through a single JSON handler on stderr.

    Args:
        debug: Log at DEBUG instead of INFO.
    """
    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(JsonLogFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(stderr_handler)
    root.setLevel(logging.DEBUG if debug else logging.INFO)


def _masked_token(value: str | None) -> str:
    """Fingerprint a secret for logs: its length and a short SHA-256 prefix."""
    if not value:
        return "empty"
    fingerprint = hashlib.sha256(value.encode()).hexdigest()[:10]
    return f"len={len(value)} sha256={fingerprint}"


# ---------------------------------------------------------------------------
# Startup config logging
# ---------------------------------------------------------------------------


def log_config_summary(settings: object) -> None:
    """Log a config summary at startup, excluding secrets.

    Args:
        settings: A Bk215Settings instance (or any object with the same attrs).
    """
    logger.info(
        "BK215 client starting with config: "
        "host=%s, port=%s, timeout_ms=%s, update_interval_s=%s, "
        "idle_watchdog=%s, read_only=%s, debug=%s, "
        "state_base_url=%s, publish_interval_s=%s, health_path=%s, "
        "state_token_masked=%s",
        settings.bk215_host,  # type: ignore[attr-defined]
        settings.bk215_port,  # type: ignore[attr-defined]
        settings.bk215_timeout_ms,  # type: ignore[attr-defined]
        settings.update_interval_s,  # type: ignore[attr-defined]
        settings.idle_watchdog,  # type: ignore[attr-defined]
        settings.read_only,  # type: ignore[attr-defined]
        settings.debug,  # type: ignore[attr-defined]
        settings.state_base_url or "disabled",  # type: ignore[attr-defined]
        settings.publish_interval_s,  # type: ignore[attr-defined]
        settings.health_path,  # type: ignore[attr-defined]
        _masked_token(settings.state_token),  # type: ignore[attr-defined]
    )


# ---------------------------------------------------------------------------
# Single-iteration function (easily testable)
# ---------------------------------------------------------------------------


async def _publish_once(
    *,
    publisher: StatePublisher,
    registry: StateRegistry,
    health: HealthWriter | None = None,
) -> bool:
    """Execute a single publish cycle.

    Catches all exceptions so that the caller's loop is never broken.
    On a successful publish the health writer records a publish timestamp.

    Returns:
        True if publish succeeded, False otherwise.
    """
    try:
        result = await publisher.publish(registry)
        if result:
            if health is not None:
                health.record_publish()
        else:
            logger.debug("Publish returned False (no changes or failure)")
        return result
    except Exception:
        logger.error("Publish cycle error", exc_info=True)
        return False


# ---------------------------------------------------------------------------
# Loop runner
# ---------------------------------------------------------------------------


async def _publish_loop(
    *,
    publisher: StatePublisher,
    registry: StateRegistry,
    publish_interval_s: float,
    shutdown_event: asyncio.Event,
    health: HealthWriter | None = None,
) -> None:
    """Run the publish loop until shutdown_event is set.

    Executes _publish_once, then sleeps for publish_interval_s (or the
    publisher's backoff after a failure), checking the shutdown event
    between iterations.
    """
    logger.info("Publish loop started (interval=%ss)", publish_interval_s)
    while not shutdown_event.is_set():
        ok = await _publish_once(publisher=publisher, registry=registry, health=health)
        wait_s = publish_interval_s
        if not ok and registry.peek_changes():
            wait_s = max(publish_interval_s, publisher.current_backoff)
        # Use wait with timeout so we can check shutdown between sleeps
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(shutdown_event.wait(), timeout=wait_s)
    logger.info("Publish loop stopped")


async def run(
    *,
    adapter: Bk215Adapter,
    registry: StateRegistry,
    publisher: StatePublisher | None,
    publish_interval_s: float,
    shutdown_event: asyncio.Event,
    health: HealthWriter | None = None,
) -> None:
    """Start the adapter and publish until shutdown.

    When the shutdown_event is set, the adapter is stopped and, if a
    publisher is configured, a final publish is attempted before returning.
    """
    if not adapter.start():
        logger.error("Adapter did not start, exiting")
        return

    if publisher is not None:
        await _publish_loop(
            publisher=publisher,
            registry=registry,
            publish_interval_s=publish_interval_s,
            shutdown_event=shutdown_event,
            health=health,
        )
    else:
        logger.info("STATE_BASE_URL not set, states are kept in memory only")
        await shutdown_event.wait()

    adapter.stop()

    if publisher is not None:
        logger.info("Attempting final publish before exit")
        await _publish_once(publisher=publisher, registry=registry, health=health)
    logger.info("Shutdown complete")


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


async def async_main() -> None:
    """Async entrypoint: load config, build components, run.

    Sets up SIGTERM/SIGINT handlers to trigger graceful shutdown.
    """
    from bk215_edge.src.adapter import Bk215Adapter
    from bk215_edge.src.config import Bk215Settings
    from bk215_edge.src.health import HealthWriter
    from bk215_edge.src.publisher import StatePublisher
    from bk215_edge.src.states import StateRegistry

    settings = Bk215Settings()
    configure_logging(debug=settings.debug)
    log_config_summary(settings)

    shutdown_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: _handle_signal(shutdown_event),
        )

    registry = StateRegistry()
    health = HealthWriter(settings.health_path)
    adapter = Bk215Adapter(
        host=settings.bk215_host,
        port=settings.bk215_port,
        timeout_ms=settings.bk215_timeout_ms,
        update_interval_s=settings.update_interval_s,
        registry=registry,
        health=health,
        read_only=settings.read_only,
        debug=settings.debug,
        idle_watchdog=settings.idle_watchdog,
    )
    publisher = (
        StatePublisher(settings.state_base_url, settings.state_token)
        if settings.state_base_url
        else None
    )

    await run(
        adapter=adapter,
        registry=registry,
        publisher=publisher,
        publish_interval_s=settings.publish_interval_s,
        shutdown_event=shutdown_event,
        health=health,
    )


def _handle_signal(shutdown_event: asyncio.Event) -> None:
    """Handle SIGTERM/SIGINT by setting the shutdown event."""
    logger.info("Received shutdown signal, initiating graceful shutdown")
    shutdown_event.set()


def main() -> None:
    """Synchronous entrypoint for the edge daemon."""
    asyncio.run(async_main())


if __name__ == "__main__":
    main()
