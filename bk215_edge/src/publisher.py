"""
HTTP publisher pushing registry state changes to the home-automation host.

Reads pending changes from the :class:`~bk215_edge.src.states.StateRegistry`,
POSTs them as JSON to ``{base_url}/api/states`` with Bearer token
authentication, and acks the published values in the registry on success.
Implements exponential backoff on failure (1s -> 2s -> 4s -> ... ->
MAX_BACKOFF_S max); the publish loop in :mod:`bk215_edge.src.main` waits that
long before the next attempt.

Operations:
- publish(registry): Peek changes, POST, ack on success.
- current_backoff: Seconds to wait before the next attempt.

CHANGELOG:
- 2026-10-08: Initial creation, adapted from the batch uploader (STORY-012)

TODO:
- None
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx

if TYPE_CHECKING:
    from bk215_edge.src.states import StateRegistry

logger = logging.getLogger(__name__)

_INITIAL_BACKOFF_S = 1.0
_DEFAULT_MAX_BACKOFF_S = 300.0
_REQUEST_TIMEOUT_S = 10.0


class StatePublisher:
    """Publishes changed registry states over HTTP.

    On failure (non-2xx status, timeout, connection error) nothing is acked
    and the backoff delay doubles, capped at ``max_backoff_s``.  On success
    the backoff resets to 1 second.

    Args:
        base_url: Base URL of the state endpoint.  Must start with
            ``http://`` or ``https://``.
        token: Bearer token; omitted from requests when empty.
        max_backoff_s: Maximum backoff delay in seconds (default 300).

    Raises:
        ValueError: If *base_url* is not an http(s) URL.

    Usage::

        publisher = StatePublisher("http://homeassistant.local:8123", "tok")
        ok = await publisher.publish(registry)
    """

    def __init__(
        self,
        base_url: str,
        token: str = "",
        max_backoff_s: float = _DEFAULT_MAX_BACKOFF_S,
    ) -> None:
        if not base_url.lower().startswith(("http://", "https://")):
            raise ValueError(f"State base URL must be http(s) (got: '{base_url}').")
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._max_backoff_s = max_backoff_s
        self._current_backoff = _INITIAL_BACKOFF_S

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def current_backoff(self) -> float:
        """Seconds the publish loop should wait after a failed attempt."""
        return self._current_backoff

    async def publish(self, registry: StateRegistry) -> bool:
        """Push pending state changes and ack them on success.

        Returns:
            ``True`` if changes were published and acked.  ``False`` if there
            was nothing to publish or the request failed.
        """
        changes = registry.peek_changes()
        if not changes:
            logger.debug("No state changes, skipping publish.")
            return False

        headers = {"Authorization": f"Bearer {self._token}"} if self._token else {}
        try:
            async with httpx.AsyncClient(timeout=_REQUEST_TIMEOUT_S) as client:
                response = await client.post(
                    f"{self._base_url}/api/states",
                    json={"states": changes},
                    headers=headers,
                )
        except (httpx.ConnectError, httpx.TimeoutException) as exc:
            logger.warning("Publish failed (network error): %s", exc)
            self._back_off()
            return False

        if 200 <= response.status_code < 300:
            registry.ack(changes)
            logger.info("Published %d state change(s).", len(changes))
            self._current_backoff = _INITIAL_BACKOFF_S
            return True

        self._back_off()
        logger.warning(
            "Publish rejected (HTTP %d), next attempt in %.1fs.",
            response.status_code,
            self._current_backoff,
        )
        return False

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _back_off(self) -> None:
        self._current_backoff = min(self._current_backoff * 2, self._max_backoff_s)
