"""Outbound delivery of engine results to the user's message channel.

The engine never renders or sends anything itself. After a choice is
committed, the API hands the outcome to a Transport, which forwards it to
whatever relays messages to the user (a chat bot bridge, a push service).

    async def deliver(self, channel_ref: str, payload: dict) -> None: ...

Two implementations are provided:

    HttpTransport — POSTs {"channel": ..., "payload": ...} as JSON to
                    {relay_url}/deliver.
    NullTransport — logs the payload and keeps the last 100 in memory.
                    Used when no relay is configured, and in tests.

Delivery happens after the commit, so a failed delivery never undoes a
choice; callers log TransportError and move on.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Any, Protocol

import httpx

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Transport protocol
# ---------------------------------------------------------------------------

class Transport(Protocol):
    async def deliver(self, channel_ref: str, payload: dict[str, Any]) -> None: ...


# ---------------------------------------------------------------------------
# HttpTransport: relay over HTTP
# ---------------------------------------------------------------------------

class HttpTransport:
    """Async HTTP client for a message relay.

    Args:
        relay_url: Base URL of the relay, e.g. "http://localhost:8080".
        api_key:   Bearer token, or empty string if not required.
        timeout:   HTTP timeout in seconds. Defaults to 10.
    """

    def __init__(self, relay_url: str, api_key: str = "", timeout: float = 10.0) -> None:
        self._base_url = relay_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    async def deliver(self, channel_ref: str, payload: dict[str, Any]) -> None:
        url = f"{self._base_url}/deliver"
        logger.debug("deliver channel=%s url=%s", channel_ref, url)

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(
                    url,
                    json={"channel": channel_ref, "payload": payload},
                    headers=self._headers(),
                )
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise TransportError(f"Cannot connect to relay at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            raise TransportError(f"Relay returned HTTP {e.response.status_code}") from e
        except httpx.TimeoutException as e:
            raise TransportError(f"Relay timed out after {self._timeout}s") from e


# ---------------------------------------------------------------------------
# NullTransport: no relay configured
# ---------------------------------------------------------------------------

class NullTransport:
    """Keeps payloads in memory instead of sending them."""

    def __init__(self) -> None:
        self.delivered: deque[tuple[str, dict[str, Any]]] = deque(maxlen=100)

    async def deliver(self, channel_ref: str, payload: dict[str, Any]) -> None:
        logger.debug("NullTransport channel=%s keys=%s", channel_ref, sorted(payload))
        self.delivered.append((channel_ref, payload))


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class TransportError(RuntimeError):
    """Raised when the relay cannot be reached or rejects a delivery."""
