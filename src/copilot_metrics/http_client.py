"""Shared async HTTP client for the GitHub and Datadog clients.

One invocation opens a single connection pool; ``close_http_client`` must be
awaited before the event loop shuts down.
"""

import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0

_client: Optional[httpx.AsyncClient] = None


def get_http_client(timeout: float = DEFAULT_TIMEOUT) -> httpx.AsyncClient:
    """Return the shared client, creating it on first use."""
    global _client
    if _client is None or _client.is_closed:
        _client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=min(timeout, 5.0)),
            headers={"User-Agent": "copilot-metrics-forwarder"},
        )
        logger.debug("Created shared HTTP client (timeout=%.1fs)", timeout)
    return _client


async def close_http_client() -> None:
    """Close the shared client if one was opened."""
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
