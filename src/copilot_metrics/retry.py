"""Bounded retry for the GitHub and Datadog HTTP calls.

One explicit loop serves both clients. Each failure goes through
``is_retryable``; a terminal failure, or the failure of the last attempt, is
re-raised as the original httpx exception so each client can translate it
into its own error type.
"""

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Optional, Set

import httpx

logger = logging.getLogger(__name__)

# Throttling, gateway and server-side failures: worth another attempt
RETRYABLE_STATUS_CODES: Set[int] = {408, 429, 500, 502, 503, 504}

# Credential problems: a retry cannot succeed
AUTH_FAILURE_CODES: Set[int] = {401, 403}

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 1.0
DEFAULT_MAX_DELAY = 30.0


def is_retryable(exc: BaseException) -> bool:
    """True for a retryable HTTP status or any httpx transport failure."""
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS_CODES
    return isinstance(exc, httpx.TransportError)


async def retry_with_backoff(
    fn: Callable[..., Awaitable[Any]],
    *args: Any,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    on_retry: Optional[Callable[[int], None]] = None,
    **kwargs: Any,
) -> Any:
    """Await ``fn(*args, **kwargs)``, making at most ``max_attempts`` attempts.

    Between attempts the loop sleeps for the server's Retry-After when given,
    otherwise for a full-jitter exponential delay (see ``backoff_delay``).
    ``on_retry`` is called with the number of each failed attempt that will
    be retried.

    Raises:
        httpx.HTTPStatusError: Terminal status, or retryable status on the
            last attempt.
        httpx.TransportError: Transport failure on the last attempt.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    attempt = 0
    while True:
        attempt += 1
        try:
            return await fn(*args, **kwargs)
        except (httpx.HTTPStatusError, httpx.TransportError) as exc:
            if attempt >= max_attempts or not is_retryable(exc):
                raise
            response = exc.response if isinstance(exc, httpx.HTTPStatusError) else None
            delay = backoff_delay(attempt - 1, base_delay, max_delay, response)
            cause = f"HTTP {response.status_code}" if response is not None else type(exc).__name__
            logger.warning(
                "Attempt %d/%d failed (%s); retrying in %.1fs",
                attempt,
                max_attempts,
                cause,
                delay,
            )
            if on_retry is not None:
                on_retry(attempt)
            await asyncio.sleep(delay)


def backoff_delay(
    retry_number: int,
    base_delay: float,
    max_delay: float,
    response: Optional[httpx.Response] = None,
) -> float:
    """Seconds to wait before retry ``retry_number`` (0-based), capped at max_delay.

    A numeric Retry-After on the response wins; otherwise the delay is drawn
    uniformly from ``[0, base_delay * 2**retry_number]``.
    """
    if response is not None:
        retry_after = parse_retry_after(response)
        if retry_after is not None:
            return min(retry_after, max_delay)
    ceiling = min(base_delay * (2 ** retry_number), max_delay)
    return random.uniform(0, ceiling)


def parse_retry_after(response: httpx.Response) -> Optional[float]:
    """Retry-After in seconds, or None when absent or given as an HTTP date."""
    raw = response.headers.get("Retry-After") or response.headers.get("retry-after")
    try:
        return float(raw) if raw is not None else None
    except ValueError:
        return None
