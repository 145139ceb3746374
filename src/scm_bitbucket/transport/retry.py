"""Retry with exponential backoff for outbound SCM requests.

Transparent to callers: wrap any async callable returning an httpx.Response and
it retries on transient failures.
"""

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Set

import httpx

from ..scm.exceptions import TransportError

logger = logging.getLogger(__name__)

# Status codes that trigger a retry
RETRYABLE_STATUS_CODES: Set[int] = {429, 500, 502, 503, 504}

# Status codes that should NOT be retried (auth failures)
AUTH_FAILURE_CODES: Set[int] = {401, 403}

DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY = 1.0
DEFAULT_MAX_DELAY = 30.0


async def retry_with_backoff(
    fn: Callable[..., Awaitable[httpx.Response]],
    *args: Any,
    max_retries: int = DEFAULT_MAX_RETRIES,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    **kwargs: Any,
) -> httpx.Response:
    """Execute an async request function with retry and exponential backoff.

    Retries on:
      - HTTP 429, 500, 502, 503, 504
      - any httpx.TransportError (connect, timeout, read/write, protocol)

    Never retries:
      - HTTP 401, 403 (the response is handed back untouched)

    Unlike a raise-for-status wrapper, a response is always returned once the
    retry budget is spent; turning it into an error is the caller's job.
    On 429, uses Retry-After header if present, else exponential backoff.
    Uses full jitter: delay = random(0, min(max_delay, base_delay * 2^attempt)).

    Args:
        fn: Async callable returning an httpx.Response.
        max_retries: Maximum number of retry attempts (default 3).
        base_delay: Base delay in seconds (default 1.0).
        max_delay: Maximum delay cap in seconds (default 30.0).

    Returns:
        The last response produced by fn(*args, **kwargs).

    Raises:
        TransportError: On transport failures (connection, timeout, read, write,
            protocol) after exhausting retries.
    """
    for attempt in range(max_retries + 1):
        try:
            response = await fn(*args, **kwargs)

        except httpx.TransportError as exc:
            if attempt < max_retries:
                delay = _compute_delay(attempt, base_delay, max_delay)
                logger.warning(
                    "Connection error (attempt %d/%d), waiting %.1fs: %s",
                    attempt + 1,
                    max_retries,
                    delay,
                    type(exc).__name__,
                )
                await asyncio.sleep(delay)
                continue

            raise TransportError(
                f"Request failed after {max_retries} retries: {type(exc).__name__}"
            ) from exc

        status = response.status_code
        if status in RETRYABLE_STATUS_CODES and attempt < max_retries:
            delay = _compute_delay(attempt, base_delay, max_delay, response)
            logger.warning(
                "Retryable HTTP %d (attempt %d/%d), waiting %.1fs",
                status,
                attempt + 1,
                max_retries,
                delay,
            )
            await asyncio.sleep(delay)
            continue

        return response

    # range() always runs at least once and every branch returns, raises or continues
    raise AssertionError("unreachable")  # pragma: no cover


def _compute_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    response: httpx.Response | None = None,
) -> float:
    """Compute retry delay with full jitter.

    On 429, prefers the Retry-After header value if present.
    """
    if response is not None:
        retry_after = _parse_retry_after(response)
        if retry_after is not None:
            return min(retry_after, max_delay)

    # Full jitter: uniform random in [0, min(max_delay, base * 2^attempt)]
    exp_delay = base_delay * (2**attempt)
    return random.uniform(0, min(exp_delay, max_delay))


def _parse_retry_after(response: httpx.Response) -> float | None:
    """Parse Retry-After header (seconds only, not HTTP-date)."""
    value = response.headers.get("Retry-After") or response.headers.get("retry-after")
    if value is None:
        return None
    try:
        return float(value)
    except (ValueError, TypeError):
        return None
