"""Resilient HTTP executor shared by every outbound Bitbucket call.

Wraps a single httpx.AsyncClient (connection pooling) with retry/backoff and a
circuit breaker. Responses come back as a uniform ScmResponse; only transport
problems raise.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

import httpx

from ..scm.exceptions import CircuitOpenError, TransportError
from .breaker import CircuitBreaker
from .retry import (
    DEFAULT_BASE_DELAY,
    DEFAULT_MAX_DELAY,
    DEFAULT_MAX_RETRIES,
    retry_with_backoff,
)

logger = logging.getLogger(__name__)

IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "PUT", "DELETE"})


@dataclass
class ScmResponse:
    """Status code and decoded body of a completed HTTP call."""
    status_code: int
    body: Any = None
    text: str = ""
    headers: Mapping[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


def decode_body(response: httpx.Response) -> Any:
    """Decode a response body as JSON, falling back to text."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


class HttpExecutor:
    """Performs HTTP calls with retry and circuit breaking.

    Args:
        timeout: Per-request timeout in seconds.
        max_retries: Retry budget for retryable statuses and transport errors.
        base_delay: Backoff base delay in seconds.
        max_delay: Backoff delay cap in seconds.
        failure_threshold: Consecutive failures before the breaker opens.
        reset_timeout: Seconds an open breaker waits before probing.
        client: Optional pre-built httpx.AsyncClient (tests inject a MockTransport).
    """

    def __init__(
        self,
        timeout: float = 10.0,
        max_retries: int = DEFAULT_MAX_RETRIES,
        base_delay: float = DEFAULT_BASE_DELAY,
        max_delay: float = DEFAULT_MAX_DELAY,
        failure_threshold: int = 5,
        reset_timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.breaker = CircuitBreaker(
            failure_threshold=failure_threshold,
            reset_timeout=reset_timeout,
        )
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            limits=httpx.Limits(max_keepalive_connections=20, max_connections=100),
        )
        self._total = 0
        self._success = 0
        self._failure = 0
        self._timeouts = 0
        self._concurrent = 0
        self._elapsed_total = 0.0

    async def run_command(
        self,
        method: str,
        url: str,
        *,
        token: Optional[str] = None,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
        auth: Optional[Tuple[str, str]] = None,
        idempotent: Optional[bool] = None,
    ) -> ScmResponse:
        """Send a request and return its status code and decoded body.

        POST requests are sent exactly once unless idempotent=True is passed;
        every other method is retried per the executor's retry budget.

        Raises:
            CircuitOpenError: The breaker is open.
            TransportError: Connection failure or timeout after retries.
        """
        method = method.upper()
        if idempotent is None:
            idempotent = method in IDEMPOTENT_METHODS

        if not self.breaker.allow_request():
            raise CircuitOpenError(
                "Circuit breaker is open; retry in "
                f"{self.breaker.time_until_half_open():.1f}s"
            )

        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        async def _do_request() -> httpx.Response:
            return await self._client.request(
                method,
                url,
                headers=headers,
                json=json,
                params=params,
                data=data,
                auth=auth,
            )

        self._total += 1
        self._concurrent += 1
        started = time.monotonic()
        try:
            response = await retry_with_backoff(
                _do_request,
                max_retries=self.max_retries if idempotent else 0,
                base_delay=self.base_delay,
                max_delay=self.max_delay,
            )
        except TransportError as exc:
            self._failure += 1
            if isinstance(exc.__cause__, httpx.TimeoutException):
                self._timeouts += 1
            self.breaker.record_failure()
            logger.warning("%s %s failed: %s", method, _strip_query(url), exc)
            raise
        finally:
            self._concurrent -= 1
            self._elapsed_total += time.monotonic() - started

        if response.status_code >= 500:
            self._failure += 1
            self.breaker.record_failure()
        else:
            self._success += 1
            self.breaker.record_success()

        logger.debug("%s %s -> %d", method, _strip_query(url), response.status_code)
        return ScmResponse(
            status_code=response.status_code,
            body=decode_body(response),
            text=response.text,
            headers=response.headers,
        )

    def stats(self) -> Dict[str, Any]:
        """Request counters and breaker state."""
        average_ms = (self._elapsed_total / self._total * 1000) if self._total else 0
        return {
            "requests": {
                "total": self._total,
                "success": self._success,
                "failure": self._failure,
                "timeouts": self._timeouts,
                "concurrent": self._concurrent,
                "averageTime": round(average_ms, 2),
            },
            "breaker": self.breaker.stats(),
        }

    async def aclose(self):
        """Close the underlying HTTP client and its connection pool."""
        await self._client.aclose()


def _strip_query(url: str) -> str:
    return url.split("?", 1)[0]
