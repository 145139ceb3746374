"""Tests for retry_with_backoff and supporting functions.

Verifies:
- First-call success returns immediately with no retry.
- Retryable HTTP status codes (429, 500, 502, 503, 504) are retried up to max_retries.
- Auth failures (401, 403) and other 4xx are handed back without retry.
- Exhausted status retries return the last response instead of raising.
- Connection/timeout errors (httpx.ConnectError, httpx.TimeoutException) are retried.
- Retry-After header is respected for 429 responses.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

import httpx

from scm_bitbucket.scm.exceptions import TransportError
from scm_bitbucket.transport.retry import (
    retry_with_backoff,
    _parse_retry_after,
    _compute_delay,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _response(status_code: int, retry_after=None) -> httpx.Response:
    headers = {"Retry-After": str(retry_after)} if retry_after else {}
    return httpx.Response(status_code, headers=headers)


# Patch asyncio.sleep globally for all tests so we never actually wait.
pytestmark = pytest.mark.asyncio


# ---------------------------------------------------------------------------
# Success / no-retry cases
# ---------------------------------------------------------------------------

@patch("scm_bitbucket.transport.retry.asyncio.sleep", new_callable=AsyncMock)
async def test_success_no_retry(mock_sleep):
    """Function succeeds on first call -- no retry, returns response."""
    ok = _response(200)
    fn = AsyncMock(return_value=ok)

    result = await retry_with_backoff(fn, max_retries=3)

    assert result is ok
    assert fn.await_count == 1
    mock_sleep.assert_not_awaited()


# ---------------------------------------------------------------------------
# Retryable HTTP status codes
# ---------------------------------------------------------------------------

@patch("scm_bitbucket.transport.retry.asyncio.sleep", new_callable=AsyncMock)
async def test_retry_on_500(mock_sleep):
    """500 triggers retry; succeeds on second attempt."""
    fn = AsyncMock(side_effect=[_response(500), _response(200)])

    result = await retry_with_backoff(fn, max_retries=3, base_delay=0.01)

    assert result.status_code == 200
    assert fn.await_count == 2
    assert mock_sleep.await_count == 1


@patch("scm_bitbucket.transport.retry.asyncio.sleep", new_callable=AsyncMock)
async def test_retry_on_429(mock_sleep):
    """429 is retried; succeeds after two failures."""
    fn = AsyncMock(side_effect=[_response(429), _response(429), _response(200)])

    result = await retry_with_backoff(fn, max_retries=3, base_delay=0.01)

    assert result.status_code == 200
    assert fn.await_count == 3
    assert mock_sleep.await_count == 2


@patch("scm_bitbucket.transport.retry.asyncio.sleep", new_callable=AsyncMock)
async def test_max_retries_exhausted_returns_last_response(mock_sleep):
    """502 exhausts retries and the final response is returned."""
    fn = AsyncMock(return_value=_response(502))

    result = await retry_with_backoff(fn, max_retries=2, base_delay=0.01)

    # Initial attempt + 2 retries = 3 calls
    assert result.status_code == 502
    assert fn.await_count == 3
    assert mock_sleep.await_count == 2


# ---------------------------------------------------------------------------
# Non-retryable statuses
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("status", [401, 403, 404, 400])
@patch("scm_bitbucket.transport.retry.asyncio.sleep", new_callable=AsyncMock)
async def test_client_errors_not_retried(mock_sleep, status):
    """4xx other than 429 is returned on the first attempt."""
    fn = AsyncMock(return_value=_response(status))

    result = await retry_with_backoff(fn, max_retries=3)

    assert result.status_code == status
    assert fn.await_count == 1
    mock_sleep.assert_not_awaited()


@patch("scm_bitbucket.transport.retry.asyncio.sleep", new_callable=AsyncMock)
async def test_zero_retries_sends_once(mock_sleep):
    """max_retries=0 never retries, even on 503."""
    fn = AsyncMock(return_value=_response(503))

    result = await retry_with_backoff(fn, max_retries=0)

    assert result.status_code == 503
    assert fn.await_count == 1
    mock_sleep.assert_not_awaited()


# ---------------------------------------------------------------------------
# Connection / timeout errors
# ---------------------------------------------------------------------------

@patch("scm_bitbucket.transport.retry.asyncio.sleep", new_callable=AsyncMock)
async def test_connection_error_retry(mock_sleep):
    """httpx.ConnectError is retried; succeeds on second attempt."""
    request = MagicMock(spec=httpx.Request)
    fn = AsyncMock(
        side_effect=[httpx.ConnectError("refused", request=request), _response(200)]
    )

    result = await retry_with_backoff(fn, max_retries=3, base_delay=0.01)

    assert result.status_code == 200
    assert fn.await_count == 2
    assert mock_sleep.await_count == 1


@patch("scm_bitbucket.transport.retry.asyncio.sleep", new_callable=AsyncMock)
async def test_timeout_exhausted(mock_sleep):
    """Timeout exhausts retries and raises TransportError."""
    fn = AsyncMock(side_effect=httpx.TimeoutException("timed out"))

    with pytest.raises(TransportError, match="Request failed after") as exc_info:
        await retry_with_backoff(fn, max_retries=2, base_delay=0.01)

    assert isinstance(exc_info.value.__cause__, httpx.TimeoutException)
    assert fn.await_count == 3
    assert mock_sleep.await_count == 2


# ---------------------------------------------------------------------------
# _parse_retry_after
# ---------------------------------------------------------------------------

class TestParseRetryAfter:
    """Unit tests for _parse_retry_after helper."""

    def test_valid_integer(self):
        """Numeric Retry-After header is parsed to float."""
        assert _parse_retry_after(_response(429, retry_after=120)) == 120.0

    def test_missing_header(self):
        """Missing Retry-After returns None."""
        assert _parse_retry_after(_response(429)) is None

    def test_invalid_value(self):
        """Non-numeric Retry-After returns None (HTTP-date not supported)."""
        response = httpx.Response(429, headers={"Retry-After": "Wed, 21 Oct 2025 07:28:00 GMT"})
        assert _parse_retry_after(response) is None


# ---------------------------------------------------------------------------
# _compute_delay
# ---------------------------------------------------------------------------

class TestComputeDelay:
    """Unit tests for _compute_delay helper."""

    def test_exponential_backoff_without_response(self):
        """Without a response, delay uses full-jitter exponential backoff."""
        delay = _compute_delay(attempt=2, base_delay=1.0, max_delay=30.0)
        assert 0 <= delay <= 4.0

    def test_delay_capped_at_max_delay(self):
        """Exponential backoff is capped at max_delay."""
        delay = _compute_delay(attempt=10, base_delay=1.0, max_delay=5.0)
        assert 0 <= delay <= 5.0

    def test_retry_after_capped_at_max_delay(self):
        """Retry-After is used, capped at max_delay."""
        response = _response(429, retry_after=60)

        assert _compute_delay(attempt=0, base_delay=1.0, max_delay=5.0, response=response) == 5.0


@pytest.mark.parametrize(
    "error", [httpx.ReadError, httpx.WriteError, httpx.RemoteProtocolError]
)
@patch("scm_bitbucket.transport.retry.asyncio.sleep", new_callable=AsyncMock)
async def test_other_transport_errors_are_wrapped(mock_sleep, error):
    """Read/write/protocol failures surface as TransportError, never raw httpx."""
    request = MagicMock(spec=httpx.Request)
    fn = AsyncMock(side_effect=error("connection reset", request=request))

    with pytest.raises(TransportError, match=error.__name__) as exc_info:
        await retry_with_backoff(fn, max_retries=1, base_delay=0.01)

    assert isinstance(exc_info.value.__cause__, error)
    assert fn.await_count == 2
