"""Service-level OAuth token lifecycle for a Bitbucket OAuth consumer.

One TokenManager per adapter instance. The token lives in memory only: it is
issued on first use (client_credentials grant), renewed with the refresh_token
grant once it is within SAFETY_MARGIN_MS of expiry, and never persisted.

Staleness is checked on every get(); there is no background timer. Concurrent
callers that observe the same stale token may each refresh; the last response
wins, which is harmless because every issued token is valid.
"""

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional
from urllib.parse import parse_qs

from ..scm.exceptions import AuthenticationError
from ..transport.executor import HttpExecutor

logger = logging.getLogger(__name__)

TOKEN_URL = "https://bitbucket.org/site/oauth2/access_token"
SAFETY_MARGIN_MS = 5000


@dataclass
class ServiceToken:
    """In-memory OAuth token state."""
    access_token: str = ""
    refresh_token: str = ""
    expires_at_epoch_millis: int = 0

    @property
    def issued(self) -> bool:
        return bool(self.access_token)

    def is_expired(self, now_ms: int) -> bool:
        """True when absent or within the safety margin of expiry."""
        if not self.issued:
            return True
        return now_ms >= self.expires_at_epoch_millis - SAFETY_MARGIN_MS


class TokenManager:
    """Issues and refreshes the adapter's service token.

    Args:
        client_id: OAuth consumer key.
        client_secret: OAuth consumer secret.
        executor: HTTP executor used for the token endpoint.
        clock: Returns the current time in seconds (time.time by default).
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        executor: HttpExecutor,
        clock: Callable[[], float] = time.time,
        token_url: str = TOKEN_URL,
    ):
        self._client_id = client_id
        self._client_secret = client_secret
        self._executor = executor
        self._clock = clock
        self._token_url = token_url
        self.token = ServiceToken()

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    async def get(self) -> str:
        """Return a currently valid access token, refreshing it if stale."""
        if self.token.is_expired(self._now_ms()):
            await self.refresh()
        return self.token.access_token

    async def refresh(self) -> ServiceToken:
        """Request a new token from the OAuth endpoint.

        Raises:
            AuthenticationError: The endpoint answered with anything but a 200
                carrying an access token.
        """
        if self.token.refresh_token:
            form = {
                "grant_type": "refresh_token",
                "refresh_token": self.token.refresh_token,
            }
        else:
            form = {"grant_type": "client_credentials"}

        logger.info("Requesting Bitbucket service token (grant_type=%s)", form["grant_type"])
        response = await self._executor.run_command(
            "POST",
            self._token_url,
            data=form,
            auth=(self._client_id, self._client_secret),
            idempotent=True,
        )

        if response.status_code != 200:
            raise AuthenticationError(
                f"Authentication failed: {_as_text(response.body)}",
                status_code=response.status_code,
            )

        payload = _token_payload(response.body)
        access_token = payload.get("access_token")
        if not access_token:
            raise AuthenticationError(
                f"Authentication failed: no access token in {_as_text(response.body)}",
                status_code=response.status_code,
            )

        expires_in = int(payload.get("expires_in") or 0)
        self.token = ServiceToken(
            access_token=access_token,
            refresh_token=payload.get("refresh_token") or self.token.refresh_token,
            expires_at_epoch_millis=self._now_ms() + expires_in * 1000,
        )
        logger.info("Bitbucket service token refreshed, expires in %ds", expires_in)
        return self.token

    get_token = get
    refresh_token = refresh


def _token_payload(body: Any) -> Dict[str, Any]:
    """Token responses are JSON, or form-encoded when Accept is ignored."""
    if isinstance(body, dict):
        return body
    if isinstance(body, str):
        return {key: values[0] for key, values in parse_qs(body).items()}
    return {}


def _as_text(body: Optional[Any]) -> str:
    if isinstance(body, str):
        return body
    return json.dumps(body)
