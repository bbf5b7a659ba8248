"""OAuth client-credentials token provider.

Holds one bearer token. The token is fetched on first use and again only
after `invalidate()`; it is never refreshed ahead of time and never
persisted.
"""

from __future__ import annotations

import logging

import httpx

from agent_relay.config import Settings
from agent_relay.errors import AuthenticationError

logger = logging.getLogger(__name__)

TOKEN_PATH = "/services/oauth2/token"


class TokenProvider:
    """Acquires and caches a bearer token for upstream calls."""

    def __init__(self, http: httpx.AsyncClient, settings: Settings):
        self._http = http
        self._settings = settings
        self._token: str | None = None

    @property
    def token(self) -> str | None:
        return self._token

    async def acquire_token(self) -> str:
        """Exchange client credentials for a fresh bearer token.

        Raises:
            AuthenticationError: non-success status, unreadable body, or no
                `access_token` in the response.
        """
        url = f"{self._settings.core_url.rstrip('/')}{TOKEN_PATH}"
        logger.info("Requesting access token from %s", url)
        try:
            resp = await self._http.post(
                url,
                data={
                    "grant_type": "client_credentials",
                    "client_id": self._settings.client_id,
                    "client_secret": self._settings.client_secret,
                },
                timeout=self._settings.http_timeout,
            )
        except httpx.HTTPError as e:
            raise AuthenticationError(f"Token request failed: {e}") from e

        if not resp.is_success:
            raise AuthenticationError(
                f"Authentication failed with status: {resp.status_code}"
            )

        try:
            data = resp.json()
        except ValueError as e:
            raise AuthenticationError("Token response is not valid JSON") from e

        token = data.get("access_token") if isinstance(data, dict) else None
        if not token:
            raise AuthenticationError("Failed to get access token from response")

        self._token = token
        logger.info("Access token acquired")
        return token

    async def get_token(self) -> str:
        """Return the cached token, acquiring one if none is held."""
        if self._token is None:
            return await self.acquire_token()
        return self._token

    def invalidate(self) -> None:
        """Forget the cached token so the next call re-acquires it."""
        self._token = None
