"""Google OAuth access tokens for liveChatMessages.insert, refreshed on demand."""

from __future__ import annotations

import asyncio
import time
from typing import Callable, Optional

import httpx

from services.youtube.api.errors import classify_exception, classify_response
from shared.logging.logger import get_logger
from shared.runtime.errors import AuthorizationDenied, TransportTransient

log = get_logger("youtube.oauth")

TOKEN_URL = "https://oauth2.googleapis.com/token"

# Refresh this long before the reported expiry
EXPIRY_MARGIN_SECONDS = 60.0


class GoogleOAuthCredentials:
    """
    Holds the current access token and, when a refresh token plus client
    credentials are configured, exchanges the refresh token for a new one
    shortly before expiry or after the API rejects the current token.

    A seeded access token with no known expiry is used until it is rejected.
    """

    def __init__(
        self,
        *,
        client: httpx.AsyncClient,
        access_token: Optional[str] = None,
        refresh_token: Optional[str] = None,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.access_token = access_token
        self.refresh_token = refresh_token
        self.client_id = client_id
        self.client_secret = client_secret

        self._client = client
        self._clock = clock
        self._expires_at: Optional[float] = None
        self._lock = asyncio.Lock()

    @property
    def can_refresh(self) -> bool:
        return bool(self.refresh_token and self.client_id and self.client_secret)

    @property
    def available(self) -> bool:
        return bool(self.access_token) or self.can_refresh

    @property
    def expires_at(self) -> Optional[float]:
        return self._expires_at

    def _expiring(self) -> bool:
        if self._expires_at is None:
            return False
        return self._clock() >= self._expires_at - EXPIRY_MARGIN_SECONDS

    async def token(self) -> str:
        """Return a usable access token, refreshing first when it is due."""
        if self.access_token and not (self._expiring() and self.can_refresh):
            return self.access_token
        return await self.refresh()

    async def refresh(self, stale: Optional[str] = None) -> str:
        """
        Exchange the refresh token for a new access token.

        `stale` is the token the caller saw rejected; if another task has
        already replaced it, the newer token is returned without a second
        exchange.
        """
        if not self.can_refresh:
            raise AuthorizationDenied(
                "OAuth access token unusable and no refresh credentials configured"
            )

        async with self._lock:
            if (
                stale is not None
                and self.access_token
                and self.access_token != stale
                and not self._expiring()
            ):
                return self.access_token

            try:
                response = await self._client.post(
                    TOKEN_URL,
                    data={
                        "client_id": self.client_id,
                        "client_secret": self.client_secret,
                        "refresh_token": self.refresh_token,
                        "grant_type": "refresh_token",
                    },
                )
            except httpx.HTTPError as e:
                raise classify_exception(e) from e

            if response.status_code in (400, 401):
                reason = _oauth_error(response)
                raise AuthorizationDenied(
                    f"Token refresh rejected: HTTP {response.status_code} ({reason or 'no reason'})",
                    reason=reason,
                )
            if response.is_error:
                raise classify_response(response)

            try:
                data = response.json()
            except ValueError as e:
                raise classify_exception(e) from e

            token = data.get("access_token") if isinstance(data, dict) else None
            if not token:
                raise TransportTransient("Token refresh returned no access_token")

            self.access_token = token
            expires_in = data.get("expires_in")
            self._expires_at = (
                self._clock() + float(expires_in)
                if isinstance(expires_in, (int, float))
                else None
            )

        log.info("[YouTube] OAuth access token refreshed")
        return token


def _oauth_error(response: httpx.Response) -> Optional[str]:
    # Token endpoint errors are {"error": "invalid_grant", ...}, not the Data API shape
    try:
        payload = response.json()
    except ValueError:
        return None
    if isinstance(payload, dict) and isinstance(payload.get("error"), str):
        return payload["error"]
    return None


__all__ = ["GoogleOAuthCredentials", "TOKEN_URL"]
