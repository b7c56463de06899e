"""
OAuth2 client-credentials token source for the Corti API.

One instance per process, shared by all sessions. The token is cached until
shortly before it expires; concurrent callers share one refresh.
"""

from __future__ import annotations

import asyncio
import time

import httpx

from adapters.corti.errors import ProviderAuthError
from constants import CORTI_AUTH_URL_TEMPLATE, TOKEN_EXPIRY_SKEW_S
from observability.logger import log_event


class ClientCredentialsAuth:
    """Fetches and caches an access token with the client-credentials grant."""

    def __init__(
        self,
        *,
        http: httpx.AsyncClient,
        client_id: str,
        client_secret: str,
        tenant_name: str,
        environment: str,
        clock=time.monotonic,
    ) -> None:
        self._http = http
        self._client_id = client_id
        self._client_secret = client_secret
        self._url = CORTI_AUTH_URL_TEMPLATE.format(
            environment=environment, tenant=tenant_name
        )
        self._clock = clock

        self._token: str | None = None
        self._expires_at: float = 0.0
        self._lock = asyncio.Lock()

    async def get_token(self) -> str:
        """Return a valid access token, fetching a new one if needed."""
        async with self._lock:
            if self._token is not None and self._clock() < self._expires_at:
                return self._token

            try:
                resp = await self._http.post(
                    self._url,
                    data={
                        "grant_type": "client_credentials",
                        "client_id": self._client_id,
                        "client_secret": self._client_secret,
                        "scope": "openid",
                    },
                )
            except httpx.HTTPError as e:
                raise ProviderAuthError(f"token request failed: {e!r}") from e

            if resp.status_code != 200:
                raise ProviderAuthError(
                    f"token request rejected: HTTP {resp.status_code} {resp.text[:200]}"
                )

            try:
                body = resp.json()
            except ValueError as e:
                raise ProviderAuthError("token response is not JSON") from e

            token = body.get("access_token") if isinstance(body, dict) else None
            if not token or not isinstance(token, str):
                raise ProviderAuthError("token response has no access_token")

            try:
                expires_in = float(body.get("expires_in", 300))
            except (TypeError, ValueError) as e:
                raise ProviderAuthError(
                    f"token response has invalid expires_in: {body.get('expires_in')!r}"
                ) from e

            self._token = token
            self._expires_at = self._clock() + max(0.0, expires_in - TOKEN_EXPIRY_SKEW_S)

            log_event({
                "ts_ms": time.time_ns() // 1_000_000,
                "event_type": "PROVIDER_TOKEN_REFRESHED",
                "expires_in_s": expires_in,
            })
            return token

    def invalidate(self) -> None:
        """Drop the cached token (e.g. after a 401)."""
        self._token = None
        self._expires_at = 0.0
