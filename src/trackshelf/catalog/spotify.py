"""Async Spotify Web API catalog client using httpx.

Endpoints:
- POST https://accounts.spotify.com/api/token (client-credentials grant)
- GET /search (type=track, limit=1)
"""

from __future__ import annotations

import time

import httpx
import structlog

from trackshelf.catalog.base import ExternalTrack, LookupUnavailable
from trackshelf.config import SpotifyConfig

log = structlog.get_logger(__name__)

_API_BASE = "https://api.spotify.com/v1"
_TOKEN_URL = "https://accounts.spotify.com/api/token"  # noqa: S105
_TOKEN_SLACK_SECONDS = 60


class SpotifyCatalog:
    """Spotify track search with a cached client-credentials token.

    Create once and share it; use as an async context manager so the
    underlying ``httpx.AsyncClient`` is opened and closed exactly once.
    """

    def __init__(
        self,
        config: SpotifyConfig,
        *,
        _transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._transport = _transport
        self._access_token: str | None = None
        self._token_expires_at: float = 0.0
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> SpotifyCatalog:
        kw: dict = {"timeout": float(self._config.timeout_seconds)}
        if self._transport is not None:
            kw["transport"] = self._transport
        self._client = httpx.AsyncClient(**kw)
        return self

    async def __aexit__(self, *exc: object) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    # -- auth --

    async def _ensure_token(self, *, force: bool = False) -> str:
        if not force and self._access_token and time.time() < self._token_expires_at - _TOKEN_SLACK_SECONDS:
            return self._access_token

        secret = self._config.client_secret.get_secret_value()
        if not self._config.client_id or not secret:
            raise LookupUnavailable("Spotify credentials are not configured")

        assert self._client is not None  # noqa: S101
        try:
            resp = await self._client.post(
                _TOKEN_URL,
                data={"grant_type": "client_credentials"},
                auth=(self._config.client_id, secret),
            )
        except httpx.TransportError as exc:
            raise LookupUnavailable(f"Token request failed: {exc}") from exc

        if resp.status_code != 200:
            raise LookupUnavailable(f"Token request failed: {resp.status_code} {resp.text}")

        try:
            data = resp.json()
            token = data["access_token"]
            expires_in = float(data.get("expires_in", 3600))
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise LookupUnavailable(f"Malformed token response: {exc!r}") from exc
        if not isinstance(token, str) or not token:
            raise LookupUnavailable("Malformed token response: empty access_token")

        self._access_token = token
        self._token_expires_at = time.time() + expires_in
        return token

    # -- request helper --

    async def _send(self, url: str, token: str, params: dict) -> httpx.Response:
        assert self._client is not None  # noqa: S101
        try:
            return await self._client.get(url, headers={"Authorization": f"Bearer {token}"}, params=params)
        except httpx.TransportError as exc:
            log.warning("spotify_network_error", error=str(exc))
            raise LookupUnavailable(f"Network error: {exc}") from exc

    async def _get(self, url: str, *, params: dict) -> httpx.Response:
        if self._client is None:
            msg = "SpotifyCatalog is not open. Use it as an async context manager."
            raise RuntimeError(msg)

        resp = await self._send(url, await self._ensure_token(), params)
        if resp.status_code == 401:
            # Token expired mid-request, force one refresh
            resp = await self._send(url, await self._ensure_token(force=True), params)
            if resp.status_code == 401:
                raise LookupUnavailable("Spotify authentication failed after token refresh")

        if resp.status_code == 429:
            log.warning("spotify_rate_limited", retry_after=resp.headers.get("Retry-After"))
            raise LookupUnavailable("Spotify rate limit reached, try again later")

        if resp.status_code >= 400:
            raise LookupUnavailable(f"Spotify API error: {resp.status_code} {resp.text}")

        return resp

    # -- public API --

    async def search(self, query: str) -> ExternalTrack | None:
        """Search Spotify for *query* and return the first track, or ``None``."""
        params = {"q": query, "type": "track", "limit": 1}
        if self._config.market:
            params["market"] = self._config.market

        resp = await self._get(f"{_API_BASE}/search", params=params)
        try:
            items = (resp.json().get("tracks") or {}).get("items") or []
            if not items:
                log.debug("spotify_search_empty", query=query)
                return None
            best = items[0]
            external_id, name = best["id"], best["name"]
            if not isinstance(external_id, str) or not external_id or not isinstance(name, str):
                msg = f"bad id/name in search item: {external_id!r}, {name!r}"
                raise TypeError(msg)
            artists = tuple(a["name"] for a in best.get("artists") or [] if isinstance(a, dict) and a.get("name"))
            release_date = (best.get("album") or {}).get("release_date") or ""
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            log.warning("spotify_malformed_search", query=query, error=repr(exc))
            raise LookupUnavailable(f"Malformed search response: {exc!r}") from exc

        return ExternalTrack(external_id=external_id, name=name, artists=artists, release_date=str(release_date))
