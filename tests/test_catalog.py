"""Tests for SpotifyCatalog using httpx.MockTransport."""

from __future__ import annotations

import httpx
import pytest
from pydantic import SecretStr

from trackshelf.catalog import ExternalTrack, LookupUnavailable, SpotifyCatalog
from trackshelf.config import SpotifyConfig

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_config(**overrides) -> SpotifyConfig:
    values = {"client_id": "test-client-id", "client_secret": SecretStr("test-client-secret")}
    values.update(overrides)
    return SpotifyConfig(**values)


def _token_response(token: str = "mock-access-token") -> httpx.Response:
    return httpx.Response(
        200,
        json={"access_token": token, "token_type": "Bearer", "expires_in": 3600},
    )


def _search_response(items: list[dict]) -> dict:
    return {"tracks": {"items": items}}


def _track_item(track_id: str, title: str, artists: list[str], release_date: str) -> dict:
    return {
        "id": track_id,
        "name": title,
        "artists": [{"name": a} for a in artists],
        "album": {"name": "Some Album", "release_date": release_date},
    }


# ---------------------------------------------------------------------------
# search
# ---------------------------------------------------------------------------


@pytest.mark.asyncio()
async def test_search_returns_first_match() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "accounts.spotify.com":
            return _token_response()
        seen.append(request)
        return httpx.Response(
            200,
            json=_search_response(
                [_track_item("X1", "Bohemian Rhapsody", ["Queen", "Freddie Mercury"], "1975-10-31")]
            ),
        )

    async with SpotifyCatalog(_make_config(), _transport=httpx.MockTransport(handler)) as catalog:
        track = await catalog.search("Bohemian Rhapsody")

    assert track == ExternalTrack(
        external_id="X1",
        name="Bohemian Rhapsody",
        artists=("Queen", "Freddie Mercury"),
        release_date="1975-10-31",
    )
    assert track.primary_artist == "Queen"

    params = seen[0].url.params
    assert params["q"] == "Bohemian Rhapsody"
    assert params["type"] == "track"
    assert params["limit"] == "1"
    assert "market" not in params
    assert seen[0].headers["Authorization"] == "Bearer mock-access-token"


@pytest.mark.asyncio()
async def test_search_no_results_returns_none() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "accounts.spotify.com":
            return _token_response()
        return httpx.Response(200, json=_search_response([]))

    async with SpotifyCatalog(_make_config(), _transport=httpx.MockTransport(handler)) as catalog:
        assert await catalog.search("zzzz nothing") is None


@pytest.mark.asyncio()
async def test_search_sends_market_when_configured() -> None:
    markets: list[str | None] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "accounts.spotify.com":
            return _token_response()
        markets.append(request.url.params.get("market"))
        return httpx.Response(200, json=_search_response([]))

    async with SpotifyCatalog(_make_config(market="GB"), _transport=httpx.MockTransport(handler)) as catalog:
        await catalog.search("anything")

    assert markets == ["GB"]


@pytest.mark.asyncio()
async def test_missing_artists_and_album() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "accounts.spotify.com":
            return _token_response()
        return httpx.Response(200, json=_search_response([{"id": "t9", "name": "Untitled"}]))

    async with SpotifyCatalog(_make_config(), _transport=httpx.MockTransport(handler)) as catalog:
        track = await catalog.search("Untitled")

    assert track.artists == ()
    assert track.primary_artist == "Unknown"
    assert track.release_date == ""


# ---------------------------------------------------------------------------
# Token handling
# ---------------------------------------------------------------------------


@pytest.mark.asyncio()
async def test_token_requested_once_and_reused() -> None:
    token_calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "accounts.spotify.com":
            token_calls.append(request)
            return _token_response()
        return httpx.Response(200, json=_search_response([]))

    async with SpotifyCatalog(_make_config(), _transport=httpx.MockTransport(handler)) as catalog:
        await catalog.search("one")
        await catalog.search("two")

    assert len(token_calls) == 1
    assert b"grant_type=client_credentials" in token_calls[0].content
    assert token_calls[0].headers["Authorization"].startswith("Basic ")


@pytest.mark.asyncio()
async def test_401_forces_token_refresh() -> None:
    tokens = iter(["stale-token", "fresh-token"])
    auth_headers: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "accounts.spotify.com":
            return _token_response(next(tokens))
        auth_headers.append(request.headers["Authorization"])
        if request.headers["Authorization"] == "Bearer stale-token":
            return httpx.Response(401)
        return httpx.Response(200, json=_search_response([_track_item("X1", "Song", ["A"], "2001")]))

    async with SpotifyCatalog(_make_config(), _transport=httpx.MockTransport(handler)) as catalog:
        track = await catalog.search("Song")

    assert track is not None
    assert auth_headers == ["Bearer stale-token", "Bearer fresh-token"]


@pytest.mark.asyncio()
async def test_repeated_401_is_unavailable() -> None:
    hosts: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        hosts.append(request.url.host)
        if request.url.host == "accounts.spotify.com":
            return _token_response()
        return httpx.Response(401)

    async with SpotifyCatalog(_make_config(), _transport=httpx.MockTransport(handler)) as catalog:
        with pytest.raises(LookupUnavailable, match="authentication failed after token refresh"):
            await catalog.search("Song")

    assert hosts == ["accounts.spotify.com", "api.spotify.com", "accounts.spotify.com", "api.spotify.com"]


@pytest.mark.asyncio()
async def test_token_endpoint_failure_is_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "accounts.spotify.com":
            return httpx.Response(400, json={"error": "invalid_client"})
        return httpx.Response(200, json=_search_response([]))

    async with SpotifyCatalog(_make_config(), _transport=httpx.MockTransport(handler)) as catalog:
        with pytest.raises(LookupUnavailable, match="Token request failed"):
            await catalog.search("Song")


@pytest.mark.asyncio()
async def test_missing_credentials_is_unavailable_without_network() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(500)

    config = SpotifyConfig()
    async with SpotifyCatalog(config, _transport=httpx.MockTransport(handler)) as catalog:
        with pytest.raises(LookupUnavailable, match="not configured"):
            await catalog.search("Song")

    assert calls == []


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


@pytest.mark.asyncio()
async def test_server_error_is_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "accounts.spotify.com":
            return _token_response()
        return httpx.Response(502, text="bad gateway")

    async with SpotifyCatalog(_make_config(), _transport=httpx.MockTransport(handler)) as catalog:
        with pytest.raises(LookupUnavailable, match="502"):
            await catalog.search("Song")


@pytest.mark.asyncio()
async def test_rate_limit_is_unavailable_without_retry() -> None:
    search_calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "accounts.spotify.com":
            return _token_response()
        search_calls.append(request)
        return httpx.Response(429, headers={"Retry-After": "5"})

    async with SpotifyCatalog(_make_config(), _transport=httpx.MockTransport(handler)) as catalog:
        with pytest.raises(LookupUnavailable, match="rate limit"):
            await catalog.search("Song")

    assert len(search_calls) == 1


@pytest.mark.asyncio()
async def test_network_error_is_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "accounts.spotify.com":
            return _token_response()
        raise httpx.ConnectError("connection refused", request=request)

    async with SpotifyCatalog(_make_config(), _transport=httpx.MockTransport(handler)) as catalog:
        with pytest.raises(LookupUnavailable, match="Network error"):
            await catalog.search("Song")


@pytest.mark.asyncio()
async def test_search_outside_context_manager_raises() -> None:
    catalog = SpotifyCatalog(_make_config())
    with pytest.raises(RuntimeError, match="not open"):
        await catalog.search("Song")


# ---------------------------------------------------------------------------
# malformed replies
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "reply",
    [
        httpx.Response(200, text="<html>captive portal</html>"),
        httpx.Response(200, json={"tracks": None}),
        httpx.Response(200, json={"tracks": {"items": [{"name": "No Id"}]}}),
        httpx.Response(200, json={"tracks": {"items": [{"id": None, "name": "Null Id"}]}}),
        httpx.Response(200, json={"tracks": {"items": ["not-an-object"]}}),
        httpx.Response(200, json=["unexpected", "list"]),
    ],
    ids=["html", "tracks-null", "no-id", "null-id", "item-not-object", "top-level-list"],
)
@pytest.mark.asyncio()
async def test_malformed_search_reply_is_unavailable(reply: httpx.Response) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "accounts.spotify.com":
            return _token_response()
        return reply

    async with SpotifyCatalog(_make_config(), _transport=httpx.MockTransport(handler)) as catalog:
        with pytest.raises(LookupUnavailable, match="Malformed search response"):
            await catalog.search("Song")


@pytest.mark.parametrize(
    "reply",
    [
        httpx.Response(200, text="not json"),
        httpx.Response(200, json={"token_type": "Bearer"}),
        httpx.Response(200, json={"access_token": ""}),
        httpx.Response(200, json={"access_token": "tok", "expires_in": "soon"}),
    ],
    ids=["not-json", "no-access-token", "empty-access-token", "bad-expiry"],
)
@pytest.mark.asyncio()
async def test_malformed_token_reply_is_unavailable(reply: httpx.Response) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "accounts.spotify.com":
            return reply
        return httpx.Response(200, json=_search_response([]))

    async with SpotifyCatalog(_make_config(), _transport=httpx.MockTransport(handler)) as catalog:
        with pytest.raises(LookupUnavailable, match="Malformed token response"):
            await catalog.search("Song")


@pytest.mark.asyncio()
async def test_malformed_reply_becomes_lookup_failed_outcome(db) -> None:
    from trackshelf.importer import ImportReconciler, LookupFailed

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "accounts.spotify.com":
            return _token_response()
        return httpx.Response(200, text="<html>oops</html>")

    async with SpotifyCatalog(_make_config(), _transport=httpx.MockTransport(handler)) as catalog:
        outcome = await ImportReconciler(catalog, db).import_track("Song")

    assert isinstance(outcome, LookupFailed)
    assert await db.count_records() == 0
