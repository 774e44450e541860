try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover
    import _bootstrap  # type: ignore # noqa: F401

import copy
from pathlib import Path

import httpx
import pytest

from cleanplayer.clients.local_store import LocalCredentialStore
from cleanplayer.main import app
from cleanplayer.services.identity import IdentityResolver
from cleanplayer.services.spotify_tokens import SpotifyTokenService

from fakes import FakeCredentialStore, FakeSpotifyClient


@pytest.fixture()
def spotify_overrides(tmp_path: Path):
    from cleanplayer import dependencies
    from cleanplayer.core.config import get_settings

    oauth = FakeSpotifyClient()
    local = LocalCredentialStore(str(tmp_path / "local.sqlite3"))
    remote = FakeCredentialStore()
    service = SpotifyTokenService(
        oauth_client=oauth,
        identity_resolver=IdentityResolver(oauth),
        local_store=local,
        remote_store=remote,
    )
    base_settings = copy.deepcopy(get_settings())
    base_settings.frontend_base_url = None

    overrides = {
        dependencies.get_spotify_token_service: lambda: service,
        dependencies.get_app_settings: lambda: base_settings,
    }
    app.dependency_overrides.update(overrides)

    yield service, oauth, remote, base_settings

    app.dependency_overrides.clear()


def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://testserver"
    )


@pytest.mark.anyio
async def test_health() -> None:
    async with _client() as client:
        response = await client.get("/api/health")

    assert response.json() == {"status": "ok"}


@pytest.mark.anyio
async def test_login_returns_json_by_default(spotify_overrides):
    _, oauth, _, _ = spotify_overrides
    async with _client() as client:
        response = await client.get("/api/auth/spotify/login")

    assert response.status_code == 200
    assert response.json()["authorization_url"].startswith("https://accounts.example.com/")
    assert oauth.authorize_calls


@pytest.mark.anyio
async def test_login_redirects_for_html_accept(spotify_overrides):
    async with _client() as client:
        response = await client.get(
            "/api/auth/spotify/login", headers={"accept": "text/html"}
        )

    assert response.status_code == 307
    assert response.headers["location"].startswith("https://accounts.example.com/authorize")


@pytest.mark.anyio
async def test_callback_connects_and_token_becomes_available(spotify_overrides):
    _, oauth, remote, _ = spotify_overrides
    async with _client() as client:
        await client.get("/api/auth/spotify/login")
        callback = await client.get("/api/auth/spotify/callback", params={"code": "oauth-code"})
        token = await client.get("/api/auth/spotify/token")

    assert callback.status_code == 200
    assert callback.json() == {"status": "connected", "user_id": "spotify-user"}
    assert oauth.exchange_calls[-1][0] == "oauth-code"
    assert "spotify-user" in remote.records
    assert token.status_code == 200
    assert token.json() == {"access_token": "login-access", "token_type": "Bearer"}


@pytest.mark.anyio
async def test_callback_redirects_when_frontend_available(spotify_overrides):
    _, _, _, settings = spotify_overrides
    settings.frontend_base_url = "https://player.example.com/"

    async with _client() as client:
        await client.get("/api/auth/spotify/login")
        response = await client.get(
            "/api/auth/spotify/callback",
            params={"code": "oauth-code"},
            headers={"accept": "text/html"},
        )

    assert response.status_code == 307
    assert response.headers["location"] == "https://player.example.com/"


@pytest.mark.anyio
async def test_callback_with_provider_error_is_rejected(spotify_overrides):
    _, oauth, _, _ = spotify_overrides
    async with _client() as client:
        await client.get("/api/auth/spotify/login")
        response = await client.get(
            "/api/auth/spotify/callback", params={"error": "access_denied"}
        )

    assert response.status_code == 400
    assert "access_denied" in response.json()["detail"]
    assert oauth.exchange_calls == []


@pytest.mark.anyio
async def test_callback_without_started_login_is_rejected(spotify_overrides):
    async with _client() as client:
        response = await client.get("/api/auth/spotify/callback", params={"code": "stray"})

    assert response.status_code == 400


@pytest.mark.anyio
async def test_token_requires_connected_account(spotify_overrides):
    async with _client() as client:
        response = await client.get("/api/auth/spotify/token")

    assert response.status_code == 401


@pytest.mark.anyio
async def test_logout_keeps_remote_record(spotify_overrides):
    service, _, remote, _ = spotify_overrides
    async with _client() as client:
        await client.get("/api/auth/spotify/login")
        await client.get("/api/auth/spotify/callback", params={"code": "oauth-code"})
        response = await client.post("/api/auth/spotify/logout")

    assert response.json() == {"status": "logged_out"}
    assert service.current_user_id is None
    assert "spotify-user" in remote.records


@pytest.mark.anyio
async def test_admin_lists_and_deletes_credentials(spotify_overrides):
    service, _, remote, _ = spotify_overrides
    async with _client() as client:
        await client.get("/api/auth/spotify/login")
        await client.get("/api/auth/spotify/callback", params={"code": "oauth-code"})
        listing = await client.get("/api/admin/credentials")
        deleted = await client.delete("/api/admin/credentials/spotify-user")

    assert listing.status_code == 200
    body = listing.json()
    assert [entry["user_id"] for entry in body] == ["spotify-user"]
    assert "access_token" not in body[0]
    assert deleted.status_code == 204
    assert remote.records == {}


@pytest.mark.anyio
async def test_admin_listing_reports_unavailable_store(spotify_overrides):
    _, _, remote, _ = spotify_overrides
    remote.unavailable = True

    async with _client() as client:
        response = await client.get("/api/admin/credentials")

    assert response.status_code == 503
