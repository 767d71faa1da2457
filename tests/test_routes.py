"""
End-to-end tests for the connector routes over ``httpx.ASGITransport``.
"""

from datetime import timedelta
from urllib.parse import parse_qs, urlparse

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from auth.jwt import create_token
from connectors.errors import ProviderUnavailable
from connectors.schemas import ConnectionStatus, utcnow
from connectors.services import ConnectorServices
from main import create_app


@pytest_asyncio.fixture
async def client(registry, token_store, state_store, flow, manager):
    services = ConnectorServices(
        registry=registry,
        token_store=token_store,
        state_store=state_store,
        flow=flow,
        token_manager=manager,
    )
    app = create_app(services)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


def _auth():
    return {"Authorization": f"Bearer {create_token('user-1')}"}


def _state_from(auth_url):
    return parse_qs(urlparse(auth_url).query)["state"][0]


class TestPublicRoutes:
    @pytest.mark.asyncio
    async def test_list_providers(self, client):
        resp = await client.get("/api/v1/connectors/providers")
        assert resp.status_code == 200
        providers = {p["provider"]: p for p in resp.json()}
        assert providers["youtube"]["configured"] is True
        assert providers["tiktok"]["configured"] is False

    @pytest.mark.asyncio
    async def test_connections_require_auth(self, client):
        resp = await client.get("/api/v1/connectors/connections")
        assert resp.status_code == 401
        assert resp.json()["error"] == "unauthenticated"

    @pytest.mark.asyncio
    async def test_bad_bearer_token(self, client):
        resp = await client.get(
            "/api/v1/connectors/connections", headers={"Authorization": "Bearer nope"}
        )
        assert resp.status_code == 401


class TestConnectFlow:
    @pytest.mark.asyncio
    async def test_connect_and_replay(self, client):
        resp = await client.get("/api/v1/connectors/youtube/auth-url", headers=_auth())
        assert resp.status_code == 200
        body = resp.json()
        assert body["provider"] == "youtube"
        state = _state_from(body["auth_url"])

        resp = await client.get(
            "/api/v1/connectors/youtube/callback", params={"state": state, "code": "abc"}
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "connected"
        assert resp.json()["connection"]["version"] == 1
        assert "youtube-access" not in resp.text

        replay = await client.get(
            "/api/v1/connectors/youtube/callback", params={"state": state, "code": "abc"}
        )
        assert replay.status_code == 400
        assert replay.json()["error"] == "invalid_state"
        assert replay.json()["signal"] == "needs_reauth"

        listing = await client.get("/api/v1/connectors/connections", headers=_auth())
        assert [c["provider"] for c in listing.json()] == ["youtube"]

    @pytest.mark.asyncio
    async def test_callback_with_provider_error(self, client):
        resp = await client.get("/api/v1/connectors/linkedin/auth-url", headers=_auth())
        state = _state_from(resp.json()["auth_url"])

        resp = await client.get(
            "/api/v1/connectors/linkedin/callback",
            params={"state": state, "error": "user_cancelled_login"},
        )

        assert resp.status_code == 403
        assert resp.json()["error"] == "authorization_denied"

    @pytest.mark.asyncio
    async def test_callback_without_state(self, client):
        resp = await client.get("/api/v1/connectors/youtube/callback", params={"code": "abc"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_state"

    @pytest.mark.asyncio
    async def test_unknown_provider(self, client):
        resp = await client.get("/api/v1/connectors/myspace/auth-url", headers=_auth())
        assert resp.status_code == 400
        assert resp.json()["error"] == "unknown_provider"
        assert resp.json()["signal"] == "fatal"

    @pytest.mark.asyncio
    async def test_unconfigured_provider(self, client):
        resp = await client.get("/api/v1/connectors/tiktok/auth-url", headers=_auth())
        assert resp.status_code == 503
        assert resp.json()["error"] == "provider_not_configured"


class TestRefreshAndDisconnect:
    @pytest.mark.asyncio
    async def test_refresh_expiring_token(self, client, token_store, make_record):
        await token_store.insert(make_record(expires_at=utcnow() + timedelta(minutes=1)))

        resp = await client.post("/api/v1/connectors/youtube/refresh", headers=_auth())

        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "active"
        assert body["version"] == 2
        assert "refreshed-1" not in resp.text

    @pytest.mark.asyncio
    async def test_refresh_not_connected(self, client):
        resp = await client.post("/api/v1/connectors/youtube/refresh", headers=_auth())
        assert resp.status_code == 404
        assert resp.json()["signal"] == "needs_reauth"

    @pytest.mark.asyncio
    async def test_refresh_no_refresh_provider(self, client, token_store, make_record):
        await token_store.insert(
            make_record(provider="linkedin", refresh_token=None, expires_at=utcnow())
        )

        resp = await client.post("/api/v1/connectors/linkedin/refresh", headers=_auth())

        assert resp.status_code == 409
        assert resp.json()["error"] == "needs_reauth"
        record = await token_store.get("user-1", "linkedin")
        assert record.status == ConnectionStatus.NEEDS_REAUTH

    @pytest.mark.asyncio
    async def test_refresh_provider_down(self, client, token_store, youtube, make_record):
        youtube.refresh_errors = [ProviderUnavailable("down", provider="youtube")] * 3
        await token_store.insert(make_record(expires_at=utcnow()))

        resp = await client.post("/api/v1/connectors/youtube/refresh", headers=_auth())

        assert resp.status_code == 503
        assert resp.json()["signal"] == "retryable"

    @pytest.mark.asyncio
    async def test_disconnect(self, client, token_store, youtube, make_record):
        youtube.revoke_error = ProviderUnavailable("down", provider="youtube")
        await token_store.insert(make_record())

        resp = await client.delete("/api/v1/connectors/youtube", headers=_auth())

        assert resp.status_code == 200
        assert resp.json()["status"] == "revoked"
        gone = await client.post("/api/v1/connectors/youtube/refresh", headers=_auth())
        assert gone.status_code == 410
        assert gone.json()["error"] == "disconnected"
