"""
API Tests for the WorkflowMax Connection Endpoints

The token endpoint is served by httpx.MockTransport.

Run with: pytest tests/test_wfx_router.py -v
"""

import pytest
import httpx
from fastapi import APIRouter, FastAPI
from fastapi.testclient import TestClient

from config import Settings
from wfx_integration.client import WFXApiClient
from wfx_integration.wfx_router import get_client, router

TOKEN_URL = "https://identity.test/connect/token"


def make_settings(tmp_path, **overrides):
    values = dict(
        _env_file=None,
        WFX_CLIENT_ID="client-123",
        WFX_CLIENT_SECRET="secret-456",
        WFX_ACCOUNT_ID="account-789",
        WFX_BASE_URL="https://wfx.test",
        WFX_AUTH_URL="https://login.test/authorize",
        WFX_TOKEN_URL=TOKEN_URL,
        WFX_CALLBACK_URL="http://localhost:3001/oauth/callback",
        WFX_TOKEN_PATH=str(tmp_path / "wfx_tokens.json"),
    )
    values.update(overrides)
    return Settings(**values)


def token_endpoint(status_code=200):
    def handler(request: httpx.Request) -> httpx.Response:
        if status_code != 200:
            return httpx.Response(status_code, text="invalid_grant")
        return httpx.Response(200, json={
            "access_token": "access-new",
            "refresh_token": "refresh-new",
            "expires_in": 1800,
        })
    return handler


def build_app(wfx_client):
    app = FastAPI()
    api_router = APIRouter(prefix="/api")
    api_router.include_router(router)
    app.include_router(api_router)
    app.dependency_overrides[get_client] = lambda: wfx_client
    return TestClient(app)


@pytest.fixture
def wfx_client(tmp_path):
    return WFXApiClient(
        make_settings(tmp_path),
        transport=httpx.MockTransport(token_endpoint()),
        retry_delays=[0, 0, 0],
    )


class TestStatus:
    """Test connection status reporting."""

    def test_unauthenticated(self, wfx_client):
        response = build_app(wfx_client).get("/api/wfx/status")

        assert response.status_code == 200
        data = response.json()
        assert data["configured"] is True
        assert data["authenticated"] is False
        assert data["account_id"] == "account-789"
        assert data["token_expiry"] is None

    def test_authenticated(self, wfx_client):
        wfx_client.set_tokens("access-abc", "refresh-xyz", 1800)

        data = build_app(wfx_client).get("/api/wfx/status").json()

        assert data["authenticated"] is True
        assert data["token_expiry"] == pytest.approx(wfx_client.token_expiry)


class TestAuthorize:
    """Test the authorisation URL endpoint."""

    def test_returns_url(self, wfx_client):
        data = build_app(wfx_client).get("/api/wfx/authorize").json()

        assert data["authorization_url"].startswith("https://login.test/authorize?")
        assert "client_id=client-123" in data["authorization_url"]

    def test_callback_override(self, wfx_client):
        data = build_app(wfx_client).get(
            "/api/wfx/authorize", params={"callback_url": "http://other.test/cb"}
        ).json()

        assert "redirect_uri=http%3A%2F%2Fother.test%2Fcb" in data["authorization_url"]

    def test_unconfigured_client(self, tmp_path):
        client = WFXApiClient(make_settings(tmp_path, WFX_CLIENT_ID=""))

        response = build_app(client).get("/api/wfx/authorize")

        assert response.status_code == 503


class TestCallback:
    """Test the OAuth redirect target."""

    def test_exchanges_code(self, wfx_client, tmp_path):
        response = build_app(wfx_client).get("/api/wfx/callback", params={"code": "auth-code"})

        assert response.status_code == 200
        assert response.json()["authenticated"] is True
        assert wfx_client.access_token == "access-new"
        assert (tmp_path / "wfx_tokens.json").exists()

    def test_denied(self, wfx_client):
        response = build_app(wfx_client).get("/api/wfx/callback", params={"error": "access_denied"})

        assert response.status_code == 400
        assert "access_denied" in response.json()["detail"]

    def test_missing_code(self, wfx_client):
        response = build_app(wfx_client).get("/api/wfx/callback")

        assert response.status_code == 400

    def test_rejected_code(self, tmp_path):
        client = WFXApiClient(
            make_settings(tmp_path),
            transport=httpx.MockTransport(token_endpoint(status_code=400)),
            retry_delays=[0, 0, 0],
        )

        response = build_app(client).get("/api/wfx/callback", params={"code": "bad-code"})

        assert response.status_code == 401
        assert client.is_authenticated() is False

    def test_token_endpoint_unreachable(self, tmp_path):
        def unreachable(request):
            raise httpx.ConnectError("connection refused")

        client = WFXApiClient(
            make_settings(tmp_path),
            transport=httpx.MockTransport(unreachable),
            retry_delays=[0, 0, 0],
        )

        response = build_app(client).get("/api/wfx/callback", params={"code": "auth-code"})

        assert response.status_code == 502


class TestDisconnectAndCache:
    """Test token removal and cache management."""

    def test_disconnect_forgets_tokens(self, wfx_client, tmp_path):
        wfx_client.set_tokens("access-abc", "refresh-xyz", 1800)
        wfx_client.save_tokens()

        response = build_app(wfx_client).post("/api/wfx/disconnect")

        assert response.json() == {"authenticated": False}
        assert wfx_client.access_token is None
        assert not (tmp_path / "wfx_tokens.json").exists()

    def test_cache_stats_and_clear(self, wfx_client):
        app = build_app(wfx_client)

        assert app.get("/api/wfx/cache").json() == {"size": 0, "entries": []}
        assert app.delete("/api/wfx/cache").json() == {"cleared": True}
