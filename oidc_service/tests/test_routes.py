"""
Route Tests for the Authentication API

Tests the FastAPI surface end to end with Starlette's session middleware:
login redirects, callback session handling, logout, logged-out pages,
token refresh and the authenticated user endpoint.
"""

import json
import time
from base64 import b64encode
from unittest.mock import AsyncMock, Mock

import pytest
from fastapi import status
from fastapi.responses import RedirectResponse
from fastapi.testclient import TestClient
from itsdangerous import TimestampSigner

from oidc_service.auth.service import OidcService
from oidc_service.auth.strategy import OidcStrategy
from oidc_service.config import Settings
from oidc_service.main import create_app
from oidc_service.models import ChannelKey

SESSION_SECRET = "test-session-secret-1234567890123456"
SESSION_COOKIE = "oidc_session"


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def mock_settings():
    """Create single-tenant settings for testing"""
    return Settings(
        _env_file=None,
        OIDC_ISSUER="https://idp.example.com",
        OIDC_CLIENT_ID="test-client",
        OIDC_CLIENT_SECRET="test-secret",
        OIDC_LOGIN_REDIRECT_URI="http://testserver",
        SESSION_SECRET=SESSION_SECRET,
        SESSION_COOKIE_NAME=SESSION_COOKIE,
    )


@pytest.fixture
def multitenant_settings():
    return Settings(
        _env_file=None,
        OIDC_ISSUER_ORIGIN="https://idp.example.com",
        OIDC_B2C_CLIENT_ID="b2c-client",
        OIDC_LOGIN_REDIRECT_URI="http://testserver",
        SESSION_SECRET=SESSION_SECRET,
        SESSION_COOKIE_NAME=SESSION_COOKIE,
    )


@pytest.fixture
def mock_strategy():
    """Single-tenant strategy around a mocked Authlib client"""
    client = Mock()
    client.authorize_redirect = AsyncMock(
        return_value=RedirectResponse("https://idp.example.com/authorize?state=abc", status_code=302)
    )
    client.authorize_access_token = AsyncMock(return_value={
        "access_token": "at",
        "refresh_token": "rt",
        "id_token": "idt",
        "expires_at": int(time.time()) + 3600,
        "userinfo": {"sub": "user-123", "email": "user@example.com"},
    })
    metadata = {
        "issuer": "https://idp.example.com",
        "authorization_endpoint": "https://idp.example.com/authorize",
        "token_endpoint": "https://idp.example.com/token",
        "end_session_endpoint": "https://idp.example.com/logout",
    }
    return OidcStrategy(client, metadata, ChannelKey.single(), "http://testserver/login/callback")


@pytest.fixture
def app(mock_settings, mock_strategy):
    """Create test FastAPI application with a pre-built strategy"""
    service = OidcService(
        mock_settings.module_options(),
        strategies={ChannelKey.single(): mock_strategy},
    )
    return create_app(settings=mock_settings, service=service)


@pytest.fixture
def client(app):
    """Create test client"""
    return TestClient(app)


def set_session(client: TestClient, data: dict) -> None:
    """Install a signed session cookie the way SessionMiddleware writes it"""
    payload = b64encode(json.dumps(data).encode("utf-8"))
    client.cookies.set(SESSION_COOKIE, TimestampSigner(SESSION_SECRET).sign(payload).decode("utf-8"))


@pytest.fixture
def logged_in_user():
    return {
        "id_token": "idt",
        "userinfo": {"sub": "user-123"},
        "authTokens": {
            "accessToken": "at",
            "refreshToken": "rt",
            "tokenEndpoint": "https://idp.example.com/token",
            "expiresAt": int(time.time()) + 3600,
        },
    }


# ============================================================================
# System Tests
# ============================================================================

def test_health_reports_mode(client):
    response = client.get("/health")

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["mode"] == "single-tenant"
    assert response.json()["cached_strategies"] == 1


def test_routes_unavailable_without_service(app, client):
    app.state.oidc_service = None

    response = client.get("/refresh-tokens")

    assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE


# ============================================================================
# Login Tests
# ============================================================================

def test_login_redirects_to_provider(client, mock_strategy):
    response = client.get("/login", follow_redirects=False)

    assert response.status_code == status.HTTP_302_FOUND
    assert response.headers["location"].startswith("https://idp.example.com/authorize")
    mock_strategy.client.authorize_redirect.assert_awaited_once()


def test_unknown_channel_login_returns_404(multitenant_settings):
    app = create_app(settings=multitenant_settings)
    client = TestClient(app)

    response = client.get("/tenant/partner/login", follow_redirects=False)

    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_callback_logs_user_in(client):
    response = client.get("/login/callback?code=abc&state=abc", follow_redirects=False)

    assert response.status_code == status.HTTP_302_FOUND
    assert response.headers["location"] == "/"

    user_response = client.get("/user")
    assert user_response.status_code == status.HTTP_200_OK
    assert user_response.json() == {"sub": "user-123", "email": "user@example.com"}


# ============================================================================
# Logout Tests
# ============================================================================

def test_logout_requires_session(client):
    response = client.get("/logout", follow_redirects=False)
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_logout_redirects_to_end_session(client, logged_in_user):
    set_session(client, {"user": logged_in_user})

    response = client.get("/logout", follow_redirects=False)

    assert response.status_code == status.HTTP_302_FOUND
    assert response.headers["location"] == "https://idp.example.com/logout?id_token_hint=idt"


def test_loggedout_page(client):
    response = client.get("/loggedout")

    assert response.status_code == status.HTTP_200_OK
    assert "text/html" in response.headers["content-type"]
    assert 'href="/login"' in response.text


def test_prefixed_loggedout_page(client):
    response = client.get("/tenant/b2c/loggedout")

    assert response.status_code == status.HTTP_200_OK
    assert 'href="/tenant/b2c/login"' in response.text


# ============================================================================
# Token Refresh / User Tests
# ============================================================================

def test_refresh_tokens_anonymous_returns_200(client):
    assert client.get("/refresh-tokens").status_code == status.HTTP_200_OK


def test_refresh_tokens_without_endpoint_returns_401(client, logged_in_user):
    logged_in_user["authTokens"]["expiresAt"] = int(time.time()) - 10
    del logged_in_user["authTokens"]["tokenEndpoint"]
    set_session(client, {"user": logged_in_user})

    assert client.get("/refresh-tokens").status_code == status.HTTP_401_UNAUTHORIZED


def test_user_requires_authentication(client):
    response = client.get("/user")

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert "authenticated" in response.json()["detail"].lower()


def test_user_returns_userinfo(client, logged_in_user):
    set_session(client, {"user": logged_in_user})

    response = client.get("/user")

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"sub": "user-123"}


def test_user_fails_when_refresh_impossible(client, logged_in_user):
    logged_in_user["authTokens"]["expiresAt"] = int(time.time()) - 10
    del logged_in_user["authTokens"]["tokenEndpoint"]
    set_session(client, {"user": logged_in_user})

    response = client.get("/user")

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
