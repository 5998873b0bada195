"""
Tests for api/security/auth.py - JWT authentication.

Covers:
- Token extraction order (header, cookie, development query)
- Verification outcomes (expired, wrong issuer, wrong audience, bad signature)
- require_authentication on protected routes
- Cookie attributes per mode
"""
from datetime import timedelta

import jwt
import pytest
from fastapi.testclient import TestClient
from starlette.requests import Request
from starlette.responses import Response
from structlog.testing import capture_logs

from api.security.auth import (
    AuthConfig,
    Authenticated,
    Authenticator,
    Rejected,
    TokenSource,
)
from config import DeploymentMode

SECRET = "unit-test-secret-with-at-least-32-chars"


def make_request(headers=None, query=b""):
    scope = {
        "type": "http",
        "method": "GET",
        "scheme": "http",
        "server": ("testserver", 80),
        "path": "/api/test/whoami",
        "root_path": "",
        "query_string": query,
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": ("127.0.0.1", 50000),
    }
    return Request(scope)


@pytest.fixture
def authenticator():
    return Authenticator(AuthConfig(secret=SECRET, allow_query_token=True))


# =============================================================================
# Extraction
# =============================================================================

class TestExtractToken:
    """Tests for Authenticator.extract_token."""

    def test_bearer_header_wins_over_cookie(self, authenticator):
        request = make_request({"Authorization": "Bearer header-token", "Cookie": "authToken=cookie-token"})
        assert authenticator.extract_token(request) == ("header-token", TokenSource.HEADER)

    def test_cookie(self, authenticator):
        request = make_request({"Cookie": "authToken=cookie-token"})
        assert authenticator.extract_token(request) == ("cookie-token", TokenSource.COOKIE)

    def test_query_token_logged_when_allowed(self, authenticator):
        with capture_logs() as logs:
            found = authenticator.extract_token(make_request(query=b"token=query-token"))
        assert found == ("query-token", TokenSource.QUERY)
        assert logs[0]["event"] == "Token supplied in query string"
        assert logs[0]["log_level"] == "warning"

    def test_query_token_ignored_when_disallowed(self):
        authenticator = Authenticator(AuthConfig(secret=SECRET, allow_query_token=False))
        assert authenticator.extract_token(make_request(query=b"token=query-token")) is None

    def test_non_bearer_scheme_ignored(self, authenticator):
        assert authenticator.extract_token(make_request({"Authorization": "Basic abc"})) is None


# =============================================================================
# Verification
# =============================================================================

class TestVerify:
    """Tests for Authenticator.verify outcomes."""

    def test_valid_token(self, authenticator):
        token = authenticator.issue_token("user-42", role="agent")
        outcome = authenticator.verify(token)
        assert isinstance(outcome, Authenticated)
        assert outcome.context.subject == "user-42"
        assert outcome.context.issuer == "logetogo-api"
        assert outcome.context.audience == "logetogo-app"
        assert outcome.context.claims["role"] == "agent"

    def test_expired_token(self, authenticator):
        token = authenticator.issue_token("user-42", expires_in=timedelta(seconds=-30))
        assert authenticator.verify(token) == Rejected("token_expired")

    def test_wrong_issuer(self, authenticator):
        other = Authenticator(AuthConfig(secret=SECRET, issuer="someone-else"))
        assert authenticator.verify(other.issue_token("u")) == Rejected("invalid_issuer")

    def test_wrong_audience(self, authenticator):
        other = Authenticator(AuthConfig(secret=SECRET, audience="other-app"))
        assert authenticator.verify(other.issue_token("u")) == Rejected("invalid_audience")

    def test_wrong_signature(self, authenticator):
        other = Authenticator(AuthConfig(secret="another-secret-with-at-least-32-chars"))
        assert authenticator.verify(other.issue_token("u")) == Rejected("invalid_signature")

    def test_missing_subject(self, authenticator):
        token = jwt.encode(
            {"iss": "logetogo-api", "aud": "logetogo-app", "exp": 4102444800},
            SECRET,
            algorithm="HS256",
        )
        assert authenticator.verify(token) == Rejected("missing_claim")

    def test_garbage(self, authenticator):
        assert authenticator.verify("not.a.jwt") == Rejected("malformed_token")


# =============================================================================
# Configuration and cookies
# =============================================================================

class TestAuthConfig:
    """Tests for AuthConfig.from_app_config and cookie handling."""

    def test_production_cookie_is_strict(self, make_config):
        config = AuthConfig.from_app_config(make_config(DeploymentMode.PRODUCTION))
        assert config.cookie_secure
        assert config.cookie_samesite == "strict"
        assert not config.allow_query_token

    def test_development_cookie_is_lax(self, make_config):
        config = AuthConfig.from_app_config(make_config(DeploymentMode.DEVELOPMENT))
        assert not config.cookie_secure
        assert config.cookie_samesite == "lax"
        assert config.allow_query_token

    def test_set_auth_cookie(self, make_config):
        authenticator = Authenticator(AuthConfig.from_app_config(make_config(DeploymentMode.PRODUCTION)))
        response = Response()
        authenticator.set_auth_cookie(response, "tok")
        cookie = response.headers["set-cookie"]
        assert cookie.startswith("authToken=tok")
        assert "HttpOnly" in cookie
        assert "Secure" in cookie
        assert "SameSite=strict" in cookie
        assert "Max-Age=86400" in cookie


# =============================================================================
# Protected routes
# =============================================================================

class TestRequireAuthentication:
    """Tests for require_authentication through the application."""

    def test_missing_token_is_401(self, client):
        response = client.get("/api/test/whoami")
        assert response.status_code == 401
        assert response.json() == {
            "error": "Unauthorized",
            "message": "Missing or invalid token",
            "code": "UNAUTHORIZED",
        }
        assert response.headers["www-authenticate"] == "Bearer"

    def test_valid_bearer_token(self, client, auth_token):
        response = client.get("/api/test/whoami", headers={"Authorization": f"Bearer {auth_token}"})
        assert response.status_code == 200
        assert response.json()["context"]["subject"] == "user-123"
        assert response.json()["context"]["source"] == "header"

    def test_cookie_token(self, client, auth_token):
        client.cookies.set("authToken", auth_token)
        response = client.get("/api/test/whoami")
        assert response.status_code == 200
        assert response.json()["context"]["source"] == "cookie"

    def test_query_token_in_development(self, client, auth_token):
        response = client.get(f"/api/test/whoami?token={auth_token}")
        assert response.status_code == 200
        assert response.json()["context"]["source"] == "query"

    def test_expired_token_never_reaches_the_store(self, client, app):
        authenticator = app.state.context.require_authenticator()
        expired = authenticator.issue_token("user-123", expires_in=timedelta(minutes=-1))
        client.post("/api/test/users", json={
            "email": "kofi.agbeko@logetogo.tg",
            "firstName": "Kofi",
            "lastName": "Agbeko",
        })

        with capture_logs() as logs:
            response = client.delete("/api/test/cleanup", headers={"Authorization": f"Bearer {expired}"})

        assert response.status_code == 401
        rejection = next(e for e in logs if e["event"] == "Authentication failed")
        assert rejection["reason"] == "token_expired"
        assert client.get("/api/test/database").json()["database"]["statistics"]["users"] == 1

    def test_cleanup_with_valid_token(self, client, auth_token):
        client.post("/api/test/users", json={
            "email": "kofi.agbeko@logetogo.tg",
            "firstName": "Kofi",
            "lastName": "Agbeko",
        })
        response = client.delete("/api/test/cleanup", headers={"Authorization": f"Bearer {auth_token}"})
        assert response.status_code == 200
        assert response.json()["deleted"]["users"] == 1
