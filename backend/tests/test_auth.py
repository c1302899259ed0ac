"""Tests for auth module (JWT bearer verification)."""
from datetime import timedelta

import jwt
import pytest

from app.auth.service import (
    AUTH_REQUIRED,
    INVALID_TOKEN,
    TokenService,
    extract_bearer_token,
)
from app.errors import AuthenticationError

from conftest import TEST_SECRET, auth_headers


class TestExtractBearerToken:
    """Tests for picking the credential out of a handshake."""

    def test_auth_field_wins_over_header(self):
        assert extract_bearer_token("field-token", "Bearer header-token") == "field-token"

    def test_bearer_header(self):
        assert extract_bearer_token(None, "Bearer abc.def") == "abc.def"

    def test_scheme_is_case_insensitive(self):
        assert extract_bearer_token(None, "bearer abc") == "abc"

    def test_other_scheme_is_ignored(self):
        assert extract_bearer_token(None, "Basic dXNlcjpwYXNz") is None

    def test_blank_values(self):
        assert extract_bearer_token("   ", None) is None
        assert extract_bearer_token(None, "Bearer ") is None
        assert extract_bearer_token(None, None) is None


class TestTokenService:
    """Tests for token verification."""

    def test_issue_then_verify(self, token_service):
        token = token_service.issue("alice", "alice@example.com", role="admin")
        user = token_service.verify(token)
        assert user.user_id == "alice"
        assert user.email == "alice@example.com"
        assert user.role == "admin"

    def test_missing_token(self, token_service):
        with pytest.raises(AuthenticationError) as exc_info:
            token_service.verify(None)
        assert exc_info.value.message == AUTH_REQUIRED
        assert exc_info.value.status_code == 401

    def test_expired_token(self, token_service):
        token = token_service.issue("alice", "a@x.io", expires_in=timedelta(seconds=-5))
        with pytest.raises(AuthenticationError) as exc_info:
            token_service.verify(token)
        assert exc_info.value.message == INVALID_TOKEN

    def test_wrong_secret(self, token_service):
        token = TokenService("another-secret-that-is-long-enough").issue("alice", "a@x.io")
        with pytest.raises(AuthenticationError):
            token_service.verify(token)

    def test_token_without_subject(self, token_service):
        token = jwt.encode({"email": "a@x.io", "exp": 9999999999}, TEST_SECRET, algorithm="HS256")
        with pytest.raises(AuthenticationError):
            token_service.verify(token)


class TestHttpAuthentication:
    """Tests for the HTTP bearer dependency."""

    def test_missing_credentials(self, seeded, api_client):
        response = api_client.get("/users/me")
        assert response.status_code == 401
        assert response.json() == {"error": "Authentication required"}

    def test_invalid_credentials(self, seeded, api_client):
        response = api_client.get("/users/me", headers={"Authorization": "Bearer junk"})
        assert response.status_code == 401
        assert response.json() == {"error": "Invalid token"}

    def test_valid_credentials(self, seeded, api_client):
        response = api_client.get("/users/me", headers=auth_headers(api_client, "alice"))
        assert response.status_code == 200
        assert response.json()["id"] == "alice"
