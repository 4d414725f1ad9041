"""Tests for the API-key and dashboard authentication schemes."""

from __future__ import annotations

import base64

import pytest

from openwapi.api.auth import (
    decode_basic_credentials,
    timing_safe_compare,
    verify_api_key,
    verify_basic_auth,
)
from openwapi.errors import AuthError

from .helpers import basic_auth_header


class TestTimingSafeCompare:
    def test_identical_secret_accepted(self):
        assert timing_safe_compare("k3y-value", "k3y-value") is True

    def test_different_lengths_rejected(self):
        assert timing_safe_compare("short", "a-much-longer-secret") is False
        assert timing_safe_compare("a-much-longer-secret", "short") is False

    def test_equal_length_single_byte_difference_rejected(self):
        stored = "abcdefghij"
        for i in range(len(stored)):
            candidate = stored[:i] + "Z" + stored[i + 1:]
            assert timing_safe_compare(candidate, stored) is False

    def test_empty_values_rejected(self):
        assert timing_safe_compare("", "") is False
        assert timing_safe_compare(None, "stored") is False
        assert timing_safe_compare("supplied", None) is False


class TestVerifyApiKey:
    def test_missing_header(self):
        with pytest.raises(AuthError) as exc_info:
            verify_api_key(None, "stored")
        assert exc_info.value.status_code == 401
        assert exc_info.value.message == "API key required"

    def test_not_configured_is_server_error(self):
        with pytest.raises(AuthError) as exc_info:
            verify_api_key("anything", None)
        assert exc_info.value.status_code == 500
        assert exc_info.value.message == "API key not configured"

    def test_wrong_key(self):
        with pytest.raises(AuthError) as exc_info:
            verify_api_key("wrong", "stored-key")
        assert exc_info.value.status_code == 401
        assert exc_info.value.message == "Invalid API key"

    def test_stored_key_admitted(self):
        verify_api_key("stored-key", "stored-key")


class TestBasicAuth:
    def test_decode_valid_header(self):
        header = basic_auth_header("admin", "pa:ss")["Authorization"]
        assert decode_basic_credentials(header) == ("admin", "pa:ss")

    @pytest.mark.parametrize(
        "header",
        [
            None,
            "",
            "Bearer abc",
            "Basic !!!not-base64!!!",
            "Basic " + base64.b64encode(b"no-colon").decode(),
        ],
    )
    def test_malformed_header_is_missing(self, header):
        assert decode_basic_credentials(header) is None
        with pytest.raises(AuthError) as exc_info:
            verify_basic_auth(header, "admin", "s3cret")
        assert exc_info.value.message == "Authentication required"
        assert exc_info.value.headers["WWW-Authenticate"] == 'Basic realm="Dashboard"'

    def test_wrong_password_rechallenges(self):
        header = basic_auth_header("admin", "wrong!")["Authorization"]
        with pytest.raises(AuthError) as exc_info:
            verify_basic_auth(header, "admin", "s3cret")
        assert exc_info.value.status_code == 401
        assert exc_info.value.message == "Invalid credentials"
        assert "WWW-Authenticate" in exc_info.value.headers

    def test_wrong_username_rejected(self):
        header = basic_auth_header("root", "s3cret")["Authorization"]
        with pytest.raises(AuthError):
            verify_basic_auth(header, "admin", "s3cret")

    def test_valid_credentials_admitted(self):
        header = basic_auth_header("admin", "s3cret")["Authorization"]
        verify_basic_auth(header, "admin", "s3cret")


class TestAuthOnRoutes:
    def test_status_without_key(self, client):
        response = client.get("/api/v1/status")
        assert response.status_code == 401
        assert response.json() == {"success": False, "error": "API key required"}

    def test_status_with_wrong_key(self, client, store):
        store.ensure_api_key()
        response = client.get("/api/v1/status", headers={"X-API-Key": "nope"})
        assert response.status_code == 401
        assert response.json()["error"] == "Invalid API key"

    def test_status_when_no_key_provisioned(self, app, store):
        from fastapi.testclient import TestClient

        # No lifespan: the key is never provisioned
        client = TestClient(app)
        response = client.get("/api/v1/status", headers={"X-API-Key": "anything"})
        assert response.status_code == 500
        assert response.json()["error"] == "API key not configured"

    def test_config_requires_dashboard_credentials(self, client):
        response = client.get("/api/v1/config")
        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == 'Basic realm="Dashboard"'
        assert response.json()["error"] == "Authentication required"

    def test_config_with_bad_credentials(self, client):
        response = client.get("/api/v1/config", headers=basic_auth_header("admin", "bad"))
        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == 'Basic realm="Dashboard"'
        assert response.json()["error"] == "Invalid credentials"
