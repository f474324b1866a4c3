"""Unit tests for ias_auth/token_gen.py.

NOTE: Token caching is handled by TokenManager (tested in test_token_manager.py).
These tests focus on the token request itself.
"""

import base64
from datetime import datetime
from datetime import timedelta
from datetime import timezone
from unittest.mock import MagicMock
from unittest.mock import patch

import pytest
import requests

from scim_mirror.exceptions import TokenError
from scim_mirror.ias_auth.token_gen import get_auth_token
from tests.consts import TOKEN_URL


def token_response(status_code=200, payload=None, json_error=None):
    response = MagicMock()
    response.status_code = status_code
    response.text = str(payload)
    if json_error:
        response.json.side_effect = json_error
    else:
        response.json.return_value = payload
    return response


class TestGetAuthToken:
    """Tests for get_auth_token function."""

    @patch("scim_mirror.ias_auth.token_gen.requests.post")
    def test_get_auth_token_success(self, mock_post):
        exec_time = datetime(2026, 1, 5, 12, 0, tzinfo=timezone.utc)
        mock_post.return_value = token_response(payload={"access_token": "new_token", "expires_in": 3600})

        token, expires_at = get_auth_token(TOKEN_URL, "client", "secret", exec_time)

        assert token == "new_token"
        assert expires_at == exec_time + timedelta(seconds=3600)

    @patch("scim_mirror.ias_auth.token_gen.requests.post")
    def test_sends_client_credentials_with_basic_auth(self, mock_post):
        mock_post.return_value = token_response(payload={"access_token": "t", "expires_in": 60})

        get_auth_token(TOKEN_URL, "client", "secret", datetime.now(timezone.utc))

        args, kwargs = mock_post.call_args
        assert args[0] == TOKEN_URL
        assert kwargs["data"] == {"grant_type": "client_credentials"}
        assert kwargs["timeout"] == 30
        expected = base64.b64encode(b"client:secret").decode()
        assert kwargs["headers"]["Authorization"] == f"Basic {expected}"

    @patch("scim_mirror.ias_auth.token_gen.requests.post")
    def test_expires_in_defaults_to_300_seconds(self, mock_post):
        exec_time = datetime(2026, 1, 5, 12, 0, tzinfo=timezone.utc)
        mock_post.return_value = token_response(payload={"access_token": "t"})

        _, expires_at = get_auth_token(TOKEN_URL, "client", "secret", exec_time)

        assert expires_at == exec_time + timedelta(seconds=300)

    @patch("scim_mirror.ias_auth.token_gen.requests.post")
    def test_get_auth_token_request_fails(self, mock_post):
        mock_post.return_value = token_response(status_code=401, payload={"error": "invalid_client"})

        with pytest.raises(TokenError) as exc_info:
            get_auth_token(TOKEN_URL, "client", "secret", datetime.now(timezone.utc))

        assert "401" in str(exc_info.value)

    @patch("scim_mirror.ias_auth.token_gen.requests.post")
    def test_get_auth_token_network_error(self, mock_post):
        mock_post.side_effect = requests.exceptions.ConnectionError("connection refused")

        with pytest.raises(TokenError) as exc_info:
            get_auth_token(TOKEN_URL, "client", "secret", datetime.now(timezone.utc))

        assert "Network error" in str(exc_info.value)

    @patch("scim_mirror.ias_auth.token_gen.requests.post")
    def test_get_auth_token_missing_access_token(self, mock_post):
        mock_post.return_value = token_response(payload={"expires_in": 3600})

        with pytest.raises(TokenError) as exc_info:
            get_auth_token(TOKEN_URL, "client", "secret", datetime.now(timezone.utc))

        assert "Access token not found" in str(exc_info.value)

    @patch("scim_mirror.ias_auth.token_gen.requests.post")
    def test_get_auth_token_invalid_json(self, mock_post):
        mock_post.return_value = token_response(json_error=ValueError("Expecting value"))

        with pytest.raises(TokenError) as exc_info:
            get_auth_token(TOKEN_URL, "client", "secret", datetime.now(timezone.utc))

        assert "Failed to parse token response" in str(exc_info.value)
