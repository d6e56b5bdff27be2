"""Tests for the managed-auth REST client."""

import base64
import hashlib
import time
from unittest.mock import patch, AsyncMock, Mock
from urllib.parse import parse_qs, urlparse
from uuid import UUID

import httpx
import pytest

from ncsstat.integrations.supabase.auth import (
    build_authorize_url,
    code_challenge_for,
    exchange_code_for_session,
    generate_code_verifier,
    refresh_session,
    session_from_payload,
    sign_out,
)
from ncsstat.session.backend import ManagedAuthError, ManagedAuthNotConfiguredError

BASE_URL = "https://project.supabase.example.com/auth/v1"
USER_ID = "22222222-2222-4222-8222-222222222222"


def _response(status_code: int, body=None) -> Mock:
    response = Mock()
    response.status_code = status_code
    response.is_success = 200 <= status_code < 300
    response.text = "" if body is None else str(body)
    if body is None:
        response.json.side_effect = ValueError("No JSON")
    else:
        response.json.return_value = body
    return response


def _token_payload(**overrides) -> dict:
    payload = {
        "access_token": "new-access",
        "refresh_token": "new-refresh",
        "expires_at": int(time.time()) + 3600,
        "user": {
            "id": USER_ID,
            "email": "managed@example.com",
            "app_metadata": {"provider": "github"},
            "user_metadata": {"full_name": "Managed User"},
        },
    }
    payload.update(overrides)
    return payload


class TestAuthorizeUrl:
    def test_pkce_parameters(self):
        url = build_authorize_url(
            "google", "https://ncsstat.example.com/auth/callback", "verifier-123"
        )
        parsed = urlparse(url)
        query = parse_qs(parsed.query)

        assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == f"{BASE_URL}/authorize"
        assert query["provider"] == ["google"]
        assert query["redirect_to"] == ["https://ncsstat.example.com/auth/callback"]
        assert query["code_challenge"] == [code_challenge_for("verifier-123")]
        assert query["code_challenge_method"] == ["s256"]

    @pytest.mark.parametrize("provider", ["myspace", "email", "github"])
    def test_unsupported_provider(self, provider):
        with pytest.raises(ValueError, match="Unsupported login provider"):
            build_authorize_url(provider, "https://x.example.com", "v")

    def test_linkedin_provider(self):
        url = build_authorize_url("linkedin_oidc", "https://x.example.com", "v")
        assert parse_qs(urlparse(url).query)["provider"] == ["linkedin_oidc"]

    def test_not_configured(self, monkeypatch):
        monkeypatch.setenv("SUPABASE_URL", "")
        with pytest.raises(ManagedAuthNotConfiguredError):
            build_authorize_url("google", "https://x.example.com", "v")


def test_code_challenge_is_unpadded_s256():
    verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
    expected = (
        base64.urlsafe_b64encode(hashlib.sha256(verifier.encode()).digest())
        .rstrip(b"=")
        .decode()
    )
    assert code_challenge_for(verifier) == expected
    assert "=" not in code_challenge_for(verifier)


def test_code_verifier_length():
    verifier = generate_code_verifier()
    assert 43 <= len(verifier) <= 128
    assert verifier != generate_code_verifier()


class TestExchangeCode:
    @pytest.mark.asyncio
    async def test_success(self):
        with patch("httpx.AsyncClient") as mock_client:
            mock_client_instance = AsyncMock()
            mock_client.return_value.__aenter__.return_value = mock_client_instance
            mock_client_instance.post.return_value = _response(200, _token_payload())

            session = await exchange_code_for_session("auth-code", "verifier")

        assert session.access_token == "new-access"
        assert session.user.id == UUID(USER_ID)
        assert session.user.provider == "github"
        assert session.user.full_name == "Managed User"

        call_args = mock_client_instance.post.call_args
        assert call_args[0][0] == f"{BASE_URL}/token?grant_type=pkce"
        assert call_args[1]["json"] == {
            "auth_code": "auth-code",
            "code_verifier": "verifier",
        }
        assert call_args[1]["headers"]["apikey"] == "test-anon-key"

    @pytest.mark.asyncio
    async def test_backend_message_is_preserved(self):
        body = {"error": "invalid_grant", "error_description": "code already been used"}
        with patch("httpx.AsyncClient") as mock_client:
            mock_client_instance = AsyncMock()
            mock_client.return_value.__aenter__.return_value = mock_client_instance
            mock_client_instance.post.return_value = _response(400, body)

            with pytest.raises(ManagedAuthError) as exc_info:
                await exchange_code_for_session("auth-code", "verifier")

        assert exc_info.value.message == "code already been used"
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_non_json_error(self):
        with patch("httpx.AsyncClient") as mock_client:
            mock_client_instance = AsyncMock()
            mock_client.return_value.__aenter__.return_value = mock_client_instance
            mock_client_instance.post.return_value = _response(502)

            with pytest.raises(ManagedAuthError, match="HTTP 502"):
                await exchange_code_for_session("auth-code", "verifier")

    @pytest.mark.asyncio
    async def test_unreachable(self):
        with patch("httpx.AsyncClient") as mock_client:
            mock_client_instance = AsyncMock()
            mock_client.return_value.__aenter__.return_value = mock_client_instance
            mock_client_instance.post.side_effect = httpx.ConnectTimeout("timed out")

            with pytest.raises(ManagedAuthError, match="unreachable"):
                await exchange_code_for_session("auth-code", "verifier")

    @pytest.mark.asyncio
    async def test_unexpected_body(self):
        with patch("httpx.AsyncClient") as mock_client:
            mock_client_instance = AsyncMock()
            mock_client.return_value.__aenter__.return_value = mock_client_instance
            mock_client_instance.post.return_value = _response(200, {"foo": "bar"})

            with pytest.raises(ManagedAuthError, match="Unexpected"):
                await exchange_code_for_session("auth-code", "verifier")


@pytest.mark.asyncio
async def test_refresh_session():
    with patch("httpx.AsyncClient") as mock_client:
        mock_client_instance = AsyncMock()
        mock_client.return_value.__aenter__.return_value = mock_client_instance
        mock_client_instance.post.return_value = _response(200, _token_payload())

        session = await refresh_session("old-refresh")

    assert session.refresh_token == "new-refresh"
    call_args = mock_client_instance.post.call_args
    assert call_args[0][0] == f"{BASE_URL}/token?grant_type=refresh_token"
    assert call_args[1]["json"] == {"refresh_token": "old-refresh"}


class TestSignOut:
    @pytest.mark.asyncio
    async def test_sends_bearer_token(self):
        with patch("httpx.AsyncClient") as mock_client:
            mock_client_instance = AsyncMock()
            mock_client.return_value.__aenter__.return_value = mock_client_instance
            mock_client_instance.post.return_value = _response(204)

            await sign_out("access-token")

        call_args = mock_client_instance.post.call_args
        assert call_args[0][0] == f"{BASE_URL}/logout"
        assert call_args[1]["headers"]["Authorization"] == "Bearer access-token"

    @pytest.mark.asyncio
    async def test_already_revoked_is_ok(self):
        with patch("httpx.AsyncClient") as mock_client:
            mock_client_instance = AsyncMock()
            mock_client.return_value.__aenter__.return_value = mock_client_instance
            mock_client_instance.post.return_value = _response(401, {"msg": "bad jwt"})

            await sign_out("access-token")

    @pytest.mark.asyncio
    async def test_server_error_raises(self):
        with patch("httpx.AsyncClient") as mock_client:
            mock_client_instance = AsyncMock()
            mock_client.return_value.__aenter__.return_value = mock_client_instance
            mock_client_instance.post.return_value = _response(500, {"msg": "oops"})

            with pytest.raises(ManagedAuthError, match="oops"):
                await sign_out("access-token")


def test_session_from_payload_without_expiry():
    session = session_from_payload(_token_payload(expires_at=None))
    assert session.expires_at is None
    assert not session.is_expired()
