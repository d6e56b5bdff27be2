"""Managed-auth (Supabase GoTrue) REST calls.

Only the handful of endpoints the session layer needs are wrapped: the
PKCE authorize URL, code exchange, refresh and logout. Every failure is
raised as `ManagedAuthError` carrying the backend's own message, since the
callback flow inspects that message to tell a reused code from a real error.
"""

import base64
import hashlib
import logging
import os
import secrets
from datetime import datetime, timezone
from urllib.parse import urlencode

import httpx

from ncsstat.models.session import AuthSession, AuthUser
from ncsstat.session.backend import ManagedAuthError, ManagedAuthNotConfiguredError

logger = logging.getLogger(__name__)

SUPPORTED_PROVIDERS = ("google", "linkedin_oidc")


def _base_url() -> str:
    url = os.getenv("SUPABASE_URL", "").rstrip("/")
    if not url:
        raise ManagedAuthNotConfiguredError("SUPABASE_URL is not set")
    return f"{url}/auth/v1"


def _api_key() -> str:
    # Every call here is server-side, so the service role key may be used.
    key = os.getenv("SUPABASE_SERVICE_ROLE_KEY") or os.getenv("SUPABASE_ANON_KEY")
    if not key:
        raise ManagedAuthNotConfiguredError("SUPABASE_ANON_KEY is not set")
    return key


def _headers(access_token: str | None = None) -> dict[str, str]:
    headers = {"apikey": _api_key(), "Accept": "application/json"}
    if access_token:
        headers["Authorization"] = f"Bearer {access_token}"
    return headers


def generate_code_verifier() -> str:
    """A random PKCE code verifier (RFC 7636, 43-128 chars)."""
    return secrets.token_urlsafe(48)


def code_challenge_for(verifier: str) -> str:
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def build_authorize_url(provider: str, redirect_to: str, code_verifier: str) -> str:
    """Build the managed-auth authorize URL for a PKCE login with `provider`."""
    if provider not in SUPPORTED_PROVIDERS:
        raise ValueError(f"Unsupported login provider: {provider}")

    params = {
        "provider": provider,
        "redirect_to": redirect_to,
        "code_challenge": code_challenge_for(code_verifier),
        "code_challenge_method": "s256",
    }
    return f"{_base_url()}/authorize?{urlencode(params)}"


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if not isinstance(body, dict):
        return str(body)
    for key in ("msg", "error_description", "message", "error"):
        if body.get(key):
            return str(body[key])
    return f"HTTP {response.status_code}"


def session_from_payload(data: dict) -> AuthSession:
    """Convert a GoTrue token response into an `AuthSession`."""
    user = data["user"]
    metadata = user.get("user_metadata") or {}
    expires_at = data.get("expires_at")
    return AuthSession(
        access_token=data["access_token"],
        refresh_token=data.get("refresh_token"),
        expires_at=(
            datetime.fromtimestamp(expires_at, tz=timezone.utc)
            if expires_at is not None
            else None
        ),
        user=AuthUser(
            id=user["id"],
            email=user.get("email"),
            provider=(user.get("app_metadata") or {}).get("provider"),
            full_name=metadata.get("full_name") or metadata.get("name"),
        ),
    )


async def _token_request(grant_type: str, body: dict) -> AuthSession:
    url = f"{_base_url()}/token?grant_type={grant_type}"
    try:
        async with httpx.AsyncClient(timeout=10) as client:
            response = await client.post(url, json=body, headers=_headers())
    except httpx.HTTPError as e:
        raise ManagedAuthError(f"Auth service unreachable: {type(e).__name__}") from e

    if not response.is_success:
        message = _error_message(response)
        logger.warning(
            f"Managed-auth {grant_type} grant failed: {response.status_code} - {message}"
        )
        raise ManagedAuthError(message, status_code=response.status_code)

    try:
        return session_from_payload(response.json())
    except (ValueError, KeyError, TypeError) as e:
        raise ManagedAuthError(f"Unexpected auth service response: {e}") from e


async def exchange_code_for_session(code: str, code_verifier: str) -> AuthSession:
    """Exchange a PKCE authorization code for a session.

    Raises:
        ManagedAuthError: With the backend's message, e.g. when the code has
            already been used or the verifier does not match.
    """
    return await _token_request(
        "pkce", {"auth_code": code, "code_verifier": code_verifier}
    )


async def refresh_session(refresh_token: str) -> AuthSession:
    """Trade a refresh token for a new session."""
    return await _token_request("refresh_token", {"refresh_token": refresh_token})


async def sign_out(access_token: str) -> None:
    """Revoke the session behind `access_token` on the backend."""
    try:
        async with httpx.AsyncClient(timeout=10) as client:
            response = await client.post(
                f"{_base_url()}/logout", headers=_headers(access_token)
            )
    except httpx.HTTPError as e:
        raise ManagedAuthError(f"Auth service unreachable: {type(e).__name__}") from e

    # 401 means the token was already revoked or expired
    if not response.is_success and response.status_code != 401:
        raise ManagedAuthError(
            _error_message(response), status_code=response.status_code
        )
