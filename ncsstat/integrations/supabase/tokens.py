"""Local validation of managed-auth access tokens using the backend's JWKS."""

import os
import time
import logging
from datetime import datetime, timezone
from typing import Optional, Dict, Any

import jwt
from jwt import PyJWKClient

from ncsstat.models.session import AuthSession, AuthUser

logger = logging.getLogger(__name__)

# JWKS client cache
_jwks_client: Optional[PyJWKClient] = None
_jwks_cache_time: float = 0
JWKS_CACHE_DURATION = 3600  # 1 hour

# GoTrue puts this audience on every user access token
JWT_AUDIENCE = "authenticated"


def get_auth_base_url() -> str:
    """Managed-auth API base URL; also the expected token issuer."""
    return f"{os.environ['SUPABASE_URL'].rstrip('/')}/auth/v1"


def get_jwks_client() -> PyJWKClient:
    """Get or refresh JWKS client for access token validation."""
    global _jwks_client, _jwks_cache_time

    now = time.time()
    if _jwks_client is None or (now - _jwks_cache_time) > JWKS_CACHE_DURATION:
        jwks_url = f"{get_auth_base_url()}/.well-known/jwks.json"
        _jwks_client = PyJWKClient(
            jwks_url, cache_keys=True, lifespan=JWKS_CACHE_DURATION
        )
        _jwks_cache_time = now
        logger.info(f"Refreshed JWKS client from {jwks_url}")

    return _jwks_client


def validate_access_token(token: str) -> Optional[Dict[str, Any]]:
    """Validate an access token from the `sb-access-token` cookie.

    Returns decoded claims if valid, None if invalid or expired. An expired
    token is normal (the browser refreshes it), so it is only logged at
    info level.
    """
    try:
        signing_key = get_jwks_client().get_signing_key_from_jwt(token)
        return jwt.decode(
            token,
            signing_key.key,
            algorithms=["ES256", "RS256"],
            issuer=get_auth_base_url(),
            audience=JWT_AUDIENCE,
            options={"require": ["exp", "iss", "sub", "aud"]},
        )
    except jwt.ExpiredSignatureError:
        logger.info("Access token expired")
        return None
    except jwt.PyJWKClientError as e:
        logger.error(f"Could not load signing key: {e}")
        return None
    except jwt.InvalidTokenError as e:
        logger.warning(f"Invalid access token: {e}")
        return None


def session_from_claims(
    access_token: str, refresh_token: str | None, claims: Dict[str, Any]
) -> AuthSession:
    """Build an `AuthSession` from a validated access token's claims."""
    metadata = claims.get("user_metadata") or {}
    return AuthSession(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_at=datetime.fromtimestamp(claims["exp"], tz=timezone.utc),
        user=AuthUser(
            id=claims["sub"],
            email=claims.get("email") or None,
            provider=(claims.get("app_metadata") or {}).get("provider"),
            full_name=metadata.get("full_name") or metadata.get("name"),
        ),
    )
