"""ORCID OAuth functions.

ORCID has no SDK here; the three-legged flow is done by hand against the
public OAuth and API endpoints. Set ORCID_BASE_URL / ORCID_API_URL to the
sandbox hosts for testing.
"""

import os
from urllib.parse import urlencode
import logging

import httpx
from pydantic import ValidationError

from .models import OrcidToken, OrcidProfile

ORCID_BASE_URL = os.getenv("ORCID_BASE_URL", "https://orcid.org").rstrip("/")
ORCID_API_URL = os.getenv("ORCID_API_URL", "https://pub.orcid.org/v3.0").rstrip("/")
AUTHORIZE_URL = f"{ORCID_BASE_URL}/oauth/authorize"
TOKEN_URL = f"{ORCID_BASE_URL}/oauth/token"
CLIENT_ID = os.getenv("ORCID_CLIENT_ID", "")
CLIENT_SECRET = os.getenv("ORCID_CLIENT_SECRET", "")

logger = logging.getLogger(__name__)


class OrcidNotConfiguredError(RuntimeError):
    """Raised when an ORCID operation needs credentials that are not set."""


def is_configured() -> bool:
    """Whether both the ORCID client id and secret are set."""
    return bool(CLIENT_ID and CLIENT_SECRET)


def build_authorization_url(redirect_uri: str, state: str) -> str:
    """Build the ORCID authorization URL.

    Only the `/authenticate` scope is requested: we need the iD, not write
    access to the record.

    Raises:
        OrcidNotConfiguredError: If ORCID_CLIENT_ID is not set.
    """
    if not CLIENT_ID:
        raise OrcidNotConfiguredError("ORCID_CLIENT_ID environment variable is not set")

    params = {
        "client_id": CLIENT_ID,
        "response_type": "code",
        "scope": "/authenticate",
        "redirect_uri": redirect_uri,
        "state": state,
    }
    return f"{AUTHORIZE_URL}?{urlencode(params)}"


async def exchange_code(code: str, redirect_uri: str) -> OrcidToken | None:
    """Exchange an ORCID authorization code for a token.

    Returns:
        The token, or None on missing configuration, a non-2xx response, a
        network failure or an unexpected body. Failures are not retried.
    """
    if not is_configured():
        logger.error("ORCID credentials not configured")
        return None

    try:
        async with httpx.AsyncClient(timeout=10) as client:
            response = await client.post(
                TOKEN_URL,
                data={
                    "client_id": CLIENT_ID,
                    "client_secret": CLIENT_SECRET,
                    "grant_type": "authorization_code",
                    "code": code,
                    "redirect_uri": redirect_uri,
                },
                headers={"Accept": "application/json"},
            )
    except httpx.HTTPError as e:
        logger.error(f"ORCID token exchange error: {type(e).__name__}: {e}")
        return None

    if not response.is_success:
        logger.error(
            f"ORCID token exchange failed: {response.status_code} - {response.text}"
        )
        return None

    try:
        return OrcidToken.model_validate(response.json())
    except (ValueError, ValidationError) as e:
        logger.error(f"Unexpected ORCID token response: {e}")
        return None


async def fetch_profile(orcid_id: str, access_token: str) -> OrcidProfile | None:
    """Fetch the public person record for an ORCID iD.

    Returns:
        Name and primary (or first) email, or None on failure.
    """
    try:
        async with httpx.AsyncClient(timeout=10) as client:
            response = await client.get(
                f"{ORCID_API_URL}/{orcid_id}/person",
                headers={
                    "Accept": "application/json",
                    "Authorization": f"Bearer {access_token}",
                },
            )
    except httpx.HTTPError as e:
        logger.error(f"ORCID profile fetch error: {type(e).__name__}: {e}")
        return None

    if not response.is_success:
        logger.error(f"ORCID profile fetch failed: {response.status_code}")
        return None

    try:
        return OrcidProfile.from_person(orcid_id, response.json())
    except (ValueError, AttributeError) as e:
        logger.error(f"Unexpected ORCID person response: {e}")
        return None
