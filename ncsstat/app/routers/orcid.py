"""ORCID login: redirect to ORCID, then handle the redirect back.

ORCID is not a managed-auth provider, so a returning ORCID user gets the
`orcid_user` pseudo-session cookie instead of a managed-auth session. A
first-time ORCID user is sent to the profile-completion page with the
identity parked in the short-lived `orcid_pending` cookie.
"""

import base64
import binascii
import json
import logging
import secrets
from urllib.parse import urlencode

import psycopg
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import RedirectResponse
from starlette.concurrency import run_in_threadpool

from ncsstat.db.profiles import get_profile_by_orcid, touch_last_active
from ncsstat.integrations import orcid
from ncsstat.session.callback import DEFAULT_NEXT_PATH, login_url, safe_next_path
from ncsstat.session.cookies import CookieStore, OrcidPending
from ..auth import get_cookie_store
from ..env_loader import public_site_url

PUBLIC_SITE_URL = public_site_url()
COMPLETE_PROFILE_PATH = "/auth/complete-profile"

router = APIRouter(prefix="/auth/orcid", tags=["orcid"])
logger = logging.getLogger(__name__)


def get_redirect_uri() -> str:
    return f"{PUBLIC_SITE_URL}/auth/orcid/callback"


def encode_state(next_path: str, csrf: str) -> str:
    payload = json.dumps({"next": next_path, "csrf": csrf}).encode()
    return base64.b64encode(payload).decode("ascii")


def decode_state(state: str) -> dict | None:
    """Decode a base64 JSON state blob (standard or URL-safe alphabet).

    Returns:
        The decoded object, or None when it cannot be parsed.
    """
    normalized = state.strip().replace("-", "+").replace("_", "/")
    normalized += "=" * (-len(normalized) % 4)
    try:
        data = json.loads(base64.b64decode(normalized, validate=True))
    except (binascii.Error, ValueError):
        return None
    return data if isinstance(data, dict) else None


def _redirect(url: str, cookies: CookieStore | None = None) -> RedirectResponse:
    response = RedirectResponse(url=url, status_code=302)
    if cookies is not None:
        cookies.apply(response)
    return response


@router.get("/login")
def orcid_login(next: str = DEFAULT_NEXT_PATH) -> RedirectResponse:
    """Send the browser to ORCID to sign in."""
    if not orcid.is_configured():
        raise HTTPException(
            status_code=503,
            detail="ORCID login not configured. Missing ORCID_CLIENT_ID or ORCID_CLIENT_SECRET",
        )
    state = encode_state(safe_next_path(next), secrets.token_urlsafe(24))
    return _redirect(orcid.build_authorization_url(get_redirect_uri(), state))


@router.get("/callback")
async def orcid_callback(
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    error_description: str | None = None,
    cookies: CookieStore = Depends(get_cookie_store),
) -> RedirectResponse:
    """Handle the redirect back from ORCID.

    Every outcome is a redirect: to the target page, to profile completion,
    or to `/login?error=<code>`.
    """
    if error:
        logger.error(f"ORCID OAuth error: {error} {error_description or ''}")
        return _redirect(login_url(f"ORCID error: {error_description or error}"))

    if not code:
        logger.error("ORCID callback without authorization code")
        return _redirect(login_url("no_orcid_code"))

    logger.info(f"Processing ORCID callback, code={code[:8]}...")

    state_data = decode_state(state) if state else {}
    if state_data is None:
        logger.warning("Failed to parse ORCID state, using default next path")
        state_data = {}
    if not state_data.get("csrf"):
        # Presence check only: the token is not matched to one we issued
        logger.warning("Missing CSRF token in ORCID state")
        return _redirect(login_url("invalid_request_state"))
    next_path = safe_next_path(state_data.get("next"))

    try:
        return await _complete_orcid_login(code, next_path, cookies)
    except Exception as e:
        logger.exception("Unexpected error in ORCID callback")
        return _redirect(login_url(f"Unexpected ORCID error: {e}"))


async def _complete_orcid_login(
    code: str, next_path: str, cookies: CookieStore
) -> RedirectResponse:
    token = await orcid.exchange_code(code, get_redirect_uri())
    if token is None:
        return _redirect(login_url("orcid_token_exchange_failed"))

    profile = await orcid.fetch_profile(token.orcid, token.access_token)
    if profile is None:
        return _redirect(login_url("orcid_profile_failed"))

    try:
        existing = await run_in_threadpool(get_profile_by_orcid, token.orcid)
    except psycopg.Error as e:
        logger.error(f"Database error looking up ORCID {token.orcid}: {e}")
        return _redirect(login_url("database_error"))

    if existing is not None:
        logger.info(f"Returning ORCID user {token.orcid} -> profile {existing.id}")
        await run_in_threadpool(touch_last_active, existing.id)
        cookies.set_orcid_user(existing.id)
        cookies.clear_orcid_pending()
        return _redirect(next_path, cookies)

    logger.info(f"New ORCID user {token.orcid}, redirecting to profile completion")
    cookies.set_orcid_pending(
        OrcidPending(orcid=token.orcid, name=profile.name, email=profile.email)
    )
    query = urlencode({"orcid": token.orcid, "name": profile.name})
    return _redirect(f"{COMPLETE_PROFILE_PATH}?{query}", cookies)
