import logging

from fastapi import APIRouter, Depends, Response

from ncsstat.integrations.supabase import CookieSessionStore
from ncsstat.integrations.supabase.session_store import REFRESH_TOKEN_COOKIE
from ncsstat.models.session import SessionSummary
from ncsstat.session.backend import ManagedAuthError
from ncsstat.session.cookies import CookieStore
from ..auth import build_reconciler, get_cookie_store, get_session_store
from ..models import RefreshSessionResponse, SessionResponse

router = APIRouter(prefix="/api", tags=["session"])
logger = logging.getLogger(__name__)


@router.get(
    "/refresh-session",
    response_model=RefreshSessionResponse,
    response_model_exclude_none=True,
)
async def get_session_status(
    response: Response,
    cookies: CookieStore = Depends(get_cookie_store),
    session_store: CookieSessionStore = Depends(get_session_store),
) -> RefreshSessionResponse:
    """Report whether the request carries a valid managed-auth session."""
    try:
        session = await session_store.get_session()
    except ManagedAuthError as e:
        return RefreshSessionResponse(has_session=False, error=e.message)
    cookies.apply(response)
    return RefreshSessionResponse(
        has_session=session is not None,
        session=SessionSummary.from_session(session) if session else None,
    )


@router.post(
    "/refresh-session",
    response_model=RefreshSessionResponse,
    response_model_exclude_none=True,
)
async def refresh_session(
    response: Response,
    cookies: CookieStore = Depends(get_cookie_store),
    session_store: CookieSessionStore = Depends(get_session_store),
) -> RefreshSessionResponse:
    """Force a managed-auth token refresh.

    An expired access token with a live refresh token can still be
    refreshed, so only a missing refresh token counts as "no session".
    """
    current = await session_store.get_session(refresh=False)
    if current is None and cookies.get(REFRESH_TOKEN_COOKIE) is None:
        return RefreshSessionResponse(
            success=False, has_session=False, error="No session found"
        )

    try:
        session = await session_store.refresh_session()
    except ManagedAuthError as e:
        logger.warning(f"Session refresh failed: {e.message}")
        return RefreshSessionResponse(
            success=False,
            has_session=current is not None,
            session=SessionSummary.from_session(current) if current else None,
            error=f"Refresh error: {e.message}",
        )

    cookies.apply(response)
    return RefreshSessionResponse(
        success=True,
        has_session=True,
        session=SessionSummary.from_session(session),
    )


@router.get("/session", response_model=SessionResponse)
async def get_current_session(
    response: Response,
    cookies: CookieStore = Depends(get_cookie_store),
    session_store: CookieSessionStore = Depends(get_session_store),
) -> SessionResponse:
    """Resolve the current user and profile the way the app shell does.

    This is the app-load entry point, so it records a login for
    managed-auth users.
    """
    async with build_reconciler(
        session_store, cookies, track_activity=True
    ) as reconciler:
        snapshot = SessionResponse(
            user=reconciler.current_user,
            profile=reconciler.current_profile,
            is_loading=reconciler.is_loading,
        )
    cookies.apply(response)
    return snapshot
