import logging
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse

from ncsstat.integrations.supabase import CookieSessionStore, SUPPORTED_PROVIDERS
from ncsstat.session.backend import ManagedAuthNotConfiguredError
from ncsstat.session.callback import (
    DEFAULT_NEXT_PATH,
    LOGIN_PATH,
    AuthCallbackFlow,
    CallbackParams,
    safe_next_path,
)
from ncsstat.session.cookies import CookieStore
from ncsstat.session.reconciler import SessionReconciler
from ..auth import get_cookie_store, get_reconciler, get_session_store
from ..env_loader import public_site_url

PUBLIC_SITE_URL = public_site_url()

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)


@router.get("/login/{provider}")
def managed_auth_login(
    provider: str,
    next: str = DEFAULT_NEXT_PATH,
    cookies: CookieStore = Depends(get_cookie_store),
    session_store: CookieSessionStore = Depends(get_session_store),
) -> RedirectResponse:
    """Start a PKCE login with a managed-auth provider."""
    if provider not in SUPPORTED_PROVIDERS:
        raise HTTPException(status_code=404, detail=f"Unknown provider: {provider}")

    callback_url = (
        f"{PUBLIC_SITE_URL}/auth/callback?{urlencode({'next': safe_next_path(next)})}"
    )
    try:
        authorize_url = session_store.begin_login(provider, callback_url)
    except ManagedAuthNotConfiguredError as e:
        raise HTTPException(status_code=503, detail=e.message)

    logger.info(f"Redirecting to managed-auth login with {provider}")
    response = RedirectResponse(url=authorize_url, status_code=302)
    return cookies.apply(response)


@router.get("/callback")
async def managed_auth_callback(
    request: Request,
    cookies: CookieStore = Depends(get_cookie_store),
    session_store: CookieSessionStore = Depends(get_session_store),
) -> RedirectResponse:
    """Finish a managed-auth login and redirect to the target page.

    The redirect uses 303 so the browser re-fetches the target with GET and
    the new session cookies.
    """
    navigations: list[str] = []
    flow = AuthCallbackFlow(
        session_store, navigate=navigations.append, failure_redirect_delay=0
    )
    await flow.handle(CallbackParams.from_query(request.query_params))

    target = navigations[-1] if navigations else LOGIN_PATH
    logger.info(f"Auth callback finished in state {flow.state.value}")
    response = RedirectResponse(url=target, status_code=303)
    return cookies.apply(response)


@router.post("/signout")
async def sign_out(
    cookies: CookieStore = Depends(get_cookie_store),
    reconciler: SessionReconciler = Depends(get_reconciler),
) -> RedirectResponse:
    """Sign out of both providers and go to the login page."""
    await reconciler.sign_out()
    cookies.clear_orcid_user()
    cookies.clear_orcid_pending()
    response = RedirectResponse(url=LOGIN_PATH, status_code=302)
    return cookies.apply(response)
