"""Request-scoped session dependencies.

Every request gets one `CookieStore` (FastAPI caches dependencies per
request), so the session store, the reconciler and the route all read and
write the same cookie jar. Routes must `apply()` it onto their response.
"""

import logging
from typing import AsyncIterator
from uuid import UUID

from fastapi import Depends, Request, Response
from starlette.concurrency import run_in_threadpool

from ncsstat.db.activity import log_login, log_logout
from ncsstat.db.profiles import get_profile_by_id
from ncsstat.integrations.supabase import CookieSessionStore
from ncsstat.models import Profile
from ncsstat.models.session import CurrentUser
from ncsstat.session.cookies import CookieStore
from ncsstat.session.reconciler import SessionReconciler
from .env_loader import is_production
from .errors import ApiError

logger = logging.getLogger(__name__)


def get_cookie_store(request: Request) -> CookieStore:
    return CookieStore.from_request(request, secure=is_production())


def get_session_store(
    cookies: CookieStore = Depends(get_cookie_store),
) -> CookieSessionStore:
    return CookieSessionStore(cookies)


async def load_profile(user_id: UUID) -> Profile | None:
    return await run_in_threadpool(get_profile_by_id, user_id)


async def record_login(user_id: UUID) -> None:
    await run_in_threadpool(log_login, user_id)


async def record_logout(user_id: UUID) -> None:
    await run_in_threadpool(log_logout, user_id)


def build_reconciler(
    session_store: CookieSessionStore,
    cookies: CookieStore,
    track_activity: bool = False,
) -> SessionReconciler:
    """Create a reconciler wired to the database.

    Login/logout audit rows are only written when `track_activity` is set;
    ordinary API calls resolve the user without recording a login.
    """
    return SessionReconciler(
        session_store,
        cookies,
        fetch_profile=load_profile,
        record_login=record_login if track_activity else None,
        record_logout=record_logout,
    )


async def get_reconciler(
    response: Response,
    cookies: CookieStore = Depends(get_cookie_store),
    session_store: CookieSessionStore = Depends(get_session_store),
) -> AsyncIterator[SessionReconciler]:
    async with build_reconciler(session_store, cookies) as reconciler:
        # Carry refreshed tokens or a cleared cookie onto the route's response
        cookies.apply(response)
        yield reconciler


async def get_current_user(
    reconciler: SessionReconciler = Depends(get_reconciler),
) -> CurrentUser | None:
    """The signed-in user from either provider, or None."""
    return reconciler.current_user


async def require_user(
    user: CurrentUser | None = Depends(get_current_user),
) -> CurrentUser:
    if user is None:
        raise ApiError(401, "Authentication required")
    return user
