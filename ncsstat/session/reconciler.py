"""Resolve "the current user" across the two login providers.

A managed-auth session always wins over the ORCID pseudo-session cookie.
The reconciler bootstraps once, then follows the session store's auth-change
notifications until it is torn down.
"""

from __future__ import annotations
import asyncio
import logging
from typing import Awaitable, Callable
from uuid import UUID

from ncsstat.models import Profile
from ncsstat.models.session import (
    SIGN_IN_EVENTS,
    AuthEvent,
    AuthSession,
    CurrentUser,
)
from ncsstat.session.backend import SessionStore, Unsubscribe
from ncsstat.session.cookies import CookieStore

logger = logging.getLogger(__name__)

ProfileFetcher = Callable[[UUID], Awaitable["Profile | None"]]
UserHook = Callable[[UUID], Awaitable[None]]


def orcid_fallback_email(profile: Profile) -> str | None:
    if profile.email:
        return profile.email
    if profile.orcid_id:
        return f"{profile.orcid_id}@orcid.org"
    return None


class SessionReconciler:
    """Shared `current_user` / `current_profile` / `is_loading` state.

    Args:
        auth_store: The managed-auth session store.
        cookies: Cookie jar holding the ORCID pseudo-session.
        fetch_profile: Loads a Profile row by id.
        record_login: Optional side effect fired once per distinct user id.
        record_logout: Optional side effect fired on sign-out.
    """

    def __init__(
        self,
        auth_store: SessionStore,
        cookies: CookieStore,
        fetch_profile: ProfileFetcher,
        record_login: UserHook | None = None,
        record_logout: UserHook | None = None,
    ):
        self.auth_store = auth_store
        self.cookies = cookies
        self._fetch_profile = fetch_profile
        self._record_login = record_login
        self._record_logout = record_logout

        self.current_user: CurrentUser | None = None
        self.current_profile: Profile | None = None
        self.is_loading = True

        self._initialized = False
        self._unsubscribe: Unsubscribe | None = None
        self._logged_in: set[UUID] = set()
        self._tasks: set[asyncio.Task] = set()

    async def __aenter__(self) -> "SessionReconciler":
        await self.init()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.teardown()

    async def init(self) -> None:
        """Resolve the current user. Only the first call does any work."""
        if self._initialized:
            return
        self._initialized = True

        self._unsubscribe = self.auth_store.on_auth_state_change(self._on_auth_change)
        try:
            await self._bootstrap()
        except Exception:
            logger.exception("Session bootstrap failed, treating as signed out")
            self.current_user = None
            self.current_profile = None
        finally:
            self.is_loading = False

    async def teardown(self) -> None:
        """Unsubscribe from auth changes and wait for pending side effects."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        await self.drain()

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def sign_out(self) -> None:
        """Sign out of the managed-auth backend; listeners clear the rest."""
        await self.auth_store.sign_out()

    async def _bootstrap(self) -> None:
        session = await self.auth_store.get_session()
        if session is not None:
            self.current_user = CurrentUser.from_auth_user(session.user)
            self._login_once(self.current_user.id)
            self.current_profile = await self._load_profile(self.current_user.id)
            return

        orcid_user = self.cookies.get_orcid_user()
        if orcid_user is None:
            return

        profile = await self._load_profile(UUID(orcid_user))
        if profile is None:
            logger.info("ORCID cookie points at a missing profile")
            return
        self.current_profile = profile
        self.current_user = CurrentUser(
            id=profile.id, email=orcid_fallback_email(profile), source="orcid"
        )

    async def _load_profile(self, user_id: UUID) -> Profile | None:
        try:
            return await self._fetch_profile(user_id)
        except Exception:
            logger.exception(f"Failed to load profile {user_id}")
            return None

    def _on_auth_change(self, event: AuthEvent, session: AuthSession | None) -> None:
        if event == AuthEvent.SIGNED_OUT:
            previous = self.current_user
            self.current_user = None
            self.current_profile = None
            self.cookies.clear_orcid_user()
            if previous is not None and self._record_logout is not None:
                self._spawn(self._record_logout(previous.id), "record logout")
            return

        if event not in SIGN_IN_EVENTS or session is None:
            return
        if self.current_user is not None and self.current_user.id == session.user.id:
            return

        logger.info(f"Auth change {event.value}: now tracking user {session.user.id}")
        self.current_user = CurrentUser.from_auth_user(session.user)
        self.current_profile = None
        self._login_once(session.user.id)
        self._spawn(self._refresh_profile(session.user.id), "profile fetch")

    async def _refresh_profile(self, user_id: UUID) -> None:
        profile = await self._load_profile(user_id)
        # The user may have changed again while loading
        if self.current_user is not None and self.current_user.id == user_id:
            self.current_profile = profile

    def _login_once(self, user_id: UUID) -> None:
        if self._record_login is None or user_id in self._logged_in:
            return
        self._logged_in.add(user_id)
        self._spawn(self._record_login(user_id), "record login")

    def _spawn(self, coro: Awaitable[None], label: str) -> None:
        async def run() -> None:
            try:
                await coro
            except Exception:
                logger.exception(f"Background {label} failed")

        task = asyncio.ensure_future(run())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
