"""Managed-auth session store persisted in request cookies."""

import logging
from datetime import datetime, timezone

from starlette.concurrency import run_in_threadpool

from ncsstat.models.session import AuthEvent, AuthSession
from ncsstat.session.backend import AuthEventEmitter, ManagedAuthError
from ncsstat.session.cookies import CookieStore
from . import auth
from .tokens import session_from_claims, validate_access_token

logger = logging.getLogger(__name__)

ACCESS_TOKEN_COOKIE = "sb-access-token"
REFRESH_TOKEN_COOKIE = "sb-refresh-token"
CODE_VERIFIER_COOKIE = "sb-code-verifier"
REFRESH_TOKEN_MAX_AGE = 60 * 60 * 24 * 30  # 30 days
CODE_VERIFIER_MAX_AGE = 60 * 10  # 10 minutes
DEFAULT_ACCESS_TOKEN_MAX_AGE = 60 * 60


class CookieSessionStore(AuthEventEmitter):
    """`SessionStore` that keeps the managed-auth session in cookies.

    One instance serves one request: it reads and writes through the
    request's `CookieStore` and notifies subscribers of sign-in, refresh and
    sign-out as they happen.
    """

    def __init__(self, cookies: CookieStore):
        super().__init__()
        self.cookies = cookies

    async def get_session(self, refresh: bool = True) -> AuthSession | None:
        """The current session, refreshed when only the refresh token is left.

        The access token cookie expires with the token, so a returning user
        usually arrives with just `sb-refresh-token`. Pass `refresh=False` to
        only read what the cookies already hold.
        """
        access_token = self.cookies.get(ACCESS_TOKEN_COOKIE)
        if access_token is not None:
            # PyJWKClient fetches keys with blocking I/O on a cache miss
            claims = await run_in_threadpool(validate_access_token, access_token)
            if claims is not None:
                return session_from_claims(
                    access_token, self.cookies.get(REFRESH_TOKEN_COOKIE), claims
                )

        if not refresh or self.cookies.get(REFRESH_TOKEN_COOKIE) is None:
            return None
        try:
            return await self.refresh_session()
        except ManagedAuthError as e:
            logger.warning(f"Could not refresh managed-auth session: {e.message}")
            if e.status_code is not None and e.status_code < 500:
                # Revoked or reused refresh token
                self.cookies.delete(ACCESS_TOKEN_COOKIE)
                self.cookies.delete(REFRESH_TOKEN_COOKIE)
            return None

    def begin_login(self, provider: str, redirect_to: str) -> str:
        """Start a PKCE login: store a fresh verifier and return the authorize URL."""
        verifier = auth.generate_code_verifier()
        url = auth.build_authorize_url(provider, redirect_to, verifier)
        self.cookies.set(
            CODE_VERIFIER_COOKIE, verifier, max_age=CODE_VERIFIER_MAX_AGE
        )
        return url

    async def exchange_code_for_session(self, code: str) -> AuthSession:
        verifier = self.cookies.get(CODE_VERIFIER_COOKIE)
        if verifier is None:
            raise ManagedAuthError("PKCE code verifier not found in storage")

        session = await auth.exchange_code_for_session(code, verifier)
        self.cookies.delete(CODE_VERIFIER_COOKIE)
        self._persist(session)
        self.emit(AuthEvent.SIGNED_IN, session)
        return session

    async def refresh_session(self) -> AuthSession:
        refresh_token = self.cookies.get(REFRESH_TOKEN_COOKIE)
        if refresh_token is None:
            raise ManagedAuthError("Auth session missing!")

        session = await auth.refresh_session(refresh_token)
        self._persist(session)
        self.emit(AuthEvent.TOKEN_REFRESHED, session)
        return session

    async def sign_out(self) -> None:
        access_token = self.cookies.get(ACCESS_TOKEN_COOKIE)
        if access_token is not None:
            try:
                await auth.sign_out(access_token)
            except ManagedAuthError as e:
                # Local cookies are cleared regardless
                logger.warning(f"Remote sign-out failed: {e.message}")

        self.cookies.delete(ACCESS_TOKEN_COOKIE)
        self.cookies.delete(REFRESH_TOKEN_COOKIE)
        self.emit(AuthEvent.SIGNED_OUT, None)

    def _persist(self, session: AuthSession) -> None:
        max_age = DEFAULT_ACCESS_TOKEN_MAX_AGE
        if session.expires_at is not None:
            remaining = session.expires_at - datetime.now(timezone.utc)
            max_age = max(int(remaining.total_seconds()), 0)

        self.cookies.set(ACCESS_TOKEN_COOKIE, session.access_token, max_age=max_age)
        if session.refresh_token:
            self.cookies.set(
                REFRESH_TOKEN_COOKIE,
                session.refresh_token,
                max_age=REFRESH_TOKEN_MAX_AGE,
            )
