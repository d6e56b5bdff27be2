"""Redirect-back leg of the managed-auth OAuth flow.

`AuthCallbackFlow.handle()` exchanges an authorization code for a session
and always ends in exactly one navigation: to the requested page on
success, or to `/login?error=...` on failure. Exchange errors never
propagate out of `handle()`; they all go through one final session check
before the flow gives up.
"""

from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Mapping
from urllib.parse import urlencode

from ncsstat.models.session import AuthSession
from ncsstat.session.backend import ManagedAuthError, SessionStore

logger = logging.getLogger(__name__)

DEFAULT_NEXT_PATH = "/analyze"
LOGIN_PATH = "/login"
EXCHANGE_TIMEOUT = 15.0

# Backend messages meaning "this code was already consumed"; a parallel
# request may have finished the login already.
CODE_REUSED_MARKERS = ("code_challenge", "already been used")

# Exchanges abandoned on timeout; referenced here so they can finish.
_abandoned_exchanges: set[asyncio.Task] = set()


class CallbackState(str, Enum):
    IDLE = "idle"
    EXCHANGING = "exchanging"
    RECOVERY_CHECK = "recovery_check"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class CallbackParams:
    code: str | None = None
    next: str = DEFAULT_NEXT_PATH
    error: str | None = None
    error_description: str | None = None

    @classmethod
    def from_query(cls, query: Mapping[str, str]) -> "CallbackParams":
        return cls(
            code=query.get("code") or None,
            next=safe_next_path(query.get("next")),
            error=query.get("error") or None,
            error_description=query.get("error_description") or None,
        )


def safe_next_path(value: object, default: str = DEFAULT_NEXT_PATH) -> str:
    """Restrict a post-login target to a relative path on this site."""
    if not isinstance(value, str) or not value.startswith("/"):
        return default
    if value.startswith("//"):
        return default
    if "\\" in value or "://" in value.split("?", 1)[0]:
        return default
    return value


def login_url(error: str | None = None) -> str:
    if not error:
        return LOGIN_PATH
    return f"{LOGIN_PATH}?{urlencode({'error': error})}"


def _consume_result(task: asyncio.Task) -> None:
    _abandoned_exchanges.discard(task)
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.info(f"Abandoned code exchange finished with error: {error}")


class _ExchangeTimeout(Exception):
    pass


class AuthCallbackFlow:
    """State machine for one callback page instance.

    Args:
        session_store: The managed-auth session capability.
        navigate: Called with the target URL for the single final navigation.
        on_status: Optional listener for user-facing status text.
        timeout: Upper bound in seconds on waiting for the code exchange.
        recovery_delay: Pause before re-checking after a reused-code error.
        failure_redirect_delay: Pause between the failure message and the
            redirect to login. The server route sets it to 0.
    """

    def __init__(
        self,
        session_store: SessionStore,
        navigate: Callable[[str], None],
        on_status: Callable[[str], None] | None = None,
        timeout: float = EXCHANGE_TIMEOUT,
        recovery_delay: float = 1.0,
        failure_redirect_delay: float = 1.5,
    ):
        self.session_store = session_store
        self._navigate = navigate
        self._on_status = on_status
        self.timeout = timeout
        self.recovery_delay = recovery_delay
        self.failure_redirect_delay = failure_redirect_delay

        self.state = CallbackState.IDLE
        self.status = "Completing sign in..."
        self.error: str | None = None
        self.redirect_to: str | None = None
        self._processed_code: str | None = None
        self._mounted = True

    def close(self) -> None:
        """Stop all further status updates and navigation."""
        self._mounted = False

    @property
    def is_open(self) -> bool:
        return self._mounted

    async def handle(self, params: CallbackParams) -> CallbackState:
        next_path = safe_next_path(params.next)

        if params.error:
            message = params.error_description or params.error
            logger.warning(f"Provider returned error on callback: {message}")
            self._fail(message)
            self._go(login_url(message))
            return self.state

        if not params.code:
            if await self._has_session():
                return self._succeed(next_path)
            self._set_state(CallbackState.FAILED)
            self._go(LOGIN_PATH)
            return self.state

        if params.code == self._processed_code:
            logger.info("Callback code already processed, skipping")
            return self.state
        self._processed_code = params.code

        if await self._has_session():
            logger.info("Existing session found, skipping code exchange")
            return self._succeed(next_path)

        self._set_state(CallbackState.EXCHANGING)
        self._set_status("Verifying sign in...")
        try:
            session = await self._exchange(params.code)
            if session is None:
                raise ManagedAuthError("No session returned")
            self._set_status("Signed in!")
            return self._succeed(next_path)
        except _ExchangeTimeout:
            logger.warning(f"Code exchange exceeded {self.timeout}s timeout")
            failure = "Exchange Timeout"
        except ManagedAuthError as e:
            failure = e.message
            if self._is_code_reused(failure):
                logger.warning("Code already consumed, checking for a session")
                await asyncio.sleep(self.recovery_delay)
                if await self._has_session():
                    logger.info("Session recovered after reused code")
                    return self._succeed(next_path)
        except Exception as e:
            logger.exception("Unexpected error during code exchange")
            failure = str(e) or "Login Failed"

        return await self._recover_or_fail(failure, next_path)

    async def _exchange(self, code: str) -> AuthSession | None:
        # A timed-out exchange is left running; only its result is dropped.
        task = asyncio.ensure_future(self.session_store.exchange_code_for_session(code))
        done, _ = await asyncio.wait({task}, timeout=self.timeout)
        if not done:
            _abandoned_exchanges.add(task)
            task.add_done_callback(_consume_result)
            raise _ExchangeTimeout()
        return task.result()

    async def _recover_or_fail(self, failure: str, next_path: str) -> CallbackState:
        self._set_state(CallbackState.RECOVERY_CHECK)
        if await self._has_session():
            logger.info("Session found in final check")
            return self._succeed(next_path)

        self._fail(failure)
        self._set_status("Sign in failed. Redirecting...")
        if self.failure_redirect_delay > 0:
            await asyncio.sleep(self.failure_redirect_delay)
        self._go(login_url(failure))
        return self.state

    async def _has_session(self) -> bool:
        try:
            return await self.session_store.get_session() is not None
        except Exception as e:
            logger.warning(f"Session check failed: {e}")
            return False

    def _succeed(self, next_path: str) -> CallbackState:
        self._set_state(CallbackState.SUCCESS)
        self._go(next_path)
        return self.state

    @staticmethod
    def _is_code_reused(message: str) -> bool:
        return any(marker in message for marker in CODE_REUSED_MARKERS)

    def _set_state(self, state: CallbackState) -> None:
        if self._mounted:
            self.state = state

    def _fail(self, message: str) -> None:
        if self._mounted:
            self.state = CallbackState.FAILED
            self.error = message

    def _set_status(self, status: str) -> None:
        if not self._mounted:
            return
        self.status = status
        if self._on_status is not None:
            self._on_status(status)

    def _go(self, url: str) -> None:
        if not self._mounted:
            logger.info("Callback closed, dropping navigation")
            return
        self.redirect_to = url
        self._navigate(url)
