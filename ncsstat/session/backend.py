"""The managed-auth backend as this service sees it.

The backend is an opaque session store with cookie persistence. All the
session components depend only on the `SessionStore` protocol below, so the
Supabase implementation can be swapped for a fake in tests.
"""

from __future__ import annotations
import logging
from typing import Callable, Protocol

from ncsstat.models.session import AuthEvent, AuthSession

logger = logging.getLogger(__name__)

AuthListener = Callable[[AuthEvent, "AuthSession | None"], None]
Unsubscribe = Callable[[], None]


class ManagedAuthError(Exception):
    """An error reported by the managed-auth backend."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ManagedAuthNotConfiguredError(ManagedAuthError):
    """Raised when the managed-auth URL or key is not set."""


class SessionStore(Protocol):
    async def get_session(self, refresh: bool = True) -> AuthSession | None: ...

    async def exchange_code_for_session(self, code: str) -> AuthSession | None: ...

    async def refresh_session(self) -> AuthSession: ...

    async def sign_out(self) -> None: ...

    def on_auth_state_change(self, listener: AuthListener) -> Unsubscribe: ...


class AuthEventEmitter:
    """Listener bookkeeping for `SessionStore.on_auth_state_change`."""

    def __init__(self) -> None:
        self._listeners: list[AuthListener] = []

    def on_auth_state_change(self, listener: AuthListener) -> Unsubscribe:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def emit(self, event: AuthEvent, session: AuthSession | None) -> None:
        # Copy: a listener may unsubscribe while being notified.
        for listener in list(self._listeners):
            try:
                listener(event, session)
            except Exception:
                logger.exception(f"Auth listener failed on {event.value}")
