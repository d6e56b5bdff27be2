import asyncio

import pytest

from ncsstat.models import AuthEvent, AuthSession
from ncsstat.session.backend import AuthEventEmitter


class FakeSessionStore(AuthEventEmitter):
    """In-memory SessionStore with scriptable exchange behavior."""

    def __init__(self, session: AuthSession | None = None):
        super().__init__()
        self.session = session
        self.exchange_calls: list[str] = []
        self.get_session_calls = 0
        self.sign_out_calls = 0
        self.exchange_result: AuthSession | None = None
        self.exchange_error: Exception | None = None
        self.exchange_gate: asyncio.Event | None = None
        # Session that appears once the exchange fails (server-side race)
        self.session_after_failure: AuthSession | None = None

    async def get_session(self, refresh: bool = True) -> AuthSession | None:
        self.get_session_calls += 1
        return self.session

    async def exchange_code_for_session(self, code: str) -> AuthSession | None:
        self.exchange_calls.append(code)
        if self.exchange_gate is not None:
            await self.exchange_gate.wait()
        if self.exchange_error is not None:
            if self.session_after_failure is not None:
                self.session = self.session_after_failure
            raise self.exchange_error
        if self.exchange_result is not None:
            self.session = self.exchange_result
            self.emit(AuthEvent.SIGNED_IN, self.exchange_result)
        return self.exchange_result

    async def refresh_session(self) -> AuthSession:
        assert self.session is not None
        self.emit(AuthEvent.TOKEN_REFRESHED, self.session)
        return self.session

    async def sign_out(self) -> None:
        self.sign_out_calls += 1
        self.session = None
        self.emit(AuthEvent.SIGNED_OUT, None)


@pytest.fixture
def fake_store() -> FakeSessionStore:
    return FakeSessionStore()
