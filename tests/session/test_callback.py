"""Tests for the managed-auth callback state machine."""

import asyncio
import time
from urllib.parse import parse_qs, urlparse

import pytest

from ncsstat.session.backend import ManagedAuthError
from ncsstat.session.callback import (
    AuthCallbackFlow,
    CallbackParams,
    CallbackState,
    safe_next_path,
)


def _flow(store, **kwargs):
    navigations: list[str] = []
    kwargs.setdefault("recovery_delay", 0)
    kwargs.setdefault("failure_redirect_delay", 0)
    flow = AuthCallbackFlow(store, navigate=navigations.append, **kwargs)
    return flow, navigations


def _login_error(url: str) -> str | None:
    parsed = urlparse(url)
    assert parsed.path == "/login"
    return parse_qs(parsed.query).get("error", [None])[0]


class TestProviderError:
    @pytest.mark.asyncio
    async def test_error_redirects_to_login_with_description(self, fake_store):
        flow, navigations = _flow(fake_store)
        state = await flow.handle(
            CallbackParams(
                code="abc", error="access_denied", error_description="User cancelled"
            )
        )

        assert state == CallbackState.FAILED
        assert len(navigations) == 1
        assert _login_error(navigations[0]) == "User cancelled"
        assert fake_store.exchange_calls == []

    @pytest.mark.asyncio
    async def test_error_without_description(self, fake_store):
        flow, navigations = _flow(fake_store)
        await flow.handle(CallbackParams(error="server_error"))
        assert _login_error(navigations[0]) == "server_error"


class TestNoCode:
    @pytest.mark.asyncio
    async def test_existing_session_goes_to_next(self, fake_store, auth_session_factory):
        fake_store.session = auth_session_factory.make()
        flow, navigations = _flow(fake_store)

        state = await flow.handle(CallbackParams(next="/profile"))

        assert state == CallbackState.SUCCESS
        assert navigations == ["/profile"]

    @pytest.mark.asyncio
    async def test_no_session_goes_to_login(self, fake_store):
        flow, navigations = _flow(fake_store)
        state = await flow.handle(CallbackParams())
        assert state == CallbackState.FAILED
        assert navigations == ["/login"]


class TestExchange:
    @pytest.mark.asyncio
    async def test_successful_exchange(self, fake_store, auth_session_factory):
        fake_store.exchange_result = auth_session_factory.make()
        statuses: list[str] = []
        flow, navigations = _flow(fake_store, on_status=statuses.append)

        state = await flow.handle(CallbackParams(code="code-1", next="/analyze"))

        assert state == CallbackState.SUCCESS
        assert fake_store.exchange_calls == ["code-1"]
        assert navigations == ["/analyze"]
        assert statuses[-1] == "Signed in!"

    @pytest.mark.asyncio
    async def test_existing_session_skips_exchange(
        self, fake_store, auth_session_factory
    ):
        fake_store.session = auth_session_factory.make()
        flow, navigations = _flow(fake_store)

        state = await flow.handle(CallbackParams(code="code-1"))

        assert state == CallbackState.SUCCESS
        assert fake_store.exchange_calls == []
        assert navigations == ["/analyze"]

    @pytest.mark.asyncio
    async def test_same_code_is_exchanged_once(self, fake_store):
        fake_store.exchange_error = ManagedAuthError("invalid grant")
        flow, navigations = _flow(fake_store)

        await flow.handle(CallbackParams(code="dup"))
        await flow.handle(CallbackParams(code="dup"))

        assert fake_store.exchange_calls == ["dup"]
        assert len(navigations) == 1

    @pytest.mark.asyncio
    async def test_concurrent_duplicate_invocation_exchanges_once(
        self, fake_store, auth_session_factory
    ):
        fake_store.exchange_gate = asyncio.Event()
        fake_store.exchange_result = auth_session_factory.make()
        flow, navigations = _flow(fake_store)

        first = asyncio.create_task(flow.handle(CallbackParams(code="dup")))
        await asyncio.sleep(0)
        second = asyncio.create_task(flow.handle(CallbackParams(code="dup")))
        await asyncio.sleep(0)
        fake_store.exchange_gate.set()
        await asyncio.gather(first, second)

        assert fake_store.exchange_calls == ["dup"]
        assert navigations == ["/analyze"]

    @pytest.mark.asyncio
    async def test_exchange_without_session_fails(self, fake_store):
        fake_store.exchange_result = None
        flow, navigations = _flow(fake_store)

        state = await flow.handle(CallbackParams(code="c"))

        assert state == CallbackState.FAILED
        assert _login_error(navigations[0]) == "No session returned"

    @pytest.mark.asyncio
    async def test_other_error_redirects_with_message(self, fake_store):
        fake_store.exchange_error = ManagedAuthError("invalid flow state")
        flow, navigations = _flow(fake_store)

        state = await flow.handle(CallbackParams(code="c"))

        assert state == CallbackState.FAILED
        assert flow.error == "invalid flow state"
        assert _login_error(navigations[0]) == "invalid flow state"

    @pytest.mark.asyncio
    async def test_unexpected_exception_does_not_escape(self, fake_store):
        fake_store.exchange_error = RuntimeError("boom")
        flow, navigations = _flow(fake_store)

        state = await flow.handle(CallbackParams(code="c"))

        assert state == CallbackState.FAILED
        assert _login_error(navigations[0]) == "boom"


class TestRecovery:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "message",
        [
            "invalid request: both auth code and code verifier should be non-empty (code_challenge)",
            "Auth code has already been used",
        ],
    )
    async def test_reused_code_recovers_session(
        self, fake_store, auth_session_factory, message
    ):
        fake_store.exchange_error = ManagedAuthError(message)
        fake_store.session_after_failure = auth_session_factory.make()
        flow, navigations = _flow(fake_store)

        state = await flow.handle(CallbackParams(code="c", next="/profile"))

        assert state == CallbackState.SUCCESS
        assert navigations == ["/profile"]

    @pytest.mark.asyncio
    async def test_final_check_recovers_session(self, fake_store, auth_session_factory):
        fake_store.exchange_error = ManagedAuthError("network hiccup")
        fake_store.session_after_failure = auth_session_factory.make()
        flow, navigations = _flow(fake_store)

        state = await flow.handle(CallbackParams(code="c"))

        assert state == CallbackState.SUCCESS
        assert navigations == ["/analyze"]

    @pytest.mark.asyncio
    async def test_reused_code_without_session_fails(self, fake_store):
        fake_store.exchange_error = ManagedAuthError("code already been used")
        flow, navigations = _flow(fake_store)

        state = await flow.handle(CallbackParams(code="c"))

        assert state == CallbackState.FAILED
        assert _login_error(navigations[0]) == "code already been used"


class TestTimeout:
    @pytest.mark.asyncio
    async def test_hung_exchange_fails_within_timeout(self, fake_store):
        fake_store.exchange_gate = asyncio.Event()  # never set
        flow, navigations = _flow(fake_store, timeout=0.05)

        started = time.monotonic()
        state = await flow.handle(CallbackParams(code="c"))
        elapsed = time.monotonic() - started

        assert state == CallbackState.FAILED
        assert elapsed < 1.0
        assert _login_error(navigations[0]) == "Exchange Timeout"

        # The exchange is abandoned, not cancelled
        fake_store.exchange_gate.set()
        await asyncio.sleep(0)
        assert fake_store.exchange_calls == ["c"]

    @pytest.mark.asyncio
    async def test_failure_redirect_waits_for_delay(self, fake_store):
        fake_store.exchange_error = ManagedAuthError("nope")
        flow, navigations = _flow(fake_store, failure_redirect_delay=0.05)

        task = asyncio.create_task(flow.handle(CallbackParams(code="c")))
        await asyncio.sleep(0.01)
        assert flow.status == "Sign in failed. Redirecting..."
        assert navigations == []

        await task
        assert len(navigations) == 1


class TestClose:
    @pytest.mark.asyncio
    async def test_closed_flow_does_not_navigate(self, fake_store, auth_session_factory):
        fake_store.exchange_gate = asyncio.Event()
        fake_store.exchange_result = auth_session_factory.make()
        statuses: list[str] = []
        flow, navigations = _flow(fake_store, on_status=statuses.append)

        task = asyncio.create_task(flow.handle(CallbackParams(code="c")))
        await asyncio.sleep(0)
        flow.close()
        fake_store.exchange_gate.set()
        state = await task

        # Frozen at the state it had when closed
        assert state == CallbackState.EXCHANGING
        assert navigations == []
        assert "Signed in!" not in statuses

    @pytest.mark.asyncio
    async def test_closed_flow_keeps_state_and_error(self, fake_store):
        flow, navigations = _flow(fake_store)
        flow.close()

        state = await flow.handle(
            CallbackParams(error="access_denied", error_description="User denied")
        )

        assert state == CallbackState.IDLE
        assert flow.error is None
        assert navigations == []

    @pytest.mark.asyncio
    async def test_failure_after_close_is_not_recorded(self, fake_store):
        fake_store.exchange_gate = asyncio.Event()
        fake_store.exchange_error = ManagedAuthError("invalid grant")
        flow, navigations = _flow(fake_store)

        task = asyncio.create_task(flow.handle(CallbackParams(code="c")))
        await asyncio.sleep(0)
        flow.close()
        fake_store.exchange_gate.set()
        await task

        assert flow.state == CallbackState.EXCHANGING
        assert flow.error is None
        assert navigations == []


class TestSafeNextPath:
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("/analyze", "/analyze"),
            ("/profile?tab=credits", "/profile?tab=credits"),
            (None, "/analyze"),
            ("", "/analyze"),
            ("https://evil.example.com", "/analyze"),
            ("//evil.example.com", "/analyze"),
            ("/\\evil.example.com", "/analyze"),
            (42, "/analyze"),
        ],
    )
    def test_only_relative_paths(self, value, expected):
        assert safe_next_path(value) == expected

    def test_from_query_sanitizes_next(self):
        params = CallbackParams.from_query(
            {"code": "c", "next": "https://evil.example.com"}
        )
        assert params.next == "/analyze"
        assert params.code == "c"
