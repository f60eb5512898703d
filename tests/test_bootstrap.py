"""
tests/test_bootstrap.py -- The launch state machine and its driver.

transition() is pure, so its table is tested directly. BootstrapController
is tested against a scripted fake API (no HTTP) and MemoryStorage, which
lets each test count exactly which network calls were made.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Optional
from unittest.mock import MagicMock

import pytest

from client.api import ApiClient, ApiError
from client.bootstrap import (
    BootAction,
    BootContext,
    BootEvent,
    BootState,
    BootstrapController,
    InvalidTransition,
    transition,
)
from client.session import (
    ACCESS_TOKEN_KEY,
    ACTIVE_PROFILE_KEY,
    REFRESH_TOKEN_KEY,
    ActiveProfileSelection,
    SessionClient,
    Tokens,
)
from client.storage import MemoryStorage

ACCOUNT = {"id": "acc_1", "email": "a@example.com", "name": "Alice"}
UNAUTHORIZED = ApiError(401, "UNAUTHORIZED", "Invalid or expired token.")
INVALID_TOKEN = ApiError(401, "INVALID_TOKEN", "Invalid or expired refresh token.")
NETWORK = ApiError(None, "NETWORK_ERROR", "Could not reach the server.")


class FakeApi:
    """Scripted stand-in for ApiClient. Records every call."""

    def __init__(self, valid_access: str = "a1", refresh_result=None, me_error: Optional[ApiError] = None) -> None:
        self.valid_access = valid_access
        self.refresh_result = refresh_result
        self.me_error = me_error
        self.calls: list[tuple] = []

    def get_me(self, access_token):
        self.calls.append(("get_me", access_token))
        if self.me_error is not None:
            raise self.me_error
        if access_token != self.valid_access:
            raise UNAUTHORIZED
        return ACCOUNT

    def refresh(self, refresh_token):
        self.calls.append(("refresh", refresh_token))
        if isinstance(self.refresh_result, Exception):
            raise self.refresh_result
        if self.refresh_result is None:
            raise INVALID_TOKEN
        self.valid_access = self.refresh_result.access_token
        return self.refresh_result

    def login(self, email, password):
        self.calls.append(("login", email))
        if password != "secret123":
            raise ApiError(401, "INVALID_CREDENTIALS", "Invalid email or password.")
        return ACCOUNT, Tokens("a-login", "r-login")

    def register(self, email, password, name):
        self.calls.append(("register", email))
        return ACCOUNT, Tokens("a-reg", "r-reg")

    def logout(self, refresh_token):
        self.calls.append(("logout", refresh_token))


def _scripted_http(replies: dict) -> MagicMock:
    """Transport that answers 200 with replies[path], or 401 for unlisted paths."""

    def request(method, url, json=None, headers=None, timeout=None):
        path = url.split("/api/v1", 1)[1]
        resp = MagicMock()
        resp.content = b"{}"
        if path in replies:
            resp.status_code = 200
            resp.json.return_value = replies[path]
        else:
            resp.status_code = 401
            resp.json.return_value = {"error": {"code": "UNAUTHORIZED", "message": "Invalid or expired token."}}
        return resp

    http = MagicMock()
    http.request.side_effect = request
    return http


def _controller(storage: MemoryStorage, api) -> BootstrapController:
    return BootstrapController(SessionClient(storage), api, ActiveProfileSelection(storage))


class TestTransition:
    start = BootContext()

    def test_tokens_found_fetches_account(self) -> None:
        assert transition(self.start, BootEvent.TOKENS_FOUND) == (self.start, BootAction.FETCH_ACCOUNT)

    def test_no_tokens_is_unauthenticated(self) -> None:
        ctx, action = transition(self.start, BootEvent.NO_TOKENS)
        assert ctx.state is BootState.UNAUTHENTICATED
        assert action is BootAction.NONE

    def test_account_ok_is_authenticated(self) -> None:
        ctx, action = transition(self.start, BootEvent.ACCOUNT_OK)
        assert ctx.state is BootState.AUTHENTICATED
        assert action is BootAction.NONE

    def test_first_unauthorized_refreshes(self) -> None:
        ctx, action = transition(self.start, BootEvent.ACCOUNT_UNAUTHORIZED)
        assert ctx.state is BootState.INITIALIZING
        assert ctx.refresh_attempted
        assert action is BootAction.REFRESH

    def test_second_unauthorized_clears(self) -> None:
        ctx, _ = transition(self.start, BootEvent.ACCOUNT_UNAUTHORIZED)
        ctx, _ = transition(ctx, BootEvent.REFRESH_OK)
        ctx, action = transition(ctx, BootEvent.ACCOUNT_UNAUTHORIZED)
        assert ctx.state is BootState.UNAUTHENTICATED
        assert action is BootAction.CLEAR_SESSION

    def test_refresh_ok_refetches(self) -> None:
        ctx, _ = transition(self.start, BootEvent.ACCOUNT_UNAUTHORIZED)
        assert transition(ctx, BootEvent.REFRESH_OK)[1] is BootAction.FETCH_ACCOUNT

    @pytest.mark.parametrize("event", [BootEvent.REFRESH_FAILED, BootEvent.ACCOUNT_FAILED])
    def test_failures_clear(self, event: BootEvent) -> None:
        ctx, action = transition(self.start, event)
        assert ctx.state is BootState.UNAUTHENTICATED
        assert action is BootAction.CLEAR_SESSION

    @pytest.mark.parametrize("state", [BootState.AUTHENTICATED, BootState.UNAUTHENTICATED])
    @pytest.mark.parametrize("event", list(BootEvent))
    def test_terminal_states_reject_everything(self, state: BootState, event: BootEvent) -> None:
        with pytest.raises(InvalidTransition):
            transition(BootContext(state=state), event)


class TestBootstrapController:
    def test_no_tokens_makes_no_network_calls(self) -> None:
        api = FakeApi()
        assert _controller(MemoryStorage(), api).run() is BootState.UNAUTHENTICATED
        assert api.calls == []

    def test_half_pair_is_cleared_without_network(self) -> None:
        storage = MemoryStorage({REFRESH_TOKEN_KEY: "r1"})
        api = FakeApi()
        assert _controller(storage, api).run() is BootState.UNAUTHENTICATED
        assert api.calls == []
        assert REFRESH_TOKEN_KEY not in storage.data

    def test_valid_access_token_authenticates(self) -> None:
        storage = MemoryStorage({ACCESS_TOKEN_KEY: "a1", REFRESH_TOKEN_KEY: "r1", ACTIVE_PROFILE_KEY: "prof_1"})
        api = FakeApi()
        controller = _controller(storage, api)
        assert controller.run() is BootState.AUTHENTICATED
        assert api.calls == [("get_me", "a1")]
        assert controller.session.account == ACCOUNT
        assert controller.selection.profile_id == "prof_1"

    def test_expired_access_refreshes_once_and_persists(self) -> None:
        storage = MemoryStorage({ACCESS_TOKEN_KEY: "expired", REFRESH_TOKEN_KEY: "r1"})
        api = FakeApi(refresh_result=Tokens("a2", "r2"))
        controller = _controller(storage, api)
        assert controller.run() is BootState.AUTHENTICATED
        assert api.calls == [("get_me", "expired"), ("refresh", "r1"), ("get_me", "a2")]
        assert storage.data[ACCESS_TOKEN_KEY] == "a2"
        assert storage.data[REFRESH_TOKEN_KEY] == "r2"

    def test_failed_refresh_clears_session(self) -> None:
        storage = MemoryStorage({ACCESS_TOKEN_KEY: "expired", REFRESH_TOKEN_KEY: "r1", ACTIVE_PROFILE_KEY: "p"})
        api = FakeApi(refresh_result=None)
        controller = _controller(storage, api)
        assert controller.run() is BootState.UNAUTHENTICATED
        assert storage.data == {}
        assert controller.selection.profile_id is None

    def test_still_unauthorized_after_refresh_clears(self) -> None:
        storage = MemoryStorage({ACCESS_TOKEN_KEY: "expired", REFRESH_TOKEN_KEY: "r1"})
        api = FakeApi(refresh_result=Tokens("a2", "r2"))
        api.me_error = UNAUTHORIZED
        assert _controller(storage, api).run() is BootState.UNAUTHENTICATED
        assert [c[0] for c in api.calls] == ["get_me", "refresh", "get_me"]
        assert storage.data == {}

    def test_network_failure_fails_closed(self) -> None:
        storage = MemoryStorage({ACCESS_TOKEN_KEY: "a1", REFRESH_TOKEN_KEY: "r1"})
        api = FakeApi(me_error=NETWORK)
        assert _controller(storage, api).run() is BootState.UNAUTHENTICATED
        assert [c[0] for c in api.calls] == ["get_me"]
        assert storage.data == {}

    def test_malformed_refresh_reply_fails_closed(self) -> None:
        storage = MemoryStorage({ACCESS_TOKEN_KEY: "a", REFRESH_TOKEN_KEY: "r", ACTIVE_PROFILE_KEY: "p"})
        http = _scripted_http({"/auth/refresh": {"unexpected": True}})
        controller = _controller(storage, ApiClient("http://api.test/api/v1", http=http))
        assert controller.run() is BootState.UNAUTHENTICATED
        assert storage.data == {}
        assert controller.session.tokens is None

    def test_malformed_account_reply_fails_closed(self) -> None:
        storage = MemoryStorage({ACCESS_TOKEN_KEY: "a", REFRESH_TOKEN_KEY: "r"})
        http = _scripted_http({"/account/me": {"email": "a@example.com"}})
        controller = _controller(storage, ApiClient("http://api.test/api/v1", http=http))
        assert controller.run() is BootState.UNAUTHENTICATED
        assert storage.data == {}
        assert http.request.call_count == 1

    def test_refresh_storage_failure_fails_closed(self) -> None:
        storage = MemoryStorage({ACCESS_TOKEN_KEY: "expired", REFRESH_TOKEN_KEY: "r1"})
        api = FakeApi(refresh_result=Tokens("a2", "r2"))
        controller = _controller(storage, api)
        storage.fail_on.add("set")
        assert controller.run() is BootState.UNAUTHENTICATED
        assert controller.session.tokens is None

    def test_run_twice_returns_decided_state(self) -> None:
        storage = MemoryStorage({ACCESS_TOKEN_KEY: "a1", REFRESH_TOKEN_KEY: "r1"})
        api = FakeApi()
        controller = _controller(storage, api)
        controller.run()
        assert controller.run() is BootState.AUTHENTICATED
        assert len(api.calls) == 1

    def test_concurrent_runs_share_one_decision(self) -> None:
        storage = MemoryStorage({ACCESS_TOKEN_KEY: "expired", REFRESH_TOKEN_KEY: "r1"})
        gate = threading.Event()

        class SlowApi(FakeApi):
            def refresh(self, refresh_token):
                gate.wait(timeout=5)
                return super().refresh(refresh_token)

        api = SlowApi(refresh_result=Tokens("a2", "r2"))
        controller = _controller(storage, api)
        with ThreadPoolExecutor(max_workers=4) as pool:
            futures = [pool.submit(controller.run) for _ in range(4)]
            gate.set()
            states = [f.result(timeout=10) for f in futures]
        assert states == [BootState.AUTHENTICATED] * 4
        assert [c[0] for c in api.calls].count("refresh") == 1


class TestReentry:
    def test_login_persists_and_authenticates(self) -> None:
        storage = MemoryStorage()
        controller = _controller(storage, FakeApi())
        controller.run()
        account = controller.login("a@example.com", "secret123")
        assert account == ACCOUNT
        assert controller.state is BootState.AUTHENTICATED
        assert storage.data == {ACCESS_TOKEN_KEY: "a-login", REFRESH_TOKEN_KEY: "r-login"}

    def test_failed_login_keeps_state(self) -> None:
        storage = MemoryStorage()
        controller = _controller(storage, FakeApi())
        controller.run()
        with pytest.raises(ApiError):
            controller.login("a@example.com", "wrong")
        assert controller.state is BootState.UNAUTHENTICATED
        assert storage.data == {}

    def test_register_authenticates(self) -> None:
        controller = _controller(MemoryStorage(), FakeApi())
        controller.register("a@example.com", "secret123", "Alice")
        assert controller.state is BootState.AUTHENTICATED
        assert controller.session.tokens == Tokens("a-reg", "r-reg")

    def test_logout_revokes_and_clears(self) -> None:
        storage = MemoryStorage({ACCESS_TOKEN_KEY: "a1", REFRESH_TOKEN_KEY: "r1", ACTIVE_PROFILE_KEY: "p"})
        api = FakeApi()
        controller = _controller(storage, api)
        controller.run()
        controller.logout()
        assert ("logout", "r1") in api.calls
        assert storage.data == {}
        assert controller.state is BootState.UNAUTHENTICATED

    def test_logout_clears_even_when_server_unreachable(self) -> None:
        storage = MemoryStorage({ACCESS_TOKEN_KEY: "a1", REFRESH_TOKEN_KEY: "r1"})

        class OfflineApi(FakeApi):
            def logout(self, refresh_token):
                raise NETWORK

        controller = _controller(storage, OfflineApi())
        controller.logout()
        assert storage.data == {}
        assert controller.state is BootState.UNAUTHENTICATED
