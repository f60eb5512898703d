"""
tests/test_auth_service.py -- Unit tests for AuthService.

Exercises the service directly against an AuthContext with in-memory stores,
no HTTP involved.

Covers:
  - register issues a pair whose access token verifies to the new account
  - duplicate registration in any casing -> EmailAlreadyExists
  - login: success, wrong password, unknown email (dummy hash still checked)
  - login keeps other sessions live
  - refresh: rotation, single use, kind check, orphaned account, logout
  - concurrent refresh with the same token: exactly one success
  - authenticate: access tokens only
"""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

import pytest

from auth.errors import EmailAlreadyExists, InvalidCredentials, InvalidToken, Unauthorized
from auth.service import AuthContext, AuthService
from auth.tokens import ACCESS, REFRESH

PASSWORD = "secret123"


@pytest.fixture
def service(auth_context: AuthContext) -> AuthService:
    return auth_context.service


class TestRegister:
    def test_register_returns_account_and_usable_pair(self, service: AuthService) -> None:
        result = service.register("alice@example.com", PASSWORD, "Alice")
        claims = service.codec.verify(result.tokens.access_token)
        assert claims.account_id == result.account.id
        assert claims.kind == ACCESS
        assert service.registry.owner_of(result.tokens.refresh_token) == result.account.id

    def test_password_is_not_stored_in_plaintext(self, service: AuthService) -> None:
        result = service.register("alice@example.com", PASSWORD, "Alice")
        assert service.directory.secret_for(result.account.id) != PASSWORD

    def test_duplicate_email_any_casing(self, service: AuthService) -> None:
        service.register("alice@example.com", PASSWORD, "Alice")
        with pytest.raises(EmailAlreadyExists):
            service.register("ALICE@example.com", PASSWORD, "Alice Again")


class TestLogin:
    def test_login_success(self, service: AuthService) -> None:
        registered = service.register("alice@example.com", PASSWORD, "Alice")
        result = service.login("Alice@Example.com", PASSWORD)
        assert result.account.id == registered.account.id
        assert service.codec.verify(result.tokens.access_token).kind != REFRESH

    def test_wrong_password(self, service: AuthService) -> None:
        service.register("alice@example.com", PASSWORD, "Alice")
        with pytest.raises(InvalidCredentials):
            service.login("alice@example.com", "wrong-password")

    def test_unknown_email_same_error_and_still_runs_bcrypt(self, service: AuthService) -> None:
        with patch("auth.service.verify_password", return_value=False) as mock_verify:
            with pytest.raises(InvalidCredentials):
                service.login("nobody@example.com", PASSWORD)
        mock_verify.assert_called_once()

    def test_login_keeps_other_sessions(self, service: AuthService) -> None:
        first = service.register("alice@example.com", PASSWORD, "Alice")
        service.login("alice@example.com", PASSWORD)
        assert service.registry.count_for(first.account.id) == 2
        # The session opened at registration still refreshes
        service.refresh(first.tokens.refresh_token)


class TestRefresh:
    def test_refresh_rotates(self, service: AuthService) -> None:
        result = service.register("alice@example.com", PASSWORD, "Alice")
        pair = service.refresh(result.tokens.refresh_token)
        assert pair.refresh_token != result.tokens.refresh_token
        assert service.codec.verify(pair.access_token).account_id == result.account.id
        assert service.registry.owner_of(pair.refresh_token) == result.account.id

    def test_refresh_token_is_single_use(self, service: AuthService) -> None:
        result = service.register("alice@example.com", PASSWORD, "Alice")
        service.refresh(result.tokens.refresh_token)
        with pytest.raises(InvalidToken):
            service.refresh(result.tokens.refresh_token)

    def test_access_token_rejected(self, service: AuthService) -> None:
        result = service.register("alice@example.com", PASSWORD, "Alice")
        with pytest.raises(InvalidToken):
            service.refresh(result.tokens.access_token)

    def test_garbage_rejected(self, service: AuthService) -> None:
        with pytest.raises(InvalidToken):
            service.refresh("garbage")

    def test_expired_refresh_token_rejected(self, service: AuthService) -> None:
        result = service.register("alice@example.com", PASSWORD, "Alice")
        old = service.codec.issue_pair(result.account.id, now=time.time() - 30 * 24 * 3600)
        service.registry.register(old.refresh_token, result.account.id)
        with pytest.raises(InvalidToken):
            service.refresh(old.refresh_token)

    def test_signed_but_never_registered_rejected(self, service: AuthService) -> None:
        result = service.register("alice@example.com", PASSWORD, "Alice")
        stray = service.codec.issue_pair(result.account.id)
        with pytest.raises(InvalidToken):
            service.refresh(stray.refresh_token)

    def test_orphaned_account_token_rejected_and_revoked(self, service: AuthService) -> None:
        result = service.register("alice@example.com", PASSWORD, "Alice")
        service.directory.delete(result.account.id)
        with pytest.raises(InvalidToken):
            service.refresh(result.tokens.refresh_token)
        assert service.registry.owner_of(result.tokens.refresh_token) is None

    def test_logout_then_refresh_fails(self, service: AuthService) -> None:
        result = service.register("alice@example.com", PASSWORD, "Alice")
        service.logout(result.tokens.refresh_token)
        with pytest.raises(InvalidToken):
            service.refresh(result.tokens.refresh_token)

    def test_logout_never_raises(self, service: AuthService) -> None:
        result = service.register("alice@example.com", PASSWORD, "Alice")
        service.logout(result.tokens.refresh_token)
        service.logout(result.tokens.refresh_token)
        service.logout("garbage")

    def test_concurrent_refresh_has_one_winner(self, service: AuthService) -> None:
        result = service.register("alice@example.com", PASSWORD, "Alice")
        token = result.tokens.refresh_token

        def attempt(_: int) -> bool:
            try:
                service.refresh(token)
            except InvalidToken:
                return False
            return True

        with ThreadPoolExecutor(max_workers=6) as pool:
            outcomes = list(pool.map(attempt, range(6)))
        assert outcomes.count(True) == 1
        assert service.registry.count_for(result.account.id) == 1


class TestAuthenticate:
    def test_access_token_accepted(self, service: AuthService) -> None:
        result = service.register("alice@example.com", PASSWORD, "Alice")
        assert service.authenticate(result.tokens.access_token) == result.account.id

    def test_refresh_token_rejected(self, service: AuthService) -> None:
        result = service.register("alice@example.com", PASSWORD, "Alice")
        with pytest.raises(Unauthorized):
            service.authenticate(result.tokens.refresh_token)

    def test_expired_access_token_rejected(self, service: AuthService) -> None:
        result = service.register("alice@example.com", PASSWORD, "Alice")
        expired = service.codec.issue(result.account.id, ACCESS, now=time.time() - 3600)
        with pytest.raises(Unauthorized):
            service.authenticate(expired)
