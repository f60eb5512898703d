"""
auth/service.py -- AuthService: register, login, refresh, logout, account lookup.

AuthService composes the three leaf components:
  AccountDirectory      -- who exists, and their credential hash
  RefreshTokenRegistry  -- which refresh tokens are live
  TokenCodec            -- signing and verifying tokens

AuthContext is the explicitly constructed owner of one set of those
components. api/main.py builds one per application instance and hangs it on
app.state; tests build their own so no state leaks between them. There are
no module-level registries.

Errors are raised from auth.errors and mapped to HTTP by api/main.py.

Layer rule: no imports from api/, client/, or profiles/.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from auth.errors import ExpiredOrInvalid, InvalidCredentials, InvalidToken, Unauthorized
from auth.models import Account, AuthResult, TokenPair
from auth.registry import RefreshTokenRegistry
from auth.store import AccountDirectory
from auth.tokens import ACCESS, DUMMY_HASH, REFRESH, TokenCodec, hash_password, verify_password
from core.config import Settings

logger = logging.getLogger("medilog.auth")


class AuthService:
    """Orchestrates the account and token lifecycle.

    Usage:
        service = AuthService(directory, registry, codec)
        result = service.register("a@example.com", "secret1", "Alice")
        pair = service.refresh(result.tokens.refresh_token)
        service.logout(pair.refresh_token)
    """

    def __init__(self, directory: AccountDirectory, registry: RefreshTokenRegistry, codec: TokenCodec) -> None:
        self.directory = directory
        self.registry = registry
        self.codec = codec

    def _issue(self, account_id: str) -> TokenPair:
        pair = self.codec.issue_pair(account_id)
        self.registry.register(pair.refresh_token, account_id)
        return pair

    def register(self, email: str, password: str, display_name: str) -> AuthResult:
        """Create an account and open its first session.

        Raises EmailAlreadyExists if the email is taken in any casing.
        """
        account = self.directory.create(email, display_name, hash_password(password))
        logger.info("Account registered: %s", account.id)
        return AuthResult(account=account, tokens=self._issue(account.id))

    def login(self, email: str, password: str) -> AuthResult:
        """Authenticate with email and password and open a new session.

        Always runs bcrypt whether or not the email is registered, so response
        time does not distinguish the two failure modes [C1]. Existing sessions
        of the account stay live.
        """
        account = self.directory.find_by_email(email)
        secret = self.directory.secret_for(account.id) if account is not None else None
        if account is None or secret is None:
            # Equalize timing -- do NOT return early before running bcrypt [C1]
            verify_password(password, DUMMY_HASH)
            raise InvalidCredentials()
        if not verify_password(password, secret):
            raise InvalidCredentials()
        logger.info("Login succeeded: %s", account.id)
        return AuthResult(account=account, tokens=self._issue(account.id))

    def refresh(self, refresh_token: str) -> TokenPair:
        """Exchange a live refresh token for a new pair, rotating it.

        Raises InvalidToken if the token does not verify as kind=refresh, is
        not live in the registry, or belongs to an account that no longer
        exists. A token can be exchanged at most once.
        """
        try:
            claims = self.codec.verify(refresh_token)
        except ExpiredOrInvalid as exc:
            raise InvalidToken() from exc
        if claims.kind != REFRESH:
            raise InvalidToken()

        if self.directory.find_by_id(claims.account_id) is None:
            self.registry.revoke(refresh_token)
            raise InvalidToken()

        pair = self.codec.issue_pair(claims.account_id)
        if not self.registry.rotate(refresh_token, pair.refresh_token, claims.account_id):
            # Revoked, never issued here, or already rotated by a concurrent call
            logger.warning("Rejected refresh with non-live token for %s", claims.account_id)
            raise InvalidToken()
        return pair

    def logout(self, refresh_token: str) -> None:
        """Revoke refresh_token. Never fails, even for an absent or invalid token."""
        if self.registry.revoke(refresh_token):
            logger.info("Session revoked")

    def get_account_by_id(self, account_id: str) -> Account | None:
        return self.directory.find_by_id(account_id)

    def authenticate(self, access_token: str) -> str:
        """Return the account id an access token was issued to.

        Raises Unauthorized for a bad signature, expiry, or a refresh token
        presented in place of an access token.
        """
        try:
            claims = self.codec.verify(access_token)
        except ExpiredOrInvalid as exc:
            raise Unauthorized("Invalid or expired token.") from exc
        if claims.kind != ACCESS:
            raise Unauthorized("Invalid or expired token.")
        return claims.account_id


@dataclass
class AuthContext:
    """Owns one AccountDirectory, RefreshTokenRegistry, TokenCodec and AuthService.

    Lifecycle = the application instance: built at startup, closed at shutdown.
    """

    directory: AccountDirectory
    registry: RefreshTokenRegistry
    codec: TokenCodec
    service: AuthService

    @classmethod
    def from_settings(cls, settings: Settings) -> AuthContext:
        directory = AccountDirectory(settings.database_url)
        registry = RefreshTokenRegistry(settings.database_url)
        codec = TokenCodec.from_settings(settings)
        return cls(
            directory=directory,
            registry=registry,
            codec=codec,
            service=AuthService(directory, registry, codec),
        )

    def close(self) -> None:
        self.directory.close()
        self.registry.close()
