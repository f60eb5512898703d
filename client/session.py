"""
client/session.py -- The device's in-memory session, backed by SecureStorage.

SessionClient is an explicit object with an explicit lifecycle: build it with
a storage backend, hydrate() once at launch, then set_tokens() / clear_session()
as the user logs in and out. There is no module-level session.

Ordering rule for writes: persist first, publish second. set_tokens() only
updates the in-memory pair after both keys are durably stored; if storage
fails, memory still holds the previous pair and the error propagates.
Reads and clears are tolerant: a storage failure is logged and treated as
"no session", because failing closed is always safe on this side.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Optional

from client.storage import SecureStorage, StorageError

logger = logging.getLogger("medilog.client")

ACCESS_TOKEN_KEY = "access_token"
REFRESH_TOKEN_KEY = "refresh_token"
ACTIVE_PROFILE_KEY = "active_profile_id"


@dataclass(frozen=True)
class Tokens:
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class StoredTokens:
    """What hydrate() found. Either field may be None; both None means no session."""

    access_token: Optional[str] = None
    refresh_token: Optional[str] = None

    @property
    def complete(self) -> bool:
        return bool(self.access_token and self.refresh_token)

    @property
    def empty(self) -> bool:
        return not self.access_token and not self.refresh_token


class SessionClient:
    """Holds the current token pair and the resolved account.

    Usage:
        session = SessionClient(FileSecureStorage(path))
        stored = session.hydrate()
        session.set_tokens(Tokens(access, refresh))
        session.clear_session()
    """

    def __init__(self, storage: SecureStorage) -> None:
        self.storage = storage
        self._lock = threading.Lock()
        self.access_token: Optional[str] = None
        self.refresh_token: Optional[str] = None
        self.account: Optional[dict[str, Any]] = None
        self.is_hydrated = False

    @property
    def tokens(self) -> Optional[Tokens]:
        if self.access_token and self.refresh_token:
            return Tokens(self.access_token, self.refresh_token)
        return None

    def hydrate(self) -> StoredTokens:
        """Load tokens from storage into memory. Never raises."""
        with self._lock:
            try:
                access = self.storage.get_item(ACCESS_TOKEN_KEY)
                refresh = self.storage.get_item(REFRESH_TOKEN_KEY)
            except StorageError as e:
                logger.warning("Could not read stored session, starting signed out: %s", e)
                access = refresh = None
            self.access_token = access or None
            self.refresh_token = refresh or None
            self.is_hydrated = True
            return StoredTokens(self.access_token, self.refresh_token)

    def set_tokens(self, tokens: Tokens) -> None:
        """Persist tokens, then publish them in memory.

        Raises StorageError if either key cannot be written. The stored
        access token is rolled back to its previous value when the refresh
        token write fails, so storage never pairs a new access token with an
        old refresh token.
        """
        with self._lock:
            self.storage.set_item(ACCESS_TOKEN_KEY, tokens.access_token)
            try:
                self.storage.set_item(REFRESH_TOKEN_KEY, tokens.refresh_token)
            except StorageError:
                self._restore_access_token()
                raise
            self.access_token = tokens.access_token
            self.refresh_token = tokens.refresh_token

    def _restore_access_token(self) -> None:
        try:
            if self.access_token:
                self.storage.set_item(ACCESS_TOKEN_KEY, self.access_token)
            else:
                self.storage.delete_item(ACCESS_TOKEN_KEY)
        except StorageError as e:
            logger.warning("Could not roll back stored access token: %s", e)

    def set_account(self, account: Optional[dict[str, Any]]) -> None:
        self.account = account

    def clear_session(self) -> None:
        """Forget tokens and account. Safe to call when already signed out."""
        with self._lock:
            for key in (ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY):
                try:
                    self.storage.delete_item(key)
                except StorageError as e:
                    logger.warning("Could not delete stored %s: %s", key, e)
            self.access_token = None
            self.refresh_token = None
            self.account = None


class ActiveProfileSelection:
    """Which profile the device is currently looking at.

    Persisted under active_profile_id so it survives restarts. The value is
    only a hint: the server still checks ownership on every request.
    """

    def __init__(self, storage: SecureStorage) -> None:
        self.storage = storage
        self.profile_id: Optional[str] = None

    def hydrate(self) -> Optional[str]:
        try:
            self.profile_id = self.storage.get_item(ACTIVE_PROFILE_KEY) or None
        except StorageError as e:
            logger.warning("Could not read active profile: %s", e)
            self.profile_id = None
        return self.profile_id

    def set(self, profile_id: Optional[str]) -> None:
        """Persist then publish. set(None) is the same as clear()."""
        if profile_id is None:
            self.clear()
            return
        self.storage.set_item(ACTIVE_PROFILE_KEY, profile_id)
        self.profile_id = profile_id

    def clear(self) -> None:
        try:
            self.storage.delete_item(ACTIVE_PROFILE_KEY)
        except StorageError as e:
            logger.warning("Could not delete active profile: %s", e)
        self.profile_id = None
