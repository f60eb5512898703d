"""
auth/registry.py -- RefreshTokenRegistry: the server-side list of live refresh tokens.

Access tokens are stateless and verified by signature alone. Refresh tokens
are valid only while they are both correctly signed AND present here, which
is what makes logout and rotation stick even for a token that has not
expired yet.

Rows are keyed by SHA-256 of the token rather than the token itself, so a
dump of this table cannot be replayed against /auth/refresh.

Rotation:
  rotate(old, new) deletes the old row and inserts the new one inside one
  transaction, under the registry lock. The delete must remove exactly one
  row owned by the expected account; if another caller rotated the same token
  first, rowcount is 0 and nothing is inserted. Two concurrent refreshes with
  the same token therefore produce exactly one winner.

No background sweep: expired tokens fail signature verification before the
registry is consulted, and their rows go away on logout or rotation.

Layer rule: no imports from api/, client/, or profiles/.
"""

from __future__ import annotations

import hashlib
import threading
from datetime import datetime, timezone

from sqlalchemy import Column, MetaData, String, Table, func, select
from sqlalchemy.engine import Engine

from core.database import make_engine

_metadata = MetaData()

_refresh_tokens = Table(
    "refresh_tokens",
    _metadata,
    Column("token_hash", String(64), primary_key=True),  # SHA-256 hex
    Column("account_id", String(40), nullable=False, index=True),
    Column("created_at", String(32), nullable=False),
)


def _token_hash(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class RefreshTokenRegistry:
    """Tracks live refresh tokens (token -> account id).

    Usage:
        registry = RefreshTokenRegistry()
        registry.register(pair.refresh_token, account.id)
        registry.owner_of(pair.refresh_token)       # account.id
        registry.rotate(old, new, account.id)       # True once, then False
        registry.revoke(new)                        # idempotent
    """

    def __init__(self, db_url: str = "sqlite://") -> None:
        self.engine: Engine = make_engine(db_url)
        self._lock = threading.Lock()
        _metadata.create_all(self.engine)

    def register(self, token: str, account_id: str) -> None:
        with self._lock, self.engine.begin() as conn:
            conn.execute(
                _refresh_tokens.insert().values(
                    token_hash=_token_hash(token),
                    account_id=account_id,
                    created_at=_now_iso(),
                )
            )

    def revoke(self, token: str) -> bool:
        """Remove token if present. Returns True if a live token was removed.

        Revoking an absent token is not an error.
        """
        with self._lock, self.engine.begin() as conn:
            result = conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.token_hash == _token_hash(token)))
        return result.rowcount > 0

    def owner_of(self, token: str) -> str | None:
        with self._lock, self.engine.connect() as conn:
            return conn.execute(
                select(_refresh_tokens.c.account_id).where(_refresh_tokens.c.token_hash == _token_hash(token))
            ).scalar()

    def rotate(self, old_token: str, new_token: str, account_id: str) -> bool:
        """Atomically replace old_token with new_token for account_id.

        Returns False, registering nothing, if old_token is not live or is
        owned by another account.
        """
        with self._lock, self.engine.begin() as conn:
            result = conn.execute(
                _refresh_tokens.delete().where(
                    (_refresh_tokens.c.token_hash == _token_hash(old_token))
                    & (_refresh_tokens.c.account_id == account_id)
                )
            )
            if result.rowcount != 1:
                return False
            conn.execute(
                _refresh_tokens.insert().values(
                    token_hash=_token_hash(new_token),
                    account_id=account_id,
                    created_at=_now_iso(),
                )
            )
        return True

    def count_for(self, account_id: str) -> int:
        """Number of live refresh tokens (sessions) held by account_id.

        Not reachable over HTTP. Exists so session bookkeeping can be checked
        from outside the store.
        """
        with self._lock, self.engine.connect() as conn:
            return conn.execute(
                select(func.count()).select_from(_refresh_tokens).where(_refresh_tokens.c.account_id == account_id)
            ).scalar_one()

    def close(self) -> None:
        self.engine.dispose()
