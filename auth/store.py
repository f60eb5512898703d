"""
auth/store.py -- AccountDirectory: SQLAlchemy Core persistence for accounts.

Pattern: Repository + Data Mapper. AccountDirectory is the repository;
_row_to_account is the mapper. Services and routes never touch SQL directly.

Tables:
  accounts     -- one row per account. email keeps the registered casing;
                  email_normalized (lower-cased, UNIQUE) backs lookups and the
                  uniqueness rule, so two concurrent registrations of the same
                  address cannot both succeed.
  credentials  -- account_id -> bcrypt hash. Stored apart from accounts so no
                  account read path can accidentally serialize it.

Security:
  All queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/, client/, or profiles/.
"""

from __future__ import annotations

import json
import threading
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, MetaData, String, Table, Text, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import EmailAlreadyExists
from auth.models import Account, default_settings
from core.database import make_engine

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", String(40), primary_key=True),
    Column("email", String(255), nullable=False),
    Column("email_normalized", String(255), nullable=False, unique=True),
    Column("display_name", String(100), nullable=False),
    Column("settings", Text, nullable=False),  # JSON blob
    Column("created_at", String(32), nullable=False),
)

_credentials = Table(
    "credentials",
    _metadata,
    Column("account_id", String(40), primary_key=True),
    Column("secret_hash", Text, nullable=False),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_email(email: str) -> str:
    return email.strip().lower()


def new_account_id() -> str:
    return f"acc_{uuid.uuid4().hex}"


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountDirectory:
    """Repository for Account entities and their credentials.

    Usage:
        directory = AccountDirectory()            # private in-memory DB
        account = directory.create("a@example.com", "Alice", hash_password("secret"))
        directory.find_by_email("A@Example.com")  # same account
        directory.close()
    """

    def __init__(self, db_url: str = "sqlite://") -> None:
        self.engine: Engine = make_engine(db_url)
        # The in-memory engine shares one connection across threads. Returning
        # it to the pool rolls back, so no two operations may overlap.
        self._lock = threading.Lock()
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, email: str, display_name: str, secret_hash: str) -> Account:
        """Insert a new account and its credential in one transaction.

        Raises EmailAlreadyExists if the case-insensitive email is taken. The
        UNIQUE constraint on email_normalized is the source of truth; there is
        no check-then-insert window.
        """
        account = Account(
            id=new_account_id(),
            email=email.strip(),
            display_name=display_name,
            settings=default_settings(),
            created_at=_now_iso(),
        )
        try:
            with self._lock, self.engine.begin() as conn:
                conn.execute(
                    _accounts.insert().values(
                        id=account.id,
                        email=account.email,
                        email_normalized=normalize_email(email),
                        display_name=account.display_name,
                        settings=json.dumps(account.settings),
                        created_at=account.created_at,
                    )
                )
                conn.execute(_credentials.insert().values(account_id=account.id, secret_hash=secret_hash))
        except IntegrityError as exc:
            raise EmailAlreadyExists() from exc
        return account

    def delete(self, account_id: str) -> bool:
        """Remove an account and its credential. Returns True if a row was deleted.

        Not reachable over HTTP. Exists so an account can disappear while
        tokens issued to it are still live (the orphaned-token case).
        """
        with self._lock, self.engine.begin() as conn:
            conn.execute(_credentials.delete().where(_credentials.c.account_id == account_id))
            result = conn.execute(_accounts.delete().where(_accounts.c.id == account_id))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_by_email(self, email: str) -> Account | None:
        """Look up an account by email, ignoring case. Returns None if not found."""
        with self._lock, self.engine.connect() as conn:
            row = conn.execute(
                _accounts.select().where(_accounts.c.email_normalized == normalize_email(email))
            ).fetchone()
        return _row_to_account(row) if row is not None else None

    def find_by_id(self, account_id: str) -> Account | None:
        with self._lock, self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.id == account_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def secret_for(self, account_id: str) -> str | None:
        """Return the stored bcrypt hash for account_id, or None."""
        with self._lock, self.engine.connect() as conn:
            return conn.execute(
                select(_credentials.c.secret_hash).where(_credentials.c.account_id == account_id)
            ).scalar()

    def ping(self) -> bool:
        """Return True if the backing database answers a trivial query."""
        try:
            with self._lock, self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        email=row.email,
        display_name=row.display_name,
        settings=json.loads(row.settings) if row.settings else default_settings(),
        created_at=row.created_at,
    )
