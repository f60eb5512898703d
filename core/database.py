"""
core/database.py -- SQLAlchemy engine construction shared by every store.

Each store (AccountDirectory, RefreshTokenRegistry, ProfileStore) owns its own
engine so a test can build fully isolated instances. The default URL
"sqlite://" is an in-memory database; StaticPool keeps the single connection
alive for the engine's lifetime, otherwise every pooled connection would see
a blank schema.

Layer rule: core/ is the kernel. No imports from api/, auth/, client/, or
profiles/.
"""

from __future__ import annotations

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool


def _is_memory_url(db_url: str) -> bool:
    return db_url in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in db_url


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def make_engine(db_url: str) -> Engine:
    """Return an Engine for db_url, configured for SQLite when applicable."""
    if not db_url.startswith("sqlite"):
        return create_engine(db_url)
    # TestClient and uvicorn run sync handlers in a thread pool.
    connect_args = {"check_same_thread": False}
    if _is_memory_url(db_url):
        return create_engine(db_url, connect_args=connect_args, poolclass=StaticPool)
    engine = create_engine(db_url, connect_args=connect_args)
    event.listen(engine, "connect", _set_wal_mode)
    return engine
