"""
profiles/store.py -- SQLAlchemy-backed persistence for profiles and vitals.

Pattern: Repository + Data Mapper, same as auth/store.py. ProfileStore is the
repository; the _row_to_* functions are the mappers.

Ownership: every profile read or write takes the caller's account_id and puts
it in the WHERE clause next to the profile id. A profile that exists but
belongs to someone else is indistinguishable from one that does not exist --
both come back as None / False, and the route turns that into 404.

Vital queries take a profile id that the route has already resolved through
get_profile(account_id, profile_id), so they are not re-scoped here.

Usage:
    store = ProfileStore()                       # private in-memory DB
    profile = store.create_profile(Profile(account_id="acc_1", ...))
    store.get_profile("acc_1", profile.id)       # Profile
    store.get_profile("acc_2", profile.id)       # None
    store.close()
"""

import json
import threading
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, MetaData, String, Table, Text, func, select
from sqlalchemy.engine import Engine

from core.database import make_engine
from profiles.models import Profile, VitalEntry

_metadata = MetaData()

_profiles = Table(
    "profiles",
    _metadata,
    Column("id", String(40), primary_key=True),
    Column("account_id", String(40), nullable=False, index=True),
    Column("full_name", String(200), nullable=False),
    Column("date_of_birth", String(10), nullable=False),
    Column("relation_to_account", String(50), nullable=False),
    Column("created_at", String(32), nullable=False),
)

_vitals = Table(
    "vitals",
    _metadata,
    Column("id", String(40), primary_key=True),
    Column("profile_id", String(40), nullable=False, index=True),
    Column("type", String(30), nullable=False),
    Column("value", Text, nullable=False),  # JSON: number or {"systolic", "diastolic"}
    Column("unit", String(20), nullable=False),
    Column("recorded_at", String(32), nullable=False),
    Column("created_at", String(32), nullable=False),
)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ProfileStore:
    def __init__(self, db_url: str = "sqlite://") -> None:
        self.engine: Engine = make_engine(db_url)
        self._lock = threading.Lock()
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    def create_profile(self, profile: Profile) -> Profile:
        profile.id = f"prof_{uuid.uuid4().hex}"
        profile.created_at = _now_iso()
        with self._lock, self.engine.begin() as conn:
            conn.execute(
                _profiles.insert().values(
                    id=profile.id,
                    account_id=profile.account_id,
                    full_name=profile.full_name,
                    date_of_birth=profile.date_of_birth,
                    relation_to_account=profile.relation_to_account,
                    created_at=profile.created_at,
                )
            )
        return profile

    def list_profiles(self, account_id: str) -> list[Profile]:
        """Return the account's profiles, oldest first."""
        with self._lock, self.engine.connect() as conn:
            rows = conn.execute(
                _profiles.select().where(_profiles.c.account_id == account_id).order_by(_profiles.c.created_at)
            ).fetchall()
        return [_row_to_profile(r) for r in rows]

    def get_profile(self, account_id: str, profile_id: str) -> Optional[Profile]:
        with self._lock, self.engine.connect() as conn:
            row = conn.execute(
                _profiles.select().where((_profiles.c.id == profile_id) & (_profiles.c.account_id == account_id))
            ).fetchone()
        return _row_to_profile(row) if row is not None else None

    def delete_profile(self, account_id: str, profile_id: str) -> bool:
        """Delete a profile and its vitals. Returns False if not found or not owned."""
        with self._lock, self.engine.begin() as conn:
            result = conn.execute(
                _profiles.delete().where((_profiles.c.id == profile_id) & (_profiles.c.account_id == account_id))
            )
            if result.rowcount == 0:
                return False
            conn.execute(_vitals.delete().where(_vitals.c.profile_id == profile_id))
        return True

    # ------------------------------------------------------------------
    # Vitals
    # ------------------------------------------------------------------

    def add_vital(self, vital: VitalEntry) -> VitalEntry:
        vital.id = f"vit_{uuid.uuid4().hex}"
        vital.created_at = _now_iso()
        with self._lock, self.engine.begin() as conn:
            conn.execute(
                _vitals.insert().values(
                    id=vital.id,
                    profile_id=vital.profile_id,
                    type=vital.type,
                    value=json.dumps(vital.value),
                    unit=vital.unit,
                    recorded_at=vital.recorded_at,
                    created_at=vital.created_at,
                )
            )
        return vital

    def list_vitals(
        self,
        profile_id: str,
        vital_type: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[VitalEntry], int]:
        """Return (page of vitals newest first, total matching count)."""
        condition = _vitals.c.profile_id == profile_id
        if vital_type:
            condition = condition & (_vitals.c.type == vital_type)
        with self._lock, self.engine.connect() as conn:
            total = conn.execute(select(func.count()).select_from(_vitals).where(condition)).scalar_one()
            rows = conn.execute(
                _vitals.select()
                .where(condition)
                .order_by(_vitals.c.recorded_at.desc())
                .limit(limit)
                .offset((page - 1) * limit)
            ).fetchall()
        return [_row_to_vital(r) for r in rows], total

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _row_to_profile(row) -> Profile:
    return Profile(
        id=row.id,
        account_id=row.account_id,
        full_name=row.full_name,
        date_of_birth=row.date_of_birth,
        relation_to_account=row.relation_to_account,
        created_at=row.created_at,
    )


def _row_to_vital(row) -> VitalEntry:
    return VitalEntry(
        id=row.id,
        profile_id=row.profile_id,
        type=row.type,
        value=json.loads(row.value),
        unit=row.unit,
        recorded_at=row.recorded_at,
        created_at=row.created_at,
    )
