"""
profiles/models.py -- Domain dataclasses for person profiles and vital readings.

Pure data containers with zero logic. Ownership rules live in
profiles/store.py (every profile query is scoped by account id) and in the
route-level dependency that resolves a profile id from the path.
"""

from dataclasses import dataclass
from typing import Optional, Union

VITAL_TYPES = ("blood_pressure", "blood_glucose", "heart_rate", "temperature", "weight", "spo2")


@dataclass
class Profile:
    """A person whose records an account manages (self, child, parent...).

    id is None before the record is written to the database.
    """

    account_id: str
    full_name: str
    date_of_birth: str  # ISO 8601 date
    relation_to_account: str  # "self" | "child" | "parent" | ...
    id: Optional[str] = None
    created_at: str = ""


@dataclass
class VitalEntry:
    """One vital reading for a profile.

    value is a number, or {"systolic": n, "diastolic": n} for blood_pressure.
    """

    profile_id: str
    type: str
    value: Union[float, dict]
    unit: str
    recorded_at: str  # ISO 8601
    id: Optional[str] = None
    created_at: str = ""
