"""
API request and response models for MediLog REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
profiles/models.py, which own the internal domain representation. Route
handlers map between the two.

Wire format is camelCase (accessToken, createdAt). Python attributes stay
snake_case; CamelModel's alias generator does the translation both ways, and
populate_by_name lets handlers construct models with the Python names.
"""

from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from auth.models import Account, TokenPair
from profiles.models import Profile, VitalEntry

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Deliberately loose: one "@", something on both sides, a dot in the domain.
# Deliverability is not our concern; the address is only an identifier.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class VitalTypeEnum(str, Enum):
    blood_pressure = "blood_pressure"
    blood_glucose = "blood_glucose"
    heart_rate = "heart_rate"
    temperature = "temperature"
    weight = "weight"
    spo2 = "spo2"


# ---------------------------------------------------------------------------
# Auth request models
# ---------------------------------------------------------------------------


class RegisterRequest(CamelModel):
    """Request body for POST /api/v1/auth/register.

    password max_length=72 matches bcrypt's input limit, so what the user
    typed is exactly what gets hashed.
    """

    email: str = Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=6, max_length=72)
    name: str = Field(min_length=2, max_length=100)


class LoginRequest(CamelModel):
    """No upper bound on password: any wrong password is INVALID_CREDENTIALS."""

    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1)


class RefreshRequest(CamelModel):
    """Request body for POST /auth/refresh and POST /auth/logout."""

    refresh_token: str = Field(min_length=1, max_length=4096)


# ---------------------------------------------------------------------------
# Auth response models
# ---------------------------------------------------------------------------


class TokensResponse(CamelModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str

    @classmethod
    def from_pair(cls, pair: TokenPair) -> "TokensResponse":
        return cls(access_token=pair.access_token, refresh_token=pair.refresh_token)


class AccountResponse(CamelModel):
    """Public view of an Account. The credential never appears here."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    name: str
    settings: dict
    created_at: str

    @classmethod
    def from_account(cls, account: Account) -> "AccountResponse":
        return cls(
            id=account.id,
            email=account.email,
            name=account.display_name,
            settings=account.settings,
            created_at=account.created_at,
        )


class AuthResponse(CamelModel):
    """Response for register and login."""

    model_config = ConfigDict(frozen=True)

    account: AccountResponse
    tokens: TokensResponse


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


# ---------------------------------------------------------------------------
# Error / health
# ---------------------------------------------------------------------------


class ErrorDetail(CamelModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    request_id: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Profiles / vitals
# ---------------------------------------------------------------------------


class ProfileCreate(CamelModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    full_name: str = Field(min_length=2, max_length=200)
    date_of_birth: str = Field(pattern=DATE_PATTERN)
    relation_to_account: str = Field(min_length=1, max_length=50)


class ProfileResponse(CamelModel):
    model_config = ConfigDict(frozen=True)

    id: str
    account_id: str
    full_name: str
    date_of_birth: str
    relation_to_account: str
    created_at: str

    @classmethod
    def from_profile(cls, profile: Profile) -> "ProfileResponse":
        return cls(
            id=profile.id,
            account_id=profile.account_id,
            full_name=profile.full_name,
            date_of_birth=profile.date_of_birth,
            relation_to_account=profile.relation_to_account,
            created_at=profile.created_at,
        )


class ProfileListResponse(BaseModel):
    items: list[ProfileResponse]


class BloodPressureValue(BaseModel):
    systolic: float = Field(ge=50, le=250)
    diastolic: float = Field(ge=30, le=150)


class VitalCreate(CamelModel):
    type: VitalTypeEnum
    value: Union[BloodPressureValue, float]
    unit: str = Field(min_length=1, max_length=20)
    recorded_at: str = Field(min_length=1, max_length=32)

    @model_validator(mode="after")
    def check_value_shape(self) -> "VitalCreate":
        """blood_pressure takes {systolic, diastolic}; every other type takes a non-negative number."""
        if self.type == VitalTypeEnum.blood_pressure:
            if not isinstance(self.value, BloodPressureValue):
                raise ValueError("blood_pressure value must have systolic and diastolic")
        elif isinstance(self.value, BloodPressureValue) or self.value < 0:
            raise ValueError(f"{self.type.value} value must be a non-negative number")
        return self

    def stored_value(self) -> Union[dict, float]:
        if isinstance(self.value, BloodPressureValue):
            return self.value.model_dump()
        return self.value


class VitalResponse(CamelModel):
    model_config = ConfigDict(frozen=True)

    id: str
    profile_id: str
    type: str
    value: Union[dict, float]
    unit: str
    recorded_at: str
    created_at: str

    @classmethod
    def from_vital(cls, vital: VitalEntry) -> "VitalResponse":
        return cls(
            id=vital.id,
            profile_id=vital.profile_id,
            type=vital.type,
            value=vital.value,
            unit=vital.unit,
            recorded_at=vital.recorded_at,
            created_at=vital.created_at,
        )


class PageMeta(BaseModel):
    page: int
    limit: int
    total: int


class VitalListResponse(BaseModel):
    items: list[VitalResponse]
    meta: PageMeta
