"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and services do
the work; api/models.py owns the wire shape.

Layer rule: no imports from api/, client/, or profiles/.
"""

from __future__ import annotations

from dataclasses import dataclass, field


def default_settings() -> dict:
    """Fresh settings blob for a newly registered account."""
    return {
        "language": "en",
        "timezone": "UTC",
        "notificationPreferences": {
            "appointments": True,
            "medications": True,
            "reports": True,
            "security": True,
        },
    }


@dataclass
class Account:
    """An authenticated identity in MediLog.

    email keeps the casing the user registered with; lookups and the
    uniqueness constraint use the lower-cased form stored alongside it.

    The credential (password hash) is deliberately not a field here. It lives
    in its own table and is only read by AuthService.login, so an Account can
    be serialized to a client without risk of leaking it.
    """

    id: str
    email: str
    display_name: str
    settings: dict = field(default_factory=default_settings)
    created_at: str = ""  # ISO 8601, set by the store on insert


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class TokenClaims:
    """Verified content of an access or refresh token."""

    account_id: str
    kind: str  # "access" | "refresh"
    expires_at: int  # unix seconds


@dataclass(frozen=True)
class AuthResult:
    """Returned by register and login: the account plus its fresh token pair."""

    account: Account
    tokens: TokenPair
