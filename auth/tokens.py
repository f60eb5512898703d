"""
auth/tokens.py -- JWT issue/verify and password hashing utilities.

Security design decisions:
  JWT: python-jose with HS256. Every token carries sub (account id), kind
       ("access" | "refresh"), iat, exp and a random jti. The kind claim is
       the discriminator that stops a refresh token being replayed as an
       access token and vice versa. The jti makes two tokens issued for the
       same account in the same second differ, so the refresh registry never
       sees a collision.

  TokenCodec is a class rather than module functions so each AuthContext owns
       its own signing key and lifetimes. Tests build codecs with short or
       back-dated lifetimes without touching the environment.

  Passwords: bcrypt directly (no passlib wrapper). bcrypt.checkpw compares in
       constant time. The DUMMY_HASH constant enables timing equalization in
       AuthService.login so response time does not reveal whether an email is
       registered [C1].

Layer rule: no imports from api/, client/, or profiles/. Import from core/
is allowed.
"""

from __future__ import annotations

import logging
import secrets
import time

import bcrypt
from jose import JWTError, jwt

from auth.errors import ExpiredOrInvalid
from auth.models import TokenClaims, TokenPair
from core.config import Settings

logger = logging.getLogger("medilog.auth")

_ALGORITHM = "HS256"

ACCESS = "access"
REFRESH = "refresh"
_KINDS = (ACCESS, REFRESH)

# bcrypt only looks at the first 72 bytes, and bcrypt>=4.1 raises on longer
# input instead of truncating. Truncate explicitly so hash and verify agree.
_BCRYPT_MAX_BYTES = 72


# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def _password_bytes(plain: str) -> bytes:
    return plain.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the given plaintext password."""
    return bcrypt.hashpw(_password_bytes(plain), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(_password_bytes(plain), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


# Timing equalization dummy hash [C1].
# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
DUMMY_HASH: str = hash_password("medilog_timing_dummy")


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


class TokenCodec:
    """Issues and verifies signed, expiring access and refresh tokens.

    Usage:
        codec = TokenCodec.from_settings(get_settings())
        pair = codec.issue_pair("acc_123")
        claims = codec.verify(pair.access_token)   # TokenClaims(kind="access")
    """

    def __init__(self, secret_key: str, access_ttl_seconds: int, refresh_ttl_seconds: int) -> None:
        self._secret_key = secret_key
        self.access_ttl_seconds = access_ttl_seconds
        self.refresh_ttl_seconds = refresh_ttl_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> TokenCodec:
        return cls(
            secret_key=settings.secret_key,
            access_ttl_seconds=settings.access_token_expire_seconds,
            refresh_ttl_seconds=settings.refresh_token_expire_seconds,
        )

    def issue(self, account_id: str, kind: str, now: float | None = None) -> str:
        """Encode one signed token of the given kind.

        Args:
            account_id: Stored as the JWT subject claim.
            kind:       "access" or "refresh".
            now:        Issue time as unix seconds. Defaults to the current
                        time; tests pass a past value to mint expired tokens.
        """
        if kind not in _KINDS:
            raise ValueError(f"Unknown token kind: {kind!r}")
        issued_at = int(now if now is not None else time.time())
        ttl = self.access_ttl_seconds if kind == ACCESS else self.refresh_ttl_seconds
        payload = {
            "sub": account_id,
            "kind": kind,
            "iat": issued_at,
            "exp": issued_at + ttl,
            "jti": secrets.token_hex(16),
        }
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)

    def issue_pair(self, account_id: str, now: float | None = None) -> TokenPair:
        return TokenPair(
            access_token=self.issue(account_id, ACCESS, now=now),
            refresh_token=self.issue(account_id, REFRESH, now=now),
        )

    def verify(self, token: str) -> TokenClaims:
        """Decode and verify a token. Raises ExpiredOrInvalid on any failure.

        Signature, expiry and the presence of sub/kind are all checked here;
        whether the kind is acceptable is the caller's decision.
        """
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[_ALGORITHM])
        except JWTError as exc:
            raise ExpiredOrInvalid(str(exc)) from exc
        account_id = payload.get("sub")
        kind = payload.get("kind")
        expires_at = payload.get("exp")
        if not isinstance(account_id, str) or not account_id or kind not in _KINDS or not isinstance(expires_at, int):
            raise ExpiredOrInvalid("Token is missing required claims.")
        return TokenClaims(account_id=account_id, kind=kind, expires_at=expires_at)
