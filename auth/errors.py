"""
auth/errors.py -- Domain error taxonomy.

Every error that can cross the HTTP boundary carries a stable machine code and
the HTTP status it maps to. Services raise these; api/main.py owns the single
exception handler that turns them into the {"error": {code, message,
requestId}} envelope. Route handlers never build error JSON by hand.

Conflation rules (do not split these into finer codes):
  InvalidCredentials covers both "unknown email" and "wrong password".
  InvalidToken covers malformed, expired, revoked, and orphaned-account
  refresh tokens.
  NotFound is also what a non-owner gets for someone else's resource, so the
  response never confirms that the resource exists.

Layer rule: no imports from api/, client/, or profiles/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for errors that map to an HTTP error envelope."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"
    message: str = "An internal error occurred."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)
        if message:
            self.message = message


class ValidationError(AuthError):
    status_code = 400
    code = "VALIDATION_ERROR"
    message = "Invalid input."


class EmailAlreadyExists(AuthError):
    status_code = 409
    code = "EMAIL_ALREADY_EXISTS"
    message = "Email already registered."


class InvalidCredentials(AuthError):
    status_code = 401
    code = "INVALID_CREDENTIALS"
    message = "Invalid email or password."


class InvalidToken(AuthError):
    status_code = 401
    code = "INVALID_TOKEN"
    message = "Invalid or expired refresh token."


class Unauthorized(AuthError):
    status_code = 401
    code = "UNAUTHORIZED"
    message = "Missing or invalid authorization header."


class AccountNotFound(AuthError):
    status_code = 404
    code = "ACCOUNT_NOT_FOUND"
    message = "Account not found."


class NotFound(AuthError):
    status_code = 404
    code = "NOT_FOUND"
    message = "Resource not found."


class ProfileNotFound(NotFound):
    code = "PROFILE_NOT_FOUND"
    message = "Profile not found."


class InternalError(AuthError):
    pass


class ExpiredOrInvalid(Exception):
    """Raised by TokenCodec.verify. Never reaches HTTP directly.

    Callers translate it into InvalidToken (refresh flow) or Unauthorized
    (the per-request gate).
    """
