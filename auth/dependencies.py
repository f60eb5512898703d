"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

One auth method: the Authorization: Bearer <access token> header. Refresh
tokens are only ever accepted in the body of /auth/refresh and /auth/logout.

get_current_account_id() is the gate every protected route depends on. It
raises Unauthorized (401) for a missing/malformed header or an invalid,
expired, or refresh-kind token, before the route handler runs. Ownership of
records in the path is checked one level up, by the collaborator's own
dependency (see api/routes/v1/profiles.py).

Layer rule: no imports from api/, client/, or profiles/.
  auth/dependencies.py may import from fastapi (for Depends/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Depends, Request

from auth.errors import Unauthorized
from auth.service import AuthService

_SCHEME = "bearer"


def get_auth_service(request: Request) -> AuthService:
    """Return the AuthService owned by this application's AuthContext."""
    return request.app.state.auth.service


def bearer_token(request: Request) -> str:
    """Extract the token from an Authorization: Bearer header.

    Raises Unauthorized if the header is missing, uses another scheme, or
    carries no token.
    """
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    token = token.strip()
    if scheme.lower() != _SCHEME or not token:
        raise Unauthorized()
    return token


def get_current_account_id(
    request: Request,
    service: AuthService = Depends(get_auth_service),
) -> str:
    """Require a valid access token. Returns the caller's account id.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(account_id: str = Depends(get_current_account_id)): ...
    """
    account_id = service.authenticate(bearer_token(request))
    # Picked up by the request log line in api/main.py
    request.state.account_id = account_id
    return account_id
