"""
api/routes/v1/auth.py -- Account and session REST endpoints.

Routes:
  POST /api/v1/auth/register   -- create account, open first session; 201
  POST /api/v1/auth/login      -- password login, open a new session
  POST /api/v1/auth/refresh    -- rotate a refresh token into a new pair
  POST /api/v1/auth/logout     -- revoke a refresh token; always 200
  GET  /api/v1/account/me      -- the caller's account (requires Bearer)

Security:
  [H2] login and register are rate-limited per client IP (api.limiter).
  [C1] AuthService.login() equalizes timing for unknown emails; call it, never
       inline find_by_email() + verify_password().
  [M5] Cache-Control: no-store on every response that carries tokens.

Route handlers are plain `def` -- bcrypt and the SQLite stores are blocking,
so FastAPI runs them in its threadpool.
"""

from fastapi import APIRouter, Depends, Request, Response

from api.limiter import limiter, login_limit, rate_limit_exempt, register_limit
from api.models import (
    AccountResponse,
    AuthResponse,
    LoginRequest,
    MessageResponse,
    RefreshRequest,
    RegisterRequest,
    TokensResponse,
)
from auth.dependencies import get_auth_service, get_current_account_id
from auth.errors import AccountNotFound
from auth.models import AuthResult
from auth.service import AuthService

# Auth policy:
# - POST /api/v1/auth/register: public, rate-limited
# - POST /api/v1/auth/login:    public, rate-limited
# - POST /api/v1/auth/refresh:  public -- the refresh token in the body is the credential
# - POST /api/v1/auth/logout:   public -- same
# - GET  /api/v1/account/me:    requires Bearer access token (get_current_account_id)
router = APIRouter()


def _no_store(response: Response) -> None:
    response.headers["Cache-Control"] = "no-store"  # [M5]


def _auth_response(result: AuthResult) -> AuthResponse:
    return AuthResponse(
        account=AccountResponse.from_account(result.account),
        tokens=TokensResponse.from_pair(result.tokens),
    )


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=AuthResponse, status_code=201)
@limiter.limit(register_limit, exempt_when=rate_limit_exempt)  # [H2]
def register(
    request: Request,
    response: Response,
    body: RegisterRequest,
    service: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    """Create an account and return it with its first token pair.

    409 EMAIL_ALREADY_EXISTS if the email is registered in any casing.
    """
    result = service.register(body.email, body.password, body.name)
    _no_store(response)
    return _auth_response(result)


@router.post("/auth/login", response_model=AuthResponse)
@limiter.limit(login_limit, exempt_when=rate_limit_exempt)  # [H2]
def login(
    request: Request,
    response: Response,
    body: LoginRequest,
    service: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    """Authenticate with email and password.

    Unknown email and wrong password both return 401 INVALID_CREDENTIALS.
    """
    result = service.login(body.email, body.password)
    _no_store(response)
    return _auth_response(result)


@router.post("/auth/refresh", response_model=TokensResponse)
def refresh(
    response: Response,
    body: RefreshRequest,
    service: AuthService = Depends(get_auth_service),
) -> TokensResponse:
    """Exchange a refresh token for a new pair. The presented token is spent."""
    pair = service.refresh(body.refresh_token)
    _no_store(response)
    return TokensResponse.from_pair(pair)


@router.post("/auth/logout", response_model=MessageResponse)
def logout(body: RefreshRequest, service: AuthService = Depends(get_auth_service)) -> MessageResponse:
    service.logout(body.refresh_token)
    return MessageResponse(message="Logged out.")


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/account/me", response_model=AccountResponse)
def me(
    account_id: str = Depends(get_current_account_id),
    service: AuthService = Depends(get_auth_service),
) -> AccountResponse:
    """Return the account the access token was issued to.

    404 ACCOUNT_NOT_FOUND when the token is valid but the account is gone.
    """
    account = service.get_account_by_id(account_id)
    if account is None:
        raise AccountNotFound()
    return AccountResponse.from_account(account)
