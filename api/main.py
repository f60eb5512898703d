"""
api/main.py -- FastAPI application factory for the MediLog API.

Install deps:  pip install -e .
Run with:      uvicorn asgi:app --reload

create_app() builds a fully independent application. Each instance owns its
own AuthContext (account directory, refresh-token registry, token codec) and
ProfileStore on app.state; nothing is shared at module level except the
slowapi limiter. Tests build one app per fixture with fresh in-memory stores.

Middleware stack (outermost to innermost):
  1. request_context     -- assigns X-Request-ID, binds this app's Settings for
                            the rate limiter, logs one line per request
  2. SlowAPIMiddleware   -- enforces per-route rate limits from api.limiter
  3. CORSMiddleware      -- adds CORS headers for allowed browser origins
  4. TrustedHostMiddleware -- rejects requests with unexpected Host headers

Lifespan builds whatever the caller did not inject, and closes only what it
built.
"""

from __future__ import annotations

import logging
import re
import time
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import bind_settings, limiter, unbind_settings
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.profiles import router as profiles_router
from auth.errors import AuthError, InternalError, ValidationError
from auth.service import AuthContext
from core.config import Settings, get_settings
from profiles.store import ProfileStore

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("medilog.api")

REQUEST_ID_HEADER = "X-Request-ID"
# Accept a caller-supplied id only if it is short and boring; anything else
# gets replaced so it cannot inject into log lines.
_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


# ---------------------------------------------------------------------------
# Error envelope
# ---------------------------------------------------------------------------


def _request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None)


def error_response(request: Request, status_code: int, code: str, message: str) -> JSONResponse:
    """Build the {"error": {code, message, requestId}} envelope every error uses."""
    request_id = _request_id(request)
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, request_id=request_id))
    response = JSONResponse(status_code=status_code, content=body.model_dump(by_alias=True))
    if request_id:
        response.headers[REQUEST_ID_HEADER] = request_id
    return response


def _first_validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid input."
    first = errors[0]
    loc = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path")]
    msg = first.get("msg", "Invalid input.")
    return f"{loc[-1]}: {msg}" if loc else msg


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _domain_error_response(request: Request, exc: AuthError) -> JSONResponse:
    response = error_response(request, exc.status_code, exc.code, exc.message)
    if exc.status_code == 401:
        response.headers["WWW-Authenticate"] = "Bearer"
    return response


async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    return _domain_error_response(request, exc)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 VALIDATION_ERROR with the first failing field's message only."""
    return _domain_error_response(request, ValidationError(_first_validation_message(exc)))


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Unknown routes (404) and wrong methods (405) keep the same envelope."""
    code = {404: "NOT_FOUND", 405: "METHOD_NOT_ALLOWED"}.get(exc.status_code, f"HTTP_{exc.status_code}")
    response = error_response(request, exc.status_code, code, str(exc.detail))
    for name, value in (exc.headers or {}).items():
        response.headers[name] = value
    return response


async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 RATE_LIMITED with Retry-After."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = error_response(request, 429, "RATE_LIMITED", "Too many requests. Try again later.")
    response.headers["Retry-After"] = str(retry_after)
    return response


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected server errors.

    Security note: only method, path and request id are logged, never the
    request body (it may hold a password or token). The client receives a
    generic message.
    """
    logger.exception(
        "Unhandled exception on %s %s request_id=%s",
        request.method,
        request.url.path,
        _request_id(request),
    )
    return _domain_error_response(request, InternalError())


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app(
    settings: Optional[Settings] = None,
    context: Optional[AuthContext] = None,
    profiles: Optional[ProfileStore] = None,
) -> FastAPI:
    """Build a MediLog API application.

    Args:
        settings: Server settings. Defaults to get_settings().
        context:  Pre-built AuthContext. Built from settings in lifespan if None.
        profiles: Pre-built ProfileStore. Built from settings in lifespan if None.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Build missing stores on startup; close the ones built here on shutdown."""
        logger.info("MediLog API starting up (version %s)", settings.app_version)
        owned = []
        if getattr(app.state, "auth", None) is None:
            app.state.auth = AuthContext.from_settings(settings)
            owned.append(app.state.auth)
        if getattr(app.state, "profiles", None) is None:
            app.state.profiles = ProfileStore(settings.database_url)
            owned.append(app.state.profiles)
        logger.info("Stores initialized")

        yield

        for resource in owned:
            resource.close()
        logger.info("MediLog API shutdown complete")

    app = FastAPI(
        title="MediLog API",
        description="Accounts, sessions and per-person health records.",
        version=settings.app_version,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.auth = context
    app.state.profiles = profiles

    # -----------------------------------------------------------------------
    # Middleware stack -- each add_middleware() wraps everything added before
    # it, so the last one added sees the request first.
    # -----------------------------------------------------------------------

    app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["Content-Type", "Authorization", REQUEST_ID_HEADER],
        expose_headers=[REQUEST_ID_HEADER],
        max_age=3600,
    )
    # SlowAPI looks for app.state.limiter by convention. The limiter is shared;
    # limits and the on/off switch come from the Settings bound per request.
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        """Assign a request id, then log method, path, status and latency."""
        incoming = request.headers.get(REQUEST_ID_HEADER, "")
        request_id = incoming if _REQUEST_ID_RE.match(incoming) else uuid.uuid4().hex
        request.state.request_id = request_id
        start = time.perf_counter()
        token = bind_settings(settings)
        try:
            response = await call_next(request)
        finally:
            unbind_settings(token)
        ms = (time.perf_counter() - start) * 1000
        response.headers[REQUEST_ID_HEADER] = request_id
        logger.info(
            "%s %s %d %.1fms %s request_id=%s",
            request.method,
            request.url.path,
            response.status_code,
            ms,
            request.client.host if request.client else "unknown",
            request_id,
        )
        return response

    app.add_exception_handler(AuthError, auth_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
    app.include_router(profiles_router, prefix="/api/v1", tags=["Profiles"])

    # Defined on the app (not in a router) and never rate-limited -- load
    # balancer probes must not be throttled.
    @app.get("/api/v1/health", response_model=HealthResponse, tags=["Health"])
    def health(request: Request) -> HealthResponse:
        """Return liveness, version and store reachability. No auth."""
        auth_ctx = request.app.state.auth
        accounts_ok = auth_ctx is not None and auth_ctx.directory.ping()
        components = {"accounts": "ok" if accounts_ok else "unavailable"}
        return HealthResponse(
            status="ok" if accounts_ok else "degraded",
            version=settings.app_version,
            components=components,
        )

    return app
