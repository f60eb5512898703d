"""
api/limiter.py -- Shared slowapi rate limiter instance.

Imported by api/main.py (middleware + 429 handler) and api/routes/v1/auth.py
(per-route limits on login and register).

One shared instance means one in-memory counter store. A limiter built per
module would count each module's hits separately and never trigger.

Limits come from the Settings of the app serving the request, not from the
process environment: create_app() binds its Settings for the duration of
each request (bind_settings), and the limit callables read them back.
slowapi calls a limit provider without the request, hence the ContextVar.
rate_limit_enabled is honoured per app through exempt_when, so the shared
limiter itself is never toggled.
"""

from contextvars import ContextVar, Token
from typing import Optional

from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from core.config import Settings, get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")

_request_settings: ContextVar[Optional[Settings]] = ContextVar("medilog_request_settings", default=None)


def bind_settings(settings: Settings) -> Token:
    return _request_settings.set(settings)


def unbind_settings(token: Token) -> None:
    _request_settings.reset(token)


def _active_settings() -> Settings:
    return _request_settings.get() or get_settings()


def login_limit() -> str:
    return _active_settings().login_rate_limit


def register_limit() -> str:
    return _active_settings().register_rate_limit


def rate_limit_exempt(request: Request) -> bool:
    """True when the serving app has rate limiting switched off."""
    settings = getattr(request.app.state, "settings", None) or _active_settings()
    return not settings.rate_limit_enabled
