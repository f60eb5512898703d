"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for MediLog happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() or
get_client_settings() instead.

Two settings classes live here:

  Settings:       the API server. Owns the JWT signing key, token lifetimes,
                  the store URL and the rate limits.
  ClientSettings: the device CLI. Owns the API base URL and where the session
                  file lives. Kept separate so the CLI never needs SECRET_KEY.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  @model_validator(mode="after"): cross-field validation after all fields are
      resolved from the environment. Dev mode (DEBUG=true) generates a signing
      key with a warning; production mode refuses to start without one.

Security notes:
  [M6] SECRET_KEY shorter than 32 chars is rejected outright. JWT signing
       relies on key entropy.

  [M7] In production mode a missing SECRET_KEY is a hard startup failure. A
       random key would silently invalidate every issued token on restart.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, client/, or profiles/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("medilog.config")


class Settings(BaseSettings):
    """API server settings loaded from environment variables and .env file.

    All fields have defaults so Settings(debug=True) can be instantiated in
    test environments without a real .env file.

    Environment variable name mapping: field names are uppercased
    automatically. E.g. `secret_key` reads from SECRET_KEY.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    app_version: str = "1.0.0"

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    access_token_expire_seconds: int = 15 * 60
    refresh_token_expire_seconds: int = 7 * 24 * 3600

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    # "sqlite://" is a private in-memory database per store instance: empty
    # at startup, gone at shutdown.
    database_url: str = "sqlite://"

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:8081", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    rate_limit_enabled: bool = True
    login_rate_limit: str = "10/minute"
    register_rate_limit: str = "5/minute"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy [M6][M7].

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
        Production mode: refuse to start if SECRET_KEY is missing.
        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("Using auto-generated SECRET_KEY. Issued tokens will not survive a restart.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        if self.access_token_expire_seconds <= 0 or self.refresh_token_expire_seconds <= 0:
            raise ValueError("Token lifetimes must be positive.")
        if self.refresh_token_expire_seconds <= self.access_token_expire_seconds:
            raise ValueError("Refresh tokens must outlive access tokens.")
        return self


class ClientSettings(BaseSettings):
    """Device-side settings for the MediLog CLI.

    Read from MEDILOG_* environment variables, e.g. MEDILOG_API_BASE_URL.
    """

    model_config = SettingsConfigDict(
        env_prefix="MEDILOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    api_base_url: str = "http://localhost:8000/api/v1"
    client_state_path: Path = Path.home() / ".medilog" / "session.json"
    request_timeout_seconds: float = 10.0


@lru_cache
def get_settings() -> Settings:
    """Return the server Settings singleton.

    In tests: build Settings(...) directly and pass it to api.main.create_app(),
    or call get_settings.cache_clear() between test cases.
    """
    return Settings()


@lru_cache
def get_client_settings() -> ClientSettings:
    """Return the device ClientSettings singleton."""
    return ClientSettings()
