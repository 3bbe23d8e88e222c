"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for Gatehouse happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. db_type -> DB_TYPE, auth_mode -> AUTH_MODE).

  Frozen model: Settings is immutable once built. Components receive it at
      startup and never re-read the environment per request.

Security notes:
  Secrets shorter than 32 chars are rejected outright. HMAC-SHA256, JWT
  signing and session-cookie signing all rely on key entropy.

  In production mode (DEBUG not set or false), a missing SESSION_SECRET or
  JWT_SECRET is a hard startup failure.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("gatehouse.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent.parent / 'gatehouse.db'}"

DB_TYPES = ("mongo", "mysql")


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file (with DEBUG=true, secrets are
    generated on the fly).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    environment: str = "development"  # "production" enables secure cookies + HSTS

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    db_type: str = "mysql"
    database_url: str = _DEFAULT_DB_URL
    mongo_url: str = "mongodb://localhost:27017"
    mongo_database: str = "gatehouse"

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    # "JWT" or "session". Left as a plain string: an unknown value is reported
    # by auth.issuers.build_identity_issuer() at startup, not here.
    auth_mode: str = "JWT"
    # Empty string is the sentinel for "not configured". The validator below
    # either generates a dev key or raises, so callers never see "".
    session_secret: str = Field(default="", validate_default=True)
    jwt_secret: str = Field(default="", validate_default=True)
    token_expire_seconds: int = 3600

    session_cookie_name: str = "sid"
    session_max_age_seconds: int = 60 * 60 * 24 * 31

    csrf_cookie_name: str = "csrf-token"
    csrf_header_name: str = "X-CSRF-Token"
    csrf_token_size: int = 64

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    frontend_url: str = "http://localhost:8765"
    rate_limit: str = "100/15 minutes"
    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("db_type")
    @classmethod
    def validate_db_type(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in DB_TYPES:
            raise ValueError(f'Invalid DB_TYPE {value!r}. Must be "mongo" or "mysql".')
        return value

    @field_validator("session_secret", "jwt_secret")
    @classmethod
    def validate_secret(cls, value: str, info: ValidationInfo) -> str:
        """Enforce the signing-key policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Sessions and tokens will not survive restart.

        Production mode (DEBUG=false or not set): refuse to start if the key
            is missing.

        Both modes: reject keys shorter than 32 characters.
        """
        name = info.field_name.upper()
        if not value:
            if info.data.get("debug"):
                logger.warning("Using auto-generated %s. Sessions will not persist across restarts.", name)
                return secrets.token_hex(32)
            raise ValueError(
                f"{name} is required in production mode. "
                f"Set {name} in your environment or .env file. "
                "To run in development mode, set DEBUG=true."
            )
        if len(value) < 32:
            raise ValueError(f"{name} must be at least 32 characters.")
        return value

    @field_validator("csrf_token_size")
    @classmethod
    def validate_csrf_token_size(cls, value: int) -> int:
        if value < 32 or value % 2:
            raise ValueError("CSRF_TOKEN_SIZE must be an even number of at least 32.")
        return value

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() == "production"


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
