"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for FleetAdmin happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY). Type coercion and validation are built in.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment. Dev mode generates a SECRET_KEY with a
      warning, production mode refuses to start without one.

Security notes:
  SECRET_KEY shorter than 32 chars is rejected outright. JWT signing relies
  on key entropy -- a short key weakens every issued token.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, fleet/, or cache/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("fleetadmin.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'fleet' / 'fleetadmin.db'}"

_CACHE_BACKENDS = {"memory", "sqlite", "redis"}


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.
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
    api_version: str = "1.0.0"

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    # One day, the lifetime of tokens issued by POST /administradores/login.
    token_expire_seconds: int = 86400

    # First administrator, created on startup when the table is empty.
    seed_admin_email: str = ""
    seed_admin_password: str = ""
    seed_admin_role: str = "Adm"

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    database_url: str = _DEFAULT_DB_URL
    page_size: int = 10

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    cache_backend: str = "memory"
    cache_url: str = ""
    cache_default_ttl_seconds: int = 30 * 60

    # ------------------------------------------------------------------
    # Rate limiting (slowapi / limits syntax)
    # ------------------------------------------------------------------

    rate_limit_storage_uri: str = "memory://"
    login_rate_limit: str = "5/minute"
    create_rate_limit: str = "20/minute"
    default_rate_limit: str = "100/minute"
    global_rate_limit: str = "1000/hour"

    # ------------------------------------------------------------------
    # Health and background jobs
    # ------------------------------------------------------------------

    memory_threshold_mb: int = 500
    background_jobs_enabled: bool = True

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("cache_backend")
    @classmethod
    def validate_cache_backend(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in _CACHE_BACKENDS:
            raise ValueError(f"CACHE_BACKEND must be one of: {', '.join(sorted(_CACHE_BACKENDS))}")
        return value

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Tokens will not survive restart -- acceptable for local dev.

        Production mode (DEBUG=false or not set): refuse to start if
            SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("Using auto-generated SECRET_KEY. Tokens will not persist across restarts.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
