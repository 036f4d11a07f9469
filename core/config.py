"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for SpeciesGuard happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. The app
      lifespan reads it once and hands explicit values to the token issuer and
      stores; nothing below the API layer calls get_settings() itself.

  @model_validator(mode="after"): cross-field validation after all fields are
      resolved. DEBUG mode generates a throwaway signing secret with a
      warning; any other mode refuses to start without SECRET_KEY.

Security notes:
  SECRET_KEY shorter than 32 chars is rejected outright. HS256 token signing
  relies on key entropy.

  The `secure` cookie flag follows APP_ENV: only production forces it, so
  local http://localhost development keeps working.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("speciesguard.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'speciesguard.db'}"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    environment: Literal["development", "production", "test"] = Field(
        default="development",
        validation_alias="APP_ENV",
    )
    # Empty string is the sentinel for "not configured".
    secret_key: str = ""
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    identity_provider: str = "jwt"
    access_token_expire_seconds: int = 15 * 60
    refresh_token_expire_seconds: int = 7 * 24 * 60 * 60
    verification_token_expire_seconds: int = 24 * 60 * 60
    reset_token_expire_seconds: int = 60 * 60

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    register_rate_limit: str = "5/minute"
    cors_origins: list[str] = ["http://localhost:3000"]

    @property
    def secure_cookies(self) -> bool:
        return self.environment == "production"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Issued tokens stop verifying after a restart.

        Any other mode: refuse to start if SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("Using auto-generated SECRET_KEY. Tokens will not survive a restart.")
            else:
                raise ValueError(
                    "SECRET_KEY is required unless DEBUG=true. "
                    "Set SECRET_KEY in your environment or .env file."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        if min(
            self.access_token_expire_seconds,
            self.refresh_token_expire_seconds,
            self.verification_token_expire_seconds,
            self.reset_token_expire_seconds,
        ) <= 0:
            raise ValueError("Token lifetimes must be positive.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
