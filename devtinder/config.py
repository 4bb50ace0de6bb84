"""
DevTinder — Application Configuration

Loads all configuration from environment variables (and an optional .env file)
using Pydantic Settings.  A cached ``get_settings()`` helper is provided so that
FastAPI dependency-injection (and any other call-site) always receives the same
validated instance without re-parsing the environment on every request.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the DevTinder backend."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------ #
    # Database
    # ------------------------------------------------------------------ #
    DATABASE_URL: str

    # ------------------------------------------------------------------ #
    # Redis – message rate limiting (empty disables it)
    # ------------------------------------------------------------------ #
    REDIS_URL: str = ""
    MESSAGE_RATE_LIMIT: int = 30
    MESSAGE_RATE_WINDOW_SECONDS: int = 60

    # ------------------------------------------------------------------ #
    # Security
    # ------------------------------------------------------------------ #
    SECRET_KEY: str  # Fernet key used to verify bearer tokens
    ACCESS_TOKEN_TTL_SECONDS: int = 30 * 24 * 3600

    # ------------------------------------------------------------------ #
    # Messaging
    # ------------------------------------------------------------------ #
    MAX_MESSAGE_LENGTH: int = 5000
    MESSAGE_PAGE_SIZE: int = 50

    # Attempts at re-reading a pair after losing a uniqueness race
    PAIR_RACE_RETRIES: int = 3

    # ------------------------------------------------------------------ #
    # Runtime environment
    # ------------------------------------------------------------------ #
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    REQUEST_TIMEOUT_SECONDS: float = 30.0

    # ------------------------------------------------------------------ #
    # CORS
    # ------------------------------------------------------------------ #
    ALLOWED_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    # ------------------------------------------------------------------ #
    # Derived helpers
    # ------------------------------------------------------------------ #
    @property
    def allowed_origins_list(self) -> list[str]:
        """Return ALLOWED_ORIGINS as a list split on commas."""
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",") if o.strip()]

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")

    @field_validator(
        "MESSAGE_RATE_LIMIT",
        "MESSAGE_RATE_WINDOW_SECONDS",
        "MAX_MESSAGE_LENGTH",
        "MESSAGE_PAGE_SIZE",
        "PAIR_RACE_RETRIES",
    )
    @classmethod
    def _must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"Value must be a positive integer, got {v}")
        return v


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached, validated ``Settings`` instance.

    Using ``@lru_cache`` guarantees the .env file is read and validated
    exactly once per process lifetime.  Import this function anywhere you
    need access to configuration::

        from devtinder.config import get_settings
        settings = get_settings()
    """
    return Settings()  # type: ignore[call-arg]
