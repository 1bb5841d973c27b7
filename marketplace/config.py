"""
Centralized configuration for the marketplace service.

All environment variables and settings are defined here so that the
engine and the API read the same values.
"""
import os
from functools import lru_cache


class Settings:
    """Application settings loaded from environment variables."""

    LOG_LEVEL: str = os.environ.get("MARKETPLACE_LOG_LEVEL", "INFO")

    # Seconds to wait for an order's lock before reporting StorageUnavailable
    LOCK_TIMEOUT: float = float(os.environ.get("MARKETPLACE_LOCK_TIMEOUT", "5.0"))

    MAX_MESSAGE_LENGTH: int = int(os.environ.get("MARKETPLACE_MAX_MESSAGE_LENGTH", "1000"))

    # CORS - comma-separated list of allowed origins
    ALLOWED_ORIGINS: list = os.environ.get(
        "MARKETPLACE_ALLOWED_ORIGINS",
        "http://localhost:5173,http://127.0.0.1:5173"
    ).split(",")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
