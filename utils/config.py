"""
Configuration Utility - Environment Variables Management

Centralized configuration loading from .env files using pydantic-settings.
Type-safe access to all environment variables with validation.

Usage:
    from utils.config import get_settings

    settings = get_settings()
    api_base = settings.API_BASE

DB_USER, DB_PASSWORD and API_KEY have no defaults: a missing secret fails
settings construction, which get_settings() reports as ConfigurationError.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings

from utils.errors import ConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Secrets
    DB_USER: str = Field(..., min_length=1)
    DB_PASSWORD: str = Field(..., min_length=1)
    API_KEY: str = Field(..., min_length=1)

    # Database Configuration
    DB_DRIVER: str = Field(default="mysql+pymysql")
    DB_HOST: str = Field(default="localhost")
    DB_PORT: int = Field(default=3306)
    DB_NAME: str = Field(default="strafes_globals")
    DATABASE_URL: Optional[str] = Field(default=None)

    # API Configuration
    API_BASE: str = Field(default="https://api.strafes.net/api/v1")
    API_TIMEOUT: float = Field(default=3.0)
    API_PAGE_SIZE: int = Field(default=100, ge=1)
    API_RECENT_SORT: int = Field(default=1)
    RATE_LIMIT_HEADER: str = Field(default="X-Rate-Limit-Burst")

    # Pagination / Rate Limiting
    FETCH_BURST_SIZE: int = Field(default=5, ge=1)
    RATE_LIMIT_THRESHOLD: int = Field(default=70)
    RATE_LIMIT_COOLDOWN: float = Field(default=60.0, ge=0)
    MAX_FAILED_ROUNDS: int = Field(default=3, ge=1)

    # Thumbnail Resolution
    THUMBNAIL_API_URL: str = Field(default="https://thumbnails.roblox.com/v1/assets")
    THUMBNAIL_SMALL_SIZE: str = Field(default="75x75")
    THUMBNAIL_LARGE_SIZE: str = Field(default="420x420")
    THUMBNAIL_BATCH_SIZE: int = Field(default=100, ge=1)
    THUMBNAIL_MAX_ATTEMPTS: int = Field(default=3, ge=1)

    # Scheduler Configuration
    RUN_ONCE: bool = Field(default=True)
    SYNC_SCHEDULE_CRON: str = Field(default="0 * * * *")

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="json")

    # Application Metadata
    APP_NAME: str = Field(default="strafes-globals-sync")
    APP_VERSION: str = Field(default="0.1.0")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Singleton Settings instance

    Raises:
        ConfigurationError: If a required variable is missing or invalid
    """
    try:
        return Settings()
    except ValidationError as e:
        missing = [".".join(str(p) for p in err["loc"]) for err in e.errors()]
        raise ConfigurationError(
            f"Invalid configuration: {', '.join(missing)}",
            details={"fields": missing},
        ) from e
