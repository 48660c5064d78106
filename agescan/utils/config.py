"""
Configuration Utility - Environment Variables Management

Centralized configuration loading from .env files using pydantic-settings.
Type-safe access to the scan constants with validation.

Usage:
    from agescan.utils.config import settings

    max_id = settings.MAX_USER_ID
    concurrency = settings.TARGET_CONCURRENT_REQUESTS

Every field can be overridden through the environment, e.g.
``MAX_USER_ID=1000 TARGET_CONCURRENT_REQUESTS=5 python -m agescan.fetcher``.
Durations such as INACTIVE_OFFLINE accept seconds or ISO 8601 (``P31D``).
"""

from datetime import timedelta
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Scan settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # API Configuration
    API_URL: str = Field(
        default="https://api.vk.com/method/users.get?fields=city,last_seen,bdate&user_ids="
    )
    ACCEPT_LANGUAGE: str = Field(default="ru-RU,ru;q=1.0")
    HTTP_TIMEOUT: float = Field(default=30.0)

    # ID space
    MAX_USER_ID: int = Field(default=418 * 1000 * 1000, ge=1)

    # Age buckets (inclusive, whole years)
    MIN_CHILD_AGE: int = Field(default=13, ge=0)
    MAX_CHILD_AGE: int = Field(default=18, ge=0)
    MIN_ADULT_AGE: int = Field(default=28, ge=0)
    MAX_ADULT_AGE: int = Field(default=45, ge=0)

    # Geography
    TARGET_CITY_ID: int = Field(default=104)
    REGION_MIN_CITY_ID: int = Field(default=1145150)
    REGION_MAX_CITY_ID: int = Field(default=1146700)

    # Activity
    INACTIVE_OFFLINE: timedelta = Field(default=timedelta(days=31))

    # Throughput
    TARGET_CONCURRENT_REQUESTS: int = Field(default=30, ge=1)
    MAX_URL_LENGTH: int = Field(default=4096, ge=1)

    # Retry passes
    MAX_ATTEMPTS: int = Field(default=10, ge=1)
    PASS_RETRY_DELAY: float = Field(default=0.0, ge=0)

    # Output
    OUTPUT_DIR: str = Field(default=".")
    LOG_FILE: str = Field(default="log.txt")

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO")

    @model_validator(mode="after")
    def check_ranges(self) -> "Settings":
        """Reject inverted ranges and a URL limit the base URL already exceeds."""
        if self.MIN_CHILD_AGE > self.MAX_CHILD_AGE:
            raise ValueError("MIN_CHILD_AGE must not exceed MAX_CHILD_AGE")
        if self.MIN_ADULT_AGE > self.MAX_ADULT_AGE:
            raise ValueError("MIN_ADULT_AGE must not exceed MAX_ADULT_AGE")
        if self.REGION_MIN_CITY_ID > self.REGION_MAX_CITY_ID:
            raise ValueError("REGION_MIN_CITY_ID must not exceed REGION_MAX_CITY_ID")
        if self.MAX_URL_LENGTH <= len(self.API_URL):
            raise ValueError("MAX_URL_LENGTH must exceed the length of API_URL")
        return self


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Singleton Settings instance
    """
    return Settings()


# Global settings instance
settings = get_settings()
