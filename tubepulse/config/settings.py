"""
Application Settings.

Centralized configuration using Pydantic Settings with environment variable loading.
Tunables for the outbound request queue, retries and the daily quota live here;
nothing in the request path hard-codes them.

Production Mode:
    When app_env="production", additional validations apply:
    - rapidapi_key must be set
    - redis_url must be set (in-memory quota stores are per-process only)
"""

from functools import lru_cache
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # Upstream video API (RapidAPI proxy)
    # -------------------------------------------------------------------------
    rapidapi_key: SecretStr | None = Field(
        default=None, description="RapidAPI key for the upstream video API"
    )
    rapidapi_host: str = Field(
        default="yt-api.p.rapidapi.com",
        description="Value sent in the x-rapidapi-host header",
    )
    api_base_url: str = Field(
        default="https://yt-api.p.rapidapi.com",
        description="Base URL of the upstream video API",
    )

    # -------------------------------------------------------------------------
    # Outbound request control
    # -------------------------------------------------------------------------
    max_concurrent_requests: int = Field(
        default=20,
        description="Maximum number of upstream calls running at once",
    )
    request_timeout_seconds: float = Field(
        default=10.0,
        description="Per-call timeout applied by the HTTP client",
    )
    retry_count: int = Field(
        default=3,
        description="Retries after the first attempt for transient upstream failures",
    )
    retry_delay_seconds: float = Field(
        default=0.5,
        description="Initial retry delay; doubled on each retry",
    )
    rate_limit_delay_seconds: float = Field(
        default=2.0,
        description="Wait used on HTTP 429 when the upstream sends no Retry-After",
    )

    # -------------------------------------------------------------------------
    # Daily quota
    # -------------------------------------------------------------------------
    default_daily_limit: int = Field(
        default=20,
        description="Daily call limit given to accounts created by quota recovery",
    )
    quota_timezone: str = Field(
        default="Asia/Seoul",
        description="IANA timezone whose calendar day bounds a quota period",
    )
    usage_retention_days: int = Field(
        default=90,
        description="Days a usage record is kept before the store expires it",
    )

    # -------------------------------------------------------------------------
    # Redis (quota persistence)
    # -------------------------------------------------------------------------
    redis_url: str | None = Field(default=None, description="Redis connection URL")
    redis_key_prefix: str = Field(
        default="tubepulse",
        description="Prefix for every Redis key written by the quota stores",
    )

    # -------------------------------------------------------------------------
    # Application Settings
    # -------------------------------------------------------------------------
    app_env: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    api_host: str = Field(default="0.0.0.0", description="Host the API server binds to")
    api_port: int = Field(default=8000, description="Port the API server listens on")

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @property
    def tzinfo(self) -> ZoneInfo:
        """Timezone used to compute the quota day."""
        return ZoneInfo(self.quota_timezone)

    @field_validator(
        "max_concurrent_requests",
        "default_daily_limit",
        "usage_retention_days",
    )
    @classmethod
    def validate_positive_int(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be at least 1")
        return value

    @field_validator("retry_count")
    @classmethod
    def validate_retry_count(cls, value: int) -> int:
        if value < 0:
            raise ValueError("must not be negative")
        return value

    @field_validator(
        "request_timeout_seconds",
        "retry_delay_seconds",
        "rate_limit_delay_seconds",
    )
    @classmethod
    def validate_positive_float(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be greater than 0")
        return value

    @field_validator("quota_timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"unknown timezone: {value}") from e
        return value

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """Validate that production settings are complete."""
        if self.app_env == "production":
            errors = []

            if not self.rapidapi_key:
                errors.append("rapidapi_key must be set in production")

            # Quota counters must be shared between instances
            if not self.redis_url:
                errors.append("redis_url must be set in production")

            if errors:
                raise ValueError(
                    f"Production configuration errors: {'; '.join(errors)}"
                )

        return self


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload settings if needed.
    """
    return Settings()
