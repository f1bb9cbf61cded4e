"""
Configuration management for API Aggregator Service.
Uses pydantic-settings for environment variable management.
"""

from typing import List, Optional
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application metadata
    app_name: str = Field(default="API Aggregator")
    app_version: str = Field(default="1.0.0")
    debug: bool = Field(default=False)

    # Server configuration
    server_host: str = Field(default="0.0.0.0")
    server_port: int = Field(default=8000)
    cors_origins: str = Field(default="*")

    # Logging configuration
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")

    # Cache TTL (in seconds)
    cache_ttl_seconds: int = Field(default=300, gt=0)  # 5 minutes

    # Resilience configuration
    request_timeout_seconds: float = Field(default=10.0, gt=0)
    retry_count: int = Field(default=3, ge=0)
    retry_backoff_base: float = Field(default=2.0, ge=1.0)
    circuit_breaker_failure_threshold: int = Field(default=5, ge=1)
    circuit_breaker_duration_seconds: float = Field(default=30.0, gt=0)

    # Statistics configuration
    statistics_window_size: int = Field(default=1000, ge=1)
    statistics_fast_threshold_ms: float = Field(default=500.0, ge=0)
    statistics_slow_threshold_ms: float = Field(default=1000.0, ge=0)

    # External providers
    openweathermap_base_url: str = Field(default="https://api.openweathermap.org/data/2.5")
    openweathermap_api_key: str = Field(default="")
    newsapi_base_url: str = Field(default="https://newsapi.org/v2")
    newsapi_api_key: str = Field(default="")
    github_base_url: str = Field(default="https://api.github.com")
    github_token: Optional[str] = Field(default=None)

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'}
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of: {', '.join(sorted(valid_levels))}")
        return v.upper()

    @field_validator('log_format')
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format."""
        valid_formats = {'json', 'text'}
        if v.lower() not in valid_formats:
            raise ValueError(f"log_format must be one of: {', '.join(sorted(valid_formats))}")
        return v.lower()

    @model_validator(mode='after')
    def validate_thresholds(self) -> "Settings":
        """Slow threshold must sit above the fast threshold."""
        if self.statistics_slow_threshold_ms <= self.statistics_fast_threshold_ms:
            raise ValueError("statistics_slow_threshold_ms must be greater than statistics_fast_threshold_ms")
        return self

    def get_cors_origins_list(self) -> List[str]:
        """Get CORS origins as a list."""
        return [origin.strip() for origin in self.cors_origins.split(',') if origin.strip()]


# Global settings instance
settings = Settings()
