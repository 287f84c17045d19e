"""
Ghichu Note Service Configuration

Configuration management with environment variable support.
Implements secure defaults and validation for all settings.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator, model_validator
from typing import List
from functools import lru_cache
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Settings(BaseSettings):
    """Application settings with validation and secure defaults."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=True, extra="ignore"
    )

    # Environment settings
    ENVIRONMENT: str = Field(
        default="development", description="Application environment"
    )

    # Note lifetime configuration
    MIN_TTL_SECONDS: int = Field(
        default=60, ge=1, description="Lower clamp bound for note TTL"
    )
    MAX_TTL_SECONDS: int = Field(
        default=30 * 86400, ge=1, description="Upper clamp bound for note TTL"
    )
    DEFAULT_TTL_SECONDS: int = Field(
        default=7 * 86400, ge=1, description="TTL used when the caller omits one"
    )
    PRESERVE_CREATED_AT: bool = Field(
        default=True,
        description="Keep the original created_at when an existing note is rewritten",
    )

    # Expiry sweeper
    SWEEP_ENABLED: bool = Field(default=True, description="Run the expiry sweeper")
    SWEEP_INTERVAL_SECONDS: float = Field(
        default=3600, gt=0, description="Seconds between expiry sweeps"
    )
    SWEEP_ON_STARTUP: bool = Field(
        default=False, description="Run one sweep shortly after startup"
    )
    SWEEP_STARTUP_DELAY_SECONDS: float = Field(
        default=5, ge=0, description="Delay before the startup sweep"
    )

    # Write-through cache
    CACHE_FRESHNESS_WINDOW_SECONDS: float = Field(
        default=30, gt=0, description="Seconds a cached note stays authoritative"
    )
    CACHE_MAX_ENTRIES: int = Field(
        default=0, ge=0, description="Maximum cached notes (0 = unbounded)"
    )

    # Storage configuration
    STORAGE_BACKEND: str = Field(
        default="file", description="Storage backend: memory, file or redis"
    )
    NOTES_DIR: str = Field(default="note", description="Directory for file storage")
    REDIS_URL: str = Field(
        default="redis://localhost:6379", description="Redis connection URL"
    )
    REDIS_KEY_PREFIX: str = Field(default="ghichu", description="Redis key prefix")
    REDIS_MAX_CONNECTIONS: int = Field(
        default=10, ge=1, le=50, description="Redis connection pool size"
    )

    # API configuration
    API_HOST: str = Field(default="0.0.0.0", description="API server host")
    API_PORT: int = Field(default=3000, ge=1, le=65535, description="API server port")
    CORS_ORIGINS: str = Field(
        default="*", description="CORS allowed origins (comma-separated)"
    )
    SERVICE_NAME: str = Field(default="ghichu-api", description="Service name")
    SERVICE_VERSION: str = Field(default="0.1.0", description="Service version")
    RECENT_NOTES_LIMIT: int = Field(
        default=6, ge=1, le=100, description="Notes returned by /recent"
    )

    # Logging
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: str = Field(default="json", description="Log renderer: json or console")

    @field_validator("ENVIRONMENT")
    @classmethod
    def validate_environment(cls, v):
        """Validate environment value."""
        allowed = ["development", "test", "staging", "production"]
        if v not in allowed:
            raise ValueError(f"ENVIRONMENT must be one of: {allowed}")
        return v

    @field_validator("STORAGE_BACKEND")
    @classmethod
    def validate_storage_backend(cls, v):
        """Validate storage backend name."""
        allowed = ["memory", "file", "redis"]
        if v.lower() not in allowed:
            raise ValueError(f"STORAGE_BACKEND must be one of: {allowed}")
        return v.lower()

    @field_validator("REDIS_URL")
    @classmethod
    def validate_redis_url(cls, v):
        """Validate Redis URL format."""
        if not v.startswith(("redis://", "rediss://", "unix://")):
            raise ValueError("REDIS_URL must be a redis:// or rediss:// URL")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of: {allowed}")
        return v.upper()

    @field_validator("LOG_FORMAT")
    @classmethod
    def validate_log_format(cls, v):
        """Validate log renderer."""
        if v.lower() not in ("json", "console"):
            raise ValueError("LOG_FORMAT must be 'json' or 'console'")
        return v.lower()

    @model_validator(mode="after")
    def validate_ttl_bounds(self) -> "Settings":
        """MIN_TTL_SECONDS must not exceed MAX_TTL_SECONDS."""
        if self.MIN_TTL_SECONDS > self.MAX_TTL_SECONDS:
            raise ValueError(
                f"MIN_TTL_SECONDS ({self.MIN_TTL_SECONDS}) must not exceed "
                f"MAX_TTL_SECONDS ({self.MAX_TTL_SECONDS})"
            )
        return self

    @property
    def cors_origins_list(self) -> List[str]:
        """Get CORS origins as list."""
        return [
            origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()
        ]


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
