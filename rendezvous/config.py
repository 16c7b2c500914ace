"""Configuration management for the Rendezvous engine."""

from typing import Any, Optional

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database Configuration
    DATABASE_URL: str

    # Redis Configuration (cache and realtime feed)
    REDIS_URL: Optional[str] = None

    # Sentry Configuration
    SENTRY_DSN: Optional[str] = None

    # Application Configuration
    APP_NAME: str = "Rendezvous"
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"
    DEBUG: bool = Field(default=False)

    # API Configuration
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000

    # Messaging Configuration
    MESSAGE_TTL_HOURS: int = 24
    RETENTION_SWEEP_INTERVAL: int = 300  # seconds
    MATCH_RECONCILE_INTERVAL: int = 3600  # seconds

    # Moderation Configuration
    REPORT_BAN_THRESHOLD: int = 3

    @field_validator("DEBUG", mode="before")
    @classmethod
    def set_debug(cls, v: Any, info: ValidationInfo) -> bool:
        """Enable debug mode if ENVIRONMENT is development."""
        if isinstance(v, bool):
            return v
        if isinstance(v, str) and v:
            return v.lower() in ("1", "true", "yes")
        return bool(info.data.get("ENVIRONMENT", "").lower() == "development")

    @field_validator("MESSAGE_TTL_HOURS")
    @classmethod
    def validate_ttl(cls, v: int) -> int:
        """Reject a non-positive retention window."""
        if v <= 0:
            raise ValueError("MESSAGE_TTL_HOURS must be positive")
        return v

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=True, extra="ignore")


# Create a global settings instance
settings = Settings()  # type: ignore


def get_settings() -> Settings:
    """Return the settings instance."""
    return settings
