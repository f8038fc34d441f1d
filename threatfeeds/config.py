"""Threat feed service configuration using Pydantic Settings."""

from __future__ import annotations

from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class FeedsConfig(BaseSettings):
    """Main configuration class. Loads from .env file and environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    app_name: str = "THREATFEEDS"
    debug: bool = False
    host: str = "127.0.0.1"
    port: int = 8000
    cors_origins: list[str] = ["http://localhost:3000"]

    # Database
    database_url: str = "sqlite+aiosqlite:///./threatfeeds.db"

    # Auth
    secret_key: str = "CHANGE_ME_IN_PRODUCTION"
    jwt_algorithm: str = "HS256"
    jwt_expiry_minutes: int = 60
    admin_username: str = "admin"
    admin_password: str = "CHANGE_ME_IN_PRODUCTION"

    # Logging
    log_dir: str = "logs"
    log_max_bytes: int = 10_000_000
    log_backup_count: int = 5

    # Feed fetching
    feed_fetch_timeout: float = 30.0  # seconds
    feed_user_agent: str = "ThreatFeeds-Platform/1.0"
    feed_api_key_header: str = "X-API-Key"
    feed_default_confidence: int = 50

    # Scheduler / history
    scheduler_enabled: bool = True
    scheduler_poll_interval: int = 60  # seconds between evaluation passes
    ingestion_history_limit: int = 100

    @field_validator("scheduler_poll_interval", "ingestion_history_limit")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be a positive integer")
        return v

    @field_validator("feed_fetch_timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("feed_fetch_timeout must be positive")
        return v

    @field_validator("feed_default_confidence")
    @classmethod
    def validate_confidence(cls, v: int) -> int:
        if not 0 <= v <= 100:
            raise ValueError("feed_default_confidence must be between 0 and 100")
        return v

    @property
    def base_dir(self) -> Path:
        return Path(__file__).resolve().parent.parent


def get_config() -> FeedsConfig:
    """Factory function to create config instance."""
    return FeedsConfig()
