"""
Configuration settings for the tubecycler scheduling core.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="TUBECYCLER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Content buffering
    # ========================================
    phase1_size: int = Field(
        default=10,
        ge=1,
        description="Slots per lane materialized in Phase 1",
    )
    phase2_size: int = Field(
        default=50,
        ge=1,
        description="Slots per lane materialized in Phase 2",
    )
    idle_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Quiet period with no interaction before Phase 2 starts",
    )
    idle_poll_seconds: float = Field(
        default=0.5,
        gt=0,
        description="How often the idle watcher checks the quiet period",
    )

    # ========================================
    # Transport
    # ========================================
    content_api_url: str = Field(
        default="http://localhost:3000/api",
        description="Base URL of the content batch endpoint",
    )
    state_api_url: str = Field(
        default="http://localhost:3000/api",
        description="Base URL of the remote learner state endpoint",
    )
    api_timeout_ms: int = Field(
        default=30000,
        description="HTTP request timeout in milliseconds",
    )
    api_retry_attempts: int = Field(
        default=3,
        ge=1,
        description="Attempts per request before giving up on timeouts",
    )

    # ========================================
    # Local persistence
    # ========================================
    local_cache_path: Path = Field(
        default=Path.home() / ".tubecycler" / "state.db",
        description="SQLite file holding the offline snapshot and pending mutations",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: str = Field(
        default="INFO",
        description="Minimum level for the CLI log sink",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
