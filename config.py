"""
Configuration settings for the harmony assessment engine.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Database
    # ========================================
    database_url: str = Field(
        default="sqlite:///data/harmony_lms.db",
        description="SQLAlchemy connection string (SQLite or PostgreSQL)",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default="logs/harmony_assessment.log",
        description="Log file path (None for stderr only)",
    )

    # ========================================
    # Grading Policy
    # ========================================
    minimum_overall_score: float = Field(
        default=70.0,
        ge=0,
        le=100,
        description="Weighted course score required to pass a course",
    )
    remediation_attempt_threshold: int = Field(
        default=3,
        ge=1,
        description="Failed attempt number at which a remediation request is raised",
    )

    # ========================================
    # Audit & Event Processing
    # ========================================
    audit_memory_limit: int = Field(
        default=100,
        ge=0,
        description="Number of recent audit entries kept in memory",
    )
    event_max_retries: int = Field(
        default=3,
        ge=0,
        description="Redelivery attempts for a change event whose handler failed",
    )
    failed_delivery_limit: int = Field(
        default=100,
        ge=1,
        description="Number of permanently failed deliveries kept in memory for inspection",
    )
    processed_event_retention_days: int = Field(
        default=30,
        ge=1,
        description="Days a processed-event marker is kept before pruning",
    )

    # ========================================
    # System Actor
    # ========================================
    system_actor_id: str = Field(
        default="system",
        description="Actor id recorded for automatic (trigger) actions",
    )
    system_actor_name: str = Field(
        default="System",
        description="Actor display name recorded for automatic actions",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
