"""
Configuration management using pydantic-settings.
All settings are loaded from environment variables or a ``.env`` file.
"""

from functools import lru_cache
from typing import Annotated, List, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from .models import DEFAULT_PROJECT_ID, DEFAULT_STRATEGIES


class Settings(BaseSettings):
    """Settings for historical metrics storage and analysis."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Backend
    kv_backend: Literal["redis", "sql"] = Field(default="redis", description="Key-value backend")
    redis_url: str = Field(default="redis://localhost:6379/0", description="Redis connection URL")
    database_url: str = Field(
        default="sqlite+aiosqlite:///./perftrend.db",
        description="SQLAlchemy async URL for the SQL key-value backend",
    )

    # Storage
    historical_retention_seconds: int = Field(
        default=7_776_000, gt=0, description="Data point expiry (90 days)"
    )
    strategies: Annotated[List[str], NoDecode] = Field(
        default=list(DEFAULT_STRATEGIES),
        description="Rendering strategies scanned by unfiltered queries (comma-separated)",
    )
    default_project_id: str = Field(default=DEFAULT_PROJECT_ID, description="Fallback project id")

    # Regression detection
    regression_threshold: float = Field(
        default=0.2, ge=0.0, description="Relative worsening that counts as a regression"
    )
    regression_window_days: int = Field(default=7, gt=0, description="Trailing window in days")

    # Logging
    log_level: str = Field(default="info", description="Log level")
    log_format: Literal["json", "console"] = Field(default="json", description="Log format")

    @field_validator("strategies", mode="before")
    @classmethod
    def parse_strategies(cls, v):
        """Parse comma-separated strategy names."""
        if isinstance(v, str):
            return [strategy.strip() for strategy in v.split(",") if strategy.strip()]
        return v


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to ensure singleton behavior.
    """
    return Settings()
