"""
Configuration management using pydantic-settings.
All settings loaded from environment variables (12-factor app).
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Security
    jwt_secret: str = Field(
        default="change-this-to-a-secure-random-string-in-production",
        description="JWT signing secret",
    )
    jwt_algorithm: str = Field(default="HS256", description="JWT algorithm")
    jwt_expiration_minutes: int = Field(default=1440, description="JWT expiration (24h)")

    # Database
    db_path: str = Field(default="./data/flowlens.duckdb", description="DuckDB file path")

    # Order repository cache
    order_cache_max_entries: int = Field(
        default=32, ge=0, description="Max cached order range reads (0 disables caching)"
    )
    order_cache_ttl_seconds: float = Field(
        default=60.0, ge=0.0, description="Seconds a cached order read stays valid"
    )

    # API
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")
    api_reload: bool = Field(default=True, description="Enable hot reload")
    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        description="CORS allowed origins (comma-separated)",
    )

    # Logging
    log_level: str = Field(default="info", description="Log level")
    log_format: str = Field(default="json", description="Log format (json|console)")

    # Bottleneck analysis
    analysis_default_window_days: int = Field(
        default=90, ge=1, description="Fallback analysis window when dates are missing or invalid"
    )
    analysis_max_time_buckets: int = Field(
        default=366, ge=1, le=366, description="Hard cap on heat map time buckets"
    )
    analysis_timeout_seconds: float = Field(
        default=30.0, gt=0.0, description="Timeout applied by the HTTP layer to one analysis run"
    )
    analysis_inline_backfill: bool = Field(
        default=True,
        description="Backfill missing status history in memory while analysing (never persisted)",
    )
    stage_policy_path: Optional[str] = Field(
        default=None, description="JSON file overriding the default stage / expected duration table"
    )

    # Status history maintenance
    backfill_batch_size: int = Field(
        default=100, ge=1, description="Orders read and persisted per backfill batch"
    )
    maintenance_log_file: str = Field(
        default="./logs/enhancement.log", description="Persistent log for the backfill job"
    )
    backup_dir: str = Field(default="./data/backups", description="Order backup directory")
    report_output_dir: str = Field(default="./reports", description="Report output directory")

    # Development
    dev_mode: bool = Field(default=True, description="Development mode")
    testing: bool = Field(default=False, description="Testing mode")

    @field_validator("cors_origins")
    @classmethod
    def parse_cors_origins(cls, v: str) -> List[str]:
        """Parse comma-separated CORS origins."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to ensure singleton behavior.
    """
    return Settings()
