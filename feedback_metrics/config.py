"""
Configuration management using pydantic-settings.
All settings loaded from environment variables (12-factor app).
"""

from functools import lru_cache
from typing import List

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

    # Database
    db_path: str = Field(default="./data/metrics.duckdb", description="DuckDB file path")

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

    # Collection
    collection_submission_limit: int = Field(
        default=1000, ge=1, description="Most recent submissions read per collection run"
    )
    metrics_batch_size: int = Field(
        default=500, ge=1, description="Rows per batch insert when replacing metrics"
    )
    retention_days: int = Field(
        default=365, ge=1, description="Default age cutoff for the retention job"
    )

    # Trend and comparison thresholds
    trend_stable_slope: float = Field(
        default=0.01, ge=0.0, description="|slope| below which a series is stable"
    )
    comparison_stable_percent: float = Field(
        default=5.0, ge=0.0, description="|change %| below which a comparison is stable"
    )
    insight_threshold_percent: float = Field(
        default=20.0, ge=0.0, description="|change %| above which an insight is emitted"
    )
    insight_warning_percent: float = Field(
        default=50.0, ge=0.0, description="|change %| above which an insight is a warning"
    )

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
