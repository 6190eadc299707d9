"""
Configuration and settings for the portfolio backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    api_prefix: str = Field(default="/api", validation_alias="API_PREFIX")
    app_env: str = Field(default="development", validation_alias="APP_ENV")
    port: int = Field(default=5000, validation_alias="PORT")

    # Database (Postgres expected, any SQLAlchemy URL works)
    database_url: Optional[str] = Field(default=None, validation_alias="DATABASE_URL")

    # Listing cache (Redis). Absent URL disables caching.
    redis_url: Optional[str] = Field(default=None, validation_alias="REDIS_URL")
    cache_ttl_seconds: int = Field(default=3600, validation_alias="CACHE_TTL_SECONDS")

    # Admin sessions
    jwt_secret: str = Field(
        default="change-me-in-production", validation_alias="JWT_SECRET"
    )
    jwt_expire_seconds: int = Field(
        default=30 * 24 * 60 * 60, validation_alias="JWT_EXPIRE_SECONDS"
    )
    protect_project_writes: bool = Field(
        default=False, validation_alias="PROTECT_PROJECT_WRITES"
    )

    # Comma-separated list of allowed CORS origins
    frontend_url: str = Field(
        default="http://localhost:3000", validation_alias="FRONTEND_URL"
    )

    max_upload_bytes: int = Field(
        default=10 * 1024 * 1024, validation_alias="MAX_UPLOAD_BYTES"
    )

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False, validation_alias="PORTFOLIO_USE_IN_MEMORY_BACKENDS"
    )

    @property
    def allowed_origins(self) -> list[str]:
        return [url.strip() for url in self.frontend_url.split(",") if url.strip()]

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"

    @property
    def is_development(self) -> bool:
        return self.app_env.lower() == "development"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
