"""Application configuration using pydantic-settings."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="HOBBYLOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    app_name: str = "HobbyLog"
    version: str = "0.3.0"
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = Field(default=8787, description="Server port")

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/hobbylog.db",
        description="Database connection URL",
    )
    db_batch_size: int = Field(
        default=500,
        ge=1,
        le=999,
        description="Maximum bound parameters per batched IN (...) query",
    )

    # CORS
    cors_origins: list[str] = Field(
        default=["*"],
        description="Allowed CORS origins",
    )

    # Content limits
    tag_name_max_length: int = Field(default=100, ge=1)
    tag_description_max_length: int = Field(default=5000, ge=1)
    log_title_max_length: int = Field(default=200, ge=1)
    log_content_max_length: int = Field(default=10000, ge=1)

    # Tag association settings
    tag_conflict_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts at inserting new tags before giving up on a contended name",
    )
    referrer_limit: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Default number of referring tags returned on tag detail",
    )
    recent_logs_limit: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Default number of recent logs returned on tag detail",
    )

    @property
    def is_sqlite(self) -> bool:
        """Check if the configured database is SQLite."""
        return self.database_url.startswith("sqlite")


# Global settings instance
settings = Settings()
