"""
Configuration management for datamapper.

Values come from ``DATAMAPPER_*`` environment variables or a ``.env`` file.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="DATAMAPPER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Storage
    database_url: str = Field(
        default="memory://",
        description="memory://, file:///path, mysql://... or postgres://...",
    )
    table_prefix: Optional[str] = Field(default=None)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json", pattern="^(json|console)$")

    # API
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000)


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get application settings."""
    return settings


def reload_settings() -> Settings:
    """Re-read the environment into the global settings instance."""
    global settings
    settings = Settings()
    return settings
