"""
Configuration management for the change graph engine.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Application
    app_name: str = Field(default="Change Graph Engine")
    debug: bool = Field(default=False)
    environment: str = Field(default="development")

    # Database
    database_url: str = Field(default="sqlite:///./changegraph.db")

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")

    # Identity recorded when a context carries neither a user nor an agent
    default_actor_id: str = Field(default="system")

    # Domain events
    persist_domain_events: bool = Field(
        default=True,
        description="Write a telemetry row for every emitted domain event.",
    )

    # Package installation
    install_requires_healthy_graph: bool = Field(
        default=True,
        description="Reject package installs while the tenant graph has violations.",
    )


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get application settings."""
    return settings
