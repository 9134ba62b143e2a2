"""
Configuration module using Pydantic Settings.
Handles all environment variables and server configuration.
"""

from typing import Optional
from pydantic import Field, validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Server settings from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # App settings
    app_name: str = Field(default="firestore-mcp", description="MCP server name")
    version: str = Field(default="1.0.0", description="Server version")
    environment: str = Field(default="production", description="Environment name")

    # Database
    service_account_key_path: Optional[str] = Field(
        default=None,
        description="Path to the service account JSON key file"
    )
    firestore_project_id: Optional[str] = Field(
        default=None,
        description="Firestore project ID (defaults to the service account's project)"
    )
    firestore_database: str = Field(default="(default)", description="Firestore database name")
    use_firestore_emulator: bool = Field(default=False, description="Use Firestore emulator")
    firestore_emulator_host: str = Field(default="localhost:8081", description="Firestore emulator host")

    # Document cache, fixed for the lifetime of the process
    cache_ttl_ms: int = Field(default=60000, ge=0, description="Document cache TTL in milliseconds")
    cache_max_size: int = Field(default=500, ge=1, description="Maximum number of cached documents")

    # Value normalization
    max_depth: int = Field(default=20, ge=0, description="Maximum nesting depth when normalizing values")

    # Monitoring and logging
    log_level: str = Field(default="INFO", description="Logging level")

    @validator("log_level")
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v.upper()

    @validator("environment")
    def validate_environment(cls, v):
        """Validate environment."""
        valid_envs = ["development", "testing", "staging", "production"]
        if v.lower() not in valid_envs:
            raise ValueError(f"Invalid environment. Must be one of: {valid_envs}")
        return v.lower()


def get_settings() -> Settings:
    """Build settings from the environment. Called once at startup."""
    return Settings()
