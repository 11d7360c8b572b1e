"""
Shipyard Settings - Configuration management using Pydantic Settings.

Loads configuration from environment variables and .env files.
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ShipyardSettings(BaseSettings):
    """
    Shipyard configuration settings.

    Settings are loaded from:
    1. Environment variables (highest priority)
    2. .env file in current directory
    3. Default values (lowest priority)
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_prefix="SY_",  # All Shipyard env vars must start with SY_
    )

    # Logging Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR) (env: SY_LOG_LEVEL)",
    )

    # Release store
    state_dir: Path = Field(
        default=Path(".shipyard/releases"),
        description="Root directory of the file release store (env: SY_STATE_DIR)",
    )

    # Execution Configuration
    action_timeout_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Upper bound for a single backend action (env: SY_ACTION_TIMEOUT_SECONDS)",
    )

    max_concurrency: int = Field(
        default=4,
        ge=1,
        description="Maximum backend actions running at once (env: SY_MAX_CONCURRENCY)",
    )


# Global settings instance
_settings: ShipyardSettings | None = None


def get_settings() -> ShipyardSettings:
    """
    Get the global settings instance.

    Creates the settings instance on first call, then returns cached instance.

    Returns:
        ShipyardSettings instance
    """
    global _settings
    if _settings is None:
        _settings = ShipyardSettings()
    return _settings


def reload_settings() -> ShipyardSettings:
    """
    Reload settings from environment/files.

    Useful for testing or when .env file changes.

    Returns:
        Fresh ShipyardSettings instance
    """
    global _settings
    _settings = ShipyardSettings()
    return _settings
