"""Configuration settings for pyimagegen.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_log_dir() -> Path:
    """Return the default directory for per-platform build logs."""
    return Path.home() / ".local" / "share" / "pyimagegen" / "logs"


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the PYIMAGEGEN_ prefix.
    CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="PYIMAGEGEN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Manifest
    manifest_filename: str = Field(
        default="pyproject.toml",
        description="Manifest file name, relative to the build context",
    )
    target: str | None = Field(
        default=None,
        description="Build target to use when none is given on the command line",
    )

    # Platforms
    platforms: str | None = Field(
        default=None,
        description="Comma-separated target platforms (engine default if not set)",
    )
    max_parallel_platforms: int | None = Field(
        default=None,
        ge=1,
        le=64,
        description="Maximum platforms built at once (one worker per platform if not set)",
    )

    # Operational
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    log_dir: Path = Field(
        default_factory=_default_log_dir,
        description="Directory for per-platform build logs",
    )

    # Build engine
    docker_binary: str = Field(
        default="docker",
        description="Docker CLI used to drive buildx",
    )
    build_timeout: int = Field(
        default=3600,
        ge=60,
        description="Timeout for a single platform build (seconds)",
    )


def get_settings() -> Settings:
    """Get the application settings.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


__all__ = ["Settings", "get_settings", "print_settings_json"]
