"""Configuration management for packsync."""

from __future__ import annotations

import json
from pathlib import Path

import structlog
from pydantic import BaseModel, Field, field_validator

logger = structlog.get_logger()


def default_profile_path() -> Path:
    """Default location of the managed game profile."""
    return Path.home() / ".minecraft" / "packsync-profile"


class HTTPConfig(BaseModel):
    """HTTP transport configuration."""

    timeout: float = Field(default=30.0, description="Request timeout in seconds")
    max_retries: int = Field(default=3, description="Maximum retry attempts per request")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")
    user_agent: str = Field(
        default="packsync/0.1.0",
        description="User-Agent header sent with every request"
    )
    chunk_size: int = Field(
        default=64 * 1024,
        description="Streaming download chunk size in bytes"
    )

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Validate timeout value."""
        if v <= 0:
            raise ValueError("Timeout must be positive")
        return v

    @field_validator("max_retries")
    @classmethod
    def validate_max_retries(cls, v: int) -> int:
        """Validate max retries value."""
        if v < 0:
            raise ValueError("Max retries must be non-negative")
        return v

    @field_validator("chunk_size")
    @classmethod
    def validate_chunk_size(cls, v: int) -> int:
        """Validate chunk size value."""
        if v <= 0:
            raise ValueError("Chunk size must be positive")
        return v


class AppConfig(BaseModel):
    """Application configuration."""

    config_dir: Path = Field(
        default=Path.home() / ".config" / "packsync",
        description="Configuration directory"
    )

    # Pack settings
    pack_url: str = Field(
        default="",
        description="Base URL the pack is published under"
    )
    profile_path: Path = Field(
        default_factory=default_profile_path,
        description="Game profile directory that is synchronized"
    )
    use_canary: bool = Field(
        default=False,
        description="Track the canary version instead of the current version"
    )

    # Collaborator settings
    java_path: Path | None = Field(
        default=None,
        description="Java runtime used by the install toolchain"
    )
    toolchain_command: list[str] = Field(
        default_factory=list,
        description="External command that installs the game and mod loader"
    )
    extension_command: list[str] = Field(
        default_factory=list,
        description="External command that installs the optional runtime variant"
    )
    curseforge_api_key: str | None = Field(
        default=None,
        description="API key for resolving client manifest files"
    )

    http: HTTPConfig = Field(default_factory=HTTPConfig)

    # Output settings
    output_format: str = Field(
        default="rich",
        description="Output format (rich, json, plain)"
    )
    log_level: str = Field(
        default="WARNING",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    @classmethod
    def load(cls, config_file: Path | None = None) -> AppConfig:
        """Load configuration from file.

        Args:
            config_file: Path to config file, uses default if None

        Returns:
            Application configuration
        """
        if config_file is None:
            config_file = Path.home() / ".config" / "packsync" / "config.json"

        if config_file.exists():
            with open(config_file, encoding="utf-8") as f:
                data = json.load(f)
                return cls(**data)

        # Return defaults
        return cls()

    def save(self, config_file: Path | None = None) -> None:
        """Save configuration to file.

        Args:
            config_file: Path to config file, uses default if None
        """
        if config_file is None:
            config_file = self.config_dir / "config.json"

        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, "w", encoding="utf-8") as f:
            json.dump(self.model_dump(mode="json"), f, indent=2, default=str)

        logger.info("config_saved", path=str(config_file))

    @field_validator("pack_url")
    @classmethod
    def validate_pack_url(cls, v: str) -> str:
        """Strip trailing slashes so sub-paths join cleanly."""
        return v.rstrip("/")

    @field_validator("output_format")
    @classmethod
    def validate_output_format(cls, v: str) -> str:
        """Validate output format."""
        valid_formats = {"rich", "json", "plain"}
        if v not in valid_formats:
            raise ValueError(f"Invalid output format: {v}. Valid formats: {valid_formats}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Valid levels: {valid_levels}")
        return v
