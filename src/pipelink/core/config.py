"""
Pipelink configuration.

Loads and validates the YAML configuration shared by the CLI and the
Qt poller.
"""

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, ValidationError

from pipelink.ipc.protocol import MAX_APPLICATION_ID_LENGTH
from pipelink.ipc.transport import (
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_IO_TIMEOUT,
    DEFAULT_SOCKET_PATH,
)


class ConnectionSettings(BaseModel):
    """Transport settings."""

    socket_path: str = DEFAULT_SOCKET_PATH
    connect_timeout: float = Field(default=DEFAULT_CONNECT_TIMEOUT, gt=0)
    io_timeout: float = Field(default=DEFAULT_IO_TIMEOUT, gt=0)


class PollingSettings(BaseModel):
    """Timer settings for the poll loop."""

    interval_ms: int = Field(default=250, ge=1)
    max_reads_per_tick: int = Field(default=16, ge=1)


class AdvancedConfig(BaseModel):
    """Advanced settings."""

    log_level: Literal["debug", "info", "warning", "error"] = "info"
    debug_mode: bool = False


class PipelinkConfig(BaseModel):
    """Root configuration model."""

    version: str = "1.0"
    application_id: str = Field(default="", max_length=MAX_APPLICATION_ID_LENGTH)
    connection: ConnectionSettings = Field(default_factory=ConnectionSettings)
    polling: PollingSettings = Field(default_factory=PollingSettings)
    advanced: AdvancedConfig = Field(default_factory=AdvancedConfig)


class ConfigurationError(Exception):
    """Raised when configuration is invalid."""

    pass


def load_config(path: str | Path) -> PipelinkConfig:
    """
    Load a configuration file.

    Args:
        path: Path to pipelink.yaml

    Returns:
        Validated configuration

    Raises:
        ConfigurationError: If config is invalid or missing
    """
    config_path = Path(path)

    if not config_path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    try:
        with config_path.open("r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML syntax: {e}") from e

    if raw_config is None:
        raise ConfigurationError("Configuration file is empty")

    try:
        return PipelinkConfig.model_validate(raw_config)
    except ValidationError as e:
        raise ConfigurationError(f"Configuration validation failed: {e}") from e


def find_config_file(explicit_path: Path | None = None) -> Path | None:
    """
    Locate configuration file.

    Search order:
    1. Explicit path from --config
    2. pipelink.yaml in current directory
    3. ~/.config/pipelink/pipelink.yaml
    4. /etc/pipelink/pipelink.yaml

    Returns:
        Path to the first existing candidate, or None when nothing is found
        and no explicit path was given

    Raises:
        ConfigurationError: If the explicit path does not exist
    """
    if explicit_path is not None:
        if explicit_path.exists():
            return explicit_path
        raise ConfigurationError(f"Configuration file not found: {explicit_path}")

    candidates = [
        Path("pipelink.yaml"),
        Path.home() / ".config" / "pipelink" / "pipelink.yaml",
        Path("/etc/pipelink/pipelink.yaml"),
    ]

    for candidate in candidates:
        if candidate.exists():
            return candidate

    return None
