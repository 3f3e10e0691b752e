"""
Settings for the orchestrator service.
Loaded from an optional YAML file, overridden by ORCHLINK_* environment variables.
"""
import logging
import os
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from ..errors import ConfigurationError

ENV_PREFIX = "ORCHLINK_"


class OrchestratorSettings(BaseModel):
    """
    Configuration surface of the orchestrator.
    """
    base_uri: str

    # Seconds between two image reconciliations, and between two polls of a container
    monitor_delay: float = Field(default=2.0)
    # Seconds before the first poll of a freshly created container
    monitor_initial_delay: float = Field(default=1.0, ge=0)

    request_timeout: float = Field(default=10.0, gt=0)
    max_workers: int = Field(default=4, ge=1)

    startup_attempts: int = Field(default=5, ge=1)
    startup_wait: float = Field(default=1.0, ge=0)

    log_level: str = "INFO"

    @field_validator("monitor_delay")
    @classmethod
    def _positive_delay(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("monitor delay must not be negative or zero")
        return value

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level: {value}")
        return level

    @field_validator("base_uri")
    @classmethod
    def _non_empty_uri(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("base_uri must not be empty")
        return value.strip()

    @classmethod
    def create(cls, **values: Any) -> "OrchestratorSettings":
        """
        Validate settings, raising ConfigurationError instead of pydantic's error.
        """
        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid orchestrator settings: {e}") from e


def _env_overrides() -> Dict[str, str]:
    overrides = {}
    for field_name in OrchestratorSettings.model_fields:
        value = os.environ.get(ENV_PREFIX + field_name.upper())
        if value is not None:
            overrides[field_name] = value
    return overrides


def load_settings(path: Optional[str] = None,
                  env_file: Optional[str] = None) -> OrchestratorSettings:
    """
    Load settings from a YAML file and the environment.

    Args:
        path: Optional YAML file with top-level setting keys.
        env_file: Optional .env file loaded into the environment first.

    Returns:
        Validated settings.

    Raises:
        ConfigurationError: If the file is unreadable or a value is invalid.
    """
    values: Dict[str, Any] = {}

    if path:
        try:
            with open(path, 'r') as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Cannot read settings file {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Settings file {path} must contain a mapping")
        values.update(data)

    if env_file:
        load_dotenv(env_file, override=False)

    values.update(_env_overrides())
    return OrchestratorSettings.create(**values)
