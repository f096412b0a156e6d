"""
Configuration management for the session lock probe.

Handles loading, validation, and access to configuration settings.
"""

import os
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional
from enum import Enum

import yaml
from pydantic import BaseModel, Field, field_validator, ValidationError, ConfigDict

from sessionprobe.servicebus.constants import (
    DEFAULT_GRACE_PERIOD,
    DEFAULT_MESSAGE_COUNT,
    DEFAULT_PREFETCH_COUNT,
    DEFAULT_RECEIVE_TIMEOUT,
    DEFAULT_SESSION_COUNT,
)
from sessionprobe.servicebus.exceptions import ConfigurationError
from sessionprobe.servicebus.models import QueueSettings
from sessionprobe.servicebus.sessions import SessionStrategy

from .logging_config import redact

logger = logging.getLogger(__name__)

ENV_PREFIX = "SESSIONPROBE_"
PLACEHOLDER_CONNECTION_STRING = (
    "Endpoint=sb://<namespace>.servicebus.windows.net/;"
    "SharedAccessKeyName=<key-name>;SharedAccessKey=<key>"
)


class LogLevel(str, Enum):
    """Valid log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Supported log output formats."""
    TEXT = "text"
    JSON = "json"


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: LogLevel = LogLevel.DEBUG
    console_level: LogLevel = LogLevel.INFO
    azure_level: LogLevel = LogLevel.WARNING
    format: LogFormat = LogFormat.TEXT
    file: Optional[str] = "session-lock-probe.log"
    rotation_size: str = "10MB"
    rotation_count: int = Field(default=5, ge=0)
    module_levels: Optional[Dict[str, str]] = Field(
        default=None,
        description="Per-module log levels, e.g., {'sessionprobe.servicebus.probe': 'DEBUG'}"
    )

    model_config = ConfigDict(use_enum_values=True)


class SendConfig(BaseModel):
    """How messages are generated and distributed into sessions."""
    message_count: int = Field(default=DEFAULT_MESSAGE_COUNT, gt=0)
    session_strategy: SessionStrategy = SessionStrategy.SINGLE
    session_count: int = Field(default=DEFAULT_SESSION_COUNT, gt=0)


class ProbeSettings(BaseModel):
    """Receive side of the probe."""
    prefetch_count: int = Field(default=DEFAULT_PREFETCH_COUNT, gt=0)
    receive_timeout_seconds: float = Field(default=DEFAULT_RECEIVE_TIMEOUT, gt=0)
    grace_period_seconds: float = Field(default=DEFAULT_GRACE_PERIOD, ge=0)
    bypass_client_lock_check: bool = Field(
        default=True,
        description="Drop the SDK's cached session expiry before completing, so the broker decides"
    )


class ProbeConfig(BaseModel):
    """Main probe configuration schema."""

    connection_string: str = Field(
        description="Service Bus connection string (Manage, Send, Listen)"
    )

    queue: QueueSettings = Field(default_factory=QueueSettings)

    send: SendConfig = Field(default_factory=SendConfig)

    probe: ProbeSettings = Field(default_factory=ProbeSettings)

    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("connection_string")
    @classmethod
    def validate_connection_string(cls, v: str) -> str:
        """Reject blank connection strings and ones without an endpoint."""
        if not v or not v.strip():
            raise ValueError("Invalid connection string")
        if "endpoint=" not in v.lower():
            raise ValueError("Invalid connection string: missing Endpoint")
        return v.strip()


class ConfigManager:
    """
    Manages probe configuration loading and validation.

    Configuration precedence (highest to lowest):
    1. CLI arguments
    2. Environment variables (SESSIONPROBE_*)
    3. Configuration file (YAML/JSON)
    4. Defaults
    """

    def __init__(self):
        self._config: Optional[ProbeConfig] = None
        self._config_file: Optional[Path] = None

    def load(
        self,
        config_file: Optional[str] = None,
        cli_overrides: Optional[Dict[str, Any]] = None
    ) -> ProbeConfig:
        """
        Load and validate configuration from multiple sources.

        Args:
            config_file: Path to configuration file (YAML or JSON)
            cli_overrides: Nested dictionary of CLI argument overrides

        Returns:
            Validated ProbeConfig instance

        Raises:
            ConfigurationError: If configuration is missing, unreadable or invalid
        """
        config_dict: Dict[str, Any] = {}

        if config_file:
            config_dict = self._load_from_file(config_file)
            self._config_file = Path(config_file)
            logger.debug(f"Loaded configuration from file: {config_file}")

        env_config = self._load_from_env()
        config_dict = self._merge_configs(config_dict, env_config)
        if env_config:
            logger.debug(f"Applied {len(env_config)} environment variable overrides")

        if cli_overrides:
            config_dict = self._merge_configs(config_dict, _drop_none(cli_overrides))

        try:
            self._config = ProbeConfig(**config_dict)
        except ValidationError as e:
            raise ConfigurationError(_describe_validation_error(e)) from e

        return self._config

    def _load_from_file(self, file_path: str) -> Dict[str, Any]:
        """Load configuration from YAML or JSON file."""
        path = Path(file_path)

        if not path.exists():
            raise ConfigurationError(f"Configuration file not found: {file_path}", field="config")

        with open(path, 'r', encoding='utf-8') as f:
            try:
                if path.suffix in ['.yaml', '.yml']:
                    data = yaml.safe_load(f) or {}
                elif path.suffix == '.json':
                    data = json.load(f)
                else:
                    raise ConfigurationError(
                        f"Unsupported config file format: {path.suffix}", field="config"
                    )
            except (yaml.YAMLError, ValueError) as e:
                raise ConfigurationError(f"Cannot parse {file_path}: {e}", field="config") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration file must hold a mapping: {file_path}", field="config")
        return data

    def _load_from_env(self) -> Dict[str, Any]:
        """Load configuration from environment variables."""
        config: Dict[str, Any] = {}

        if conn := os.getenv(f"{ENV_PREFIX}CONNECTION_STRING"):
            config["connection_string"] = conn
        if queue_name := os.getenv(f"{ENV_PREFIX}QUEUE_NAME"):
            config.setdefault("queue", {})["name"] = queue_name
        if grace := os.getenv(f"{ENV_PREFIX}GRACE_PERIOD"):
            config.setdefault("probe", {})["grace_period_seconds"] = grace
        if log_level := os.getenv(f"{ENV_PREFIX}LOG_LEVEL"):
            config.setdefault("logging", {})["level"] = log_level.upper()
        if log_file := os.getenv(f"{ENV_PREFIX}LOG_FILE"):
            config.setdefault("logging", {})["file"] = log_file

        return config

    def _merge_configs(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two configuration dictionaries."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_configs(result[key], value)
            else:
                result[key] = value

        return result

    def log_configuration(self) -> None:
        """Log the loaded configuration with secrets redacted."""
        if not self._config:
            return

        config_dict = self._config.model_dump(mode="json")
        config_dict["connection_string"] = redact(config_dict["connection_string"])
        logger.debug(f"Active configuration: {json.dumps(config_dict, indent=2)}")

    def get_config(self) -> ProbeConfig:
        """
        Get the loaded configuration.

        Raises:
            RuntimeError: If configuration hasn't been loaded
        """
        if self._config is None:
            raise RuntimeError("Configuration not loaded. Call load() first.")
        return self._config


def create_default_config_file(path: str = "./session-lock-probe.yaml") -> Path:
    """
    Write a default configuration file.

    The connection string is left as a placeholder.
    """
    default_config = {
        "connection_string": PLACEHOLDER_CONNECTION_STRING,
        "queue": QueueSettings().model_dump(),
        "send": SendConfig().model_dump(mode="json"),
        "probe": ProbeSettings().model_dump(),
        "logging": LoggingConfig().model_dump(mode="json", exclude_none=True),
    }

    config_path = Path(path)
    config_path.parent.mkdir(parents=True, exist_ok=True)

    with open(config_path, 'w', encoding='utf-8') as f:
        yaml.dump(default_config, f, default_flow_style=False, sort_keys=False)

    return config_path


def _drop_none(values: Dict[str, Any]) -> Dict[str, Any]:
    """Remove unset (None) CLI options, recursively."""
    result: Dict[str, Any] = {}
    for key, value in values.items():
        if isinstance(value, dict):
            nested = _drop_none(value)
            if nested:
                result[key] = nested
        elif value is not None:
            result[key] = value
    return result


def _describe_validation_error(error: ValidationError) -> str:
    """One line per invalid field, e.g. 'send.message_count: Input should be greater than 0'."""
    lines = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "config"
        lines.append(f"{location}: {item['msg']}")
    return "Invalid configuration: " + "; ".join(lines)
