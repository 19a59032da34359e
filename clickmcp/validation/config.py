"""
clickmcp Configuration - Configuration loading and validation.

This module provides the Config class for loading bridge configuration
from a global file (~/.clickmcp/config.yaml), a project file
(.clickmcp.yaml, found by walking up from the working directory) or an
explicit path, plus overrides coming from command-line options.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from clickmcp.bridge.selection import SelectionRule, allow_all


class ConfigError(Exception):
    """Raised when there's a configuration error."""

    pass


VALID_LOG_LEVELS = ("debug", "info", "warn", "error")


class ServerConfig(BaseModel):
    """Identity reported to MCP clients."""

    name: Optional[str] = None  # defaults to the root command's name
    version: str = "unknown"
    instructions: Optional[str] = None


class LoggingConfig(BaseModel):
    """Configuration for the bridge's own logging."""

    level: str = "info"
    file: Optional[str] = None

    @field_validator("level")
    @classmethod
    def _check_level(cls, value: str) -> str:
        level = value.lower()
        if level == "warning":
            level = "warn"
        if level not in VALID_LOG_LEVELS:
            raise ValueError(f"invalid log level {value!r}, expected one of {', '.join(VALID_LOG_LEVELS)}")
        return level


class ExecutionConfig(BaseModel):
    """Configuration for tool calls."""

    timeout: Optional[float] = Field(default=None, gt=0)


class BridgeConfig(BaseModel):
    """Complete bridge configuration schema."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    # Omitted rules expose every eligible command; an empty list exposes none
    rules: List[SelectionRule] = Field(default_factory=lambda: [allow_all()])


class Config:
    """
    clickmcp configuration manager.

    Handles loading, merging, and validating configuration from:
    - Global: ~/.clickmcp/config.yaml
    - Local: .clickmcp.yaml (project-specific) or an explicit file
    - Overrides: values passed on the command line

    Later sources override earlier ones.

    Example:
        >>> config = Config.load()
        >>> bridge = Bridge.from_config(factory, config.merged)
    """

    GLOBAL_CONFIG_DIR = Path.home() / ".clickmcp"
    LOCAL_CONFIG_NAME = ".clickmcp.yaml"

    def __init__(
        self,
        global_config: Optional[Dict[str, Any]] = None,
        local_config: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize Config.

        Args:
            global_config: Global configuration dictionary.
            local_config: Local (project) configuration dictionary.
        """
        self._global_config = global_config or {}
        self._local_config = local_config or {}
        self._overrides: Dict[str, Any] = {}
        self._merged: Optional[BridgeConfig] = None

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "Config":
        """
        Load configuration from default locations.

        Args:
            path: Explicit config file, used instead of the discovered
                local file. It must exist.

        Returns:
            Config instance with loaded configuration.
        """
        global_config = cls._load_yaml(cls.GLOBAL_CONFIG_DIR / "config.yaml")
        if path is not None:
            path = Path(path)
            if not path.exists():
                raise ConfigError(f"Config file not found: {path}")
            local_config = cls._load_yaml(path)
        else:
            local_config = cls._load_yaml(cls._find_local_config())

        return cls(global_config=global_config, local_config=local_config)

    @classmethod
    def _load_yaml(cls, path: Optional[Path]) -> Dict[str, Any]:
        """Load YAML file if it exists."""
        if path is None or not path.exists():
            return {}

        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except Exception as e:
            raise ConfigError(f"Failed to load config from {path}: {e}")
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(f"Failed to load config from {path}: expected a mapping at the top level")
        return data

    @classmethod
    def _find_local_config(cls) -> Optional[Path]:
        """Find the local config file by walking up the directory tree."""
        current = Path.cwd()
        while current != current.parent:
            config_path = current / cls.LOCAL_CONFIG_NAME
            if config_path.exists():
                return config_path
            current = current.parent
        return None

    def get_merged_config(self) -> Dict[str, Any]:
        """Get the merged configuration as a dictionary."""
        merged = self._deep_merge(self._global_config.copy(), self._local_config)
        return self._deep_merge(merged, self._overrides)

    def override(self, **values: Any) -> "Config":
        """
        Apply command-line overrides; None values are ignored.

        Recognized keys: ``log_level``, ``log_file``, ``timeout``,
        ``server_name``.
        """
        mapping = {
            "log_level": ("logging", "level"),
            "log_file": ("logging", "file"),
            "timeout": ("execution", "timeout"),
            "server_name": ("server", "name"),
        }
        for key, value in values.items():
            if key not in mapping:
                raise ConfigError(f"Unknown override: {key}")
            if value is None:
                continue
            section, field = mapping[key]
            self._overrides.setdefault(section, {})[field] = value
        self._merged = None  # Reset cache
        return self

    @property
    def merged(self) -> BridgeConfig:
        """Get the validated merged configuration."""
        if self._merged is None:
            try:
                merged_dict = self.get_merged_config()
                self._merged = BridgeConfig(**merged_dict)
            except ValidationError as e:
                raise ConfigError(f"Invalid configuration: {e}")
        return self._merged

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries, with override taking precedence."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

