"""
clickmcp validation module.

This module provides configuration loading and schema enforcement.
"""

from clickmcp.validation.config import BridgeConfig, Config, ConfigError

__all__ = ["BridgeConfig", "Config", "ConfigError"]
