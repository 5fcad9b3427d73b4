"""Configuration module for studiobridge."""

from studiobridge.config.loader import load_config, save_config, get_config_path
from studiobridge.config.schema import Config, BridgeConfig, LoggingConfig
from studiobridge.config.access import get_config, clear_config_cache

__all__ = [
    "Config",
    "BridgeConfig",
    "LoggingConfig",
    "load_config",
    "save_config",
    "get_config_path",
    "get_config",
    "clear_config_cache",
]
