"""Configuration management for EDUBot."""

from edubot.config.settings import (
    ConfigManager,
    Settings,
    get_config,
    get_settings,
    normalize_wait_until,
)

__all__ = [
    "ConfigManager",
    "Settings",
    "get_config",
    "get_settings",
    "normalize_wait_until",
]
