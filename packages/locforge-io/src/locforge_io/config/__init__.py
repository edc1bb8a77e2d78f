"""Configuration loading for the engine."""

from locforge_io.config.loader import (
    ConfigError,
    load_engine_config,
    validate_engine_config,
)
from locforge_io.config.settings import EngineSettings, get_settings

__all__ = [
    "ConfigError",
    "EngineSettings",
    "get_settings",
    "load_engine_config",
    "validate_engine_config",
]
