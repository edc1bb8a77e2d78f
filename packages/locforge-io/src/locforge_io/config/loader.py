"""TOML engine configuration loading."""

from __future__ import annotations

import tomllib
from pathlib import Path

from pydantic import ValidationError

from locforge_schemas.config import EngineConfig
from locforge_schemas.primitives import JsonValue


class ConfigError(ValueError):
    """Raised when an engine configuration file cannot be used."""


def load_engine_config(path: Path | str | None) -> EngineConfig:
    """Load and validate an engine configuration file.

    A missing path, or a path that does not exist, yields the defaults.

    Args:
        path: TOML file to read.

    Returns:
        EngineConfig: Validated configuration.

    Raises:
        ConfigError: If the file cannot be read, parsed or validated.
    """
    if path is None:
        return EngineConfig()
    config_path = Path(path)
    if not config_path.exists():
        return EngineConfig()
    try:
        with open(config_path, "rb") as handle:
            payload: dict[str, JsonValue] = tomllib.load(handle)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise ConfigError(f"Failed to read config: {exc}") from exc
    return validate_engine_config(payload)


def validate_engine_config(payload: dict[str, JsonValue]) -> EngineConfig:
    """Validate a parsed configuration mapping.

    Returns:
        EngineConfig: Validated configuration.

    Raises:
        ConfigError: If validation fails.
    """
    try:
        return EngineConfig.model_validate(payload, strict=False)
    except ValidationError as exc:
        raise ConfigError(f"Invalid config: {exc}") from exc
