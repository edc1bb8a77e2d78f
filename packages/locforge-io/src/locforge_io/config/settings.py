"""Runtime settings loaded from the environment."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_ENV_PATH = Path(".env")


class EngineSettings(BaseSettings):
    """Process-level paths, read from `LOCFORGE_*` variables or a .env file."""

    model_config = SettingsConfigDict(
        env_prefix="LOCFORGE_",
        env_file=_ENV_PATH,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    config_path: Path | None = Field(None, description="Engine TOML config file")
    blob_dir: Path = Field(Path(".locforge/blobs"), description="Blob store root")
    log_dir: Path = Field(Path(".locforge/logs"), description="JSONL log directory")


@lru_cache(maxsize=1)
def get_settings() -> EngineSettings:
    """Return cached settings loaded from the environment."""
    return EngineSettings()
