"""Unit tests for engine configuration schemas."""

import pytest
from pydantic import ValidationError

from locforge_schemas.config import (
    MAX_PAGE_SIZE,
    BuildConfig,
    EngineConfig,
    LoggingConfig,
    LogSinkConfig,
    PageSizeConfig,
    RetryConfig,
)
from locforge_schemas.primitives import LogSinkType


def test_engine_config_defaults() -> None:
    """Defaults give bounded page sizes and a console log sink."""
    config = EngineConfig()

    assert config.page_sizes.values == 200
    assert config.page_sizes.screenshots == 10
    assert config.page_sizes.build_rows == MAX_PAGE_SIZE
    assert config.scheduler.step_delay_ms == 0
    assert config.retry.max_retries == 3
    assert config.build.artifact_prefix == "builds"
    assert [sink.type for sink in config.logging.sinks] == [LogSinkType.CONSOLE]


@pytest.mark.parametrize("size", [0, MAX_PAGE_SIZE + 1])
def test_page_size_bounds(size: int) -> None:
    """Page sizes must stay within one step's limits."""
    with pytest.raises(ValidationError):
        PageSizeConfig(values=size)


def test_logging_config_rejects_duplicate_sinks() -> None:
    """Each sink type may be configured once."""
    with pytest.raises(ValidationError):
        LoggingConfig(
            sinks=[
                LogSinkConfig(type=LogSinkType.FILE),
                LogSinkConfig(type=LogSinkType.FILE),
            ]
        )


def test_logging_config_requires_a_sink() -> None:
    """An empty sink list is rejected."""
    with pytest.raises(ValidationError):
        LoggingConfig(sinks=[])


def test_log_sink_config_coerces_strings() -> None:
    """Sink types read from TOML arrive as plain strings."""
    config = LogSinkConfig(type="noop")

    assert config.type == LogSinkType.NOOP


def test_retry_config_rejects_inverted_backoff() -> None:
    """The initial backoff cannot exceed the cap."""
    with pytest.raises(ValidationError):
        RetryConfig(backoff_s=10.0, max_backoff_s=5.0)


@pytest.mark.parametrize("prefix", ["/builds", "builds/", ""])
def test_build_config_rejects_bad_prefixes(prefix: str) -> None:
    """Artifact prefixes are relative and have no trailing slash."""
    with pytest.raises(ValidationError):
        BuildConfig(artifact_prefix=prefix)


def test_engine_config_is_strict_in_python_mode() -> None:
    """Python callers must pass correctly typed values."""
    with pytest.raises(ValidationError):
        PageSizeConfig(values="100")  # type: ignore[arg-type]
