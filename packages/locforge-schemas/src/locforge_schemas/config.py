"""Configuration schemas for the locforge batch engine."""

from __future__ import annotations

from pydantic import Field, field_validator, model_validator

from locforge_schemas.base import BaseSchema
from locforge_schemas.primitives import LogSinkType

MAX_PAGE_SIZE = 2000


class LogSinkConfig(BaseSchema):
    """Configuration for a single log sink."""

    type: LogSinkType = Field(..., description="Log sink type (console|file|noop)")

    @field_validator("type", mode="before")
    @classmethod
    def _coerce_type(cls, value: object) -> LogSinkType:
        if isinstance(value, LogSinkType):
            return value
        if isinstance(value, str):
            return LogSinkType(value)
        return value  # type: ignore[return-value]


class LoggingConfig(BaseSchema):
    """Logging configuration for workflows and CLI commands."""

    sinks: list[LogSinkConfig] = Field(
        default_factory=lambda: [LogSinkConfig(type=LogSinkType.CONSOLE)],
        min_length=1,
        description="Log sinks to enable",
    )

    @model_validator(mode="after")
    def validate_sink_types(self) -> LoggingConfig:
        """Ensure log sink types are unique.

        Returns:
            LoggingConfig: Validated logging configuration.

        Raises:
            ValueError: If sink types are duplicated.
        """
        sink_types = [sink.type for sink in self.sinks]
        if len(set(sink_types)) != len(sink_types):
            raise ValueError("log sinks must not contain duplicates")
        return self


class PageSizeConfig(BaseSchema):
    """Static page sizes per scanned table.

    One step fetches at most this many rows, so these values are the only
    knob that keeps a step inside the host's per-invocation time limit.
    """

    values: int = Field(200, ge=1, le=MAX_PAGE_SIZE, description="Value rows")
    keys: int = Field(200, ge=1, le=MAX_PAGE_SIZE, description="Key rows")
    builds: int = Field(200, ge=1, le=MAX_PAGE_SIZE, description="Build rows")
    glossary_terms: int = Field(
        200, ge=1, le=MAX_PAGE_SIZE, description="Glossary rows"
    )
    languages: int = Field(200, ge=1, le=MAX_PAGE_SIZE, description="Language rows")
    namespaces: int = Field(
        200, ge=1, le=MAX_PAGE_SIZE, description="Namespace rows"
    )
    releases: int = Field(200, ge=1, le=MAX_PAGE_SIZE, description="Release rows")
    screenshots: int = Field(
        10, ge=1, le=MAX_PAGE_SIZE, description="Screenshot rows (blob-heavy)"
    )
    mappings: int = Field(
        200, ge=1, le=MAX_PAGE_SIZE, description="Screenshot key mapping rows"
    )
    projects: int = Field(
        50, ge=1, le=MAX_PAGE_SIZE, description="Projects fanned out per step"
    )
    language_values: int = Field(
        100, ge=1, le=MAX_PAGE_SIZE, description="Value rows for language deletion"
    )
    language_keys: int = Field(
        100, ge=1, le=MAX_PAGE_SIZE, description="Key rows patched per step"
    )
    language_glossary_terms: int = Field(
        100, ge=1, le=MAX_PAGE_SIZE, description="Glossary rows patched per step"
    )
    build_rows: int = Field(
        2000, ge=1, le=MAX_PAGE_SIZE, description="Flat rows read per build step"
    )


class SchedulerConfig(BaseSchema):
    """Scheduling settings for trampolined steps."""

    step_delay_ms: int = Field(
        0, ge=0, description="Delay between consecutive steps of one workflow"
    )


class RetryConfig(BaseSchema):
    """Host retry policy for transient step failures."""

    max_retries: int = Field(3, ge=0, description="Maximum retry attempts")
    backoff_s: float = Field(1.0, gt=0, description="Initial backoff in seconds")
    max_backoff_s: float = Field(
        30.0, gt=0, description="Maximum backoff delay in seconds"
    )

    @model_validator(mode="after")
    def validate_backoff_bounds(self) -> RetryConfig:
        """Ensure the initial backoff does not exceed the cap.

        Returns:
            RetryConfig: Validated retry configuration.

        Raises:
            ValueError: If backoff_s exceeds max_backoff_s.
        """
        if self.backoff_s > self.max_backoff_s:
            raise ValueError("backoff_s must not exceed max_backoff_s")
        return self


class BuildConfig(BaseSchema):
    """Artifact layout for build generation."""

    artifact_prefix: str = Field(
        "builds", min_length=1, description="Blob key prefix for build artifacts"
    )
    pretty: bool = Field(
        True, description="Indent artifact JSON with two spaces"
    )

    @field_validator("artifact_prefix")
    @classmethod
    def _validate_prefix(cls, value: str) -> str:
        if value.startswith("/") or value.endswith("/"):
            raise ValueError("artifact_prefix must not start or end with '/'")
        return value


class EngineConfig(BaseSchema):
    """Top-level configuration for the batch engine."""

    page_sizes: PageSizeConfig = Field(
        default_factory=PageSizeConfig, description="Page size per table"
    )
    scheduler: SchedulerConfig = Field(
        default_factory=SchedulerConfig, description="Scheduling settings"
    )
    retry: RetryConfig = Field(
        default_factory=RetryConfig, description="Transient retry policy"
    )
    build: BuildConfig = Field(
        default_factory=BuildConfig, description="Build artifact settings"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )
