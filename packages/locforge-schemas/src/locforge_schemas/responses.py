"""API response envelope schemas for CLI output."""

from __future__ import annotations

from pydantic import Field

from locforge_schemas.base import BaseSchema
from locforge_schemas.primitives import (
    BuildId,
    BuildStatus,
    BuildTag,
    LanguageCode,
    Timestamp,
)
from locforge_schemas.records import ArtifactRecord


class MetaInfo(BaseSchema):
    """Metadata for API responses."""

    timestamp: Timestamp = Field(..., description="ISO-8601 response timestamp")


class ErrorDetails(BaseSchema):
    """Detailed error context for responses."""

    field: str | None = Field(None, description="Field name if applicable")
    provided: str | None = Field(None, description="Provided value")
    valid_options: list[str] | None = Field(
        None, description="Valid options if applicable"
    )


class ErrorResponse(BaseSchema):
    """Error information in response."""

    code: str = Field(..., min_length=1, description="Error code")
    message: str = Field(..., min_length=1, description="Error message")
    details: ErrorDetails | None = Field(None, description="Optional error details")


class ApiResponse[ResponseData](BaseSchema):
    """Generic API response envelope."""

    data: ResponseData | None = Field(
        None, description="Success payload, null on error"
    )
    error: ErrorResponse | None = Field(
        None, description="Error information, null on success"
    )
    meta: MetaInfo = Field(..., description="Response metadata")


class BuildResult(BaseSchema):
    """Result payload for CLI build commands."""

    build_id: BuildId = Field(..., description="Build identifier")
    tag: BuildTag = Field(..., description="Build tag")
    status: BuildStatus = Field(..., description="Final build status")
    artifacts: dict[LanguageCode, ArtifactRecord] = Field(
        default_factory=dict, description="Stored artifacts per language"
    )
    output_dir: str | None = Field(None, description="Directory holding artifacts")
    steps: int = Field(0, ge=0, description="Scheduled steps executed")
