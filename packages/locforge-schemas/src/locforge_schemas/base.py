"""Base schema configuration for locforge Pydantic models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    """Base schema with strict validation defaults.

    Note: translation text travels through these models verbatim, so string
    whitespace is never stripped. extra="ignore" keeps records forward
    compatible with rows written by newer schema versions.
    """

    model_config = ConfigDict(
        extra="ignore",
        validate_assignment=True,
        validate_default=True,
        use_enum_values=True,
        strict=True,
    )
