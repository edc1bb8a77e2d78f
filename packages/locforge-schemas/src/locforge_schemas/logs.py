"""JSONL log entry schema for workflow events."""

from __future__ import annotations

from pydantic import Field

from locforge_schemas.base import BaseSchema
from locforge_schemas.primitives import (
    EventName,
    JsonValue,
    LogLevel,
    Timestamp,
    WorkflowId,
    WorkflowKind,
)


class LogEntry(BaseSchema):
    """Single log line in JSONL format."""

    timestamp: Timestamp = Field(
        ..., description="ISO-8601 timestamp for the log entry"
    )
    level: LogLevel = Field(..., description="Log level")
    event: EventName = Field(..., description="Event name")
    workflow_id: WorkflowId = Field(..., description="Workflow instance identifier")
    kind: WorkflowKind | None = Field(None, description="Workflow family")
    stage: str | None = Field(None, description="Stage name if applicable")
    message: str = Field(..., min_length=1, description="Log message")
    data: dict[str, JsonValue] | None = Field(None, description="Structured event data")
