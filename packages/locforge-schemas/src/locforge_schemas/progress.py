"""Progress update schemas for streaming workflow progress."""

from __future__ import annotations

from pydantic import Field, model_validator

from locforge_schemas.base import BaseSchema
from locforge_schemas.events import ProgressEvent
from locforge_schemas.primitives import Timestamp, WorkflowId, WorkflowKind


class WorkflowProgressUpdate(BaseSchema):
    """Progress snapshot emitted after each workflow step."""

    workflow_id: WorkflowId = Field(..., description="Workflow instance identifier")
    kind: WorkflowKind = Field(..., description="Workflow family")
    event: ProgressEvent = Field(..., description="Progress event")
    timestamp: Timestamp = Field(..., description="Update timestamp")
    stage: str | None = Field(None, description="Current stage name")
    stage_index: int | None = Field(None, ge=0, description="Current stage position")
    stage_count: int = Field(..., ge=0, description="Stages in the workflow")
    items_processed: int = Field(
        0, ge=0, description="Items handled by the step that emitted the update"
    )
    completed_stages: list[str] = Field(
        default_factory=list, description="Stages finished so far, in order"
    )
    message: str | None = Field(None, description="Optional human-readable note")

    @model_validator(mode="after")
    def _validate_stage_position(self) -> WorkflowProgressUpdate:
        if self.stage_index is not None and self.stage_index >= max(
            self.stage_count, 1
        ):
            raise ValueError("stage_index must be within stage_count")
        return self

    @property
    def percent_complete(self) -> float | None:
        """Share of stages already completed, when the stage count is known."""
        if self.stage_count == 0:
            return None
        return round(100.0 * len(self.completed_stages) / self.stage_count, 2)
