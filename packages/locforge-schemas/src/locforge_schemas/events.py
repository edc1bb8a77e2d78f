"""Event taxonomy and structured payloads for workflow observability."""

from __future__ import annotations

from enum import StrEnum

from pydantic import Field

from locforge_schemas.base import BaseSchema
from locforge_schemas.primitives import (
    BlobKey,
    BuildStatus,
    Cursor,
    EntityKind,
    LanguageCode,
    WorkflowId,
    WorkflowKind,
)


class WorkflowEvent(StrEnum):
    """Event names for workflow lifecycle."""

    STARTED = "workflow_started"
    COMPLETED = "workflow_completed"
    FAILED = "workflow_failed"
    RESUMED = "workflow_resumed"
    STEP_IGNORED = "step_duplicate_ignored"
    STEP_RETRIED = "step_retried"
    STEP_DEAD_LETTERED = "step_dead_lettered"


class StageEventSuffix(StrEnum):
    """Suffixes for stage lifecycle events."""

    STARTED = "started"
    PAGE_PROCESSED = "page_processed"
    COMPLETED = "completed"
    FAILED = "failed"


class BuildEvent(StrEnum):
    """Event names specific to build generation."""

    ARTIFACT_STORED = "build_artifact_stored"
    ORPHAN_DISCARDED = "build_orphan_discarded"
    COMPENSATED = "build_compensated"


class DeletionEvent(StrEnum):
    """Event names specific to cascading deletion."""

    TOMBSTONED = "deletion_tombstoned"
    FANNED_OUT = "deletion_fanned_out"
    BLOB_MISSING = "blob_missing"


class ProgressEvent(StrEnum):
    """Event names for progress updates."""

    WORKFLOW_STARTED = "workflow_started"
    WORKFLOW_COMPLETED = "workflow_completed"
    WORKFLOW_FAILED = "workflow_failed"
    STAGE_STARTED = "stage_started"
    STAGE_PROGRESS = "stage_progress"
    STAGE_COMPLETED = "stage_completed"


class WorkflowStartedData(BaseSchema):
    """Payload for workflow start events."""

    stages: list[str] = Field(..., description="Planned stages for the workflow")


class WorkflowCompletedData(BaseSchema):
    """Payload for workflow completion events."""

    steps: int = Field(..., ge=0, description="Steps executed by the chain")


class WorkflowFailedData(BaseSchema):
    """Payload for workflow failure events."""

    error_code: str = Field(..., min_length=1, description="Error code")
    why: str = Field(..., min_length=1, description="Reason for failure")
    next_action: str = Field(..., min_length=1, description="Suggested next action")


class StageEventData(BaseSchema):
    """Payload for stage lifecycle events."""

    stage: str = Field(..., min_length=1, description="Stage name")
    stage_index: int = Field(..., ge=0, description="Stage position")
    items_processed: int | None = Field(
        None, ge=0, description="Items handled by the step"
    )
    cursor: Cursor | None = Field(None, description="Cursor the step started from")


class BuildArtifactStoredData(BaseSchema):
    """Payload for stored build artifacts."""

    language_code: LanguageCode = Field(..., description="Artifact language")
    blob_key: BlobKey = Field(..., description="Blob store key")
    byte_size: int = Field(..., ge=0, description="Artifact size in bytes")


class BuildCompensatedData(BaseSchema):
    """Payload for build failure compensation."""

    deleted_blobs: int = Field(..., ge=0, description="Blob deletions issued")
    final_status: BuildStatus = Field(..., description="Status before removal")


class DeletionFannedOutData(BaseSchema):
    """Payload for workspace deletion fan-out."""

    entity_kind: EntityKind = Field(..., description="Kind of child roots")
    child_workflows: list[WorkflowId] = Field(
        ..., description="Child deletion workflows started"
    )


class WorkflowRef(BaseSchema):
    """Identifies a workflow instance in summaries."""

    workflow_id: WorkflowId = Field(..., description="Workflow instance identifier")
    kind: WorkflowKind = Field(..., description="Workflow family")
