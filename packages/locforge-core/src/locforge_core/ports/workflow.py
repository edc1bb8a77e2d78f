"""Protocol definitions, errors and log builders for workflow execution."""

from __future__ import annotations

from enum import StrEnum
from typing import Protocol, runtime_checkable

from pydantic import Field

from locforge_schemas.base import BaseSchema
from locforge_schemas.events import (
    BuildArtifactStoredData,
    BuildCompensatedData,
    BuildEvent,
    DeletionEvent,
    DeletionFannedOutData,
    StageEventData,
    StageEventSuffix,
    WorkflowCompletedData,
    WorkflowEvent,
    WorkflowFailedData,
    WorkflowStartedData,
)
from locforge_schemas.logs import LogEntry
from locforge_schemas.primitives import (
    BlobKey,
    BuildStatus,
    Cursor,
    EntityId,
    EntityKind,
    JsonValue,
    LanguageCode,
    LogLevel,
    Timestamp,
    WorkflowId,
    WorkflowKind,
)
from locforge_schemas.progress import WorkflowProgressUpdate
from locforge_schemas.responses import ErrorDetails, ErrorResponse


@runtime_checkable
class LogSinkProtocol(Protocol):
    """Protocol for emitting JSONL log entries."""

    async def emit_log(self, entry: LogEntry) -> None:
        """Emit a log entry."""
        raise NotImplementedError


@runtime_checkable
class ProgressSinkProtocol(Protocol):
    """Protocol for emitting progress updates."""

    async def emit_progress(self, update: WorkflowProgressUpdate) -> None:
        """Emit a progress update."""
        raise NotImplementedError


class WorkflowErrorCode(StrEnum):
    """Categorized error codes for workflow failures."""

    NOT_FOUND = "not_found"
    ACCESS_DENIED = "access_denied"
    CONFLICT = "conflict"
    INVALID_STATE = "invalid_state"
    INVALID_STAGE = "invalid_stage"
    STAGE_FAILED = "stage_failed"
    RETRIES_EXHAUSTED = "retries_exhausted"
    QUOTA_EXCEEDED = "quota_exceeded"


class WorkflowErrorDetails(BaseSchema):
    """Detailed workflow error context."""

    workflow_id: WorkflowId | None = Field(None, description="Workflow instance")
    kind: WorkflowKind | None = Field(None, description="Workflow family")
    stage: str | None = Field(None, description="Stage associated with error")
    entity_kind: EntityKind | None = Field(None, description="Entity kind")
    entity_id: EntityId | None = Field(None, description="Entity identifier")
    field: str | None = Field(None, description="Offending field name")
    provided: str | None = Field(None, description="Offending value")
    reason: str | None = Field(None, description="Additional error context")


class WorkflowErrorInfo(BaseSchema):
    """Structured workflow error data."""

    code: WorkflowErrorCode = Field(..., description="Error code")
    message: str = Field(..., min_length=1, description="Error message")
    details: WorkflowErrorDetails | None = Field(None, description="Error details")

    def to_error_response(self) -> ErrorResponse:
        """Convert workflow error info to standard error response.

        Returns:
            ErrorResponse: Standard response error payload.
        """
        details: ErrorDetails | None = None
        if self.details is not None:
            field = self.details.field
            provided = self.details.provided
            if field is None and self.details.stage is not None:
                field = "stage"
                provided = self.details.stage
            elif field is None and self.details.entity_id is not None:
                field = str(self.details.entity_kind or "entity_id")
                provided = self.details.entity_id
            if field is not None:
                details = ErrorDetails(field=field, provided=provided)
        return ErrorResponse(code=str(self.code), message=self.message, details=details)


class WorkflowError(Exception):
    """Workflow error with structured details."""

    def __init__(self, info: WorkflowErrorInfo) -> None:
        """Initialize the workflow error.

        Args:
            info: Structured workflow error information.
        """
        super().__init__(info.message)
        self.info = info


def workflow_error(
    code: WorkflowErrorCode, message: str, **details: object
) -> WorkflowError:
    """Build a workflow error in one call.

    Args:
        code: Error code.
        message: Error message.
        **details: Fields of WorkflowErrorDetails.

    Returns:
        WorkflowError: Error ready to raise.
    """
    info = WorkflowErrorInfo(
        code=code,
        message=message,
        details=(
            WorkflowErrorDetails.model_validate(details, strict=False)
            if details
            else None
        ),
    )
    return WorkflowError(info)


class TransientError(Exception):
    """Infrastructure hiccup that the host scheduler should retry.

    Raised by adapters for failures that say nothing about the data, such as
    a dropped connection. The workflow driver lets it escape untouched.
    """


def build_workflow_started_log(
    timestamp: Timestamp,
    workflow_id: WorkflowId,
    kind: WorkflowKind,
    stages: list[str],
) -> LogEntry:
    """Build a log entry for workflow start.

    Args:
        timestamp: ISO-8601 timestamp.
        workflow_id: Workflow instance identifier.
        kind: Workflow family.
        stages: Planned stages.

    Returns:
        LogEntry: Structured workflow start log entry.
    """
    return LogEntry(
        timestamp=timestamp,
        level=LogLevel.INFO,
        event=WorkflowEvent.STARTED,
        workflow_id=workflow_id,
        kind=kind,
        stage=None,
        message="Workflow started",
        data=WorkflowStartedData(stages=stages).model_dump(exclude_none=True),
    )


def build_workflow_resumed_log(
    timestamp: Timestamp, workflow_id: WorkflowId, kind: WorkflowKind, stage: str
) -> LogEntry:
    """Build a log entry for an operator resume.

    Args:
        timestamp: ISO-8601 timestamp.
        workflow_id: Workflow instance identifier.
        kind: Workflow family.
        stage: Stage the workflow re-enters.

    Returns:
        LogEntry: Structured workflow resume log entry.
    """
    return LogEntry(
        timestamp=timestamp,
        level=LogLevel.WARN,
        event=WorkflowEvent.RESUMED,
        workflow_id=workflow_id,
        kind=kind,
        stage=stage,
        message=f"Workflow resumed at stage {stage}",
        data=None,
    )


def build_workflow_completed_log(
    timestamp: Timestamp, workflow_id: WorkflowId, kind: WorkflowKind, steps: int
) -> LogEntry:
    """Build a log entry for workflow completion.

    Args:
        timestamp: ISO-8601 timestamp.
        workflow_id: Workflow instance identifier.
        kind: Workflow family.
        steps: Steps executed by the chain.

    Returns:
        LogEntry: Structured workflow completion log entry.
    """
    return LogEntry(
        timestamp=timestamp,
        level=LogLevel.INFO,
        event=WorkflowEvent.COMPLETED,
        workflow_id=workflow_id,
        kind=kind,
        stage=None,
        message="Workflow completed",
        data=WorkflowCompletedData(steps=steps).model_dump(exclude_none=True),
    )


def build_workflow_failed_log(
    timestamp: Timestamp,
    workflow_id: WorkflowId,
    kind: WorkflowKind,
    stage: str | None,
    message: str,
    error_code: str,
    why: str,
    next_action: str,
) -> LogEntry:
    """Build a log entry for workflow failure.

    Args:
        timestamp: ISO-8601 timestamp.
        workflow_id: Workflow instance identifier.
        kind: Workflow family.
        stage: Stage that failed, if any.
        message: Failure message.
        error_code: Error code describing the failure.
        why: Reason for the failure.
        next_action: Suggested next action.

    Returns:
        LogEntry: Structured workflow failure log entry.
    """
    return LogEntry(
        timestamp=timestamp,
        level=LogLevel.ERROR,
        event=WorkflowEvent.FAILED,
        workflow_id=workflow_id,
        kind=kind,
        stage=stage,
        message=message,
        data=WorkflowFailedData(
            error_code=error_code, why=why, next_action=next_action
        ).model_dump(exclude_none=True),
    )


def build_stage_event_name(suffix: StageEventSuffix) -> str:
    """Build a stage lifecycle event name.

    Args:
        suffix: Event suffix (e.g., started, completed).

    Returns:
        str: Event name in snake_case.
    """
    return f"stage_{suffix.value}"


def build_stage_log(
    timestamp: Timestamp,
    workflow_id: WorkflowId,
    kind: WorkflowKind,
    stage: str,
    stage_index: int,
    event_suffix: StageEventSuffix,
    message: str,
    items_processed: int | None = None,
    cursor: Cursor | None = None,
    data: dict[str, JsonValue] | None = None,
    level: LogLevel = LogLevel.INFO,
) -> LogEntry:
    """Build a log entry for a stage lifecycle event.

    Args:
        timestamp: ISO-8601 timestamp.
        workflow_id: Workflow instance identifier.
        kind: Workflow family.
        stage: Stage name.
        stage_index: Stage position.
        event_suffix: Event suffix (started/page_processed/completed/failed).
        message: Log message.
        items_processed: Items handled by the step.
        cursor: Cursor the step started from.
        data: Extra structured event data.
        level: Log level.

    Returns:
        LogEntry: Structured stage log entry.
    """
    payload = StageEventData(
        stage=stage,
        stage_index=stage_index,
        items_processed=items_processed,
        cursor=cursor,
    )
    extra = {
        key: value
        for key, value in (data or {}).items()
        if key not in {"stage", "stage_index", "items_processed", "cursor"}
    }
    return LogEntry(
        timestamp=timestamp,
        level=level,
        event=build_stage_event_name(event_suffix),
        workflow_id=workflow_id,
        kind=kind,
        stage=stage,
        message=message,
        data={**payload.model_dump(exclude_none=True), **extra},
    )


def build_step_ignored_log(
    timestamp: Timestamp,
    workflow_id: WorkflowId,
    kind: WorkflowKind,
    stage: str,
    reason: str,
) -> LogEntry:
    """Build a log entry for a step dropped as a duplicate or stale delivery.

    Args:
        timestamp: ISO-8601 timestamp.
        workflow_id: Workflow instance identifier.
        kind: Workflow family.
        stage: Stage named by the step.
        reason: Why the step was ignored.

    Returns:
        LogEntry: Structured log entry.
    """
    return LogEntry(
        timestamp=timestamp,
        level=LogLevel.DEBUG,
        event=WorkflowEvent.STEP_IGNORED,
        workflow_id=workflow_id,
        kind=kind,
        stage=stage,
        message="Step ignored",
        data={"reason": reason},
    )


def build_step_retry_log(
    timestamp: Timestamp,
    workflow_id: WorkflowId,
    step_name: str,
    attempt: int,
    error_message: str,
    delay_ms: int | None,
) -> LogEntry:
    """Build a log entry for a scheduler retry or dead-letter decision.

    Args:
        timestamp: ISO-8601 timestamp.
        workflow_id: Workflow instance identifier.
        step_name: Registered step name.
        attempt: Attempt number that failed (1-based).
        error_message: Transient error message.
        delay_ms: Backoff before the retry, or None when dead-lettered.

    Returns:
        LogEntry: Structured log entry.
    """
    dead = delay_ms is None
    data: dict[str, JsonValue] = {
        "step_name": step_name,
        "attempt": attempt,
        "error_message": error_message,
    }
    if not dead:
        data["delay_ms"] = delay_ms
    return LogEntry(
        timestamp=timestamp,
        level=LogLevel.ERROR if dead else LogLevel.WARN,
        event=WorkflowEvent.STEP_DEAD_LETTERED if dead else WorkflowEvent.STEP_RETRIED,
        workflow_id=workflow_id,
        kind=None,
        stage=None,
        message="Step dead-lettered" if dead else "Step retry scheduled",
        data=data,
    )


def build_artifact_stored_log(
    timestamp: Timestamp,
    workflow_id: WorkflowId,
    language_code: LanguageCode,
    blob_key: BlobKey,
    byte_size: int,
) -> LogEntry:
    """Build a log entry for a stored build artifact.

    Args:
        timestamp: ISO-8601 timestamp.
        workflow_id: Workflow instance identifier.
        language_code: Artifact language.
        blob_key: Blob store key.
        byte_size: Artifact size in bytes.

    Returns:
        LogEntry: Structured log entry.
    """
    return LogEntry(
        timestamp=timestamp,
        level=LogLevel.INFO,
        event=BuildEvent.ARTIFACT_STORED,
        workflow_id=workflow_id,
        kind=WorkflowKind.BUILD_GENERATION,
        stage=language_code,
        message=f"Stored artifact for {language_code}",
        data=BuildArtifactStoredData(
            language_code=language_code, blob_key=blob_key, byte_size=byte_size
        ).model_dump(exclude_none=True),
    )


def build_orphan_discarded_log(
    timestamp: Timestamp, workflow_id: WorkflowId, blob_key: BlobKey
) -> LogEntry:
    """Build a log entry for an artifact whose build vanished mid-step.

    Args:
        timestamp: ISO-8601 timestamp.
        workflow_id: Workflow instance identifier.
        blob_key: Discarded blob key.

    Returns:
        LogEntry: Structured log entry.
    """
    return LogEntry(
        timestamp=timestamp,
        level=LogLevel.WARN,
        event=BuildEvent.ORPHAN_DISCARDED,
        workflow_id=workflow_id,
        kind=WorkflowKind.BUILD_GENERATION,
        stage=None,
        message="Build no longer exists; artifact discarded",
        data={"blob_key": blob_key},
    )


def build_compensated_log(
    timestamp: Timestamp,
    workflow_id: WorkflowId,
    deleted_blobs: int,
    final_status: BuildStatus,
) -> LogEntry:
    """Build a log entry for build failure compensation.

    Args:
        timestamp: ISO-8601 timestamp.
        workflow_id: Workflow instance identifier.
        deleted_blobs: Blob deletions issued.
        final_status: Status of the build before it was removed.

    Returns:
        LogEntry: Structured log entry.
    """
    return LogEntry(
        timestamp=timestamp,
        level=LogLevel.WARN,
        event=BuildEvent.COMPENSATED,
        workflow_id=workflow_id,
        kind=WorkflowKind.BUILD_GENERATION,
        stage=None,
        message="Build removed after failure",
        data=BuildCompensatedData(
            deleted_blobs=deleted_blobs, final_status=final_status
        ).model_dump(exclude_none=True),
    )


def build_tombstoned_log(
    timestamp: Timestamp,
    workflow_id: WorkflowId,
    kind: WorkflowKind,
    entity_kind: EntityKind,
    entity_id: EntityId,
) -> LogEntry:
    """Build a log entry for a tombstoned deletion root.

    Args:
        timestamp: ISO-8601 timestamp.
        workflow_id: Deletion workflow identifier.
        kind: Deletion workflow family.
        entity_kind: Kind of the root row.
        entity_id: Root row identifier.

    Returns:
        LogEntry: Structured log entry.
    """
    return LogEntry(
        timestamp=timestamp,
        level=LogLevel.INFO,
        event=DeletionEvent.TOMBSTONED,
        workflow_id=workflow_id,
        kind=kind,
        stage=None,
        message=f"{entity_kind} {entity_id} tombstoned",
        data={"entity_kind": str(entity_kind), "entity_id": entity_id},
    )


def build_fanned_out_log(
    timestamp: Timestamp,
    workflow_id: WorkflowId,
    stage: str,
    child_workflows: list[WorkflowId],
) -> LogEntry:
    """Build a log entry for child deletions started by a workspace deletion.

    Args:
        timestamp: ISO-8601 timestamp.
        workflow_id: Parent workflow identifier.
        stage: Stage that started the children.
        child_workflows: Child workflow identifiers.

    Returns:
        LogEntry: Structured log entry.
    """
    return LogEntry(
        timestamp=timestamp,
        level=LogLevel.INFO,
        event=DeletionEvent.FANNED_OUT,
        workflow_id=workflow_id,
        kind=WorkflowKind.WORKSPACE_DELETION,
        stage=stage,
        message=f"Started {len(child_workflows)} project deletions",
        data=DeletionFannedOutData(
            entity_kind=EntityKind.PROJECT, child_workflows=child_workflows
        ).model_dump(exclude_none=True),
    )


def build_blob_missing_log(
    timestamp: Timestamp,
    workflow_id: WorkflowId,
    kind: WorkflowKind,
    stage: str | None,
    blob_key: BlobKey,
    reason: str,
) -> LogEntry:
    """Build a log entry for a blob that could not be read or deleted.

    Args:
        timestamp: ISO-8601 timestamp.
        workflow_id: Workflow instance identifier.
        kind: Workflow family.
        stage: Stage that touched the blob.
        blob_key: Blob key.
        reason: Failure description.

    Returns:
        LogEntry: Structured log entry.
    """
    return LogEntry(
        timestamp=timestamp,
        level=LogLevel.WARN,
        event=DeletionEvent.BLOB_MISSING,
        workflow_id=workflow_id,
        kind=kind,
        stage=stage,
        message=f"Blob {blob_key} unavailable",
        data={"blob_key": blob_key, "reason": reason},
    )
