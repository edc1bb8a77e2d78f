"""Protocol definitions and errors for storage adapters."""

from __future__ import annotations

from enum import StrEnum
from typing import Protocol, runtime_checkable

from pydantic import Field

from locforge_schemas.base import BaseSchema
from locforge_schemas.logs import LogEntry
from locforge_schemas.primitives import BlobKey, EntityId, TableName, WorkflowId
from locforge_schemas.responses import ErrorDetails, ErrorResponse


class StorageErrorCode(StrEnum):
    """Categorized error codes for storage operations."""

    NOT_FOUND = "not_found"
    IO_ERROR = "io_error"
    SERIALIZATION_ERROR = "serialization_error"
    CONFLICT = "conflict"


class StorageErrorDetails(BaseSchema):
    """Detailed storage error context."""

    operation: str | None = Field(None, description="Storage operation name")
    table: TableName | None = Field(None, description="Table name")
    record_id: EntityId | None = Field(None, description="Row identifier")
    blob_key: BlobKey | None = Field(None, description="Blob key")
    path: str | None = Field(None, description="Filesystem path")
    reason: str | None = Field(None, description="Additional error context")


class StorageErrorInfo(BaseSchema):
    """Structured storage error data."""

    code: StorageErrorCode = Field(..., description="Storage error code")
    message: str = Field(..., min_length=1, description="Error message")
    details: StorageErrorDetails | None = Field(None, description="Error details")

    def to_error_response(self) -> ErrorResponse:
        """Convert storage error info to the standard error response schema.

        Returns:
            ErrorResponse: Standard response error payload.
        """
        details: ErrorDetails | None = None
        if self.details is not None:
            details = ErrorDetails(
                field=self.details.operation,
                provided=self.details.blob_key
                or self.details.record_id
                or self.details.path,
                valid_options=None,
            )
        return ErrorResponse(code=str(self.code), message=self.message, details=details)


class StorageError(Exception):
    """Storage error with structured details."""

    def __init__(self, info: StorageErrorInfo) -> None:
        """Initialize the storage error.

        Args:
            info: Structured storage error information.
        """
        super().__init__(info.message)
        self.info = info


@runtime_checkable
class LogStoreProtocol(Protocol):
    """Protocol for persisting JSONL log entries."""

    async def append_log(self, entry: LogEntry) -> None:
        """Append a log entry to storage."""
        raise NotImplementedError

    async def append_logs(self, entries: list[LogEntry]) -> None:
        """Append multiple log entries to storage."""
        raise NotImplementedError

    async def read_logs(self, workflow_id: WorkflowId) -> list[LogEntry]:
        """Read every log entry recorded for a workflow."""
        raise NotImplementedError
