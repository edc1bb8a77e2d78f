"""Ports consumed by the locforge engine."""

from locforge_core.ports.access import (
    AccessPolicyProtocol,
    AllowAllAccessPolicy,
    StaticAccessPolicy,
)
from locforge_core.ports.blobs import BlobStoreProtocol
from locforge_core.ports.scheduler import (
    DeadLetterHandler,
    SchedulerProtocol,
    StepHandler,
)
from locforge_core.ports.storage import (
    LogStoreProtocol,
    StorageError,
    StorageErrorCode,
    StorageErrorDetails,
    StorageErrorInfo,
)
from locforge_core.ports.tables import TableStoreProtocol
from locforge_core.ports.workflow import (
    LogSinkProtocol,
    ProgressSinkProtocol,
    TransientError,
    WorkflowError,
    WorkflowErrorCode,
    WorkflowErrorDetails,
    WorkflowErrorInfo,
    workflow_error,
)

__all__ = [
    "AccessPolicyProtocol",
    "AllowAllAccessPolicy",
    "BlobStoreProtocol",
    "DeadLetterHandler",
    "LogSinkProtocol",
    "LogStoreProtocol",
    "ProgressSinkProtocol",
    "SchedulerProtocol",
    "StaticAccessPolicy",
    "StepHandler",
    "StorageError",
    "StorageErrorCode",
    "StorageErrorDetails",
    "StorageErrorInfo",
    "TableStoreProtocol",
    "TransientError",
    "WorkflowError",
    "WorkflowErrorCode",
    "WorkflowErrorDetails",
    "WorkflowErrorInfo",
    "workflow_error",
]
