"""Primitive types and enums shared across locforge schemas."""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated

from pydantic import Field

ISO_8601_PATTERN = (
    r"^\d{4}-\d{2}-\d{2}T"
    r"\d{2}:\d{2}:\d{2}"
    r"(?:\.\d+)?"
    r"(?:Z|[+-]\d{2}:\d{2})$"
)
LANGUAGE_CODE_PATTERN = r"^[A-Za-z]{2,3}(?:[-_][A-Za-z0-9]{2,8})*$"
EVENT_NAME_PATTERN = r"^[a-z][a-z0-9_]*$"

type EntityId = Annotated[str, Field(min_length=1)]
type WorkspaceId = EntityId
type ProjectId = EntityId
type NamespaceId = EntityId
type LanguageId = EntityId
type TranslationKeyId = EntityId
type BuildId = EntityId
type ReleaseId = EntityId
type ScreenshotId = EntityId
type WorkflowId = EntityId
type BlobKey = Annotated[str, Field(min_length=1)]
type Cursor = Annotated[str, Field(min_length=1)]
type BuildTag = Annotated[str, Field(min_length=1, max_length=128)]
type Timestamp = Annotated[str, Field(pattern=ISO_8601_PATTERN)]
type LanguageCode = Annotated[str, Field(pattern=LANGUAGE_CODE_PATTERN)]
type EventName = Annotated[str, Field(pattern=EVENT_NAME_PATTERN)]

type JsonScalar = str | int | float | bool | None
type JsonValue = JsonScalar | list["JsonValue"] | dict[str, "JsonValue"]


class EntityStatus(StrEnum):
    """Lifecycle status for aggregate rows.

    DELETING is the tombstone: the row is invisible to every read while its
    dependents are cleaned up asynchronously.
    """

    ACTIVE = "active"
    DELETING = "deleting"
    PROCESSING = "processing"


class BuildStatus(StrEnum):
    """Build generation status values."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETE = "complete"
    FAILED = "failed"


class EntityKind(StrEnum):
    """Aggregate roots that own a cascading deletion."""

    WORKSPACE = "workspace"
    PROJECT = "project"
    NAMESPACE = "namespace"
    LANGUAGE = "language"


class TableName(StrEnum):
    """Persisted collections managed by the table store."""

    WORKSPACES = "workspaces"
    PROJECTS = "projects"
    NAMESPACES = "namespaces"
    LANGUAGES = "languages"
    TRANSLATION_KEYS = "translation_keys"
    TRANSLATION_VALUES = "translation_values"
    BUILDS = "builds"
    GLOSSARY_TERMS = "glossary_terms"
    RELEASES = "releases"
    RELEASE_BUILD_CONNECTIONS = "release_build_connections"
    SCREENSHOTS = "screenshots"
    SCREENSHOT_CONTAINERS = "screenshot_containers"
    SCREENSHOT_KEY_MAPPINGS = "screenshot_key_mappings"


class WorkflowKind(StrEnum):
    """Workflow families driven by the workflow driver."""

    BUILD_GENERATION = "build_generation"
    WORKSPACE_DELETION = "workspace_deletion"
    PROJECT_DELETION = "project_deletion"
    NAMESPACE_DELETION = "namespace_deletion"
    LANGUAGE_DELETION = "language_deletion"


DELETION_WORKFLOW_KINDS: dict[EntityKind, WorkflowKind] = {
    EntityKind.WORKSPACE: WorkflowKind.WORKSPACE_DELETION,
    EntityKind.PROJECT: WorkflowKind.PROJECT_DELETION,
    EntityKind.NAMESPACE: WorkflowKind.NAMESPACE_DELETION,
    EntityKind.LANGUAGE: WorkflowKind.LANGUAGE_DELETION,
}


class LogLevel(StrEnum):
    """Log level values for JSONL logs."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class LogSinkType(StrEnum):
    """Supported log sink types."""

    CONSOLE = "console"
    FILE = "file"
    NOOP = "noop"
