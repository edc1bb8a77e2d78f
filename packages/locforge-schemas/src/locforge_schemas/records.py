"""Persisted record schemas for localization aggregates."""

from __future__ import annotations

from pydantic import Field

from locforge_schemas.base import BaseSchema
from locforge_schemas.primitives import (
    BlobKey,
    BuildId,
    BuildStatus,
    BuildTag,
    EntityId,
    EntityStatus,
    JsonScalar,
    LanguageCode,
    LanguageId,
    NamespaceId,
    ProjectId,
    ReleaseId,
    ScreenshotId,
    TableName,
    Timestamp,
    TranslationKeyId,
    WorkspaceId,
)


class Record(BaseSchema):
    """Base class for rows held by the table store."""

    id: EntityId = Field(..., description="Row identifier")


class Workspace(Record):
    """Top-level tenant owning projects."""

    name: str = Field(..., min_length=1, description="Workspace display name")
    translation_key_count: int = Field(
        0, ge=0, description="Denormalized count of live translation keys"
    )
    status: EntityStatus = Field(EntityStatus.ACTIVE, description="Lifecycle status")


class Project(Record):
    """Localization project inside a workspace."""

    workspace_id: WorkspaceId = Field(..., description="Owning workspace")
    name: str = Field(..., min_length=1, description="Project name")
    primary_language_id: LanguageId | None = Field(
        None, description="Source language of the project"
    )
    translation_key_count: int = Field(
        0, ge=0, description="Denormalized count of live translation keys"
    )
    status: EntityStatus = Field(EntityStatus.ACTIVE, description="Lifecycle status")


class Namespace(Record):
    """Named group of translation keys inside a project."""

    project_id: ProjectId = Field(..., description="Owning project")
    name: str = Field(..., min_length=1, description="Namespace name")
    translation_key_count: int = Field(
        0, ge=0, description="Denormalized count of live translation keys"
    )
    status: EntityStatus = Field(EntityStatus.ACTIVE, description="Lifecycle status")


class Language(Record):
    """Target or source language enabled on a project."""

    project_id: ProjectId = Field(..., description="Owning project")
    language_code: LanguageCode = Field(..., description="Language code")
    status: EntityStatus = Field(EntityStatus.ACTIVE, description="Lifecycle status")


class TranslationKey(Record):
    """Translation key with its per-language values denormalized."""

    project_id: ProjectId = Field(..., description="Owning project")
    namespace_id: NamespaceId = Field(..., description="Owning namespace")
    key: str = Field(..., min_length=1, description="Flattened key path")
    values: dict[LanguageId, str] = Field(
        default_factory=dict, description="Translated text per language id"
    )
    status: EntityStatus = Field(EntityStatus.ACTIVE, description="Lifecycle status")


class TranslationValue(Record):
    """One flattened leaf of a language document (a flat row).

    Rows are unique per (scope, path) where the scope is the
    project/namespace/language triple.
    """

    project_id: ProjectId = Field(..., description="Owning project")
    namespace_id: NamespaceId = Field(..., description="Owning namespace")
    language_id: LanguageId = Field(..., description="Language of the value")
    translation_key_id: TranslationKeyId = Field(..., description="Parent key row")
    path: str = Field(..., min_length=1, description="Flattened document path")
    leaf_value: JsonScalar = Field(..., description="Scalar leaf value")

    @property
    def scope_key(self) -> str:
        """Composite scope of the row (project, namespace, language)."""
        return f"{self.project_id}:{self.namespace_id}:{self.language_id}"


type FlatRow = TranslationValue


class LanguageRef(BaseSchema):
    """Snapshot of a target language captured when a build is created."""

    language_id: LanguageId = Field(..., description="Language row id")
    language_code: LanguageCode = Field(..., description="Language code")


class ArtifactRecord(BaseSchema):
    """Reference to one stored per-language artifact."""

    blob_key: BlobKey = Field(..., description="Blob store key")
    byte_size: int = Field(..., ge=0, description="Artifact size in bytes")


class Build(Record):
    """Compiled per-language JSON artifacts for one namespace."""

    project_id: ProjectId = Field(..., description="Owning project")
    namespace_id: NamespaceId = Field(..., description="Source namespace")
    namespace_name: str = Field(..., min_length=1, description="Namespace name")
    tag: BuildTag = Field(..., description="Tag unique within the project")
    status: BuildStatus = Field(BuildStatus.PENDING, description="Build status")
    language_snapshot: list[LanguageRef] = Field(
        default_factory=list,
        description="Immutable target languages captured at creation",
    )
    remaining_language_queue: list[LanguageRef] = Field(
        default_factory=list, description="Languages not yet generated"
    )
    completed_languages: list[LanguageCode] = Field(
        default_factory=list,
        description="Append-only log of languages fully generated",
    )
    artifacts: dict[LanguageCode, ArtifactRecord] = Field(
        default_factory=dict, description="Stored artifact per language code"
    )
    status_message: str | None = Field(None, description="Human-readable progress")
    created_at: Timestamp = Field(..., description="Creation timestamp")
    updated_at: Timestamp | None = Field(None, description="Last update timestamp")


class GlossaryTerm(Record):
    """Project glossary entry with per-language translations."""

    project_id: ProjectId = Field(..., description="Owning project")
    term: str = Field(..., min_length=1, description="Glossary term")
    description: str | None = Field(None, description="Usage notes")
    translations: dict[LanguageId, str] = Field(
        default_factory=dict, description="Translated term per language id"
    )


class Release(Record):
    """Named release serving a set of builds."""

    project_id: ProjectId = Field(..., description="Owning project")
    tag: str = Field(..., min_length=1, description="Release tag")


class ReleaseBuildConnection(Record):
    """Attachment of a build to a release with an A/B selection weight."""

    release_id: ReleaseId = Field(..., description="Release row")
    build_id: BuildId = Field(..., description="Attached build")
    selection_chance: int = Field(
        100, ge=0, le=100, description="Selection weight in percent"
    )


class Screenshot(Record):
    """Uploaded screenshot whose image lives in the blob store."""

    project_id: ProjectId = Field(..., description="Owning project")
    name: str = Field(..., min_length=1, description="Screenshot name")
    image_blob_key: BlobKey | None = Field(None, description="Image blob key")
    image_size: int = Field(0, ge=0, description="Image size in bytes")
    status: EntityStatus = Field(EntityStatus.ACTIVE, description="Lifecycle status")


class ScreenshotContainer(Record):
    """Highlighted region of a screenshot bound to one translation key."""

    screenshot_id: ScreenshotId = Field(..., description="Parent screenshot")
    translation_key_id: TranslationKeyId = Field(..., description="Bound key")


class ScreenshotKeyMapping(Record):
    """Namespace-scoped link between a screenshot and a translation key."""

    project_id: ProjectId = Field(..., description="Owning project")
    namespace_id: NamespaceId = Field(..., description="Owning namespace")
    screenshot_id: ScreenshotId = Field(..., description="Linked screenshot")
    translation_key_id: TranslationKeyId = Field(..., description="Linked key")


TABLE_RECORDS: dict[TableName, type[Record]] = {
    TableName.WORKSPACES: Workspace,
    TableName.PROJECTS: Project,
    TableName.NAMESPACES: Namespace,
    TableName.LANGUAGES: Language,
    TableName.TRANSLATION_KEYS: TranslationKey,
    TableName.TRANSLATION_VALUES: TranslationValue,
    TableName.BUILDS: Build,
    TableName.GLOSSARY_TERMS: GlossaryTerm,
    TableName.RELEASES: Release,
    TableName.RELEASE_BUILD_CONNECTIONS: ReleaseBuildConnection,
    TableName.SCREENSHOTS: Screenshot,
    TableName.SCREENSHOT_CONTAINERS: ScreenshotContainer,
    TableName.SCREENSHOT_KEY_MAPPINGS: ScreenshotKeyMapping,
}
