"""Step argument schemas carried between scheduled workflow steps."""

from __future__ import annotations

from pydantic import Field

from locforge_schemas.base import BaseSchema
from locforge_schemas.primitives import (
    BlobKey,
    BuildId,
    Cursor,
    EntityId,
    EntityKind,
    LanguageCode,
    NamespaceId,
    ProjectId,
    WorkflowId,
    WorkflowKind,
    WorkspaceId,
)
from locforge_schemas.records import LanguageRef


class WorkflowStep[ContextT: BaseSchema](BaseSchema):
    """Arguments of one scheduled step of a workflow instance.

    A step names its stage both by position and by name so a step scheduled
    by an older stage layout is rejected instead of silently misapplied.
    """

    workflow_id: WorkflowId = Field(..., description="Workflow instance identifier")
    kind: WorkflowKind = Field(..., description="Workflow family")
    stage_index: int = Field(..., ge=0, description="Position in the stage list")
    stage: str = Field(..., min_length=1, description="Stage name at stage_index")
    cursor: Cursor | None = Field(None, description="Continuation within the stage")
    sequence: int = Field(0, ge=0, description="Steps issued before this one")
    context: ContextT = Field(..., description="Workflow-specific context")
    failure: str | None = Field(
        None, description="Why the host gave up on the step, for compensation"
    )


class BuildContext(BaseSchema):
    """Context threaded through build generation steps."""

    build_id: BuildId = Field(..., description="Build being generated")
    project_id: ProjectId = Field(..., description="Owning project")
    namespace_id: NamespaceId = Field(..., description="Source namespace")
    languages: list[LanguageRef] = Field(
        default_factory=list, description="Immutable language snapshot"
    )
    page_number: int = Field(
        0, ge=0, description="Pages consumed for the current language"
    )
    partial_keys: list[BlobKey] = Field(
        default_factory=list,
        description="Intermediate page blobs for the current language",
    )

    def language_codes(self) -> list[LanguageCode]:
        """Return the snapshot language codes in queue order."""
        return [language.language_code for language in self.languages]


class DeletionContext(BaseSchema):
    """Context threaded through cascading deletion steps."""

    target_entity_id: EntityId = Field(..., description="Tombstoned root row")
    entity_kind: EntityKind = Field(..., description="Kind of the root row")
    project_id: ProjectId | None = Field(
        None, description="Parent project for namespace and language roots"
    )
    workspace_id: WorkspaceId | None = Field(None, description="Owning workspace")
