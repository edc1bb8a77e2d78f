"""Cascading deletion of aggregate roots and their dependents.

Deleting a root happens in two parts. The synchronous part tombstones the root,
adjusts denormalized counters on its ancestors and kicks off the workflow, all
in one transaction. The workflow then walks a fixed, kind-specific list of
dependent tables, leaves before parents, deleting (or patching) one bounded
page per step. The root row itself goes last.

Deletion is never rolled back. A failed workflow leaves the root tombstoned
and invisible; an operator resumes it from a stage with `DeletionService.resume`.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from enum import StrEnum

from locforge_core import catalog
from locforge_core.builds import build_blob_keys
from locforge_core.ports.access import AccessPolicyProtocol
from locforge_core.ports.blobs import BlobStoreProtocol
from locforge_core.ports.storage import StorageError
from locforge_core.ports.tables import RecordT, TableStoreProtocol
from locforge_core.ports.workflow import (
    WorkflowError,
    WorkflowErrorCode,
    build_blob_missing_log,
    build_fanned_out_log,
    build_tombstoned_log,
    workflow_error,
)
from locforge_core.telemetry import WorkflowTelemetry
from locforge_core.workflow import (
    PageProcessor,
    Stage,
    StageOutcome,
    WorkflowDriver,
)
from locforge_schemas.config import BuildConfig, PageSizeConfig
from locforge_schemas.primitives import (
    DELETION_WORKFLOW_KINDS,
    BlobKey,
    Cursor,
    EntityKind,
    EntityStatus,
    LanguageId,
    NamespaceId,
    ProjectId,
    TableName,
    WorkflowId,
    WorkflowKind,
    WorkspaceId,
)
from locforge_schemas.records import (
    Build,
    GlossaryTerm,
    Language,
    Namespace,
    Project,
    Release,
    ReleaseBuildConnection,
    Screenshot,
    ScreenshotContainer,
    ScreenshotKeyMapping,
    TranslationKey,
    TranslationValue,
    Workspace,
)
from locforge_schemas.storage import PageQuery, TableIndex
from locforge_schemas.workflow import DeletionContext


class DeletionStage(StrEnum):
    """Stages of the cascading deletion workflows."""

    VALUES = "values"
    KEYS = "keys"
    MAPPINGS = "mappings"
    BUILDS = "builds"
    GLOSSARY_TERMS = "glossary_terms"
    LANGUAGES = "languages"
    NAMESPACES = "namespaces"
    RELEASES = "releases"
    SCREENSHOTS = "screenshots"
    PROJECTS = "projects"
    FINAL = "final"


DELETION_STAGES: dict[EntityKind, list[DeletionStage]] = {
    EntityKind.NAMESPACE: [
        DeletionStage.VALUES,
        DeletionStage.KEYS,
        DeletionStage.MAPPINGS,
        DeletionStage.FINAL,
    ],
    EntityKind.PROJECT: [
        DeletionStage.VALUES,
        DeletionStage.KEYS,
        DeletionStage.BUILDS,
        DeletionStage.GLOSSARY_TERMS,
        DeletionStage.LANGUAGES,
        DeletionStage.NAMESPACES,
        DeletionStage.RELEASES,
        DeletionStage.SCREENSHOTS,
        DeletionStage.FINAL,
    ],
    EntityKind.LANGUAGE: [
        DeletionStage.VALUES,
        DeletionStage.KEYS,
        DeletionStage.GLOSSARY_TERMS,
        DeletionStage.FINAL,
    ],
    EntityKind.WORKSPACE: [DeletionStage.PROJECTS, DeletionStage.FINAL],
}

_ROOT_TABLES: dict[EntityKind, TableName] = {
    EntityKind.WORKSPACE: TableName.WORKSPACES,
    EntityKind.PROJECT: TableName.PROJECTS,
    EntityKind.NAMESPACE: TableName.NAMESPACES,
    EntityKind.LANGUAGE: TableName.LANGUAGES,
}

# Inner collections swept whole for one parent row (connections of a release,
# containers and key mappings of a screenshot) are small; this bounds each read.
_CHILD_PAGE_SIZE = 100

type RowEffect[RecordT] = Callable[[RecordT, DeletionContext], Awaitable[None]]
type ChildDeletionStarter = Callable[
    [DeletionContext, WorkflowId], Awaitable[None]
]


class CascadingDeletionWorkflow:
    """Workflow definition deleting one kind of aggregate root."""

    context_type = DeletionContext
    recovery_hint = "Fix the cause, then resume the deletion from the failed stage."

    def __init__(
        self,
        entity_kind: EntityKind,
        tables: TableStoreProtocol,
        blobs: BlobStoreProtocol,
        *,
        telemetry: WorkflowTelemetry | None = None,
        page_sizes: PageSizeConfig | None = None,
        build_config: BuildConfig | None = None,
        start_child: ChildDeletionStarter | None = None,
    ) -> None:
        """Initialize the deletion workflow.

        Args:
            entity_kind: Kind of root this workflow deletes.
            tables: Table store.
            blobs: Blob store holding build artifacts and screenshots.
            telemetry: Optional log/progress emitter.
            page_sizes: Page size per scanned table.
            build_config: Artifact layout, used to find build blobs.
            start_child: Starts one project deletion (workspace roots only).
        """
        self.entity_kind = entity_kind
        self.kind: WorkflowKind = DELETION_WORKFLOW_KINDS[entity_kind]
        self._tables = tables
        self._blobs = blobs
        self._telemetry = telemetry or WorkflowTelemetry()
        self._page_sizes = page_sizes or PageSizeConfig()
        self._build_config = build_config or BuildConfig()
        self._start_child = start_child

    def stages(self, context: DeletionContext) -> list[Stage[DeletionContext]]:
        """Return the fixed stage list for the root kind."""
        return [
            self._build_stage(stage) for stage in DELETION_STAGES[self.entity_kind]
        ]

    async def is_stale(self, context: DeletionContext) -> bool:
        """Never stale: every deletion effect tolerates re-application."""
        return False

    async def on_stage_complete(
        self, stage: Stage[DeletionContext], context: DeletionContext
    ) -> DeletionContext:
        """Nothing to finish between deletion stages."""
        return context

    async def on_complete(self, context: DeletionContext) -> None:
        """Nothing left once the root row is gone."""
        return None

    async def on_failure(self, context: DeletionContext, error: Exception) -> None:
        """Leave the root tombstoned; deletion is never rolled back."""
        return None

    def _build_stage(self, stage: DeletionStage) -> Stage[DeletionContext]:
        sizes = self._page_sizes
        language_root = self.entity_kind == EntityKind.LANGUAGE
        processors: dict[DeletionStage, tuple[int, PageProcessor[DeletionContext]]]
        processors = {
            DeletionStage.VALUES: (
                sizes.language_values if language_root else sizes.values,
                self._delete_values,
            ),
            DeletionStage.KEYS: (
                sizes.language_keys if language_root else sizes.keys,
                self._patch_keys if language_root else self._delete_keys,
            ),
            DeletionStage.MAPPINGS: (sizes.mappings, self._delete_mappings),
            DeletionStage.BUILDS: (sizes.builds, self._delete_builds),
            DeletionStage.GLOSSARY_TERMS: (
                sizes.language_glossary_terms
                if language_root
                else sizes.glossary_terms,
                self._patch_glossary_terms
                if language_root
                else self._delete_glossary_terms,
            ),
            DeletionStage.LANGUAGES: (sizes.languages, self._delete_languages),
            DeletionStage.NAMESPACES: (sizes.namespaces, self._delete_namespaces),
            DeletionStage.RELEASES: (sizes.releases, self._delete_releases),
            DeletionStage.SCREENSHOTS: (sizes.screenshots, self._delete_screenshots),
            DeletionStage.PROJECTS: (sizes.projects, self._fan_out_projects),
            DeletionStage.FINAL: (1, self._delete_root),
        }
        page_size, process_page = processors[stage]
        return Stage(name=stage.value, page_size=page_size, process_page=process_page)

    async def _delete_values(
        self, context: DeletionContext, cursor: Cursor | None, limit: int
    ) -> StageOutcome[DeletionContext]:
        if self.entity_kind == EntityKind.LANGUAGE:
            query = PageQuery(
                table=TableName.TRANSLATION_VALUES,
                index=TableIndex.BY_LANGUAGE,
                values=[_project_id(context), context.target_entity_id],
            )
        else:
            query = PageQuery(
                table=TableName.TRANSLATION_VALUES,
                index=TableIndex.BY_SCOPE,
                values=self._scope_prefix(context),
            )
        return await self._delete_page(
            context, query, cursor, limit, TranslationValue
        )

    async def _delete_keys(
        self, context: DeletionContext, cursor: Cursor | None, limit: int
    ) -> StageOutcome[DeletionContext]:
        query = PageQuery(
            table=TableName.TRANSLATION_KEYS,
            index=TableIndex.BY_PROJECT,
            values=self._scope_prefix(context),
        )
        return await self._delete_page(context, query, cursor, limit, TranslationKey)

    async def _patch_keys(
        self, context: DeletionContext, cursor: Cursor | None, limit: int
    ) -> StageOutcome[DeletionContext]:
        language_id = context.target_entity_id
        page = await self._tables.page(
            PageQuery(
                table=TableName.TRANSLATION_KEYS,
                index=TableIndex.BY_PROJECT,
                values=[_project_id(context)],
            ),
            cursor,
            limit,
            TranslationKey,
        )
        for row in page.items:
            if language_id not in row.values:
                continue
            values = {
                key: value for key, value in row.values.items() if key != language_id
            }
            await self._tables.patch(
                TableName.TRANSLATION_KEYS, row.id, {"values": values}, TranslationKey
            )
        return _outcome(context, page.next_cursor, page.is_done, len(page.items))

    async def _delete_mappings(
        self, context: DeletionContext, cursor: Cursor | None, limit: int
    ) -> StageOutcome[DeletionContext]:
        query = PageQuery(
            table=TableName.SCREENSHOT_KEY_MAPPINGS,
            index=TableIndex.BY_PROJECT,
            values=self._scope_prefix(context),
        )
        return await self._delete_page(
            context, query, cursor, limit, ScreenshotKeyMapping
        )

    async def _delete_builds(
        self, context: DeletionContext, cursor: Cursor | None, limit: int
    ) -> StageOutcome[DeletionContext]:
        query = PageQuery(
            table=TableName.BUILDS,
            index=TableIndex.BY_TAG,
            values=[_project_id(context)],
        )
        return await self._delete_page(
            context, query, cursor, limit, Build, effect=self._delete_build_blobs
        )

    async def _delete_glossary_terms(
        self, context: DeletionContext, cursor: Cursor | None, limit: int
    ) -> StageOutcome[DeletionContext]:
        query = PageQuery(
            table=TableName.GLOSSARY_TERMS,
            index=TableIndex.BY_PROJECT,
            values=[_project_id(context)],
        )
        return await self._delete_page(context, query, cursor, limit, GlossaryTerm)

    async def _patch_glossary_terms(
        self, context: DeletionContext, cursor: Cursor | None, limit: int
    ) -> StageOutcome[DeletionContext]:
        language_id = context.target_entity_id
        page = await self._tables.page(
            PageQuery(
                table=TableName.GLOSSARY_TERMS,
                index=TableIndex.BY_PROJECT,
                values=[_project_id(context)],
            ),
            cursor,
            limit,
            GlossaryTerm,
        )
        for row in page.items:
            if language_id not in row.translations:
                continue
            translations = {
                key: value
                for key, value in row.translations.items()
                if key != language_id
            }
            await self._tables.patch(
                TableName.GLOSSARY_TERMS,
                row.id,
                {"translations": translations},
                GlossaryTerm,
            )
        return _outcome(context, page.next_cursor, page.is_done, len(page.items))

    async def _delete_languages(
        self, context: DeletionContext, cursor: Cursor | None, limit: int
    ) -> StageOutcome[DeletionContext]:
        query = PageQuery(
            table=TableName.LANGUAGES,
            index=TableIndex.BY_PROJECT,
            values=[_project_id(context)],
        )
        return await self._delete_page(context, query, cursor, limit, Language)

    async def _delete_namespaces(
        self, context: DeletionContext, cursor: Cursor | None, limit: int
    ) -> StageOutcome[DeletionContext]:
        query = PageQuery(
            table=TableName.NAMESPACES,
            index=TableIndex.BY_PROJECT,
            values=[_project_id(context)],
        )
        return await self._delete_page(context, query, cursor, limit, Namespace)

    async def _delete_releases(
        self, context: DeletionContext, cursor: Cursor | None, limit: int
    ) -> StageOutcome[DeletionContext]:
        query = PageQuery(
            table=TableName.RELEASES,
            index=TableIndex.BY_TAG,
            values=[_project_id(context)],
        )
        return await self._delete_page(
            context, query, cursor, limit, Release, effect=self._delete_connections
        )

    async def _delete_screenshots(
        self, context: DeletionContext, cursor: Cursor | None, limit: int
    ) -> StageOutcome[DeletionContext]:
        query = PageQuery(
            table=TableName.SCREENSHOTS,
            index=TableIndex.BY_PROJECT,
            values=[_project_id(context)],
        )
        return await self._delete_page(
            context, query, cursor, limit, Screenshot, effect=self._delete_screenshot
        )

    async def _fan_out_projects(
        self, context: DeletionContext, cursor: Cursor | None, limit: int
    ) -> StageOutcome[DeletionContext]:
        if self._start_child is None:
            raise workflow_error(
                WorkflowErrorCode.INVALID_STATE,
                "Workspace deletion has no project deletion workflow",
                stage=DeletionStage.PROJECTS.value,
            )
        workspace_id = context.target_entity_id
        page = await self._tables.page(
            PageQuery(
                table=TableName.PROJECTS,
                index=TableIndex.BY_WORKSPACE,
                values=[workspace_id],
            ),
            cursor,
            limit,
            Project,
        )
        children: list[WorkflowId] = []
        for project in page.items:
            # A tombstoned project already has a deletion workflow of its own.
            if project.status == EntityStatus.DELETING:
                continue
            child = DeletionContext(
                target_entity_id=project.id,
                entity_kind=EntityKind.PROJECT,
                project_id=project.id,
                workspace_id=workspace_id,
            )
            async with self._tables.transaction():
                await self._tables.patch(
                    TableName.PROJECTS,
                    project.id,
                    {"status": EntityStatus.DELETING},
                    Project,
                )
                child_workflow_id = project.id
                await self._start_child(child, child_workflow_id)
            children.append(child_workflow_id)
        if children:
            await self._telemetry.emit_log(
                build_fanned_out_log(
                    self._telemetry.now(),
                    workspace_id,
                    DeletionStage.PROJECTS.value,
                    children,
                )
            )
        return _outcome(context, page.next_cursor, page.is_done, len(page.items))

    async def _delete_root(
        self, context: DeletionContext, cursor: Cursor | None, limit: int
    ) -> StageOutcome[DeletionContext]:
        removed = await self._tables.delete(
            _ROOT_TABLES[self.entity_kind], context.target_entity_id
        )
        return _outcome(context, None, True, 1 if removed else 0)

    async def _delete_page(
        self,
        context: DeletionContext,
        query: PageQuery,
        cursor: Cursor | None,
        limit: int,
        model: type[RecordT],
        *,
        effect: RowEffect[RecordT] | None = None,
    ) -> StageOutcome[DeletionContext]:
        page = await self._tables.page(query, cursor, limit, model)
        for row in page.items:
            if effect is not None:
                await effect(row, context)
            await self._tables.delete(query.table, row.id)
        return _outcome(context, page.next_cursor, page.is_done, len(page.items))

    async def _delete_build_blobs(self, build: Build, context: DeletionContext) -> None:
        keys = await build_blob_keys(
            self._blobs, self._build_config.artifact_prefix, build
        )
        for key in keys:
            await self._delete_blob(key, context, DeletionStage.BUILDS)

    async def _delete_connections(
        self, release: Release, context: DeletionContext
    ) -> None:
        await self._sweep_children(
            PageQuery(
                table=TableName.RELEASE_BUILD_CONNECTIONS,
                index=TableIndex.BY_RELEASE,
                values=[release.id],
            ),
            ReleaseBuildConnection,
        )

    async def _delete_screenshot(
        self, screenshot: Screenshot, context: DeletionContext
    ) -> None:
        if screenshot.image_blob_key is not None:
            await self._delete_blob(
                screenshot.image_blob_key, context, DeletionStage.SCREENSHOTS
            )
        await self._sweep_children(
            PageQuery(
                table=TableName.SCREENSHOT_CONTAINERS,
                index=TableIndex.BY_SCREENSHOT,
                values=[screenshot.id],
            ),
            ScreenshotContainer,
        )
        await self._sweep_children(
            PageQuery(
                table=TableName.SCREENSHOT_KEY_MAPPINGS,
                index=TableIndex.BY_SCREENSHOT,
                values=[screenshot.id],
            ),
            ScreenshotKeyMapping,
        )

    async def _sweep_children(self, query: PageQuery, model: type[RecordT]) -> None:
        while True:
            page = await self._tables.page(query, None, _CHILD_PAGE_SIZE, model)
            for row in page.items:
                await self._tables.delete(query.table, row.id)
            if page.is_done:
                return

    async def _delete_blob(
        self, key: BlobKey, context: DeletionContext, stage: DeletionStage
    ) -> None:
        # The row goes regardless; readers treat a missing blob as absent content.
        try:
            await self._blobs.delete(key)
        except StorageError as exc:
            await self._telemetry.emit_log(
                build_blob_missing_log(
                    self._telemetry.now(),
                    context.target_entity_id,
                    self.kind,
                    stage.value,
                    key,
                    exc.info.message,
                )
            )

    def _scope_prefix(self, context: DeletionContext) -> list[str]:
        if self.entity_kind == EntityKind.NAMESPACE:
            return [_project_id(context), context.target_entity_id]
        return [_project_id(context)]


class DeletionService:
    """User-facing deletion operations; returns once the root is tombstoned."""

    def __init__(
        self,
        tables: TableStoreProtocol,
        drivers: dict[EntityKind, WorkflowDriver[DeletionContext]],
        *,
        access: AccessPolicyProtocol,
        telemetry: WorkflowTelemetry | None = None,
    ) -> None:
        """Initialize the deletion service.

        Args:
            tables: Table store.
            drivers: Deletion workflow driver per root kind.
            access: Authorization check run once per user action.
            telemetry: Optional log/progress emitter.
        """
        self._tables = tables
        self._drivers = drivers
        self._access = access
        self._telemetry = telemetry or WorkflowTelemetry()

    async def delete_namespace(
        self,
        workspace_id: WorkspaceId,
        project_id: ProjectId,
        namespace_id: NamespaceId,
    ) -> WorkflowId:
        """Tombstone a namespace and start its cascading deletion.

        Returns:
            WorkflowId: Deletion workflow identifier.

        Raises:
            WorkflowError: If access is denied or the namespace is not visible.
        """
        await self._access.ensure_workspace_access(workspace_id)
        context = DeletionContext(
            target_entity_id=namespace_id,
            entity_kind=EntityKind.NAMESPACE,
            project_id=project_id,
            workspace_id=workspace_id,
        )
        workflow_id = context.target_entity_id
        async with self._tables.transaction():
            project = await self._require_project(workspace_id, project_id)
            namespace = await catalog.get_active_namespace(self._tables, namespace_id)
            if namespace is None or namespace.project_id != project_id:
                raise _not_found(EntityKind.NAMESPACE, namespace_id)
            await self._tombstone(TableName.NAMESPACES, namespace_id, Namespace)
            removed_keys = namespace.translation_key_count
            await self._tables.patch(
                TableName.PROJECTS,
                project_id,
                {
                    "translation_key_count": max(
                        0, project.translation_key_count - removed_keys
                    )
                },
                Project,
            )
            await self._decrement_workspace(workspace_id, removed_keys)
            await self._kickoff(context, workflow_id)
        return workflow_id

    async def delete_project(
        self, workspace_id: WorkspaceId, project_id: ProjectId
    ) -> WorkflowId:
        """Tombstone a project and start its cascading deletion.

        Returns:
            WorkflowId: Deletion workflow identifier.

        Raises:
            WorkflowError: If access is denied or the project is not visible.
        """
        await self._access.ensure_workspace_access(workspace_id)
        context = DeletionContext(
            target_entity_id=project_id,
            entity_kind=EntityKind.PROJECT,
            project_id=project_id,
            workspace_id=workspace_id,
        )
        workflow_id = context.target_entity_id
        async with self._tables.transaction():
            project = await self._require_project(workspace_id, project_id)
            await self._tombstone(TableName.PROJECTS, project_id, Project)
            await self._decrement_workspace(
                workspace_id, project.translation_key_count
            )
            await self._kickoff(context, workflow_id)
        return workflow_id

    async def delete_language(
        self,
        workspace_id: WorkspaceId,
        project_id: ProjectId,
        language_id: LanguageId,
    ) -> WorkflowId:
        """Tombstone a language and start its cascading deletion.

        The primary language can only go once it is the last active language;
        deleting it then clears the project's primary language.

        Returns:
            WorkflowId: Deletion workflow identifier.

        Raises:
            WorkflowError: If access is denied, the language is not visible, or
                it is the primary language while others remain.
        """
        await self._access.ensure_workspace_access(workspace_id)
        context = DeletionContext(
            target_entity_id=language_id,
            entity_kind=EntityKind.LANGUAGE,
            project_id=project_id,
            workspace_id=workspace_id,
        )
        workflow_id = context.target_entity_id
        async with self._tables.transaction():
            project = await self._require_project(workspace_id, project_id)
            language = await catalog.get_active_language(self._tables, language_id)
            if language is None or language.project_id != project_id:
                raise _not_found(EntityKind.LANGUAGE, language_id)
            if project.primary_language_id == language_id:
                others = [
                    row
                    for row in await catalog.list_active_languages(
                        self._tables, project_id
                    )
                    if row.id != language_id
                ]
                if others:
                    raise workflow_error(
                        WorkflowErrorCode.CONFLICT,
                        "Cannot delete the primary language while other "
                        "languages exist",
                        entity_kind=EntityKind.LANGUAGE,
                        entity_id=language_id,
                    )
                await self._tables.patch(
                    TableName.PROJECTS,
                    project_id,
                    {"primary_language_id": None},
                    Project,
                )
            await self._tombstone(TableName.LANGUAGES, language_id, Language)
            await self._kickoff(context, workflow_id)
        return workflow_id

    async def delete_workspace(self, workspace_id: WorkspaceId) -> WorkflowId:
        """Tombstone a workspace and start deleting its projects.

        Returns:
            WorkflowId: Deletion workflow identifier.

        Raises:
            WorkflowError: If access is denied or the workspace is not visible.
        """
        await self._access.ensure_workspace_access(workspace_id)
        context = DeletionContext(
            target_entity_id=workspace_id,
            entity_kind=EntityKind.WORKSPACE,
            workspace_id=workspace_id,
        )
        workflow_id = context.target_entity_id
        async with self._tables.transaction():
            if await catalog.get_active_workspace(self._tables, workspace_id) is None:
                raise _not_found(EntityKind.WORKSPACE, workspace_id)
            await self._tombstone(TableName.WORKSPACES, workspace_id, Workspace)
            await self._kickoff(context, workflow_id)
        return workflow_id

    async def resume(
        self,
        context: DeletionContext,
        stage: DeletionStage,
        *,
        workflow_id: WorkflowId | None = None,
    ) -> WorkflowId:
        """Re-run a stalled deletion from the start of a stage.

        Args:
            context: Context of the stalled deletion.
            stage: Stage to restart from (cursor reset to null).
            workflow_id: Identifier of the stalled workflow; defaults to the
                root row id, which every deletion workflow is started under.

        Returns:
            WorkflowId: Workflow identifier of the resumed chain.
        """
        driver = self._drivers[EntityKind(context.entity_kind)]
        return await driver.resume(
            context, stage.value, workflow_id=workflow_id or context.target_entity_id
        )

    async def _kickoff(self, context: DeletionContext, workflow_id: WorkflowId) -> None:
        entity_kind = EntityKind(context.entity_kind)
        driver = self._drivers[entity_kind]
        await self._telemetry.emit_log(
            build_tombstoned_log(
                self._telemetry.now(),
                workflow_id,
                driver.kind,
                entity_kind,
                context.target_entity_id,
            )
        )
        await driver.start(context, workflow_id=workflow_id)

    async def _require_project(
        self, workspace_id: WorkspaceId, project_id: ProjectId
    ) -> Project:
        project = await catalog.get_active_project(self._tables, project_id)
        if project is None or project.workspace_id != workspace_id:
            raise _not_found(EntityKind.PROJECT, project_id)
        return project

    async def _tombstone(
        self, table: TableName, record_id: str, model: type[RecordT]
    ) -> None:
        await self._tables.patch(
            table, record_id, {"status": EntityStatus.DELETING}, model
        )

    async def _decrement_workspace(
        self, workspace_id: WorkspaceId, amount: int
    ) -> None:
        workspace = await self._tables.get(
            TableName.WORKSPACES, workspace_id, Workspace
        )
        if workspace is None or amount == 0:
            return
        await self._tables.patch(
            TableName.WORKSPACES,
            workspace_id,
            {
                "translation_key_count": max(
                    0, workspace.translation_key_count - amount
                )
            },
            Workspace,
        )


def _project_id(context: DeletionContext) -> ProjectId:
    if context.project_id is None:
        raise workflow_error(
            WorkflowErrorCode.INVALID_STATE,
            "Deletion context is missing its project",
            entity_id=context.target_entity_id,
        )
    return context.project_id


def _outcome(
    context: DeletionContext,
    next_cursor: Cursor | None,
    is_done: bool,
    items_processed: int,
) -> StageOutcome[DeletionContext]:
    return StageOutcome(
        next_cursor=next_cursor,
        is_done=is_done,
        context=context,
        items_processed=items_processed,
    )


def _not_found(entity_kind: EntityKind, entity_id: str) -> WorkflowError:
    return workflow_error(
        WorkflowErrorCode.NOT_FOUND,
        f"{entity_kind.value.capitalize()} not found",
        entity_kind=entity_kind,
        entity_id=entity_id,
    )
