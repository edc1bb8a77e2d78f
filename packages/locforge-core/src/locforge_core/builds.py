"""Build generation: compile flat translation rows into per-language JSON.

Each target language is one stage. Every page of rows is written as an
intermediate blob at a deterministic key, so a re-delivered step overwrites
the same page instead of accumulating state in step arguments. When a
language runs out of rows its pages are merged in order, unflattened and
stored as the language's artifact; the language is then appended to the
build's completed-languages log and its pages are removed.

A build is atomic across its language snapshot: on any terminal error every
artifact and page written for it is deleted together with the Build record.
"""

from __future__ import annotations

from functools import partial

import orjson

from locforge_core import catalog
from locforge_core.codec import unflatten
from locforge_core.ports.access import AccessPolicyProtocol
from locforge_core.ports.blobs import BlobStoreProtocol
from locforge_core.ports.storage import (
    StorageError,
    StorageErrorCode,
    StorageErrorDetails,
    StorageErrorInfo,
)
from locforge_core.ports.tables import TableStoreProtocol
from locforge_core.ports.workflow import (
    WorkflowError,
    WorkflowErrorCode,
    build_artifact_stored_log,
    build_compensated_log,
    build_orphan_discarded_log,
    workflow_error,
)
from locforge_core.telemetry import WorkflowTelemetry
from locforge_core.workflow import Stage, StageOutcome, WorkflowDriver, new_id
from locforge_schemas.config import BuildConfig
from locforge_schemas.primitives import (
    BlobKey,
    BuildId,
    BuildStatus,
    BuildTag,
    Cursor,
    JsonScalar,
    LanguageCode,
    NamespaceId,
    ProjectId,
    TableName,
    WorkflowKind,
    WorkspaceId,
)
from locforge_schemas.records import (
    ArtifactRecord,
    Build,
    LanguageRef,
    TranslationValue,
)
from locforge_schemas.storage import PageQuery, TableIndex
from locforge_schemas.workflow import BuildContext

DEFAULT_ROW_PAGE_SIZE = 2000


def artifact_key(
    prefix: str, build_id: BuildId, language_code: LanguageCode
) -> BlobKey:
    """Return the deterministic blob key of a language artifact."""
    return f"{prefix}/{build_id}/{language_code}.json"


def partial_key(
    prefix: str, build_id: BuildId, language_code: LanguageCode, page_number: int
) -> BlobKey:
    """Return the deterministic blob key of one intermediate row page."""
    return f"{prefix}/{build_id}/partials/{language_code}/{page_number:06d}.json"


def partials_prefix(prefix: str, build_id: BuildId) -> str:
    """Return the key prefix shared by every intermediate page of a build."""
    return f"{prefix}/{build_id}/partials/"


async def build_blob_keys(
    blobs: BlobStoreProtocol, prefix: str, build: Build
) -> list[BlobKey]:
    """Return every blob key a build may own: artifacts, then stored pages."""
    keys = [artifact.blob_key for artifact in build.artifacts.values()]
    keys.extend(
        key
        for key in (
            artifact_key(prefix, build.id, ref.language_code)
            for ref in build.language_snapshot
        )
        if key not in keys
    )
    keys.extend(await blobs.list_keys(partials_prefix(prefix, build.id)))
    return keys


def remaining_message(remaining: int) -> str:
    """Return the human-readable progress message for a build."""
    return f"Processing... ({remaining} languages remaining)"


class BuildGenerationWorkflow:
    """Workflow definition compiling one build, one language per stage."""

    kind = WorkflowKind.BUILD_GENERATION
    context_type = BuildContext
    recovery_hint = "Fix the source translations, then create the build again."

    def __init__(
        self,
        tables: TableStoreProtocol,
        blobs: BlobStoreProtocol,
        *,
        telemetry: WorkflowTelemetry | None = None,
        config: BuildConfig | None = None,
        page_size: int = DEFAULT_ROW_PAGE_SIZE,
    ) -> None:
        """Initialize the build workflow.

        Args:
            tables: Table store holding builds and translation rows.
            blobs: Blob store receiving pages and artifacts.
            telemetry: Optional log/progress emitter.
            config: Artifact layout settings.
            page_size: Translation rows read per step.
        """
        self._tables = tables
        self._blobs = blobs
        self._telemetry = telemetry or WorkflowTelemetry()
        self._config = config or BuildConfig()
        self._page_size = page_size

    def stages(self, context: BuildContext) -> list[Stage[BuildContext]]:
        """Return one stage per snapshot language, in snapshot order."""
        return [
            Stage(
                name=language.language_code,
                page_size=self._page_size,
                process_page=partial(self._process_page, language),
            )
            for language in context.languages
        ]

    async def is_stale(self, context: BuildContext) -> bool:
        """Return True once the build has reached a terminal status."""
        build = await self._tables.get(TableName.BUILDS, context.build_id, Build)
        return build is not None and build.status in {
            BuildStatus.COMPLETE,
            BuildStatus.FAILED,
        }

    async def on_stage_complete(
        self, stage: Stage[BuildContext], context: BuildContext
    ) -> BuildContext:
        """Assemble and record the artifact of the language that just finished.

        Raises:
            StorageError: If an intermediate page vanished before assembly.
            WorkflowError: If the build was deleted while the step ran.
        """
        language = _find_language(context, stage.name)
        build = await self._require_build(context)
        if language.language_code not in build.completed_languages:
            flat: dict[str, JsonScalar] = {}
            for key in context.partial_keys:
                payload = await self._blobs.get(key)
                if payload is None:
                    raise StorageError(
                        StorageErrorInfo(
                            code=StorageErrorCode.NOT_FOUND,
                            message="Intermediate build page is missing",
                            details=StorageErrorDetails(
                                operation="assemble_artifact", blob_key=key
                            ),
                        )
                    )
                flat.update(orjson.loads(payload))
            document = unflatten(flat)
            option = orjson.OPT_INDENT_2 if self._config.pretty else 0
            data = orjson.dumps(document, option=option)
            key = artifact_key(
                self._config.artifact_prefix, context.build_id, language.language_code
            )
            await self._blobs.put(data, key=key)
            recorded = await self._record_artifact(
                context.build_id, language, key, len(data)
            )
            if recorded is None:
                await self._blobs.delete(key)
                await self._telemetry.emit_log(
                    build_orphan_discarded_log(
                        self._telemetry.now(), context.build_id, key
                    )
                )
                raise workflow_error(
                    WorkflowErrorCode.NOT_FOUND,
                    "Build was deleted during generation",
                    entity_id=context.build_id,
                    stage=stage.name,
                )
            await self._telemetry.emit_log(
                build_artifact_stored_log(
                    self._telemetry.now(),
                    context.build_id,
                    language.language_code,
                    key,
                    len(data),
                )
            )
        for key in context.partial_keys:
            await self._blobs.delete(key)
        return context.model_copy(update={"page_number": 0, "partial_keys": []})

    async def on_complete(self, context: BuildContext) -> None:
        """Mark the build Complete once every snapshot language has an artifact.

        Raises:
            WorkflowError: If the build is gone or languages are missing.
        """
        build = await self._require_build(context)
        missing = [
            code
            for code in context.language_codes()
            if code not in build.completed_languages
        ]
        if missing:
            raise workflow_error(
                WorkflowErrorCode.INVALID_STATE,
                "Build finished with languages still pending",
                entity_id=context.build_id,
                reason=", ".join(missing),
            )
        # Pages rewritten by late duplicate steps after their language finished.
        await self._delete_stored_pages(context.build_id)
        await self._tables.patch(
            TableName.BUILDS,
            context.build_id,
            {
                "status": BuildStatus.COMPLETE,
                "remaining_language_queue": [],
                "status_message": None,
                "updated_at": self._telemetry.now(),
            },
            Build,
        )

    async def on_failure(self, context: BuildContext, error: Exception) -> None:
        """Delete every blob written for the build, then the Build record."""
        build = await self._tables.get(TableName.BUILDS, context.build_id, Build)
        prefix = self._config.artifact_prefix
        keys = [
            artifact_key(prefix, context.build_id, code)
            for code in context.language_codes()
        ]
        if build is not None:
            keys.extend(
                artifact.blob_key
                for artifact in build.artifacts.values()
                if artifact.blob_key not in keys
            )
        completed = set(build.completed_languages) if build is not None else set()
        for code in context.language_codes():
            if code in completed:
                continue
            keys.extend(
                partial_key(prefix, context.build_id, code, page_number)
                for page_number in range(context.page_number + 1)
            )
        keys.extend(key for key in context.partial_keys if key not in keys)
        for key in keys:
            await self._blobs.delete(key)
        keys.extend(await self._delete_stored_pages(context.build_id))
        final_status = BuildStatus.FAILED
        if build is not None:
            final_status = BuildStatus(build.status)
            await self._tables.delete(TableName.BUILDS, context.build_id)
        await self._telemetry.emit_log(
            build_compensated_log(
                self._telemetry.now(), context.build_id, len(keys), final_status
            )
        )

    async def _process_page(
        self,
        language: LanguageRef,
        context: BuildContext,
        cursor: Cursor | None,
        limit: int,
    ) -> StageOutcome[BuildContext]:
        build = await self._require_build(context)
        if language.language_code in build.completed_languages:
            # Late duplicate of a step whose language already has its artifact.
            return StageOutcome(next_cursor=None, is_done=True, context=context)
        if cursor is None:
            await self._tables.patch(
                TableName.BUILDS,
                context.build_id,
                {
                    "status": BuildStatus.RUNNING,
                    "status_message": remaining_message(
                        len(build.remaining_language_queue)
                    ),
                    "updated_at": self._telemetry.now(),
                },
                Build,
            )
        page = await self._tables.page(
            PageQuery(
                table=TableName.TRANSLATION_VALUES,
                index=TableIndex.BY_SCOPE,
                values=[context.project_id, context.namespace_id, language.language_id],
            ),
            cursor,
            limit,
            TranslationValue,
        )
        page_number = context.page_number
        partial_keys = list(context.partial_keys)
        if page.items:
            key = partial_key(
                self._config.artifact_prefix,
                context.build_id,
                language.language_code,
                page_number,
            )
            rows = {row.path: row.leaf_value for row in page.items}
            await self._blobs.put(orjson.dumps(rows), key=key)
            if key not in partial_keys:
                partial_keys.append(key)
            page_number += 1
        return StageOutcome(
            next_cursor=page.next_cursor,
            is_done=page.is_done,
            context=context.model_copy(
                update={"page_number": page_number, "partial_keys": partial_keys}
            ),
            items_processed=len(page.items),
        )

    async def _delete_stored_pages(self, build_id: BuildId) -> list[BlobKey]:
        keys = await self._blobs.list_keys(
            partials_prefix(self._config.artifact_prefix, build_id)
        )
        for key in keys:
            await self._blobs.delete(key)
        return keys

    async def _require_build(self, context: BuildContext) -> Build:
        build = await self._tables.get(TableName.BUILDS, context.build_id, Build)
        if build is None:
            raise workflow_error(
                WorkflowErrorCode.NOT_FOUND,
                "Build no longer exists",
                entity_id=context.build_id,
            )
        return build

    async def _record_artifact(
        self,
        build_id: BuildId,
        language: LanguageRef,
        key: BlobKey,
        byte_size: int,
    ) -> Build | None:
        async with self._tables.transaction():
            build = await self._tables.get(TableName.BUILDS, build_id, Build)
            if build is None:
                return None
            artifacts = dict(build.artifacts)
            artifacts[language.language_code] = ArtifactRecord(
                blob_key=key, byte_size=byte_size
            )
            completed = list(build.completed_languages)
            if language.language_code not in completed:
                completed.append(language.language_code)
            remaining = [
                ref
                for ref in build.language_snapshot
                if ref.language_code not in completed
            ]
            return await self._tables.patch(
                TableName.BUILDS,
                build_id,
                {
                    "artifacts": artifacts,
                    "completed_languages": completed,
                    "remaining_language_queue": remaining,
                    "status_message": remaining_message(len(remaining)),
                    "updated_at": self._telemetry.now(),
                },
                Build,
            )


class BuildService:
    """User-facing build operations; returns before generation runs."""

    def __init__(
        self,
        tables: TableStoreProtocol,
        blobs: BlobStoreProtocol,
        driver: WorkflowDriver[BuildContext],
        *,
        access: AccessPolicyProtocol,
        telemetry: WorkflowTelemetry | None = None,
        config: BuildConfig | None = None,
    ) -> None:
        """Initialize the build service.

        Args:
            tables: Table store.
            blobs: Blob store holding artifacts.
            driver: Driver of the build generation workflow.
            access: Authorization check run once per user action.
            telemetry: Optional log/progress emitter.
            config: Artifact layout settings.
        """
        self._tables = tables
        self._blobs = blobs
        self._driver = driver
        self._access = access
        self._telemetry = telemetry or WorkflowTelemetry()
        self._config = config or BuildConfig()

    async def create_build(
        self,
        workspace_id: WorkspaceId,
        project_id: ProjectId,
        namespace_id: NamespaceId,
        tag: BuildTag,
    ) -> Build:
        """Create a Pending build and kick off its generation.

        The record insert and the kickoff commit together; generation itself
        runs later on the scheduler.

        Args:
            workspace_id: Workspace the caller acts in.
            project_id: Owning project.
            namespace_id: Namespace to compile.
            tag: Build tag, unique within the project.

        Returns:
            Build: The Pending build record.

        Raises:
            WorkflowError: If access is denied, a parent is missing, or the
                tag is taken.
        """
        await self._access.ensure_workspace_access(workspace_id)
        async with self._tables.transaction():
            await self._require_project(workspace_id, project_id)
            namespace = await catalog.get_active_namespace(self._tables, namespace_id)
            if namespace is None or namespace.project_id != project_id:
                raise workflow_error(
                    WorkflowErrorCode.NOT_FOUND,
                    "Namespace not found",
                    entity_kind="namespace",
                    entity_id=namespace_id,
                )
            await self._ensure_tag_free(project_id, tag)
            snapshot = [
                LanguageRef(
                    language_id=language.id, language_code=language.language_code
                )
                for language in await catalog.list_active_languages(
                    self._tables, project_id
                )
            ]
            build = Build(
                id=new_id(),
                project_id=project_id,
                namespace_id=namespace_id,
                namespace_name=namespace.name,
                tag=tag,
                status=BuildStatus.PENDING,
                language_snapshot=snapshot,
                remaining_language_queue=list(snapshot),
                status_message=remaining_message(len(snapshot)),
                created_at=self._telemetry.now(),
            )
            await self._tables.insert(TableName.BUILDS, build)
            context = BuildContext(
                build_id=build.id,
                project_id=project_id,
                namespace_id=namespace_id,
                languages=list(snapshot),
            )
            await self._kickoff(context)
        return build

    async def rename_build(
        self, workspace_id: WorkspaceId, build_id: BuildId, tag: BuildTag
    ) -> Build:
        """Change the tag of a build.

        Raises:
            WorkflowError: If the build is missing or the tag is taken.
        """
        await self._access.ensure_workspace_access(workspace_id)
        async with self._tables.transaction():
            build = await self._require_build(workspace_id, build_id)
            if build.tag == tag:
                return build
            await self._ensure_tag_free(build.project_id, tag)
            updated = await self._tables.patch(
                TableName.BUILDS,
                build_id,
                {"tag": tag, "updated_at": self._telemetry.now()},
                Build,
            )
        if updated is None:
            raise _build_not_found(build_id)
        return updated

    async def delete_build(self, workspace_id: WorkspaceId, build_id: BuildId) -> None:
        """Delete a build record, then its artifacts and stored pages.

        Raises:
            WorkflowError: If the build is missing.
        """
        await self._access.ensure_workspace_access(workspace_id)
        build = await self._require_build(workspace_id, build_id)
        await self._tables.delete(TableName.BUILDS, build_id)
        keys = await build_blob_keys(
            self._blobs, self._config.artifact_prefix, build
        )
        for key in keys:
            await self._blobs.delete(key)

    async def get_build(self, build_id: BuildId) -> Build | None:
        """Load a build unless its project is tombstoned."""
        build = await self._tables.get(TableName.BUILDS, build_id, Build)
        if build is None:
            return None
        if await catalog.get_active_project(self._tables, build.project_id) is None:
            return None
        return build

    async def list_builds(
        self,
        workspace_id: WorkspaceId,
        project_id: ProjectId,
        *,
        status: BuildStatus | None = None,
    ) -> list[Build]:
        """List a project's builds ordered by tag.

        Raises:
            WorkflowError: If the project is missing or tombstoned.
        """
        await self._access.ensure_workspace_access(workspace_id)
        await self._require_project(workspace_id, project_id)
        return await catalog.list_builds(self._tables, project_id, status=status)

    async def _kickoff(self, context: BuildContext) -> None:
        await self._driver.start(context, workflow_id=context.build_id)

    async def _require_project(
        self, workspace_id: WorkspaceId, project_id: ProjectId
    ) -> None:
        project = await catalog.get_active_project(self._tables, project_id)
        if project is None or project.workspace_id != workspace_id:
            raise workflow_error(
                WorkflowErrorCode.NOT_FOUND,
                "Project not found",
                entity_kind="project",
                entity_id=project_id,
            )

    async def _require_build(
        self, workspace_id: WorkspaceId, build_id: BuildId
    ) -> Build:
        build = await self.get_build(build_id)
        if build is None:
            raise _build_not_found(build_id)
        await self._require_project(workspace_id, build.project_id)
        return build

    async def _ensure_tag_free(self, project_id: ProjectId, tag: BuildTag) -> None:
        existing = await self._tables.first(
            PageQuery(
                table=TableName.BUILDS,
                index=TableIndex.BY_TAG,
                values=[project_id, tag],
            ),
            Build,
        )
        if existing is not None:
            raise workflow_error(
                WorkflowErrorCode.CONFLICT,
                f"Build tag {tag!r} already exists in project",
                field="tag",
                provided=tag,
            )


def _find_language(context: BuildContext, language_code: LanguageCode) -> LanguageRef:
    for language in context.languages:
        if language.language_code == language_code:
            return language
    raise workflow_error(
        WorkflowErrorCode.INVALID_STAGE,
        f"Language {language_code} is not part of the build snapshot",
        stage=language_code,
    )


def _build_not_found(build_id: BuildId) -> WorkflowError:
    return workflow_error(
        WorkflowErrorCode.NOT_FOUND, "Build not found", entity_id=build_id
    )
