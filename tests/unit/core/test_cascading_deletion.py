"""Unit tests for cascading deletion workflows and the deletion service."""

from __future__ import annotations

import asyncio

import pytest

from locforge_core import catalog
from locforge_core.deletion import DELETION_STAGES, DeletionStage
from locforge_core.ports.access import StaticAccessPolicy
from locforge_core.ports.storage import (
    StorageError,
    StorageErrorCode,
    StorageErrorInfo,
)
from locforge_core.ports.tables import RecordT
from locforge_core.ports.workflow import (
    TransientError,
    WorkflowError,
    WorkflowErrorCode,
)
from locforge_core.telemetry import WorkflowTelemetry
from locforge_io.blobs import InMemoryBlobStore
from locforge_io.scheduling import InMemoryScheduler
from locforge_io.storage import InMemoryLogSink
from locforge_io.tables import InMemoryTableStore
from locforge_schemas.primitives import (
    Cursor,
    EntityKind,
    EntityStatus,
    TableName,
)
from locforge_schemas.records import (
    GlossaryTerm,
    Namespace,
    Project,
    TranslationKey,
    Workspace,
)
from locforge_schemas.storage import Page, PageQuery
from locforge_schemas.workflow import DeletionContext
from tests.helpers.builders import (
    add_bulk_values,
    add_complete_build,
    add_glossary_term,
    add_namespace,
    add_release,
    add_screenshot,
    add_translations,
    seed_project,
)
from tests.helpers.engine import make_engine
from tests.helpers.scheduling import FlakyScheduler

EN = {"menu.start": "Start", "menu.quit": "Quit"}
FR = {"menu.start": "Démarrer", "menu.quit": "Quitter"}


class _FlakyTableStore(InMemoryTableStore):
    """Table store whose scans of one table fail until healed."""

    def __init__(self, failing_table: TableName) -> None:
        super().__init__()
        self.failing_table: TableName | None = failing_table

    async def page(
        self,
        query: PageQuery,
        cursor: Cursor | None,
        limit: int,
        model: type[RecordT],
    ) -> Page[RecordT]:
        if query.table == self.failing_table:
            raise StorageError(
                StorageErrorInfo(
                    code=StorageErrorCode.IO_ERROR, message="replica unavailable"
                )
            )
        return await super().page(query, cursor, limit, model)


class _UndeletableBlobStore(InMemoryBlobStore):
    async def delete(self, key: str) -> None:
        raise StorageError(
            StorageErrorInfo(code=StorageErrorCode.IO_ERROR, message="read-only")
        )


def _page_log(log_sink: InMemoryLogSink, workflow_id: str) -> list[tuple[str, int]]:
    return [
        (entry.stage or "", int(entry.data["items_processed"]))
        for entry in log_sink.entries
        if entry.workflow_id == workflow_id and entry.event == "stage_page_processed"
    ]


def _completed_stages(log_sink: InMemoryLogSink, workflow_id: str) -> list[str]:
    return [
        entry.stage or ""
        for entry in log_sink.entries
        if entry.workflow_id == workflow_id and entry.event == "stage_completed"
    ]


def test_namespace_values_are_deleted_one_page_per_step(
    tables: InMemoryTableStore,
    blobs: InMemoryBlobStore,
    scheduler: InMemoryScheduler,
    telemetry: WorkflowTelemetry,
    log_sink: InMemoryLogSink,
) -> None:
    """250 values at 100 per page take three steps before keys start."""
    engine = make_engine(tables, blobs, scheduler, telemetry, values=100)

    async def run() -> tuple[str, int, Namespace | None]:
        seeded = await seed_project(tables, language_codes=("en",))
        await add_bulk_values(tables, seeded, "en", 250)
        workflow_id = await engine.deletions.delete_namespace(
            seeded.workspace.id, seeded.project.id, seeded.namespace.id
        )
        await scheduler.run_until_idle()
        return (
            workflow_id,
            await tables.count(TableName.TRANSLATION_VALUES),
            await tables.get(TableName.NAMESPACES, seeded.namespace.id, Namespace),
        )

    workflow_id, remaining_values, namespace = asyncio.run(run())

    assert _page_log(log_sink, workflow_id) == [
        ("values", 100),
        ("values", 100),
        ("values", 50),
        ("keys", 0),
        ("mappings", 0),
        ("final", 1),
    ]
    assert remaining_values == 0
    assert namespace is None
    assert "deletion_tombstoned" in log_sink.events(workflow_id)
    assert log_sink.events(workflow_id)[-1] == "workflow_completed"


def test_namespace_deletion_keeps_sibling_namespaces(
    tables: InMemoryTableStore,
    blobs: InMemoryBlobStore,
    scheduler: InMemoryScheduler,
    telemetry: WorkflowTelemetry,
) -> None:
    """Only rows of the deleted namespace go."""
    engine = make_engine(tables, blobs, scheduler, telemetry)

    async def run() -> tuple[int, int, int]:
        seeded = await seed_project(tables)
        menus = await add_namespace(tables, seeded.project, "menus")
        common_keys = await add_translations(tables, seeded, {"en": EN, "fr": FR})
        await add_translations(
            tables, seeded, {"en": {"title": "Menu"}}, namespace=menus
        )
        await add_screenshot(tables, blobs, seeded, "title.png", common_keys)
        await engine.deletions.delete_namespace(
            seeded.workspace.id, seeded.project.id, seeded.namespace.id
        )
        await scheduler.run_until_idle()
        return (
            await tables.count(TableName.TRANSLATION_VALUES),
            await tables.count(TableName.TRANSLATION_KEYS),
            await tables.count(TableName.SCREENSHOT_KEY_MAPPINGS),
        )

    values, keys, mappings = asyncio.run(run())

    assert values == 1
    assert keys == 1
    assert mappings == 0


def test_duplicate_final_step_is_harmless(
    tables: InMemoryTableStore,
    blobs: InMemoryBlobStore,
    telemetry: WorkflowTelemetry,
    log_sink: InMemoryLogSink,
) -> None:
    """Re-delivering the final stage deletes nothing and raises nothing."""
    scheduler = InMemoryScheduler(
        telemetry=telemetry,
        duplicate=lambda step_name, args: '"stage":"final"' in args,
    )
    engine = make_engine(tables, blobs, scheduler, telemetry)

    async def run() -> tuple[str, int]:
        seeded = await seed_project(tables)
        await add_translations(tables, seeded, {"en": EN})
        workflow_id = await engine.deletions.delete_namespace(
            seeded.workspace.id, seeded.project.id, seeded.namespace.id
        )
        await scheduler.run_until_idle()
        return workflow_id, await tables.count(TableName.NAMESPACES)

    workflow_id, namespaces = asyncio.run(run())

    assert namespaces == 0
    assert scheduler.dead_letters == []
    assert "workflow_failed" not in log_sink.events(workflow_id)
    assert _page_log(log_sink, workflow_id)[-2:] == [("final", 1), ("final", 0)]


def test_project_deletion_walks_leaves_before_parents(
    tables: InMemoryTableStore,
    blobs: InMemoryBlobStore,
    scheduler: InMemoryScheduler,
    telemetry: WorkflowTelemetry,
    log_sink: InMemoryLogSink,
) -> None:
    """Every dependent table and blob of the project is removed in order."""
    engine = make_engine(tables, blobs, scheduler, telemetry, screenshots=1)

    async def run() -> tuple[str, dict[TableName, int], Workspace | None]:
        seeded = await seed_project(tables)
        keys = await add_translations(tables, seeded, {"en": EN, "fr": FR})
        build = await add_complete_build(
            tables, blobs, seeded, "v1", {"en": {"menu": {"start": "Start"}}}
        )
        await add_release(tables, seeded, "launch", [(build, 100)])
        await add_glossary_term(tables, seeded, "Start", {"en": "Start"})
        await add_screenshot(tables, blobs, seeded, "title.png", keys)
        await add_screenshot(tables, blobs, seeded, "pause.png", keys[:1])
        workflow_id = await engine.deletions.delete_project(
            seeded.workspace.id, seeded.project.id
        )
        await scheduler.run_until_idle()
        counts = {table: await tables.count(table) for table in TableName}
        workspace = await tables.get(
            TableName.WORKSPACES, seeded.workspace.id, Workspace
        )
        return workflow_id, counts, workspace

    workflow_id, counts, workspace = asyncio.run(run())

    assert _completed_stages(log_sink, workflow_id) == [
        stage.value for stage in DELETION_STAGES[EntityKind.PROJECT]
    ]
    assert {table: count for table, count in counts.items() if count} == {
        TableName.WORKSPACES: 1
    }
    assert blobs.keys == []
    assert workspace is not None
    assert workspace.translation_key_count == 0


def test_tombstoned_project_disappears_before_the_workflow_runs(
    tables: InMemoryTableStore,
    blobs: InMemoryBlobStore,
    scheduler: InMemoryScheduler,
    telemetry: WorkflowTelemetry,
) -> None:
    """Reads stop returning the project and its children at once."""
    engine = make_engine(tables, blobs, scheduler, telemetry)

    async def run() -> tuple[object, ...]:
        seeded = await seed_project(tables)
        build = await add_complete_build(tables, blobs, seeded, "v1", {"en": {}})
        await engine.deletions.delete_project(seeded.workspace.id, seeded.project.id)
        return (
            await catalog.get_active_project(tables, seeded.project.id),
            await catalog.get_active_namespace(tables, seeded.namespace.id),
            await catalog.list_active_languages(tables, seeded.project.id),
            await engine.builds.get_build(build.id),
            await tables.get(TableName.PROJECTS, seeded.project.id, Project),
        )

    project, namespace, languages, build, raw = asyncio.run(run())

    assert project is None
    assert namespace is None
    assert languages == []
    assert build is None
    assert isinstance(raw, Project)
    assert raw.status == EntityStatus.DELETING
    assert scheduler.pending == 1


def test_namespace_deletion_decrements_key_counters(
    tables: InMemoryTableStore,
    blobs: InMemoryBlobStore,
    scheduler: InMemoryScheduler,
    telemetry: WorkflowTelemetry,
) -> None:
    """Ancestor counters drop in the same transaction as the tombstone."""
    engine = make_engine(tables, blobs, scheduler, telemetry)

    async def run() -> tuple[Project | None, Workspace | None]:
        seeded = await seed_project(tables)
        menus = await add_namespace(tables, seeded.project, "menus")
        await add_translations(tables, seeded, {"en": EN})
        await add_translations(
            tables, seeded, {"en": {"title": "Menu", "back": "Back"}}, namespace=menus
        )
        await engine.deletions.delete_namespace(
            seeded.workspace.id, seeded.project.id, menus.id
        )
        return (
            await tables.get(TableName.PROJECTS, seeded.project.id, Project),
            await tables.get(TableName.WORKSPACES, seeded.workspace.id, Workspace),
        )

    project, workspace = asyncio.run(run())

    assert project is not None
    assert workspace is not None
    assert project.translation_key_count == 2
    assert workspace.translation_key_count == 2


def test_deleting_a_tombstoned_namespace_is_not_found(
    tables: InMemoryTableStore,
    blobs: InMemoryBlobStore,
    scheduler: InMemoryScheduler,
    telemetry: WorkflowTelemetry,
) -> None:
    """A second deletion request does not start a second workflow."""
    engine = make_engine(tables, blobs, scheduler, telemetry)

    async def run() -> WorkflowError:
        seeded = await seed_project(tables)
        await engine.deletions.delete_namespace(
            seeded.workspace.id, seeded.project.id, seeded.namespace.id
        )
        with pytest.raises(WorkflowError) as exc_info:
            await engine.deletions.delete_namespace(
                seeded.workspace.id, seeded.project.id, seeded.namespace.id
            )
        return exc_info.value

    error = asyncio.run(run())

    assert error.info.code == WorkflowErrorCode.NOT_FOUND
    assert scheduler.pending == 1


def test_deletion_requires_workspace_access(
    tables: InMemoryTableStore,
    blobs: InMemoryBlobStore,
    scheduler: InMemoryScheduler,
    telemetry: WorkflowTelemetry,
) -> None:
    """Denied callers leave the project untouched."""
    engine = make_engine(
        tables, blobs, scheduler, telemetry, access=StaticAccessPolicy(set())
    )

    async def run() -> tuple[WorkflowError, Project | None]:
        seeded = await seed_project(tables)
        with pytest.raises(WorkflowError) as exc_info:
            await engine.deletions.delete_project(
                seeded.workspace.id, seeded.project.id
            )
        return exc_info.value, await catalog.get_active_project(
            tables, seeded.project.id
        )

    error, project = asyncio.run(run())

    assert error.info.code == WorkflowErrorCode.ACCESS_DENIED
    assert project is not None
    assert scheduler.pending == 0


def test_primary_language_goes_last(
    tables: InMemoryTableStore,
    blobs: InMemoryBlobStore,
    scheduler: InMemoryScheduler,
    telemetry: WorkflowTelemetry,
) -> None:
    """The primary language is protected until it is the only one left."""
    engine = make_engine(tables, blobs, scheduler, telemetry)

    async def run() -> tuple[WorkflowError, Project | None, int]:
        seeded = await seed_project(tables, primary_language="en")
        workspace_id = seeded.workspace.id
        project_id = seeded.project.id
        with pytest.raises(WorkflowError) as exc_info:
            await engine.deletions.delete_language(
                workspace_id, project_id, seeded.language("en").id
            )
        await engine.deletions.delete_language(
            workspace_id, project_id, seeded.language("fr").id
        )
        await engine.deletions.delete_language(
            workspace_id, project_id, seeded.language("en").id
        )
        await scheduler.run_until_idle()
        return (
            exc_info.value,
            await tables.get(TableName.PROJECTS, project_id, Project),
            await tables.count(TableName.LANGUAGES),
        )

    error, project, languages = asyncio.run(run())

    assert error.info.code == WorkflowErrorCode.CONFLICT
    assert project is not None
    assert project.primary_language_id is None
    assert languages == 0


def test_language_deletion_strips_keys_and_glossary(
    tables: InMemoryTableStore,
    blobs: InMemoryBlobStore,
    scheduler: InMemoryScheduler,
    telemetry: WorkflowTelemetry,
    log_sink: InMemoryLogSink,
) -> None:
    """Keys and glossary terms survive without the deleted language."""
    engine = make_engine(tables, blobs, scheduler, telemetry, language_keys=1)

    async def run() -> tuple[str, str, str, list[TranslationKey], GlossaryTerm | None]:
        seeded = await seed_project(tables)
        keys = await add_translations(tables, seeded, {"en": EN, "fr": FR})
        term = await add_glossary_term(
            tables, seeded, "Start", {"en": "Start", "fr": "Démarrer"}
        )
        workflow_id = await engine.deletions.delete_language(
            seeded.workspace.id, seeded.project.id, seeded.language("fr").id
        )
        await scheduler.run_until_idle()
        remaining_keys = [
            key
            for key in [
                await tables.get(TableName.TRANSLATION_KEYS, row.id, TranslationKey)
                for row in keys
            ]
            if key is not None
        ]
        return (
            workflow_id,
            seeded.language("en").id,
            seeded.language("fr").id,
            remaining_keys,
            await tables.get(TableName.GLOSSARY_TERMS, term.id, GlossaryTerm),
        )

    workflow_id, en_id, fr_id, keys, term = asyncio.run(run())

    assert len(keys) == 2
    assert all(list(key.values) == [en_id] for key in keys)
    assert term is not None
    assert term.translations == {en_id: "Start"}
    assert fr_id not in term.translations
    assert [stage for stage, _ in _page_log(log_sink, workflow_id)] == [
        "values",
        "keys",
        "keys",
        "glossary_terms",
        "final",
    ]


def test_language_deletion_removes_only_its_values(
    tables: InMemoryTableStore,
    blobs: InMemoryBlobStore,
    scheduler: InMemoryScheduler,
    telemetry: WorkflowTelemetry,
) -> None:
    """Value rows of other languages are kept."""
    engine = make_engine(tables, blobs, scheduler, telemetry)

    async def run() -> int:
        seeded = await seed_project(tables)
        await add_translations(tables, seeded, {"en": EN, "fr": FR})
        await engine.deletions.delete_language(
            seeded.workspace.id, seeded.project.id, seeded.language("fr").id
        )
        await scheduler.run_until_idle()
        return await tables.count(TableName.TRANSLATION_VALUES)

    assert asyncio.run(run()) == len(EN)


def test_workspace_deletion_fans_out_to_projects(
    tables: InMemoryTableStore,
    blobs: InMemoryBlobStore,
    scheduler: InMemoryScheduler,
    telemetry: WorkflowTelemetry,
    log_sink: InMemoryLogSink,
) -> None:
    """Each project gets its own deletion workflow."""
    engine = make_engine(tables, blobs, scheduler, telemetry, projects=1)

    async def run() -> tuple[str, dict[TableName, int]]:
        seeded = await seed_project(tables)
        await add_translations(tables, seeded, {"en": EN})
        dlc = await seed_project(
            tables, workspace=seeded.workspace, project_name="dlc"
        )
        await add_translations(tables, dlc, {"fr": FR})
        workflow_id = await engine.deletions.delete_workspace(seeded.workspace.id)
        await scheduler.run_until_idle()
        return workflow_id, {table: await tables.count(table) for table in TableName}

    workflow_id, counts = asyncio.run(run())

    assert all(count == 0 for count in counts.values())
    assert log_sink.events(workflow_id).count("deletion_fanned_out") == 2
    project_runs = [
        entry
        for entry in log_sink.entries
        if entry.event == "workflow_completed"
        and entry.kind == "project_deletion"
    ]
    assert len(project_runs) == 2


def test_workspace_fan_out_retries_refused_project_kickoffs(
    tables: InMemoryTableStore,
    blobs: InMemoryBlobStore,
    telemetry: WorkflowTelemetry,
    log_sink: InMemoryLogSink,
) -> None:
    """A project whose kickoff was refused is picked up again on retry."""
    scheduler = FlakyScheduler("project_deletion.advance", telemetry=telemetry)
    engine = make_engine(tables, blobs, scheduler, telemetry)

    async def run() -> tuple[str, dict[TableName, int]]:
        seeded = await seed_project(tables)
        await add_translations(tables, seeded, {"en": EN, "fr": FR})
        workflow_id = await engine.deletions.delete_workspace(seeded.workspace.id)
        await scheduler.run_until_idle()
        return workflow_id, {table: await tables.count(table) for table in TableName}

    workflow_id, counts = asyncio.run(run())

    assert scheduler.refused == 1
    assert scheduler.dead_letters == []
    assert all(count == 0 for count in counts.values())
    assert "step_retried" in log_sink.events(workflow_id)
    assert log_sink.events(workflow_id)[-1] == "workflow_completed"


def test_refused_kickoff_rolls_back_the_tombstone(
    tables: InMemoryTableStore,
    blobs: InMemoryBlobStore,
    telemetry: WorkflowTelemetry,
) -> None:
    """A deletion that cannot be scheduled leaves the project visible."""
    scheduler = FlakyScheduler("project_deletion.advance", telemetry=telemetry)
    engine = make_engine(tables, blobs, scheduler, telemetry)

    async def run() -> tuple[Project | None, int]:
        seeded = await seed_project(tables)
        await add_translations(tables, seeded, {"en": EN})
        with pytest.raises(TransientError):
            await engine.deletions.delete_project(
                seeded.workspace.id, seeded.project.id
            )
        visible = await catalog.get_active_project(tables, seeded.project.id)
        await engine.deletions.delete_project(seeded.workspace.id, seeded.project.id)
        await scheduler.run_until_idle()
        return visible, await tables.count(TableName.PROJECTS)

    visible, projects = asyncio.run(run())

    assert visible is not None
    assert visible.status == EntityStatus.ACTIVE
    assert projects == 0


def test_failed_deletion_resumes_from_a_stage(
    blobs: InMemoryBlobStore,
    scheduler: InMemoryScheduler,
    telemetry: WorkflowTelemetry,
    log_sink: InMemoryLogSink,
) -> None:
    """A stalled deletion stays tombstoned and finishes after a resume."""
    tables = _FlakyTableStore(TableName.TRANSLATION_KEYS)
    engine = make_engine(tables, blobs, scheduler, telemetry)

    async def run() -> tuple[str, Namespace | None, int, Namespace | None, int]:
        seeded = await seed_project(tables)
        await add_translations(tables, seeded, {"en": EN})
        workflow_id = await engine.deletions.delete_namespace(
            seeded.workspace.id, seeded.project.id, seeded.namespace.id
        )
        await scheduler.run_until_idle()
        stalled = await tables.get(
            TableName.NAMESPACES, seeded.namespace.id, Namespace
        )
        values_left = await tables.count(TableName.TRANSLATION_VALUES)
        tables.failing_table = None
        resumed = await engine.deletions.resume(
            DeletionContext(
                target_entity_id=seeded.namespace.id,
                entity_kind=EntityKind.NAMESPACE,
                project_id=seeded.project.id,
                workspace_id=seeded.workspace.id,
            ),
            DeletionStage.KEYS,
            workflow_id=workflow_id,
        )
        assert resumed == workflow_id
        await scheduler.run_until_idle()
        return (
            workflow_id,
            stalled,
            values_left,
            await tables.get(TableName.NAMESPACES, seeded.namespace.id, Namespace),
            await tables.count(TableName.TRANSLATION_KEYS),
        )

    workflow_id, stalled, values_left, namespace, keys = asyncio.run(run())

    assert stalled is not None
    assert stalled.status == EntityStatus.DELETING
    assert values_left == 0
    assert namespace is None
    assert keys == 0
    events = log_sink.events(workflow_id)
    assert events.index("workflow_failed") < events.index("workflow_resumed")
    assert events[-1] == "workflow_completed"
    assert scheduler.dead_letters == []


def test_blob_errors_do_not_stop_deletion(
    tables: InMemoryTableStore,
    scheduler: InMemoryScheduler,
    telemetry: WorkflowTelemetry,
    log_sink: InMemoryLogSink,
) -> None:
    """Rows go even when their blobs cannot be removed."""
    blobs = _UndeletableBlobStore()
    engine = make_engine(tables, blobs, scheduler, telemetry)

    async def run() -> tuple[str, int, int]:
        seeded = await seed_project(tables)
        await add_screenshot(tables, blobs, seeded, "title.png", [])
        workflow_id = await engine.deletions.delete_project(
            seeded.workspace.id, seeded.project.id
        )
        await scheduler.run_until_idle()
        return (
            workflow_id,
            await tables.count(TableName.SCREENSHOTS),
            await tables.count(TableName.PROJECTS),
        )

    workflow_id, screenshots, projects = asyncio.run(run())

    assert screenshots == 0
    assert projects == 0
    events = log_sink.events(workflow_id)
    assert "blob_missing" in events
    assert events[-1] == "workflow_completed"


def test_resume_rejects_stages_of_other_kinds(
    tables: InMemoryTableStore,
    blobs: InMemoryBlobStore,
    scheduler: InMemoryScheduler,
    telemetry: WorkflowTelemetry,
) -> None:
    """Namespace deletions have no builds stage."""
    engine = make_engine(tables, blobs, scheduler, telemetry)
    context = DeletionContext(
        target_entity_id="ns-1",
        entity_kind=EntityKind.NAMESPACE,
        project_id="proj-1",
    )

    with pytest.raises(WorkflowError) as exc_info:
        asyncio.run(engine.deletions.resume(context, DeletionStage.BUILDS))

    assert exc_info.value.info.code == WorkflowErrorCode.INVALID_STAGE
    assert scheduler.pending == 0
