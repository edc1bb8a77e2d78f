"""BDD integration tests for cascading deletion workflows."""

from __future__ import annotations

import asyncio

import pytest
from pytest_bdd import given, parsers, scenarios, then, when

from locforge_core import catalog
from locforge_core.deletion import DeletionStage
from locforge_core.engine import Engine
from locforge_core.ports.storage import (
    StorageError,
    StorageErrorCode,
    StorageErrorInfo,
)
from locforge_core.ports.tables import RecordT
from locforge_core.ports.workflow import WorkflowError
from locforge_core.telemetry import WorkflowTelemetry
from locforge_io.blobs import InMemoryBlobStore
from locforge_io.scheduling import InMemoryScheduler
from locforge_io.storage import InMemoryLogSink
from locforge_io.tables import InMemoryTableStore
from locforge_schemas.primitives import Cursor, EntityKind, EntityStatus, TableName
from locforge_schemas.records import Namespace, Project, Workspace
from locforge_schemas.storage import Page, PageQuery
from locforge_schemas.workflow import DeletionContext
from tests.helpers.builders import (
    SeededProject,
    add_bulk_values,
    add_complete_build,
    add_glossary_term,
    add_release,
    add_screenshot,
    add_translations,
    seed_project,
)
from tests.helpers.engine import make_engine

# Link feature file
scenarios("../features/deletion/cascading_deletion.feature")

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


class DeletionScenario:
    """Context object for cascading deletion BDD scenarios."""

    seeded: SeededProject | None = None
    workflow_id: str | None = None
    error: WorkflowError | None = None
    _engine: Engine | None = None

    def __init__(
        self,
        scheduler: InMemoryScheduler,
        telemetry: WorkflowTelemetry,
        tables: InMemoryTableStore | None = None,
    ) -> None:
        self.tables = tables if tables is not None else InMemoryTableStore()
        self.blobs = InMemoryBlobStore()
        self.scheduler = scheduler
        self.telemetry = telemetry
        self.page_sizes: dict[str, int] = {}

    @property
    def engine(self) -> Engine:
        """Wire the engine on first use, after page sizes are settled."""
        if self._engine is None:
            self._engine = make_engine(
                self.tables,
                self.blobs,
                self.scheduler,
                self.telemetry,
                **self.page_sizes,
            )
        return self._engine

    def namespace_row(self) -> Namespace | None:
        """Return the raw namespace row, tombstoned or not."""
        assert self.seeded is not None
        return asyncio.run(
            self.tables.get(TableName.NAMESPACES, self.seeded.namespace.id, Namespace)
        )

    def delete_language(self, code: str) -> None:
        """Delete one language of the seeded project."""
        assert self.seeded is not None
        self.workflow_id = asyncio.run(
            self.engine.deletions.delete_language(
                self.seeded.workspace.id,
                self.seeded.project.id,
                self.seeded.language(code).id,
            )
        )


@given(
    parsers.parse("a project with {count:d} values in its namespace"),
    target_fixture="ctx",
)
def given_project_with_values(
    scheduler: InMemoryScheduler, telemetry: WorkflowTelemetry, count: int
) -> DeletionScenario:
    """Seed one language holding many value rows.

    Returns:
        DeletionScenario with the seeded project.
    """
    ctx = DeletionScenario(scheduler, telemetry)

    async def seed() -> SeededProject:
        seeded = await seed_project(ctx.tables, language_codes=("en",))
        await add_bulk_values(ctx.tables, seeded, "en", count)
        return seeded

    ctx.seeded = asyncio.run(seed())
    return ctx


@given(parsers.parse("deletions remove {count:d} values per step"))
def given_value_page_size(ctx: DeletionScenario, count: int) -> None:
    """Lower the value page size."""
    ctx.page_sizes["values"] = count


@given("a fully populated project", target_fixture="ctx")
def given_fully_populated_project(
    scheduler: InMemoryScheduler, telemetry: WorkflowTelemetry
) -> DeletionScenario:
    """Seed keys, a build, a release, a glossary term and screenshots.

    Returns:
        DeletionScenario with the seeded project.
    """
    ctx = DeletionScenario(scheduler, telemetry)
    ctx.page_sizes["screenshots"] = 1

    async def seed() -> SeededProject:
        seeded = await seed_project(ctx.tables)
        keys = await add_translations(ctx.tables, seeded, {"en": EN, "fr": FR})
        build = await add_complete_build(
            ctx.tables, ctx.blobs, seeded, "v1", {"en": {"menu": {"start": "Start"}}}
        )
        await add_release(ctx.tables, seeded, "launch", [(build, 100)])
        await add_glossary_term(ctx.tables, seeded, "Start", {"en": "Start"})
        await add_screenshot(ctx.tables, ctx.blobs, seeded, "title.png", keys)
        await add_screenshot(ctx.tables, ctx.blobs, seeded, "pause.png", keys[:1])
        return seeded

    ctx.seeded = asyncio.run(seed())
    return ctx


@given(
    parsers.parse(
        'a project with primary language "{primary}" and languages "{codes}"'
    ),
    target_fixture="ctx",
)
def given_project_with_primary_language(
    scheduler: InMemoryScheduler,
    telemetry: WorkflowTelemetry,
    primary: str,
    codes: str,
) -> DeletionScenario:
    """Seed a project whose primary language is set.

    Returns:
        DeletionScenario with the seeded project.
    """
    ctx = DeletionScenario(scheduler, telemetry)
    ctx.seeded = asyncio.run(
        seed_project(
            ctx.tables,
            language_codes=tuple(codes.split(",")),
            primary_language=primary,
        )
    )
    return ctx


@given("a project with translations whose key scans fail", target_fixture="ctx")
def given_project_with_failing_key_scans(
    scheduler: InMemoryScheduler, telemetry: WorkflowTelemetry
) -> DeletionScenario:
    """Seed translations in a store that cannot scan key rows.

    Returns:
        DeletionScenario with the seeded project.
    """
    ctx = DeletionScenario(
        scheduler, telemetry, _FlakyTableStore(TableName.TRANSLATION_KEYS)
    )

    async def seed() -> SeededProject:
        seeded = await seed_project(ctx.tables)
        await add_translations(ctx.tables, seeded, {"en": EN})
        return seeded

    ctx.seeded = asyncio.run(seed())
    return ctx


@when("I delete the namespace")
def when_delete_namespace(ctx: DeletionScenario) -> None:
    """Request deletion of the seeded namespace."""
    assert ctx.seeded is not None
    seeded = ctx.seeded
    ctx.workflow_id = asyncio.run(
        ctx.engine.deletions.delete_namespace(
            seeded.workspace.id, seeded.project.id, seeded.namespace.id
        )
    )


@when("I delete the project")
def when_delete_project(ctx: DeletionScenario) -> None:
    """Request deletion of the seeded project."""
    assert ctx.seeded is not None
    ctx.workflow_id = asyncio.run(
        ctx.engine.deletions.delete_project(
            ctx.seeded.workspace.id, ctx.seeded.project.id
        )
    )


@when(parsers.parse('I try to delete language "{code}"'))
def when_try_delete_language(ctx: DeletionScenario, code: str) -> None:
    """Request a language deletion that is expected to be refused."""
    with pytest.raises(WorkflowError) as exc_info:
        ctx.delete_language(code)
    ctx.error = exc_info.value


@when(parsers.parse('I delete language "{code}"'))
def when_delete_language(ctx: DeletionScenario, code: str) -> None:
    """Request deletion of one language."""
    ctx.delete_language(code)


@when("the scheduler runs until idle")
def when_scheduler_runs(ctx: DeletionScenario) -> None:
    """Deliver every scheduled step."""
    asyncio.run(ctx.scheduler.run_until_idle())


@when(parsers.parse('key scans recover and the deletion resumes at "{stage}"'))
def when_resume_deletion(ctx: DeletionScenario, stage: str) -> None:
    """Heal the table store and restart the workflow at a stage."""
    assert isinstance(ctx.tables, _FlakyTableStore)
    assert ctx.seeded is not None
    ctx.tables.failing_table = None
    seeded = ctx.seeded
    resumed = asyncio.run(
        ctx.engine.deletions.resume(
            DeletionContext(
                target_entity_id=seeded.namespace.id,
                entity_kind=EntityKind.NAMESPACE,
                project_id=seeded.project.id,
                workspace_id=seeded.workspace.id,
            ),
            DeletionStage(stage),
            workflow_id=ctx.workflow_id,
        )
    )
    assert resumed == ctx.workflow_id


@then("the namespace is hidden before any step runs")
def then_namespace_hidden(ctx: DeletionScenario) -> None:
    """Assert reads skip the tombstoned namespace at once."""
    assert ctx.seeded is not None
    active = asyncio.run(
        catalog.get_active_namespace(ctx.tables, ctx.seeded.namespace.id)
    )
    assert active is None
    assert ctx.scheduler.delivered == 0
    assert ctx.scheduler.pending == 1


@then(parsers.parse('the values stage removed pages of "{sizes}"'))
def then_value_pages(
    ctx: DeletionScenario, log_sink: InMemoryLogSink, sizes: str
) -> None:
    """Assert each values step removed at most one page."""
    pages = [
        int(entry.data["items_processed"])
        for entry in log_sink.entries
        if entry.workflow_id == ctx.workflow_id
        and entry.event == "stage_page_processed"
        and entry.stage == DeletionStage.VALUES.value
    ]
    assert pages == [int(size) for size in sizes.split(",")]


@then("the namespace row is gone")
def then_namespace_gone(ctx: DeletionScenario) -> None:
    """Assert the namespace row itself was deleted."""
    assert ctx.namespace_row() is None


@then("the namespace is still tombstoned")
def then_namespace_tombstoned(ctx: DeletionScenario) -> None:
    """Assert a stalled deletion keeps the root hidden."""
    row = ctx.namespace_row()
    assert row is not None
    assert row.status == EntityStatus.DELETING


@then("only the workspace row remains")
def then_only_workspace_remains(ctx: DeletionScenario) -> None:
    """Assert every table below the workspace is empty."""

    async def counts() -> dict[TableName, int]:
        return {table: await ctx.tables.count(table) for table in TableName}

    remaining = {
        table: count for table, count in asyncio.run(counts()).items() if count
    }
    assert remaining == {TableName.WORKSPACES: 1}


@then("no blobs remain")
def then_no_blobs(ctx: DeletionScenario) -> None:
    """Assert artifacts and screenshot images were removed."""
    assert ctx.blobs.keys == []


@then(parsers.parse("the workspace key count is {count:d}"))
def then_workspace_key_count(ctx: DeletionScenario, count: int) -> None:
    """Assert the workspace counter dropped with the project."""
    assert ctx.seeded is not None
    workspace = asyncio.run(
        ctx.tables.get(TableName.WORKSPACES, ctx.seeded.workspace.id, Workspace)
    )
    assert workspace is not None
    assert workspace.translation_key_count == count


@then(parsers.parse('the request fails with "{code}"'))
def then_request_fails(ctx: DeletionScenario, code: str) -> None:
    """Assert the refused request's error code."""
    assert ctx.error is not None
    assert ctx.error.info.code == code


@then("the project has no primary language")
def then_no_primary_language(ctx: DeletionScenario) -> None:
    """Assert deleting the last language cleared the primary language."""
    assert ctx.seeded is not None
    project = asyncio.run(
        ctx.tables.get(TableName.PROJECTS, ctx.seeded.project.id, Project)
    )
    assert project is not None
    assert project.primary_language_id is None
    assert asyncio.run(ctx.tables.count(TableName.LANGUAGES)) == 0


@then(parsers.parse('the last deletion event is "{event}"'))
def then_last_deletion_event(
    ctx: DeletionScenario, log_sink: InMemoryLogSink, event: str
) -> None:
    """Assert the final log event of the deletion workflow."""
    assert ctx.workflow_id is not None
    assert log_sink.events(ctx.workflow_id)[-1] == event
