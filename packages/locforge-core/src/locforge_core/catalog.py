"""Tombstone-aware reads over the table store.

A row whose status is `deleting`, or whose owning project or workspace is
tombstoned, is invisible here even while it still physically exists.
"""

from __future__ import annotations

from locforge_core.ports.tables import RecordT, TableStoreProtocol
from locforge_schemas.primitives import (
    BuildStatus,
    EntityStatus,
    LanguageId,
    NamespaceId,
    ProjectId,
    TableName,
    WorkspaceId,
)
from locforge_schemas.records import Build, Language, Namespace, Project, Workspace
from locforge_schemas.storage import PageQuery, TableIndex

LIST_PAGE_SIZE = 200


def is_visible(status: str) -> bool:
    """Return whether a row with this status may be returned by reads."""
    return status != EntityStatus.DELETING


async def get_active_workspace(
    tables: TableStoreProtocol, workspace_id: WorkspaceId
) -> Workspace | None:
    """Load a workspace unless it is tombstoned."""
    workspace = await tables.get(TableName.WORKSPACES, workspace_id, Workspace)
    if workspace is None or not is_visible(workspace.status):
        return None
    return workspace


async def get_active_project(
    tables: TableStoreProtocol, project_id: ProjectId
) -> Project | None:
    """Load a project unless it or its workspace is tombstoned."""
    project = await tables.get(TableName.PROJECTS, project_id, Project)
    if project is None or not is_visible(project.status):
        return None
    if await get_active_workspace(tables, project.workspace_id) is None:
        return None
    return project


async def get_active_namespace(
    tables: TableStoreProtocol, namespace_id: NamespaceId
) -> Namespace | None:
    """Load a namespace unless it or an ancestor is tombstoned."""
    namespace = await tables.get(TableName.NAMESPACES, namespace_id, Namespace)
    if namespace is None or not is_visible(namespace.status):
        return None
    if await get_active_project(tables, namespace.project_id) is None:
        return None
    return namespace


async def get_active_language(
    tables: TableStoreProtocol, language_id: LanguageId
) -> Language | None:
    """Load a language unless it or an ancestor is tombstoned."""
    language = await tables.get(TableName.LANGUAGES, language_id, Language)
    if language is None or not is_visible(language.status):
        return None
    if await get_active_project(tables, language.project_id) is None:
        return None
    return language


async def list_active_languages(
    tables: TableStoreProtocol, project_id: ProjectId
) -> list[Language]:
    """List visible languages of a project ordered by language code."""
    if await get_active_project(tables, project_id) is None:
        return []
    rows = await _collect(
        tables,
        PageQuery(
            table=TableName.LANGUAGES,
            index=TableIndex.BY_PROJECT,
            values=[project_id],
        ),
        Language,
    )
    return [row for row in rows if is_visible(row.status)]


async def list_active_namespaces(
    tables: TableStoreProtocol, project_id: ProjectId
) -> list[Namespace]:
    """List visible namespaces of a project ordered by name."""
    if await get_active_project(tables, project_id) is None:
        return []
    rows = await _collect(
        tables,
        PageQuery(
            table=TableName.NAMESPACES,
            index=TableIndex.BY_PROJECT,
            values=[project_id],
        ),
        Namespace,
    )
    return [row for row in rows if is_visible(row.status)]


async def list_builds(
    tables: TableStoreProtocol,
    project_id: ProjectId,
    *,
    status: BuildStatus | None = None,
) -> list[Build]:
    """List builds of a visible project ordered by tag, optionally by status."""
    if await get_active_project(tables, project_id) is None:
        return []
    rows = await _collect(
        tables,
        PageQuery(
            table=TableName.BUILDS, index=TableIndex.BY_TAG, values=[project_id]
        ),
        Build,
    )
    if status is None:
        return rows
    return [row for row in rows if row.status == status]


async def _collect(
    tables: TableStoreProtocol, query: PageQuery, model: type[RecordT]
) -> list[RecordT]:
    rows: list[RecordT] = []
    cursor = None
    while True:
        page = await tables.page(query, cursor, LIST_PAGE_SIZE, model)
        rows.extend(page.items)
        if page.is_done:
            return rows
        cursor = page.next_cursor
