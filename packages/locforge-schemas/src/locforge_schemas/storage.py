"""Storage schemas for paginated reads and declared table indexes."""

from __future__ import annotations

from enum import StrEnum

from pydantic import Field

from locforge_schemas.base import BaseSchema
from locforge_schemas.primitives import Cursor, JsonScalar, TableName
from locforge_schemas.records import Record


class TableIndex(StrEnum):
    """Names of the parent-scoped indexes declared on tables."""

    BY_WORKSPACE = "by_workspace"
    BY_PROJECT = "by_project"
    BY_NAMESPACE = "by_namespace"
    BY_LANGUAGE = "by_language"
    BY_SCOPE = "by_scope"
    BY_TAG = "by_tag"
    BY_RELEASE = "by_release"
    BY_BUILD = "by_build"
    BY_SCREENSHOT = "by_screenshot"


TABLE_INDEXES: dict[TableName, dict[TableIndex, list[str]]] = {
    TableName.WORKSPACES: {},
    TableName.PROJECTS: {TableIndex.BY_WORKSPACE: ["workspace_id", "name"]},
    TableName.NAMESPACES: {TableIndex.BY_PROJECT: ["project_id", "name"]},
    TableName.LANGUAGES: {TableIndex.BY_PROJECT: ["project_id", "language_code"]},
    TableName.TRANSLATION_KEYS: {
        TableIndex.BY_PROJECT: ["project_id", "namespace_id", "key"],
    },
    TableName.TRANSLATION_VALUES: {
        TableIndex.BY_SCOPE: ["project_id", "namespace_id", "language_id", "path"],
        TableIndex.BY_LANGUAGE: [
            "project_id",
            "language_id",
            "namespace_id",
            "path",
        ],
    },
    TableName.BUILDS: {
        TableIndex.BY_TAG: ["project_id", "tag"],
        TableIndex.BY_NAMESPACE: ["namespace_id", "tag"],
    },
    TableName.GLOSSARY_TERMS: {TableIndex.BY_PROJECT: ["project_id", "term"]},
    TableName.RELEASES: {TableIndex.BY_TAG: ["project_id", "tag"]},
    TableName.RELEASE_BUILD_CONNECTIONS: {
        TableIndex.BY_RELEASE: ["release_id", "build_id"],
        TableIndex.BY_BUILD: ["build_id"],
    },
    TableName.SCREENSHOTS: {TableIndex.BY_PROJECT: ["project_id", "name"]},
    TableName.SCREENSHOT_CONTAINERS: {TableIndex.BY_SCREENSHOT: ["screenshot_id"]},
    TableName.SCREENSHOT_KEY_MAPPINGS: {
        TableIndex.BY_PROJECT: ["project_id", "namespace_id", "screenshot_id"],
        TableIndex.BY_SCREENSHOT: ["screenshot_id"],
    },
}


class PageQuery(BaseSchema):
    """Parent-scoped query over a declared table index.

    `values` is an equality prefix over the index fields, in index order.
    Rows come back ordered by the full index key, then by id.
    """

    table: TableName = Field(..., description="Table to read")
    index: TableIndex = Field(..., description="Declared index name")
    values: list[JsonScalar] = Field(
        default_factory=list, description="Equality prefix over index fields"
    )


class Page[RecordT: Record](BaseSchema):
    """One bounded page of a cursor-based scan."""

    items: list[RecordT] = Field(..., description="Rows in index order")
    next_cursor: Cursor | None = Field(
        None, description="Opaque continuation token, null when exhausted"
    )
    is_done: bool = Field(..., description="True when no rows follow this page")
