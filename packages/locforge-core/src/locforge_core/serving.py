"""Read path serving Complete build artifacts through releases."""

from __future__ import annotations

import random
from enum import StrEnum

from pydantic import Field

from locforge_core import catalog
from locforge_core.ports.blobs import BlobStoreProtocol
from locforge_core.ports.tables import TableStoreProtocol
from locforge_schemas.base import BaseSchema
from locforge_schemas.primitives import (
    BlobKey,
    BuildId,
    BuildStatus,
    BuildTag,
    LanguageCode,
    ProjectId,
    TableName,
)
from locforge_schemas.records import Build, Release, ReleaseBuildConnection
from locforge_schemas.storage import PageQuery, TableIndex

CONNECTION_PAGE_SIZE = 200


class ServeStatus(StrEnum):
    """Outcome of resolving a translation file."""

    SERVED = "served"
    RELEASE_NOT_FOUND = "release_not_found"
    NAMESPACE_NOT_FOUND = "namespace_not_found"
    LANGUAGE_NOT_FOUND = "language_not_found"
    ARTIFACT_MISSING = "artifact_missing"


class ServedArtifact(BaseSchema):
    """Artifact selected for a request."""

    build_id: BuildId = Field(..., description="Selected build")
    tag: BuildTag = Field(..., description="Selected build tag")
    language_code: LanguageCode = Field(..., description="Artifact language")
    blob_key: BlobKey = Field(..., description="Blob store key")
    content: bytes | None = Field(
        None, description="Artifact bytes, null when the blob is absent"
    )


class ServeResult(BaseSchema):
    """Result of a translation file lookup."""

    status: ServeStatus = Field(..., description="Lookup outcome")
    artifact: ServedArtifact | None = Field(
        None, description="Selected artifact, when one was found"
    )


async def resolve_translation_file(
    tables: TableStoreProtocol,
    blobs: BlobStoreProtocol,
    project_id: ProjectId,
    release_tag: str,
    namespace_name: str,
    language_code: LanguageCode,
    rng: random.Random | None = None,
) -> ServeResult:
    """Resolve the JSON file a client should receive for a release.

    Only Complete builds attached to the release are candidates; one is
    chosen at random, weighted by each attachment's selection chance. A blob
    that has gone missing is reported as absent content, never raised.

    Args:
        tables: Table store.
        blobs: Blob store holding artifacts.
        project_id: Owning project.
        release_tag: Release tag.
        namespace_name: Namespace whose file is requested.
        language_code: Requested language.
        rng: Optional random source for weighted selection.

    Returns:
        ServeResult: Lookup outcome with the artifact when found.
    """
    if await catalog.get_active_project(tables, project_id) is None:
        return ServeResult(status=ServeStatus.RELEASE_NOT_FOUND)
    release = await tables.first(
        PageQuery(
            table=TableName.RELEASES,
            index=TableIndex.BY_TAG,
            values=[project_id, release_tag],
        ),
        Release,
    )
    if release is None:
        return ServeResult(status=ServeStatus.RELEASE_NOT_FOUND)

    candidates: list[tuple[Build, int]] = []
    cursor = None
    while True:
        page = await tables.page(
            PageQuery(
                table=TableName.RELEASE_BUILD_CONNECTIONS,
                index=TableIndex.BY_RELEASE,
                values=[release.id],
            ),
            cursor,
            CONNECTION_PAGE_SIZE,
            ReleaseBuildConnection,
        )
        for connection in page.items:
            build = await tables.get(TableName.BUILDS, connection.build_id, Build)
            if (
                build is not None
                and build.status == BuildStatus.COMPLETE
                and build.namespace_name == namespace_name
            ):
                candidates.append((build, connection.selection_chance))
        if page.is_done:
            break
        cursor = page.next_cursor

    if not candidates:
        return ServeResult(status=ServeStatus.NAMESPACE_NOT_FOUND)
    candidates = [
        (build, weight)
        for build, weight in candidates
        if language_code in build.artifacts
    ]
    if not candidates:
        return ServeResult(status=ServeStatus.LANGUAGE_NOT_FOUND)

    build = _pick_weighted(candidates, rng or random.Random())
    artifact = build.artifacts[language_code]
    content = await blobs.get(artifact.blob_key)
    served = ServedArtifact(
        build_id=build.id,
        tag=build.tag,
        language_code=language_code,
        blob_key=artifact.blob_key,
        content=content,
    )
    if content is None:
        return ServeResult(status=ServeStatus.ARTIFACT_MISSING, artifact=served)
    return ServeResult(status=ServeStatus.SERVED, artifact=served)


def _pick_weighted(candidates: list[tuple[Build, int]], rng: random.Random) -> Build:
    total = sum(weight for _, weight in candidates)
    if total <= 0:
        return candidates[0][0]
    roll = rng.uniform(0, total)
    running = 0
    for build, weight in candidates:
        running += weight
        if roll < running:
            return build
    return next(build for build, weight in reversed(candidates) if weight > 0)
