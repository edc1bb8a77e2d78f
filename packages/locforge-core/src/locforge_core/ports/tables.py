"""Protocol definitions for the indexed table store and its transactions."""

from __future__ import annotations

from collections.abc import Mapping
from contextlib import AbstractAsyncContextManager
from typing import Protocol, TypeVar, runtime_checkable

from locforge_schemas.primitives import Cursor, EntityId, TableName
from locforge_schemas.records import Record
from locforge_schemas.storage import Page, PageQuery

RecordT = TypeVar("RecordT", bound=Record)


@runtime_checkable
class TableStoreProtocol(Protocol):
    """Protocol for the persisted, indexed collections the engine reads.

    `page` is the paginated reader: it returns at most `limit` rows of a
    parent-scoped index after `cursor`. Rows inserted behind the cursor while
    a scan is in flight need not be visited.
    """

    async def get(
        self, table: TableName, record_id: EntityId, model: type[RecordT]
    ) -> RecordT | None:
        """Load one row by id, or None when it does not exist."""
        raise NotImplementedError

    async def insert(self, table: TableName, record: Record) -> None:
        """Insert a new row; raises a conflict error when the id exists."""
        raise NotImplementedError

    async def patch(
        self,
        table: TableName,
        record_id: EntityId,
        changes: Mapping[str, object],
        model: type[RecordT],
    ) -> RecordT | None:
        """Apply field changes to a row; returns None when it does not exist."""
        raise NotImplementedError

    async def delete(self, table: TableName, record_id: EntityId) -> bool:
        """Delete a row if it exists; returns whether a row was removed."""
        raise NotImplementedError

    async def page(
        self,
        query: PageQuery,
        cursor: Cursor | None,
        limit: int,
        model: type[RecordT],
    ) -> Page[RecordT]:
        """Read one bounded page of an index scan."""
        raise NotImplementedError

    async def first(self, query: PageQuery, model: type[RecordT]) -> RecordT | None:
        """Return the first row matching an index prefix."""
        raise NotImplementedError

    def transaction(self) -> AbstractAsyncContextManager[None]:
        """Open a transaction; writes inside it commit or roll back together.

        Side effects that must only survive a commit, such as scheduling the
        first step of a workflow, run as the last statement inside the block
        so that their failure rolls the writes back.
        """
        raise NotImplementedError
