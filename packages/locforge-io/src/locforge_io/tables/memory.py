"""In-memory table store with declared indexes and cursor pagination.

Rows are held as JSON documents, the way a document database would keep
them, and validated into the requested model on every read. Scans are
ordered by the declared index fields and then by id; a cursor is an opaque
base64 token of the last returned sort key, so rows inserted behind a cursor
are simply not visited by that scan.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from contextvars import ContextVar
from itertools import count

import orjson
from pydantic import ValidationError

from locforge_core.ports.storage import (
    StorageError,
    StorageErrorCode,
    StorageErrorDetails,
    StorageErrorInfo,
)
from locforge_core.ports.tables import RecordT, TableStoreProtocol
from locforge_schemas.primitives import Cursor, EntityId, JsonScalar, TableName
from locforge_schemas.records import TABLE_RECORDS, Record
from locforge_schemas.storage import TABLE_INDEXES, Page, PageQuery, TableIndex

type _Row = dict[str, object]
type _SortToken = tuple[int, object]

_STORE_IDS = count()


class InMemoryTransaction:
    """Undo log of one in-memory transaction."""

    def __init__(self) -> None:
        """Initialize an empty transaction."""
        self._undo: dict[tuple[TableName, EntityId], _Row | None] = {}

    @property
    def undo_log(self) -> dict[tuple[TableName, EntityId], _Row | None]:
        """Return the pre-transaction state of every row written."""
        return dict(self._undo)

    def remember(self, table: TableName, record_id: EntityId, row: _Row | None) -> None:
        """Keep the pre-transaction state of a row the first time it is written."""
        self._undo.setdefault((table, record_id), row)


class InMemoryTableStore(TableStoreProtocol):
    """Table store keeping every table in process memory.

    Transactions are serialized by a lock and roll back by restoring the rows
    they touched. A transaction opened inside another one in the same task
    joins the outer transaction.
    """

    def __init__(self) -> None:
        """Initialize empty tables for every declared table name."""
        self._rows: dict[TableName, dict[EntityId, _Row]] = {
            table: {} for table in TableName
        }
        self._lock = asyncio.Lock()
        self._active: ContextVar[InMemoryTransaction | None] = ContextVar(
            f"locforge_transaction_{next(_STORE_IDS)}", default=None
        )

    async def get(
        self, table: TableName, record_id: EntityId, model: type[RecordT]
    ) -> RecordT | None:
        """Load one row by id, or None when it does not exist.

        Raises:
            StorageError: If the stored row does not fit the model.
        """
        row = self._rows[table].get(record_id)
        if row is None:
            return None
        return _to_model(table, row, model)

    async def insert(self, table: TableName, record: Record) -> None:
        """Insert a new row.

        Raises:
            StorageError: If a row with the same id already exists.
        """
        rows = self._rows[table]
        if record.id in rows:
            raise StorageError(
                StorageErrorInfo(
                    code=StorageErrorCode.CONFLICT,
                    message="Row already exists",
                    details=StorageErrorDetails(
                        operation="insert", table=table, record_id=record.id
                    ),
                )
            )
        self._remember(table, record.id)
        rows[record.id] = orjson.loads(record.model_dump_json())

    async def patch(
        self,
        table: TableName,
        record_id: EntityId,
        changes: Mapping[str, object],
        model: type[RecordT],
    ) -> RecordT | None:
        """Apply validated field changes; missing rows are left alone.

        Raises:
            StorageError: If a change names an unknown field or fails validation.
        """
        row = self._rows[table].get(record_id)
        if row is None:
            return None
        record = _to_model(table, row, TABLE_RECORDS[table])
        try:
            for field, value in changes.items():
                if field == "id" or field not in type(record).model_fields:
                    raise ValueError(f"Unknown or immutable field: {field}")
                setattr(record, field, value)
        except ValueError as exc:
            raise StorageError(
                StorageErrorInfo(
                    code=StorageErrorCode.SERIALIZATION_ERROR,
                    message="Invalid row patch",
                    details=StorageErrorDetails(
                        operation="patch",
                        table=table,
                        record_id=record_id,
                        reason=str(exc),
                    ),
                )
            ) from exc
        self._remember(table, record_id)
        updated = orjson.loads(record.model_dump_json())
        self._rows[table][record_id] = updated
        return _to_model(table, updated, model)

    async def delete(self, table: TableName, record_id: EntityId) -> bool:
        """Delete a row if it exists.

        Returns:
            bool: True when a row was removed.
        """
        if record_id not in self._rows[table]:
            return False
        self._remember(table, record_id)
        del self._rows[table][record_id]
        return True

    async def page(
        self,
        query: PageQuery,
        cursor: Cursor | None,
        limit: int,
        model: type[RecordT],
    ) -> Page[RecordT]:
        """Read one bounded page of an index scan.

        Returns:
            Page[RecordT]: Rows after the cursor, at most `limit` of them.

        Raises:
            StorageError: If the index, prefix or cursor is invalid.
        """
        table = TableName(query.table)
        fields = _index_fields(table, TableIndex(query.index))
        if len(query.values) > len(fields):
            raise _query_error(table, "page", "Index prefix is longer than the index")
        if limit < 1:
            raise _query_error(table, "page", "Page limit must be positive")
        prefix = list(zip(fields, query.values, strict=False))
        matches = [
            row
            for row in self._rows[table].values()
            if all(row.get(field) == value for field, value in prefix)
        ]
        keyed = sorted(
            ((_sort_key(row, fields), row) for row in matches),
            key=lambda item: item[0],
        )
        if cursor is not None:
            after = _decode_cursor(table, cursor)
            keyed = [item for item in keyed if item[0] > after]
        selected = keyed[:limit]
        is_done = len(keyed) <= limit
        next_cursor = None
        if not is_done:
            last_row = selected[-1][1]
            next_cursor = _encode_cursor(
                [last_row.get(field) for field in fields] + [last_row["id"]]
            )
        return Page[model](
            items=[_to_model(table, row, model) for _, row in selected],
            next_cursor=next_cursor,
            is_done=is_done,
        )

    async def first(self, query: PageQuery, model: type[RecordT]) -> RecordT | None:
        """Return the first row matching an index prefix."""
        page = await self.page(query, None, 1, model)
        return page.items[0] if page.items else None

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """Open a transaction; writes inside it commit or roll back together.

        Yields:
            None: Control returns to the caller inside the transaction.
        """
        if self._active.get() is not None:
            yield
            return
        async with self._lock:
            transaction = InMemoryTransaction()
            token = self._active.set(transaction)
            try:
                yield
            except BaseException:
                self._rollback(transaction)
                raise
            finally:
                self._active.reset(token)

    async def count(self, table: TableName) -> int:
        """Return the number of rows physically present in a table."""
        return len(self._rows[table])

    def _remember(self, table: TableName, record_id: EntityId) -> None:
        transaction = self._active.get()
        if transaction is not None:
            transaction.remember(table, record_id, self._rows[table].get(record_id))

    def _rollback(self, transaction: InMemoryTransaction) -> None:
        for (table, record_id), row in transaction.undo_log.items():
            if row is None:
                self._rows[table].pop(record_id, None)
            else:
                self._rows[table][record_id] = row


def _index_fields(table: TableName, index: TableIndex) -> list[str]:
    fields = TABLE_INDEXES[table].get(index)
    if fields is None:
        raise _query_error(table, "page", f"Index {index} is not declared")
    return fields


def _sort_token(value: object) -> _SortToken:
    if value is None:
        return (0, "")
    if isinstance(value, bool):
        return (1, int(value))
    if isinstance(value, int | float):
        return (2, value)
    return (3, str(value))


def _sort_key(row: _Row, fields: list[str]) -> tuple[_SortToken, ...]:
    return tuple(_sort_token(row.get(field)) for field in fields) + (
        _sort_token(row["id"]),
    )


def _encode_cursor(values: list[object]) -> Cursor:
    return base64.urlsafe_b64encode(orjson.dumps(values)).decode("ascii")


def _decode_cursor(table: TableName, cursor: Cursor) -> tuple[_SortToken, ...]:
    try:
        values: list[JsonScalar] = orjson.loads(base64.urlsafe_b64decode(cursor))
    except (binascii.Error, ValueError) as exc:
        raise _query_error(table, "page", f"Invalid cursor: {exc}") from exc
    if not isinstance(values, list):
        raise _query_error(table, "page", "Invalid cursor")
    return tuple(_sort_token(value) for value in values)


def _to_model(table: TableName, row: _Row, model: type[RecordT]) -> RecordT:
    try:
        return model.model_validate_json(orjson.dumps(row))
    except ValidationError as exc:
        raise StorageError(
            StorageErrorInfo(
                code=StorageErrorCode.SERIALIZATION_ERROR,
                message="Stored row does not match the requested model",
                details=StorageErrorDetails(
                    operation="read",
                    table=table,
                    record_id=str(row.get("id")),
                    reason=str(exc),
                ),
            )
        ) from exc


def _query_error(table: TableName, operation: str, reason: str) -> StorageError:
    return StorageError(
        StorageErrorInfo(
            code=StorageErrorCode.NOT_FOUND,
            message=reason,
            details=StorageErrorDetails(
                operation=operation, table=table, reason=reason
            ),
        )
    )
