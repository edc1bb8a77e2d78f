"""Filesystem-backed log store."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from pathlib import Path

from pydantic import ValidationError

from locforge_core.ports.storage import (
    LogStoreProtocol,
    StorageError,
    StorageErrorCode,
    StorageErrorDetails,
    StorageErrorInfo,
)
from locforge_schemas.logs import LogEntry
from locforge_schemas.primitives import WorkflowId


class FileSystemLogStore(LogStoreProtocol):
    """Filesystem-backed JSONL log store, one file per workflow instance."""

    def __init__(self, logs_dir: str) -> None:
        """Initialize the log store."""
        self._logs_dir = Path(logs_dir)

    async def append_log(self, entry: LogEntry) -> None:
        """Append a single log entry.

        Raises:
            StorageError: If the log entry cannot be written.
        """
        await self.append_logs([entry])

    async def append_logs(self, entries: list[LogEntry]) -> None:
        """Append multiple log entries for the same workflow.

        Raises:
            StorageError: If the entries are mixed or cannot be written.
        """
        if not entries:
            return
        workflow_ids = {entry.workflow_id for entry in entries}
        if len(workflow_ids) != 1:
            raise StorageError(
                StorageErrorInfo(
                    code=StorageErrorCode.SERIALIZATION_ERROR,
                    message="Log entries must share a workflow_id",
                    details=StorageErrorDetails(
                        operation="append_logs", reason="mixed_workflow_ids"
                    ),
                )
            )
        path = self._log_path(next(iter(workflow_ids)))
        try:
            await asyncio.to_thread(_append_jsonl_many, path, entries)
        except OSError as exc:
            raise StorageError(
                StorageErrorInfo(
                    code=StorageErrorCode.IO_ERROR,
                    message=str(exc),
                    details=StorageErrorDetails(
                        operation="append_logs", path=str(path)
                    ),
                )
            ) from exc

    async def read_logs(self, workflow_id: WorkflowId) -> list[LogEntry]:
        """Read every log entry recorded for a workflow.

        Returns:
            list[LogEntry]: Entries in write order; empty when none exist.

        Raises:
            StorageError: If the log file cannot be read or parsed.
        """
        path = self._log_path(workflow_id)
        if not await asyncio.to_thread(path.exists):
            return []
        try:
            return await asyncio.to_thread(_read_jsonl_entries, path)
        except OSError as exc:
            raise StorageError(
                StorageErrorInfo(
                    code=StorageErrorCode.IO_ERROR,
                    message=str(exc),
                    details=StorageErrorDetails(operation="read_logs", path=str(path)),
                )
            ) from exc
        except ValidationError as exc:
            raise StorageError(
                StorageErrorInfo(
                    code=StorageErrorCode.SERIALIZATION_ERROR,
                    message="Stored log entry is invalid",
                    details=StorageErrorDetails(
                        operation="read_logs", path=str(path), reason=str(exc)
                    ),
                )
            ) from exc

    def _log_path(self, workflow_id: WorkflowId) -> Path:
        return self._logs_dir / f"{workflow_id}.jsonl"


def _append_jsonl_many(path: Path, payload: Sequence[LogEntry]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a", encoding="utf-8") as handle:
        handle.writelines(
            item.model_dump_json(exclude_none=False) + "\n" for item in payload
        )


def _read_jsonl_entries(path: Path) -> list[LogEntry]:
    entries: list[LogEntry] = []
    with open(path, encoding="utf-8") as handle:
        for line in handle:
            if not line.strip():
                continue
            entries.append(LogEntry.model_validate_json(line))
    return entries
