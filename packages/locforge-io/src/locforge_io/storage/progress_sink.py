"""Progress sink adapters for streaming workflow updates."""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

import anyio

from locforge_core.ports.workflow import ProgressSinkProtocol
from locforge_schemas.progress import WorkflowProgressUpdate


class FileSystemProgressSink(ProgressSinkProtocol):
    """Progress sink that appends JSONL updates to a file."""

    def __init__(self, path: str) -> None:
        """Initialize the progress sink with a file path."""
        self._path = Path(path)

    async def emit_progress(self, update: WorkflowProgressUpdate) -> None:
        """Append a progress update to the JSONL file."""
        await anyio.Path(self._path.parent).mkdir(parents=True, exist_ok=True)
        async with await anyio.open_file(self._path, "a", encoding="utf-8") as handle:
            await handle.write(update.model_dump_json(exclude_none=True) + "\n")


class InMemoryProgressSink(ProgressSinkProtocol):
    """Progress sink that stores updates in memory."""

    def __init__(self) -> None:
        """Initialize the in-memory progress sink."""
        self._updates: list[WorkflowProgressUpdate] = []

    @property
    def updates(self) -> list[WorkflowProgressUpdate]:
        """Return a copy of stored progress updates."""
        return list(self._updates)

    async def emit_progress(self, update: WorkflowProgressUpdate) -> None:
        """Store a progress update in memory."""
        self._updates.append(update)


class CompositeProgressSink(ProgressSinkProtocol):
    """Progress sink that forwards updates to multiple sinks."""

    def __init__(self, sinks: Iterable[ProgressSinkProtocol]) -> None:
        """Initialize the composite progress sink."""
        self._sinks = list(sinks)

    async def emit_progress(self, update: WorkflowProgressUpdate) -> None:
        """Forward progress updates to each sink."""
        for sink in self._sinks:
            await sink.emit_progress(update)
