"""Log sinks receiving the structured entries emitted by workflow drivers.

Every entry carries the id of the build or deletion workflow it belongs to,
so a file sink yields one JSONL stream per workflow. `build_log_sink` turns
the `[logging]` table of locforge.toml into a single sink, and tests use
`InMemoryLogSink` to assert the order of lifecycle events.
"""

from __future__ import annotations

import sys
from collections.abc import Iterable
from typing import TextIO

from locforge_core.ports.storage import LogStoreProtocol
from locforge_core.ports.workflow import LogSinkProtocol
from locforge_schemas.config import LoggingConfig
from locforge_schemas.logs import LogEntry
from locforge_schemas.primitives import LogSinkType


class StorageLogSink(LogSinkProtocol):
    """Appends entries to the per-workflow logs of a log store."""

    def __init__(self, store: LogStoreProtocol) -> None:
        """Initialize the sink over the store receiving the entries."""
        self._store = store

    async def emit_log(self, entry: LogEntry) -> None:
        """Append the entry to the log of its workflow."""
        await self._store.append_log(entry)


class CompositeLogSink(LogSinkProtocol):
    """Fans each entry out to several sinks, in configuration order."""

    def __init__(self, sinks: Iterable[LogSinkProtocol]) -> None:
        """Initialize the sink over its children."""
        self._sinks = list(sinks)

    async def emit_log(self, entry: LogEntry) -> None:
        """Hand the entry to every child sink in turn."""
        for sink in self._sinks:
            await sink.emit_log(entry)


class ConsoleLogSink(LogSinkProtocol):
    """Writes one JSON line per entry, to stderr unless told otherwise."""

    def __init__(self, stream: TextIO | None = None) -> None:
        """Initialize the console sink.

        Args:
            stream: Text stream receiving the lines; stderr keeps stdout
                free for the CLI's JSON response.
        """
        self._stream = stream or sys.stderr

    async def emit_log(self, entry: LogEntry) -> None:
        """Write the entry as one line and flush."""
        self._stream.write(entry.model_dump_json(exclude_none=False) + "\n")
        self._stream.flush()


class NoopLogSink(LogSinkProtocol):
    """Discards entries; selected by `type = "noop"`."""

    async def emit_log(self, entry: LogEntry) -> None:
        """Drop the entry."""
        return None


class InMemoryLogSink(LogSinkProtocol):
    """Log sink that keeps entries in memory, mostly for inspection in tests."""

    def __init__(self) -> None:
        """Initialize the in-memory log sink."""
        self._entries: list[LogEntry] = []

    @property
    def entries(self) -> list[LogEntry]:
        """Return a copy of stored log entries."""
        return list(self._entries)

    def events(self, workflow_id: str | None = None) -> list[str]:
        """Return event names in emission order, optionally for one workflow."""
        return [
            entry.event
            for entry in self._entries
            if workflow_id is None or entry.workflow_id == workflow_id
        ]

    async def emit_log(self, entry: LogEntry) -> None:
        """Store a log entry in memory."""
        self._entries.append(entry)


def build_log_sink(
    logging_config: LoggingConfig,
    log_store: LogStoreProtocol,
    *,
    stream: TextIO | None = None,
) -> LogSinkProtocol:
    """Build the sink described by the `[logging]` configuration.

    Args:
        logging_config: Configured sinks, in order.
        log_store: Store behind `file` sinks.
        stream: Optional stream for `console` sinks.

    Returns:
        LogSinkProtocol: The only configured sink, or a composite of all.

    Raises:
        ValueError: If an unsupported log sink type is configured.
    """
    sinks: list[LogSinkProtocol] = []
    for sink_config in logging_config.sinks:
        if sink_config.type == LogSinkType.FILE:
            sinks.append(StorageLogSink(log_store))
        elif sink_config.type == LogSinkType.CONSOLE:
            sinks.append(ConsoleLogSink(stream=stream))
        elif sink_config.type == LogSinkType.NOOP:
            sinks.append(NoopLogSink())
        else:
            raise ValueError(f"Unsupported log sink type: {sink_config.type}")
    if len(sinks) == 1:
        return sinks[0]
    return CompositeLogSink(sinks)
