"""Storage adapters for logs and progress."""

from locforge_io.storage.filesystem import FileSystemLogStore
from locforge_io.storage.log_sink import (
    CompositeLogSink,
    ConsoleLogSink,
    InMemoryLogSink,
    NoopLogSink,
    StorageLogSink,
    build_log_sink,
)
from locforge_io.storage.progress_sink import (
    CompositeProgressSink,
    FileSystemProgressSink,
    InMemoryProgressSink,
)

__all__ = [
    "CompositeLogSink",
    "CompositeProgressSink",
    "ConsoleLogSink",
    "FileSystemLogStore",
    "FileSystemProgressSink",
    "InMemoryLogSink",
    "InMemoryProgressSink",
    "NoopLogSink",
    "StorageLogSink",
    "build_log_sink",
]
