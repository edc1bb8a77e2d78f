"""locforge-io: adapters for tables, blobs, scheduling, logs and config."""

from locforge_io.blobs import FileSystemBlobStore, InMemoryBlobStore
from locforge_io.config import (
    ConfigError,
    EngineSettings,
    get_settings,
    load_engine_config,
)
from locforge_io.scheduling import AsyncioScheduler, DeadLetter, InMemoryScheduler
from locforge_io.storage import (
    CompositeLogSink,
    CompositeProgressSink,
    ConsoleLogSink,
    FileSystemLogStore,
    FileSystemProgressSink,
    InMemoryLogSink,
    InMemoryProgressSink,
    NoopLogSink,
    StorageLogSink,
    build_log_sink,
)
from locforge_io.tables import InMemoryTableStore

__version__ = "0.1.0"

__all__ = [
    "AsyncioScheduler",
    "CompositeLogSink",
    "CompositeProgressSink",
    "ConfigError",
    "ConsoleLogSink",
    "DeadLetter",
    "EngineSettings",
    "FileSystemBlobStore",
    "FileSystemLogStore",
    "FileSystemProgressSink",
    "InMemoryBlobStore",
    "InMemoryLogSink",
    "InMemoryProgressSink",
    "InMemoryScheduler",
    "InMemoryTableStore",
    "NoopLogSink",
    "StorageLogSink",
    "build_log_sink",
    "get_settings",
    "load_engine_config",
]
