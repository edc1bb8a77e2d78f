"""Blob store adapters."""

from locforge_io.blobs.filesystem import FileSystemBlobStore
from locforge_io.blobs.memory import InMemoryBlobStore

__all__ = ["FileSystemBlobStore", "InMemoryBlobStore"]
