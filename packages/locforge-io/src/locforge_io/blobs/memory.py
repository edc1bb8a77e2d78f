"""In-memory blob store."""

from __future__ import annotations

from locforge_core.ports.blobs import BlobStoreProtocol
from locforge_core.workflow import new_id
from locforge_schemas.primitives import BlobKey


class InMemoryBlobStore(BlobStoreProtocol):
    """Blob store keeping bytes in a dictionary."""

    def __init__(self) -> None:
        """Initialize an empty blob store."""
        self._blobs: dict[BlobKey, bytes] = {}

    @property
    def keys(self) -> list[BlobKey]:
        """Return stored keys in sorted order."""
        return sorted(self._blobs)

    async def put(self, data: bytes, *, key: BlobKey | None = None) -> BlobKey:
        """Store bytes under `key`, or under a fresh key when none is given."""
        key = key or f"blobs/{new_id()}"
        self._blobs[key] = bytes(data)
        return key

    async def get(self, key: BlobKey) -> bytes | None:
        """Load bytes, or None when the key is missing."""
        return self._blobs.get(key)

    async def delete(self, key: BlobKey) -> None:
        """Delete a blob if present."""
        self._blobs.pop(key, None)

    async def exists(self, key: BlobKey) -> bool:
        """Return whether a blob is stored under the key."""
        return key in self._blobs

    async def list_keys(self, prefix: str) -> list[BlobKey]:
        """Return the stored keys starting with `prefix`, sorted."""
        return sorted(key for key in self._blobs if key.startswith(prefix))
