"""Protocol definition for the immutable blob store."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from locforge_schemas.primitives import BlobKey


@runtime_checkable
class BlobStoreProtocol(Protocol):
    """Protocol for storing immutable byte artifacts by key.

    Writers that may be re-delivered pass a deterministic `key` so a repeated
    put overwrites the same blob instead of leaking a new one.
    """

    async def put(self, data: bytes, *, key: BlobKey | None = None) -> BlobKey:
        """Store bytes and return their key."""
        raise NotImplementedError

    async def get(self, key: BlobKey) -> bytes | None:
        """Load bytes, or None when the key is missing."""
        raise NotImplementedError

    async def delete(self, key: BlobKey) -> None:
        """Delete a blob; deleting a missing key is not an error."""
        raise NotImplementedError

    async def exists(self, key: BlobKey) -> bool:
        """Return whether a blob is stored under the key."""
        raise NotImplementedError

    async def list_keys(self, prefix: str) -> list[BlobKey]:
        """Return the stored keys starting with `prefix`, sorted."""
        raise NotImplementedError
