"""Filesystem-backed blob store."""

from __future__ import annotations

import asyncio
from pathlib import Path, PurePosixPath

from locforge_core.ports.blobs import BlobStoreProtocol
from locforge_core.ports.storage import (
    StorageError,
    StorageErrorCode,
    StorageErrorDetails,
    StorageErrorInfo,
)
from locforge_core.workflow import new_id
from locforge_schemas.primitives import BlobKey


class FileSystemBlobStore(BlobStoreProtocol):
    """Blob store mapping keys to files below a base directory.

    Keys are POSIX-style relative paths; `builds/b1/en.json` is stored at
    `<base_dir>/builds/b1/en.json`.
    """

    def __init__(self, base_dir: str) -> None:
        """Initialize the blob store."""
        self._base_dir = Path(base_dir)

    async def put(self, data: bytes, *, key: BlobKey | None = None) -> BlobKey:
        """Write bytes to the file for `key`, replacing any previous content.

        Raises:
            StorageError: If the key is invalid or the file cannot be written.
        """
        key = key or f"blobs/{new_id()}"
        path = self._path_for(key, "put")
        try:
            await asyncio.to_thread(_write_bytes, path, data)
        except OSError as exc:
            raise _io_error("put", key, path, exc) from exc
        return key

    async def get(self, key: BlobKey) -> bytes | None:
        """Read the bytes stored for `key`.

        Returns:
            bytes | None: Blob content, or None when the file does not exist.

        Raises:
            StorageError: If the key is invalid or the file cannot be read.
        """
        path = self._path_for(key, "get")
        try:
            return await asyncio.to_thread(_read_bytes, path)
        except OSError as exc:
            raise _io_error("get", key, path, exc) from exc

    async def delete(self, key: BlobKey) -> None:
        """Remove the file for `key` if it exists.

        Raises:
            StorageError: If the key is invalid or the file cannot be removed.
        """
        path = self._path_for(key, "delete")
        try:
            await asyncio.to_thread(path.unlink, missing_ok=True)
        except OSError as exc:
            raise _io_error("delete", key, path, exc) from exc

    async def exists(self, key: BlobKey) -> bool:
        """Return whether a file is stored for `key`."""
        path = self._path_for(key, "exists")
        return await asyncio.to_thread(path.is_file)

    async def list_keys(self, prefix: str) -> list[BlobKey]:
        """Return the keys of stored files starting with `prefix`, sorted.

        Raises:
            StorageError: If the prefix escapes the store or cannot be listed.
        """
        root = self._path_for(PurePosixPath(prefix).parent.as_posix(), "list")
        try:
            files = await asyncio.to_thread(_list_files, root)
        except OSError as exc:
            raise _io_error("list", prefix, root, exc) from exc
        keys = (path.relative_to(self._base_dir).as_posix() for path in files)
        return sorted(key for key in keys if key.startswith(prefix))

    def _path_for(self, key: BlobKey, operation: str) -> Path:
        relative = PurePosixPath(key)
        if not key or relative.is_absolute() or ".." in relative.parts:
            raise StorageError(
                StorageErrorInfo(
                    code=StorageErrorCode.NOT_FOUND,
                    message="Blob key must be a relative path inside the store",
                    details=StorageErrorDetails(
                        operation=operation, blob_key=key, reason="invalid_key"
                    ),
                )
            )
        return self._base_dir.joinpath(*relative.parts)


def _write_bytes(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


def _read_bytes(path: Path) -> bytes | None:
    if not path.is_file():
        return None
    return path.read_bytes()


def _list_files(root: Path) -> list[Path]:
    if not root.is_dir():
        return []
    return [path for path in root.rglob("*") if path.is_file()]


def _io_error(operation: str, key: BlobKey, path: Path, exc: OSError) -> StorageError:
    return StorageError(
        StorageErrorInfo(
            code=StorageErrorCode.IO_ERROR,
            message=str(exc) or "Blob store I/O failed",
            details=StorageErrorDetails(
                operation=operation, blob_key=key, path=str(path)
            ),
        )
    )
