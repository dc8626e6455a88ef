"""Blob store backing the tenant mirror.

The mirror is a flat key -> text store. Keys are "/"-separated strings;
TenantKeyspace is the only caller that builds them.

LocalBlobStore keeps each key as a file under a root directory. Blocking
filesystem calls run in a worker thread via asyncio.to_thread so the event
loop is never held by disk I/O, and writes go through a temp file plus an
atomic rename.
"""

import asyncio
import logging
import os
import tempfile
from pathlib import Path, PurePosixPath
from typing import Protocol

from .exceptions import InvalidMirrorPath, MirrorStoreError

logger = logging.getLogger("repo_mirror.store")

__all__ = ["BlobStore", "LocalBlobStore", "validate_key"]

_TMP_PREFIX = ".blob_"
_TMP_SUFFIX = ".tmp"


class BlobStore(Protocol):
    """Async key -> text store used by TenantKeyspace."""

    async def put(self, key: str, text: str) -> None: ...

    async def get(self, key: str) -> str | None: ...

    async def delete(self, key: str) -> bool: ...

    async def delete_many(self, keys: list[str]) -> int: ...

    async def list_keys(
        self, prefix: str, cursor: str | None = None, limit: int = 1000
    ) -> tuple[list[str], str | None]:
        """List keys starting with prefix in lexicographic order.

        Returns at most ``limit`` keys strictly after ``cursor`` and the
        cursor for the next page (None when this page is the last).
        """
        ...


def validate_key(key: str) -> str:
    """Reject keys that are empty, absolute or contain traversal segments."""
    if not key or key.startswith("/") or "\\" in key:
        raise InvalidMirrorPath(f"Invalid mirror key: {key!r}")
    parts = key.split("/")
    if any(part in ("", ".", "..") for part in parts):
        raise InvalidMirrorPath(f"Invalid mirror key: {key!r}")
    return key


class LocalBlobStore:
    """Filesystem-backed BlobStore.

    Attributes:
        root: Directory under which every key is stored as a file
    """

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        return self.root.joinpath(*PurePosixPath(validate_key(key)).parts)

    # --- sync implementations (run in worker threads) ---

    def _put_sync(self, key: str, text: str) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path_str = tempfile.mkstemp(
            dir=path.parent, prefix=_TMP_PREFIX, suffix=_TMP_SUFFIX
        )
        tmp_path = Path(tmp_path_str)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
            tmp_path.replace(path)
        except Exception:
            if tmp_path.exists():
                tmp_path.unlink()
            raise

    def _get_sync(self, key: str) -> str | None:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def _delete_sync(self, key: str) -> bool:
        path = self._path(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        self._prune_empty_dirs(path.parent)
        return True

    def _prune_empty_dirs(self, directory: Path) -> None:
        root = self.root.resolve()
        current = directory
        while current.resolve() != root and root in current.resolve().parents:
            try:
                current.rmdir()
            except OSError:
                break  # not empty
            current = current.parent

    def _list_sync(
        self, prefix: str, cursor: str | None, limit: int
    ) -> tuple[list[str], str | None]:
        # Walk only the deepest directory fully named by the prefix
        base_dir = prefix.rsplit("/", 1)[0] if "/" in prefix else ""
        base = self.root.joinpath(*PurePosixPath(base_dir).parts) if base_dir else self.root
        if not base.is_dir():
            return [], None

        keys = []
        for path in base.rglob("*"):
            if not path.is_file():
                continue
            if path.name.startswith(_TMP_PREFIX) and path.name.endswith(_TMP_SUFFIX):
                continue
            key = path.relative_to(self.root).as_posix()
            if key.startswith(prefix) and (cursor is None or key > cursor):
                keys.append(key)

        keys.sort()
        page = keys[:limit]
        next_cursor = page[-1] if len(keys) > limit else None
        return page, next_cursor

    # --- async API ---

    async def put(self, key: str, text: str) -> None:
        try:
            await asyncio.to_thread(self._put_sync, key, text)
        except OSError as e:
            raise MirrorStoreError(f"Failed to write {key}: {e}") from e

    async def get(self, key: str) -> str | None:
        try:
            return await asyncio.to_thread(self._get_sync, key)
        except OSError as e:
            raise MirrorStoreError(f"Failed to read {key}: {e}") from e

    async def delete(self, key: str) -> bool:
        try:
            return await asyncio.to_thread(self._delete_sync, key)
        except OSError as e:
            raise MirrorStoreError(f"Failed to delete {key}: {e}") from e

    async def delete_many(self, keys: list[str]) -> int:
        deleted = 0
        for key in keys:
            if await self.delete(key):
                deleted += 1
        return deleted

    async def list_keys(
        self, prefix: str, cursor: str | None = None, limit: int = 1000
    ) -> tuple[list[str], str | None]:
        if limit < 1:
            raise ValueError("limit must be >= 1")
        try:
            return await asyncio.to_thread(self._list_sync, prefix, cursor, limit)
        except OSError as e:
            raise MirrorStoreError(f"Failed to list {prefix}: {e}") from e
