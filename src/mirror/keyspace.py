"""Tenant keyspace: isolates each tenant's mirror under its own key prefix.

Key layout:
    {key_root}/{tenant_id}/{repo-relative-path}
    {key_root}/{tenant_id}/_summary.json        (reserved, holds the Summary)

Every mirror read, write, listing and purge goes through this class, so
no caller builds a raw store key and tenants never share keys.
"""

import logging

from .config import SUMMARY_FILENAME
from .exceptions import InvalidMirrorPath
from .store import BlobStore

logger = logging.getLogger("repo_mirror.keyspace")

__all__ = ["TenantKeyspace", "normalize_path"]

LIST_PAGE_SIZE = 1000


def normalize_path(path: str) -> str:
    """Normalize a repository-relative path for use as a key suffix.

    Strips leading "/" and rejects empty paths and "." / ".." segments.
    """
    normalized = path.lstrip("/")
    if not normalized:
        raise InvalidMirrorPath("Empty mirror path")
    if any(part in ("", ".", "..") for part in normalized.split("/")):
        raise InvalidMirrorPath(f"Invalid mirror path: {path!r}")
    return normalized


class TenantKeyspace:
    """Maps tenant identifiers to isolated prefixes in a BlobStore.

    Attributes:
        store: Underlying blob store
        key_root: First segment shared by all tenant prefixes
    """

    def __init__(self, store: BlobStore, key_root: str = "brains") -> None:
        self.store = store
        self.key_root = key_root.strip("/")

    def prefix(self, tenant_id: str) -> str:
        if not tenant_id or "/" in tenant_id:
            raise InvalidMirrorPath(f"Invalid tenant id: {tenant_id!r}")
        return f"{self.key_root}/{tenant_id}"

    def key_for(self, tenant_id: str, path: str) -> str:
        normalized = normalize_path(path)
        if normalized == SUMMARY_FILENAME:
            raise InvalidMirrorPath(f"Reserved mirror path: {path!r}")
        return f"{self.prefix(tenant_id)}/{normalized}"

    def summary_key(self, tenant_id: str) -> str:
        return f"{self.prefix(tenant_id)}/{SUMMARY_FILENAME}"

    async def write(self, tenant_id: str, path: str, text: str) -> None:
        await self.store.put(self.key_for(tenant_id, path), text)

    async def read(self, tenant_id: str, path: str) -> str | None:
        return await self.store.get(self.key_for(tenant_id, path))

    async def remove(self, tenant_id: str, path: str) -> bool:
        return await self.store.delete(self.key_for(tenant_id, path))

    async def write_summary(self, tenant_id: str, text: str) -> None:
        await self.store.put(self.summary_key(tenant_id), text)

    async def read_summary(self, tenant_id: str) -> str | None:
        return await self.store.get(self.summary_key(tenant_id))

    async def list_paths(self, tenant_id: str) -> list[str]:
        """List every mirrored repository-relative path of a tenant.

        Walks all pages; the reserved summary key is not a mirrored file
        and is excluded.
        """
        key_prefix = f"{self.prefix(tenant_id)}/"
        summary_key = self.summary_key(tenant_id)
        paths: list[str] = []
        cursor = None
        while True:
            keys, cursor = await self.store.list_keys(
                key_prefix, cursor=cursor, limit=LIST_PAGE_SIZE
            )
            paths.extend(k[len(key_prefix) :] for k in keys if k != summary_key)
            if cursor is None:
                break
        return paths

    async def purge(self, tenant_id: str, page_size: int = LIST_PAGE_SIZE) -> int:
        """Delete every key of a tenant, summary included.

        Lists a bounded page, bulk-deletes it and repeats until the listing
        comes back empty. Purging an empty tenant returns 0.

        Returns:
            Number of keys deleted
        """
        key_prefix = f"{self.prefix(tenant_id)}/"
        deleted = 0
        while True:
            keys, _ = await self.store.list_keys(key_prefix, limit=page_size)
            if not keys:
                break
            removed = await self.store.delete_many(keys)
            deleted += removed
            logger.debug(
                "tenant_purge_page",
                extra={"tenant_id": tenant_id, "listed": len(keys), "deleted": removed},
            )
            if removed == 0:
                # page made no progress
                logger.warning(
                    "tenant_purge_stalled",
                    extra={"tenant_id": tenant_id, "remaining": len(keys)},
                )
                break
        return deleted
