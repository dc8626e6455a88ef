"""Tenant creation and deletion.

create() persists a new installation and starts its first FullSync in the
background; the caller gets the Installation back immediately.

delete() purges the tenant's mirror page by page, then removes dependent
records and the installation row. Each step is guarded on its own and the
outcome of every step is reported on the DeleteResult. Deleting a tenant
that holds nothing succeeds with objects_deleted == 0.
"""

import asyncio
import logging
import uuid
from datetime import datetime, timezone

from .exceptions import RepositoryNotAccessible
from .keyspace import LIST_PAGE_SIZE, TenantKeyspace
from .metrics import purged_objects_total, tenant_purges_total
from .models import DeleteResult, Installation
from .records import RecordStore
from .reindex import ReindexNotifier
from .sync import SyncOrchestrator

logger = logging.getLogger("repo_mirror.lifecycle")

__all__ = ["InstallationLifecycle"]


class InstallationLifecycle:
    """Onboards and removes tenants.

    Attributes:
        keyspace: Tenant-prefixed mirror access (purge)
        records: Installation and dependent records
        orchestrator: Runs the initial FullSync
        notifier: External reindex trigger, notified after deletion
        page_size: Keys listed and deleted per purge round
    """

    def __init__(
        self,
        keyspace: TenantKeyspace,
        records: RecordStore,
        orchestrator: SyncOrchestrator,
        notifier: ReindexNotifier,
        page_size: int = LIST_PAGE_SIZE,
    ) -> None:
        self.keyspace = keyspace
        self.records = records
        self.orchestrator = orchestrator
        self.notifier = notifier
        self.page_size = page_size
        self._tasks: set[asyncio.Task] = set()

    async def create(
        self,
        github_installation_id: int,
        repo_full_name: str,
        account_login: str,
        verify_access: bool = False,
    ) -> Installation:
        """Register a tenant and schedule its initial FullSync.

        Args:
            verify_access: Confirm the token lists the repository before
                anything is persisted

        Returns:
            The persisted Installation; the sync runs after this returns

        Raises:
            RepositoryNotAccessible: verify_access is set and the repository
                is not among the installation repositories
        """
        if verify_access and not await self.orchestrator.repository_accessible(
            repo_full_name
        ):
            raise RepositoryNotAccessible(repo_full_name)

        installation = Installation(
            id=str(uuid.uuid4()),
            github_installation_id=github_installation_id,
            repo_full_name=repo_full_name,
            account_login=account_login,
            created_at=datetime.now(timezone.utc),
        )
        await self.records.add_installation(installation)
        logger.info(
            "installation_created",
            extra={
                "tenant_id": installation.id,
                "repo": repo_full_name,
                "github_installation_id": github_installation_id,
            },
        )

        task = asyncio.create_task(
            self.orchestrator.full_sync(installation.id, repo_full_name)
        )
        self._tasks.add(task)
        task.add_done_callback(
            lambda t, tenant_id=installation.id: self._on_sync_done(t, tenant_id)
        )
        return installation

    def _on_sync_done(self, task: asyncio.Task, tenant_id: str) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("initial_sync_cancelled", extra={"tenant_id": tenant_id})
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "initial_sync_failed",
                extra={
                    "tenant_id": tenant_id,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )

    async def drain(self) -> None:
        """Wait for every scheduled initial sync to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def delete(self, tenant_id: str) -> DeleteResult:
        """Remove a tenant's mirror and every record that belongs to it.

        Never raises for a failing step: mirror purge, dependent records
        and the installation row are attempted independently and reported
        under result.records as "ok" or "error: <reason>".
        """
        result = DeleteResult(tenant_id=tenant_id)

        try:
            result.objects_deleted = await self.keyspace.purge(
                tenant_id, page_size=self.page_size
            )
            result.records["mirror"] = "ok"
            purged_objects_total.inc(result.objects_deleted)
        except Exception as e:
            result.records["mirror"] = f"error: {e}"
            logger.error(
                "tenant_mirror_purge_failed",
                extra={"tenant_id": tenant_id, "error": str(e)},
            )

        try:
            result.records.update(await self.records.delete_dependents(tenant_id))
        except Exception as e:
            result.records["dependents"] = f"error: {e}"
            logger.error(
                "tenant_dependents_delete_failed",
                extra={"tenant_id": tenant_id, "error": str(e)},
            )

        try:
            result.installation_removed = await self.records.delete_installation(
                tenant_id
            )
            result.records["installations"] = "ok"
        except Exception as e:
            result.records["installations"] = f"error: {e}"
            logger.error(
                "tenant_installation_delete_failed",
                extra={"tenant_id": tenant_id, "error": str(e)},
            )

        self.notifier.schedule()

        tenant_purges_total.labels(
            status="success" if result.success else "partial"
        ).inc()
        logger.info(
            "tenant_deleted",
            extra={
                "tenant_id": tenant_id,
                "objects_deleted": result.objects_deleted,
                "installation_removed": result.installation_removed,
                "success": result.success,
            },
        )
        return result
