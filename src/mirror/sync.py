"""Sync orchestration: full (archive) and incremental (per-file) mirroring.

FullSync fetches the whole repository as one tarball, so a tenant of any
size costs a single outbound request. A failed archive fetch aborts the
sync before anything is written.

IncrementalSync applies one push's change-set file by file. A file that
cannot be fetched, written or removed is recorded on the result and the
batch carries on.

Both strategies finish the same way: regenerate the tenant summary, stamp
last_sync_at, then schedule an external reindex without awaiting it.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from datetime import datetime, timezone

from .archive import extract_archive
from .changeset import extract_change_set
from .config import MirrorConfig
from .exceptions import InstallationNotFound, MirrorError, TransportError
from .filters import DEFAULT_POLICY, FilterPolicy, should_mirror
from .github.client import GitHubClient
from .keyspace import TenantKeyspace
from .metrics import sync_duration_seconds, sync_files_total, sync_runs_total
from .models import ChangeSet, PartialWriteFailure, PushEvent, SyncResult
from .records import RecordStore
from .reindex import ReindexNotifier
from .summary import SummaryGenerator, is_readme

logger = logging.getLogger("repo_mirror.sync")

__all__ = ["ClientFactory", "SyncOrchestrator", "github_client_factory"]

# repo full name -> client usable as an async context manager
ClientFactory = Callable[[str], GitHubClient]


def github_client_factory(config: MirrorConfig) -> ClientFactory:
    """Build GitHubClient instances from configuration."""

    def factory(repo: str) -> GitHubClient:
        return GitHubClient(
            config.github_token.get_secret_value(),
            repo,
            base_url=config.github_api_url,
            max_retries=config.github_max_retries,
            connect_timeout=config.github_connect_timeout,
            read_timeout=config.github_read_timeout,
        )

    return factory


def _remaining_quota(client: GitHubClient) -> int | None:
    return client.get_rate_limit_status().get("primary_remaining")


class SyncOrchestrator:
    """Keeps tenant mirrors consistent with their upstream repositories.

    Attributes:
        keyspace: Tenant-prefixed access to the mirror store
        records: Installation records (last_sync_at, push routing)
        summaries: Summary regeneration after each sync
        notifier: External reindex trigger
        client_factory: Creates a source client for a repository
        policy: Content filter applied to every candidate path
        fan_out: Maximum concurrent per-file operations in IncrementalSync
    """

    def __init__(
        self,
        keyspace: TenantKeyspace,
        records: RecordStore,
        summaries: SummaryGenerator,
        notifier: ReindexNotifier,
        client_factory: ClientFactory,
        policy: FilterPolicy = DEFAULT_POLICY,
        fan_out: int = 1,
    ) -> None:
        self.keyspace = keyspace
        self.records = records
        self.summaries = summaries
        self.notifier = notifier
        self.client_factory = client_factory
        self.policy = policy
        self.fan_out = max(1, fan_out)

    async def full_sync(self, tenant_id: str, repo: str) -> SyncResult:
        """Mirror the whole repository from a single archive download.

        Paths mirrored by a previous sync but absent from the archive are
        removed, so the mirror ends up holding exactly the accepted entries.

        Raises:
            TransportError: If the archive cannot be fetched or decoded;
                nothing is written and last_sync_at is unchanged
        """
        start = time.monotonic()
        result = SyncResult(tenant_id=tenant_id, mode="full")
        logger.info("full_sync_started", extra={"tenant_id": tenant_id, "repo": repo})

        try:
            async with self.client_factory(repo) as client:
                archive = await client.download_tarball()
                result.rate_limit_remaining = _remaining_quota(client)
            entries = extract_archive(archive)
        except TransportError as e:
            sync_runs_total.labels(mode="full", status="failed").inc()
            logger.error(
                "full_sync_fetch_failed",
                extra={"tenant_id": tenant_id, "repo": repo, "error": str(e)},
            )
            raise

        previous = set(await self.keyspace.list_paths(tenant_id))

        accepted: set[str] = set()
        written: list[str] = []
        readme_texts: dict[str, str] = {}
        for entry in entries:
            if not should_mirror(entry.path, self.policy):
                result.files_filtered += 1
                continue
            accepted.add(entry.path)
            text = entry.text
            try:
                await self.keyspace.write(tenant_id, entry.path, text)
            except MirrorError as e:
                self._record_failure(result, entry.path, "write", e)
                continue
            written.append(entry.path)
            if is_readme(entry.path):
                readme_texts[entry.path] = text
        result.files_written = len(written)

        for path in sorted(previous - accepted):
            try:
                if await self.keyspace.remove(tenant_id, path):
                    result.files_removed += 1
            except MirrorError as e:
                self._record_failure(result, path, "remove", e)

        await self._regenerate_summary(result, written, readme_texts)
        return await self._complete(result, start)

    async def repository_accessible(self, repo: str) -> bool:
        """True when the installation token lists repo among its repositories.

        Raises:
            TransportError: If the repository listing cannot be fetched
        """
        async with self.client_factory(repo) as client:
            repositories = await client.list_installation_repositories()
        names = {str(r.get("full_name", "")).lower() for r in repositories}
        return repo.lower() in names

    async def resync(self, tenant_id: str) -> SyncResult:
        """Run a FullSync for a registered tenant.

        Raises:
            InstallationNotFound: If no installation has this id
            TransportError: If the archive cannot be fetched
        """
        installation = await self.records.get_installation(tenant_id)
        if installation is None:
            raise InstallationNotFound(tenant_id)
        return await self.full_sync(installation.id, installation.repo_full_name)

    async def incremental_sync(
        self,
        tenant_id: str,
        repo: str,
        change_set: ChangeSet,
    ) -> SyncResult:
        """Apply one change-set to a tenant's mirror, file by file.

        Each changed path is fetched individually and written; each removed
        path is deleted. Per-file failures are recorded and skipped. The
        summary is rebuilt from a fresh listing of the whole mirror.
        """
        start = time.monotonic()
        result = SyncResult(tenant_id=tenant_id, mode="incremental")
        logger.info(
            "incremental_sync_started",
            extra={
                "tenant_id": tenant_id,
                "repo": repo,
                "changed": len(change_set.changed),
                "removed": len(change_set.removed),
            },
        )

        semaphore = asyncio.Semaphore(self.fan_out)

        async with self.client_factory(repo) as client:

            async def write_one(path: str) -> None:
                async with semaphore:
                    try:
                        text = await client.get_file_content(path)
                        await self.keyspace.write(tenant_id, path, text)
                        result.files_written += 1
                    except Exception as e:
                        self._record_failure(result, path, "write", e)

            async def remove_one(path: str) -> None:
                async with semaphore:
                    try:
                        if await self.keyspace.remove(tenant_id, path):
                            result.files_removed += 1
                    except Exception as e:
                        self._record_failure(result, path, "remove", e)

            to_write = []
            for path in sorted(change_set.changed):
                if should_mirror(path, self.policy):
                    to_write.append(path)
                else:
                    result.files_filtered += 1

            await asyncio.gather(*(write_one(p) for p in to_write))
            await asyncio.gather(*(remove_one(p) for p in sorted(change_set.removed)))
            result.rate_limit_remaining = _remaining_quota(client)

        try:
            paths = await self.keyspace.list_paths(tenant_id)
        except MirrorError as e:
            logger.warning(
                "summary_listing_failed",
                extra={"tenant_id": tenant_id, "error": str(e)},
            )
        else:
            await self._regenerate_summary(result, paths)
        return await self._complete(result, start)

    async def handle_push(self, event: PushEvent) -> list[SyncResult]:
        """Route a push event to every tenant mirroring its repository.

        Pushes to branches other than the repository default branch, pushes
        whose change-set is empty after filtering, and pushes for unknown
        repositories are ignored. A failure for one tenant does not stop
        the others.
        """
        if not event.targets_default_branch:
            logger.info(
                "push_ignored",
                extra={"repo": event.repository, "ref": event.ref, "reason": "branch"},
            )
            return []

        change_set = extract_change_set(event.commits, self.policy)
        if change_set.is_empty:
            logger.info(
                "push_ignored",
                extra={"repo": event.repository, "ref": event.ref, "reason": "empty"},
            )
            return []

        installations = await self.records.find_by_repository(event.repository)
        if not installations:
            logger.warning("push_unrouted", extra={"repo": event.repository})
            return []

        results = []
        for installation in installations:
            try:
                results.append(
                    await self.incremental_sync(
                        installation.id, installation.repo_full_name, change_set
                    )
                )
            except Exception as e:
                sync_runs_total.labels(mode="incremental", status="failed").inc()
                logger.error(
                    "incremental_sync_failed",
                    extra={
                        "tenant_id": installation.id,
                        "repo": installation.repo_full_name,
                        "error": str(e),
                        "error_type": type(e).__name__,
                    },
                )
        return results

    # --- helpers ---

    def _record_failure(
        self,
        result: SyncResult,
        path: str,
        operation: str,
        error: Exception,
    ) -> None:
        result.failures.append(PartialWriteFailure(path, operation, str(error)))
        sync_files_total.labels(mode=result.mode, action="failed").inc()
        logger.error(
            "sync_file_failed",
            extra={
                "tenant_id": result.tenant_id,
                "mode": result.mode,
                "path": path,
                "operation": operation,
                "error": str(error),
                "error_type": type(error).__name__,
            },
        )

    async def _regenerate_summary(
        self,
        result: SyncResult,
        paths: list[str],
        contents: dict[str, str] | None = None,
    ) -> None:
        result.file_count = len(paths)
        try:
            await self.summaries.regenerate(result.tenant_id, paths, contents)
        except MirrorError as e:
            logger.warning(
                "summary_regeneration_failed",
                extra={"tenant_id": result.tenant_id, "error": str(e)},
            )

    async def _complete(self, result: SyncResult, start: float) -> SyncResult:
        completed_at = datetime.now(timezone.utc)
        await self.records.mark_synced(result.tenant_id, completed_at)
        self.notifier.schedule()

        result.completed_at = completed_at
        result.duration_seconds = time.monotonic() - start

        mode = result.mode
        sync_runs_total.labels(mode=mode, status="success").inc()
        sync_duration_seconds.labels(mode=mode).observe(result.duration_seconds)
        sync_files_total.labels(mode=mode, action="written").inc(result.files_written)
        sync_files_total.labels(mode=mode, action="removed").inc(result.files_removed)
        sync_files_total.labels(mode=mode, action="filtered").inc(result.files_filtered)

        logger.info(f"{mode}_sync_complete", extra=result.to_dict())
        return result
