"""Wiring of the mirror components from configuration."""

import logging
from dataclasses import dataclass

from .config import MirrorConfig, get_config
from .filters import FilterPolicy
from .keyspace import TenantKeyspace
from .lifecycle import InstallationLifecycle
from .records import RecordStore
from .reindex import ReindexNotifier
from .store import LocalBlobStore
from .summary import SummaryGenerator
from .sync import SyncOrchestrator, github_client_factory

logger = logging.getLogger("repo_mirror.service")

__all__ = ["MirrorService", "build_service"]


@dataclass
class MirrorService:
    """Every long-lived component of one mirror process."""

    config: MirrorConfig
    keyspace: TenantKeyspace
    records: RecordStore
    summaries: SummaryGenerator
    notifier: ReindexNotifier
    orchestrator: SyncOrchestrator
    lifecycle: InstallationLifecycle

    async def drain(self) -> None:
        """Wait for background syncs and reindex triggers to finish."""
        await self.lifecycle.drain()
        await self.notifier.drain()

    async def close(self) -> None:
        await self.drain()
        await self.records.close()


def build_service(config: MirrorConfig | None = None) -> MirrorService:
    """Assemble the mirror from configuration (get_config() if None)."""
    config = config or get_config()

    keyspace = TenantKeyspace(LocalBlobStore(config.mirror_root), config.mirror_key_root)
    records = RecordStore(config.database_url, echo=config.database_echo)
    summaries = SummaryGenerator(
        keyspace,
        topic_limit=config.summary_topic_limit,
        recent_limit=config.summary_recent_limit,
    )
    notifier = ReindexNotifier.from_config(config)
    orchestrator = SyncOrchestrator(
        keyspace,
        records,
        summaries,
        notifier,
        github_client_factory(config),
        policy=FilterPolicy.from_config(config),
        fan_out=config.incremental_fan_out,
    )
    lifecycle = InstallationLifecycle(
        keyspace,
        records,
        orchestrator,
        notifier,
        page_size=config.delete_page_size,
    )
    logger.debug(
        "mirror_service_built",
        extra={"mirror_root": str(config.mirror_root), "reindex": config.reindex_enabled},
    )
    return MirrorService(
        config=config,
        keyspace=keyspace,
        records=records,
        summaries=summaries,
        notifier=notifier,
        orchestrator=orchestrator,
        lifecycle=lifecycle,
    )
