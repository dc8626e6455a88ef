"""Repository Mirror - per-tenant filtered mirrors of source repositories.

Keeps a blob mirror of each connected repository consistent with upstream:
- Full sync from a single repository archive
- Incremental sync from push event change-sets
- Summary metadata regenerated after every sync
- Fire-and-forget reindex trigger for the external search index
- Tenant onboarding and purge

Python Version: 3.10+ required
"""

from .__version__ import __version__
from .archive import extract_archive
from .changeset import extract_change_set
from .config import MirrorConfig, get_config, reset_config
from .exceptions import (
    InstallationNotFound,
    InvalidMirrorPath,
    MirrorError,
    MirrorStoreError,
    RateLimitExceeded,
    RepositoryNotAccessible,
    TransportError,
)
from .filters import DEFAULT_POLICY, FilterPolicy, should_mirror
from .keyspace import TenantKeyspace
from .lifecycle import InstallationLifecycle
from .logging_config import StructuredFormatter, configure_logging
from .models import (
    ArchiveEntry,
    ChangeSet,
    DeleteResult,
    Installation,
    PartialWriteFailure,
    PushEvent,
    Summary,
    SyncResult,
)
from .records import RecordStore
from .reindex import ReindexNotifier, ReindexOutcome
from .service import MirrorService, build_service
from .store import BlobStore, LocalBlobStore
from .summary import SummaryGenerator, compose_summary
from .sync import SyncOrchestrator

__all__ = [
    "DEFAULT_POLICY",
    "ArchiveEntry",
    "BlobStore",
    "ChangeSet",
    "DeleteResult",
    "FilterPolicy",
    "Installation",
    "InstallationLifecycle",
    "InstallationNotFound",
    "InvalidMirrorPath",
    "LocalBlobStore",
    "MirrorConfig",
    "MirrorError",
    "MirrorService",
    "MirrorStoreError",
    "PartialWriteFailure",
    "PushEvent",
    "RateLimitExceeded",
    "RecordStore",
    "ReindexNotifier",
    "ReindexOutcome",
    "RepositoryNotAccessible",
    "StructuredFormatter",
    "Summary",
    "SummaryGenerator",
    "SyncOrchestrator",
    "SyncResult",
    "TenantKeyspace",
    "TransportError",
    "__version__",
    "build_service",
    "compose_summary",
    "configure_logging",
    "extract_archive",
    "extract_change_set",
    "get_config",
    "reset_config",
    "should_mirror",
]
