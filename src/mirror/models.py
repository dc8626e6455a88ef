"""Data models for tenants, change-sets, summaries and sync results.

Plain dataclasses passed between the sync engine and its collaborators.
Persistent installation rows live in records.py; these are the in-process
values.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

__all__ = [
    "ArchiveEntry",
    "ChangeSet",
    "DeleteResult",
    "Installation",
    "PartialWriteFailure",
    "PushEvent",
    "Summary",
    "SyncResult",
]


@dataclass(frozen=True)
class Installation:
    """One connected repository (a tenant).

    Attributes:
        id: Stable tenant identifier, also the mirror key prefix component
        github_installation_id: Upstream installation this tenant was created from
        repo_full_name: Upstream repository reference in owner/repo format
        account_login: Owner account name
        created_at: Onboarding time
        last_sync_at: Completion time of the last sync, None before the first
    """

    id: str
    github_installation_id: int
    repo_full_name: str
    account_login: str
    created_at: datetime
    last_sync_at: datetime | None = None


@dataclass(frozen=True)
class ArchiveEntry:
    """A regular file extracted from a repository archive.

    Content is kept as raw bytes; text decoding is deferred until the
    entry has passed the content filter.
    """

    path: str
    data: bytes

    @property
    def text(self) -> str:
        return self.data.decode("utf-8", errors="replace")


@dataclass(frozen=True)
class ChangeSet:
    """Paths changed and removed by one push event.

    changed and removed are always disjoint: a path re-added after removal
    within the same push is only in changed.
    """

    changed: frozenset[str] = frozenset()
    removed: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        overlap = self.changed & self.removed
        if overlap:
            raise ValueError(f"changed and removed overlap: {sorted(overlap)}")

    @property
    def is_empty(self) -> bool:
        return not self.changed and not self.removed


@dataclass(frozen=True)
class PushEvent:
    """The parts of a push webhook payload the sync engine consumes."""

    repository: str
    ref: str | None
    commits: list[dict[str, Any]] = field(default_factory=list)
    default_branch: str | None = None

    @property
    def targets_default_branch(self) -> bool:
        """True when the push updated the branch the mirror tracks.

        Payloads without ref or default_branch are treated as targeting it.
        """
        if not self.ref or not self.default_branch:
            return True
        return self.ref == f"refs/heads/{self.default_branch}"


@dataclass
class Summary:
    """Derived, advisory metadata describing a tenant's current mirror."""

    domains: set[str] = field(default_factory=set)
    topics: list[str] = field(default_factory=list)
    recent_files: list[str] = field(default_factory=list)
    file_count: int = 0
    last_updated: str = ""

    def to_dict(self) -> dict[str, Any]:
        """JSON shape stored under the tenant's summary key."""
        return {
            "domains": sorted(self.domains),
            "topics": list(self.topics),
            "recentFiles": list(self.recent_files),
            "lastUpdated": self.last_updated,
            "fileCount": self.file_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Summary":
        return cls(
            domains=set(data.get("domains") or []),
            topics=list(data.get("topics") or []),
            recent_files=list(data.get("recentFiles") or []),
            file_count=int(data.get("fileCount") or 0),
            last_updated=str(data.get("lastUpdated") or ""),
        )


@dataclass(frozen=True)
class PartialWriteFailure:
    """One file that could not be fetched, written or removed mid-batch."""

    path: str
    operation: str  # write, remove
    reason: str


@dataclass
class SyncResult:
    """Result of a full or incremental sync for one tenant."""

    tenant_id: str
    mode: str  # full, incremental
    files_written: int = 0
    files_removed: int = 0
    files_filtered: int = 0
    failures: list[PartialWriteFailure] = field(default_factory=list)
    file_count: int = 0
    duration_seconds: float = 0.0
    completed_at: datetime | None = None
    rate_limit_remaining: int | None = None

    @property
    def errors(self) -> int:
        return len(self.failures)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for metrics and logging."""
        return {
            "tenant_id": self.tenant_id,
            "mode": self.mode,
            "files_written": self.files_written,
            "files_removed": self.files_removed,
            "files_filtered": self.files_filtered,
            "errors": self.errors,
            "file_count": self.file_count,
            "duration_seconds": round(self.duration_seconds, 2),
            "rate_limit_remaining": self.rate_limit_remaining,
        }


@dataclass
class DeleteResult:
    """Result of deleting a tenant."""

    tenant_id: str
    objects_deleted: int = 0
    installation_removed: bool = False
    records: dict[str, str] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return all(status == "ok" for status in self.records.values())
