"""Exception hierarchy for the repository mirror.

Only conditions that abort an operation are exceptions. A truncated archive
ends extraction cleanly, a path rejected by the content filter is simply not
mirrored, and a per-file failure during a push sync is recorded on the
SyncResult as a PartialWriteFailure.
"""


class MirrorError(Exception):
    """Base class for repository mirror errors."""


class TransportError(MirrorError):
    """Raised when an archive or file fetch from the source host fails.

    Wraps httpx errors and HTTP error statuses for consistent handling.
    """

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class RateLimitExceeded(TransportError):
    """Raised when the source host rate limit is exhausted after retries."""

    def __init__(self, reset_at, message: str = "Rate limit exceeded"):
        self.reset_at = reset_at
        super().__init__(f"{message}. Resets at {reset_at.isoformat()}", 429)


class MirrorStoreError(MirrorError):
    """Raised when the blob store cannot read, write, list or delete a key."""


class InvalidMirrorPath(MirrorStoreError, ValueError):
    """Raised for empty paths or paths escaping the tenant keyspace."""


class InstallationNotFound(MirrorError):
    """Raised when an operation names a tenant with no installation record."""

    def __init__(self, tenant_id: str):
        self.tenant_id = tenant_id
        super().__init__(f"Installation not found: {tenant_id}")


class RepositoryNotAccessible(MirrorError):
    """Raised when the configured token cannot see the repository to onboard."""

    def __init__(self, repo_full_name: str):
        self.repo_full_name = repo_full_name
        super().__init__(f"Repository not accessible to this installation: {repo_full_name}")
