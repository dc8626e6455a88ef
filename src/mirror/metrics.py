"""
Prometheus metrics definitions for the repository mirror.

Naming conventions: snake_case, repo_mirror_ prefix.
"""

from prometheus_client import Counter, Histogram

# ==============================================================================
# SYNC
# ==============================================================================

sync_runs_total = Counter(
    "repo_mirror_sync_runs_total",
    "Sync runs by mode and outcome",
    ["mode", "status"],
    # mode: full, incremental
    # status: success, failed
)

sync_files_total = Counter(
    "repo_mirror_sync_files_total",
    "Files processed by sync",
    ["mode", "action"],
    # action: written, removed, filtered, failed
)

sync_duration_seconds = Histogram(
    "repo_mirror_sync_duration_seconds",
    "Wall-clock duration of a sync run",
    ["mode"],
    buckets=(0.5, 1, 2.5, 5, 10, 30, 60, 120, 300),
)

# ==============================================================================
# REINDEX TRIGGER
# ==============================================================================

reindex_requests_total = Counter(
    "repo_mirror_reindex_requests_total",
    "External index reindex triggers",
    ["outcome"],
    # outcome: triggered, cooldown, failed, skipped
)

# ==============================================================================
# LIFECYCLE
# ==============================================================================

tenant_purges_total = Counter(
    "repo_mirror_tenant_purges_total",
    "Tenant deletions",
    ["status"],
    # status: success, partial
)

purged_objects_total = Counter(
    "repo_mirror_purged_objects_total",
    "Mirror objects deleted during tenant purge",
)
