"""Change-set extraction from push event commits.

A push bundles one or more commits, each listing added, modified and
removed paths. The change-set is the final state of the push: a path
removed by an early commit and re-added by a later one is changed, not
removed.
"""

from collections.abc import Iterable, Mapping
from typing import Any

from .filters import DEFAULT_POLICY, FilterPolicy, should_mirror
from .models import ChangeSet

__all__ = ["extract_change_set"]


def _paths(commit: Mapping[str, Any], key: str) -> list[str]:
    """Read a path list from a commit record; absent or null means empty."""
    value = commit.get(key) or []
    return [p for p in value if isinstance(p, str) and p]


def extract_change_set(
    commits: Iterable[Mapping[str, Any]] | None,
    policy: FilterPolicy = DEFAULT_POLICY,
) -> ChangeSet:
    """Derive the deduplicated {changed, removed} paths of a push.

    Deterministic and side-effect free. Paths rejected by the content filter
    are dropped from both sets.

    Args:
        commits: Ordered commit records with optional "added", "modified",
                 "removed" string lists
        policy: Content filter policy shared with archive and file sync

    Returns:
        ChangeSet with changed and removed disjoint

    Example:
        >>> cs = extract_change_set([{"removed": ["doc.md"]}, {"added": ["doc.md"]}])
        >>> sorted(cs.changed), sorted(cs.removed)
        (['doc.md'], [])
    """
    changed: set[str] = set()
    removed: set[str] = set()

    for commit in commits or []:
        for path in _paths(commit, "added") + _paths(commit, "modified"):
            if should_mirror(path, policy):
                changed.add(path)
        for path in _paths(commit, "removed"):
            if should_mirror(path, policy):
                removed.add(path)

    removed -= changed
    return ChangeSet(changed=frozenset(changed), removed=frozenset(removed))
