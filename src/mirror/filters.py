"""Content filter deciding which repository paths are mirrored.

One predicate shared by archive import, single-file fetch and push
change-set extraction, so every call site applies the same policy.

Decision order:
1. Reject if any path segment is a denied directory name
2. Reject if the lower-cased filename is a denied filename or starts with ".env."
3. Accept only if the lower-cased extension (text after the last ".") is allowed
"""

from dataclasses import dataclass

from .config import (
    DEFAULT_ALLOWED_EXTENSIONS,
    DEFAULT_DENIED_DIRECTORIES,
    DEFAULT_DENIED_FILENAMES,
    MirrorConfig,
)

__all__ = ["DEFAULT_POLICY", "FilterPolicy", "should_mirror"]

ENV_VARIANT_PREFIX = ".env."


def _split(value: str) -> frozenset[str]:
    return frozenset(p.strip() for p in value.split(",") if p.strip())


@dataclass(frozen=True)
class FilterPolicy:
    """Allow-list and deny-lists applied by should_mirror().

    Attributes:
        allowed_extensions: Lower-case extensions without the leading dot
        denied_filenames: Lower-case filenames never mirrored
        denied_directories: Directory names excluded at any depth (exact match)
    """

    allowed_extensions: frozenset[str]
    denied_filenames: frozenset[str]
    denied_directories: frozenset[str]

    @classmethod
    def from_config(cls, config: MirrorConfig) -> "FilterPolicy":
        return cls(
            allowed_extensions=config.allowed_extensions,
            denied_filenames=config.denied_filenames,
            denied_directories=config.denied_directories,
        )


DEFAULT_POLICY = FilterPolicy(
    allowed_extensions=_split(DEFAULT_ALLOWED_EXTENSIONS),
    denied_filenames=_split(DEFAULT_DENIED_FILENAMES),
    denied_directories=_split(DEFAULT_DENIED_DIRECTORIES),
)


def should_mirror(path: str, policy: FilterPolicy = DEFAULT_POLICY) -> bool:
    """Check if a repository-relative path should be mirrored.

    Pure and total: any string yields True or False, never an exception.

    Args:
        path: Repository-relative path using "/" separators
        policy: Filter policy (defaults to the built-in policy)

    Returns:
        True if the file belongs in the mirror

    Example:
        >>> should_mirror("docs/README.md")
        True
        >>> should_mirror("node_modules/pkg/README.md")
        False
    """
    parts = path.split("/")
    if any(part in policy.denied_directories for part in parts):
        return False

    filename = parts[-1].lower()
    if filename in policy.denied_filenames or filename.startswith(ENV_VARIANT_PREFIX):
        return False

    if "." not in filename:
        return False
    extension = filename.rsplit(".", 1)[1]
    return extension in policy.allowed_extensions
