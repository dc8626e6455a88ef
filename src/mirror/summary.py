"""Summary regeneration for a tenant's mirror.

The summary is advisory metadata derived only from the tenant's current
path list (plus the first heading of README files). It is rebuilt from
scratch after every completed sync and overwrites the stored one.
"""

import json
import logging
import re
from collections.abc import Mapping, Sequence
from datetime import datetime, timezone

from .exceptions import MirrorError
from .keyspace import TenantKeyspace
from .models import Summary

logger = logging.getLogger("repo_mirror.summary")

__all__ = [
    "GENERIC_HEADINGS",
    "SummaryGenerator",
    "compose_summary",
    "describe",
    "extract_first_heading",
    "is_readme",
]

GENERIC_HEADINGS = frozenset({"readme", "index", "home", "overview"})

# Exactly one "#" then a space; "## Sub" is not a title
_HEADING_RE = re.compile(r"^# (.+)$", re.MULTILINE)


def is_readme(path: str) -> bool:
    return path.rsplit("/", 1)[-1].lower().endswith("readme.md")


def extract_first_heading(text: str) -> str | None:
    """Return the first top-level markdown heading of text, stripped."""
    match = _HEADING_RE.search(text)
    if not match:
        return None
    heading = match.group(1).strip()
    return heading or None


def compose_summary(
    paths: Sequence[str],
    readme_texts: Mapping[str, str],
    now: datetime | None = None,
    topic_limit: int = 15,
    recent_limit: int = 10,
) -> Summary:
    """Build a Summary from a path list.

    Args:
        paths: Authoritative current path list, in sync order
        readme_texts: Content of README paths, keyed by path; READMEs
            missing from the mapping contribute no topic
        now: Timestamp recorded as lastUpdated (default: current UTC time)
        topic_limit: Maximum number of topics
        recent_limit: Number of trailing paths kept as recent files

    Returns:
        Summary whose every field is derived from paths
    """
    domains = {path.split("/", 1)[0] for path in paths if "/" in path}

    topics: list[str] = []
    for path in paths:
        if len(topics) >= topic_limit:
            break
        if not is_readme(path) or path not in readme_texts:
            continue
        heading = extract_first_heading(readme_texts[path])
        if heading and heading.lower() not in GENERIC_HEADINGS:
            topics.append(heading)

    # Sync order, not modification time
    recent = list(paths[-recent_limit:]) if recent_limit > 0 else []

    return Summary(
        domains=domains,
        topics=topics,
        recent_files=recent,
        file_count=len(paths),
        last_updated=(now or datetime.now(timezone.utc)).isoformat(),
    )


def describe(summary: Summary) -> str:
    """Render the one-line description shown alongside search results."""
    parts = [f"{summary.file_count} files"]
    if summary.domains:
        parts.append("areas: " + ", ".join(sorted(summary.domains)))
    if summary.topics:
        parts.append("topics: " + ", ".join(summary.topics[:10]))
    return "; ".join(parts)


class SummaryGenerator:
    """Regenerates and stores tenant summaries through a TenantKeyspace."""

    def __init__(
        self,
        keyspace: TenantKeyspace,
        topic_limit: int = 15,
        recent_limit: int = 10,
    ) -> None:
        self.keyspace = keyspace
        self.topic_limit = topic_limit
        self.recent_limit = recent_limit

    async def regenerate(
        self,
        tenant_id: str,
        paths: Sequence[str],
        contents: Mapping[str, str] | None = None,
    ) -> Summary:
        """Rebuild the tenant summary from paths and overwrite the stored one.

        README contents not supplied in ``contents`` are read back from the
        mirror; a README that cannot be read is skipped.
        """
        readme_texts: dict[str, str] = {}
        for path in paths:
            if not is_readme(path):
                continue
            if contents is not None and path in contents:
                readme_texts[path] = contents[path]
                continue
            try:
                text = await self.keyspace.read(tenant_id, path)
            except MirrorError as e:
                logger.warning(
                    "summary_readme_read_failed",
                    extra={"tenant_id": tenant_id, "path": path, "error": str(e)},
                )
                continue
            if text is not None:
                readme_texts[path] = text

        summary = compose_summary(
            paths,
            readme_texts,
            topic_limit=self.topic_limit,
            recent_limit=self.recent_limit,
        )
        await self.keyspace.write_summary(tenant_id, json.dumps(summary.to_dict()))
        logger.info(
            "summary_regenerated",
            extra={
                "tenant_id": tenant_id,
                "file_count": summary.file_count,
                "domains": len(summary.domains),
                "topics": len(summary.topics),
            },
        )
        return summary

    async def load_summary(self, tenant_id: str) -> Summary | None:
        """Read the stored summary; None when missing or malformed."""
        raw = await self.keyspace.read_summary(tenant_id)
        if raw is None:
            return None
        try:
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise ValueError("summary is not a JSON object")
            return Summary.from_dict(data)
        except (TypeError, ValueError) as e:
            logger.warning(
                "summary_malformed", extra={"tenant_id": tenant_id, "error": str(e)}
            )
            return None
