"""GitHub webhook ingress: signature verification and push event parsing."""

import hashlib
import hmac
import logging
from collections.abc import Mapping
from typing import Any

from ..models import PushEvent

logger = logging.getLogger("repo_mirror.github.webhooks")

__all__ = ["SIGNATURE_PREFIX", "parse_push_event", "verify_webhook_signature"]

SIGNATURE_PREFIX = "sha256="


def verify_webhook_signature(
    payload: bytes,
    signature: str | None,
    secret: str,
) -> bool:
    """Verify the X-Hub-Signature-256 header of a webhook delivery.

    Args:
        payload: Raw request body exactly as received
        signature: Header value, "sha256=<hex digest>"
        secret: Webhook secret shared with GitHub

    Returns:
        True only for a well-formed header matching the HMAC-SHA256 digest
    """
    if not signature or not signature.startswith(SIGNATURE_PREFIX):
        return False
    provided = signature[len(SIGNATURE_PREFIX) :]
    expected = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, provided)


def parse_push_event(payload: Mapping[str, Any]) -> PushEvent:
    """Extract the fields the sync engine consumes from a push payload.

    Commits keep only their "added", "modified" and "removed" lists; absent
    lists are normalized to empty.

    Raises:
        ValueError: If the payload names no repository
    """
    repository = payload.get("repository") or {}
    full_name = repository.get("full_name") if isinstance(repository, Mapping) else None
    if not full_name:
        raise ValueError("Push payload has no repository.full_name")

    commits = []
    for commit in payload.get("commits") or []:
        if not isinstance(commit, Mapping):
            continue
        commits.append(
            {
                "added": list(commit.get("added") or []),
                "modified": list(commit.get("modified") or []),
                "removed": list(commit.get("removed") or []),
            }
        )

    return PushEvent(
        repository=full_name,
        ref=payload.get("ref"),
        commits=commits,
        default_branch=repository.get("default_branch"),
    )
