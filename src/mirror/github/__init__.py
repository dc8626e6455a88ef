"""GitHub integration package.

Async REST client for archive and file fetches, plus webhook signature
verification and push event parsing.
"""

from .client import GitHubClient
from .webhooks import parse_push_event, verify_webhook_signature

__all__ = [
    "GitHubClient",
    "parse_push_event",
    "verify_webhook_signature",
]
