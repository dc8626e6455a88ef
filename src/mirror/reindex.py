"""External search index reindex trigger.

After every mutating sync the external semantic index is asked to start a
reindex job:

    POST {api_url}/accounts/{account_id}/ai-search/instances/{instance}/jobs

The call never blocks or fails a sync. schedule() starts trigger() as a
tracked background task; a done-callback logs anything that escaped and
drops the task reference. A cooldown rejection (error code 7020, a job was
started recently) counts as success.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from .config import MirrorConfig
from .metrics import reindex_requests_total

logger = logging.getLogger("repo_mirror.reindex")

__all__ = ["COOLDOWN_ERROR_CODE", "ReindexNotifier", "ReindexOutcome"]

COOLDOWN_ERROR_CODE = 7020


@dataclass(frozen=True)
class ReindexOutcome:
    """Result of one reindex trigger."""

    success: bool
    message: str
    cooldown: bool = False
    skipped: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "cooldown": self.cooldown,
            "skipped": self.skipped,
        }


class ReindexNotifier:
    """Fire-and-forget reindex trigger for the external search index.

    Attributes:
        enabled: False turns every trigger into a skipped outcome
        jobs_url: Fully-qualified jobs endpoint, None without an account id
    """

    def __init__(
        self,
        api_url: str = "https://api.cloudflare.com/client/v4",
        account_id: str | None = None,
        api_token: str | None = None,
        instance_name: str = "repo-mirror",
        timeout: float = 10.0,
        enabled: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.enabled = enabled
        self._api_token = api_token
        self._timeout = timeout
        self._transport = transport
        self.jobs_url = (
            f"{api_url.rstrip('/')}/accounts/{account_id}"
            f"/ai-search/instances/{instance_name}/jobs"
            if account_id
            else None
        )
        self._tasks: set[asyncio.Task] = set()

    @classmethod
    def from_config(cls, config: MirrorConfig) -> "ReindexNotifier":
        token = config.reindex_api_token.get_secret_value()
        return cls(
            api_url=config.reindex_api_url,
            account_id=config.reindex_account_id or None,
            api_token=token or None,
            instance_name=config.reindex_instance_name,
            timeout=config.reindex_timeout,
            enabled=config.reindex_enabled,
        )

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def trigger(self) -> ReindexOutcome:
        """Request a reindex job. Never raises; failures are returned."""
        if not self.enabled:
            reindex_requests_total.labels(outcome="skipped").inc()
            return ReindexOutcome(False, "Reindex disabled", skipped=True)
        if not self.jobs_url or not self._api_token:
            logger.info("reindex_skipped", extra={"reason": "missing_credentials"})
            reindex_requests_total.labels(outcome="skipped").inc()
            return ReindexOutcome(
                False, "Missing API credentials for reindex", skipped=True
            )

        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    self.jobs_url,
                    headers={
                        "Authorization": f"Bearer {self._api_token}",
                        "Content-Type": "application/json",
                    },
                )
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(
                "reindex_request_failed",
                extra={"error": str(e), "error_type": type(e).__name__},
            )
            reindex_requests_total.labels(outcome="failed").inc()
            return ReindexOutcome(False, str(e) or type(e).__name__)

        if isinstance(data, dict) and data.get("success"):
            logger.info("reindex_triggered")
            reindex_requests_total.labels(outcome="triggered").inc()
            return ReindexOutcome(True, "Reindex triggered")

        errors = data.get("errors") if isinstance(data, dict) else None
        first = {}
        if isinstance(errors, list) and errors and isinstance(errors[0], dict):
            first = errors[0]
        if first.get("code") == COOLDOWN_ERROR_CODE:
            logger.info("reindex_cooldown")
            reindex_requests_total.labels(outcome="cooldown").inc()
            return ReindexOutcome(
                True, "Reindex already triggered recently", cooldown=True
            )

        message = first.get("message") or f"HTTP {response.status_code}"
        logger.error(
            "reindex_rejected",
            extra={"status_code": response.status_code, "error": message},
        )
        reindex_requests_total.labels(outcome="failed").inc()
        return ReindexOutcome(False, message)

    def schedule(self) -> asyncio.Task:
        """Start trigger() in the background and return without awaiting it."""
        task = asyncio.create_task(self.trigger())
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("reindex_task_cancelled")
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "reindex_task_failed",
                extra={"error": str(exc), "error_type": type(exc).__name__},
            )

    async def drain(self) -> None:
        """Wait for every scheduled trigger to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
