"""GitHub REST API client for repository mirroring.

Provides an async httpx-based client with token auth covering the three
calls the mirror makes:
- tarball of the whole repository at a revision (one request per full sync)
- contents metadata + raw body of a single file (incremental sync)
- repositories visible to an installation (onboarding)

Retries server errors and timeouts with exponential backoff, waits out
rate limits, and surfaces every failure as TransportError.

Reference: https://docs.github.com/en/rest
"""

import asyncio
import base64
import logging
import random
import time
from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote

import httpx

from ..exceptions import RateLimitExceeded, TransportError

logger = logging.getLogger("repo_mirror.github.client")


class GitHubClient:
    """GitHub REST API client using httpx with Bearer token auth.

    Uses a long-lived httpx.AsyncClient with connection pooling.

    Attributes:
        base_url: GitHub API base URL (default: https://api.github.com)
        repo: Target repository in owner/repo format
        _rate_limit_remaining: Tracked from X-RateLimit-Remaining header
        _rate_limit_reset: Tracked from X-RateLimit-Reset header

    Example:
        >>> async with GitHubClient("ghs_token", "owner/repo") as client:
        ...     archive = await client.download_tarball()
    """

    BASE_URL = "https://api.github.com"

    # Timeout configuration
    CONNECT_TIMEOUT = 5.0  # seconds
    READ_TIMEOUT = 60.0  # seconds, sized for a full tarball download
    WRITE_TIMEOUT = 5.0  # seconds
    POOL_TIMEOUT = 5.0  # seconds

    # Retry configuration
    MAX_RETRIES = 3
    BASE_BACKOFF = 2  # seconds, exponential: min(60, 2^attempt)
    MAX_BACKOFF = 60  # seconds

    USER_AGENT = "repo-mirror/1.2"
    PAGE_SIZE = 100  # GitHub maximum per_page

    def __init__(
        self,
        token: str,
        repo: str,
        base_url: str | None = None,
        max_retries: int = MAX_RETRIES,
        connect_timeout: float = CONNECT_TIMEOUT,
        read_timeout: float = READ_TIMEOUT,
    ) -> None:
        """Initialize GitHub client with token authentication.

        Args:
            token: Installation access token or fine-grained PAT
            repo: Target repository in owner/repo format
            base_url: GitHub API base URL (default: https://api.github.com)
            max_retries: Retries for server errors, timeouts and rate limits
            connect_timeout: Connect timeout in seconds
            read_timeout: Read timeout in seconds
        """
        self.repo = repo
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.max_retries = max_retries

        self._rate_limit_remaining: int | None = None
        self._rate_limit_reset: float | None = None

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
                "User-Agent": self.USER_AGENT,
            },
            timeout=httpx.Timeout(
                connect=connect_timeout,
                read=read_timeout,
                write=self.WRITE_TIMEOUT,
                pool=self.POOL_TIMEOUT,
            ),
            follow_redirects=True,
        )

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the httpx client and release connections."""
        await self._client.aclose()

    # --- Repository Endpoints ---

    async def download_tarball(self, ref: str | None = None) -> bytes:
        """Download the whole repository as a gzip tar archive.

        A single API call regardless of repository size; the endpoint
        redirects to the archive host, which httpx follows.

        Args:
            ref: Branch/tag/commit (default: repository default branch head)

        Returns:
            gzip-compressed tar bytes

        Raises:
            TransportError: If the archive cannot be fetched
        """
        path = f"/repos/{self.repo}/tarball"
        if ref:
            path = f"{path}/{quote(ref, safe='')}"
        response = await self._raw_request("GET", path)
        logger.info(
            "tarball_downloaded",
            extra={"repo": self.repo, "ref": ref, "bytes": len(response.content)},
        )
        return response.content

    async def get_content_metadata(
        self,
        path: str,
        ref: str | None = None,
    ) -> dict[str, Any]:
        """Get a file's metadata from the contents endpoint.

        Args:
            path: File path in repository
            ref: Branch/tag/commit to read from (default: repo default branch)

        Returns:
            Content dict with type, size, sha, download_url and, for small
            files, base64 "content"
        """
        params = {"ref": ref} if ref else None
        response = await self._raw_request(
            "GET",
            f"/repos/{self.repo}/contents/{quote(path.lstrip('/'))}",
            params=params,
        )
        data = self._json(response)
        if isinstance(data, list):
            raise TransportError(f"Path is a directory, not a file: {path}")
        return data

    async def get_file_content(self, path: str, ref: str | None = None) -> str:
        """Fetch the current text content of one file.

        Uses inline base64 content when the contents endpoint includes it,
        otherwise follows the returned download_url.

        Raises:
            TransportError: If metadata or content cannot be fetched
        """
        meta = await self.get_content_metadata(path, ref=ref)
        if meta.get("type", "file") != "file":
            raise TransportError(f"Not a regular file ({meta.get('type')}): {path}")

        inline = meta.get("content")
        if inline and meta.get("encoding") == "base64":
            try:
                return base64.b64decode(inline).decode("utf-8", errors="replace")
            except ValueError as e:
                raise TransportError(f"Invalid base64 content for {path}: {e}") from e

        download_url = meta.get("download_url")
        if not download_url:
            raise TransportError(f"No download_url for {path}")
        response = await self._raw_request("GET", download_url)
        return response.content.decode("utf-8", errors="replace")

    async def list_installation_repositories(self) -> list[dict[str, Any]]:
        """List repositories the installation token can access.

        Returns:
            Repository dicts (full_name, private, owner, ...)
        """
        repositories: list[dict[str, Any]] = []
        page = 1
        while True:
            response = await self._raw_request(
                "GET",
                "/installation/repositories",
                params={"per_page": str(self.PAGE_SIZE), "page": str(page)},
            )
            data = self._json(response)
            batch = data.get("repositories", []) if isinstance(data, dict) else []
            repositories.extend(batch)
            if len(batch) < self.PAGE_SIZE:
                return repositories
            page += 1

    # --- Core HTTP ---

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise TransportError(f"Invalid JSON response: {e}") from e

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json() if response.content else {}
        except (ValueError, UnicodeDecodeError):
            body = {}
        if isinstance(body, dict) and body.get("message"):
            return str(body["message"])
        return response.text

    def _update_rate_limits(self, response: httpx.Response) -> None:
        remaining = response.headers.get("X-RateLimit-Remaining")
        if remaining is not None:
            try:
                self._rate_limit_remaining = int(remaining)
            except ValueError:
                logger.warning("Non-numeric X-RateLimit-Remaining header: %r", remaining)

        reset = response.headers.get("X-RateLimit-Reset")
        if reset is not None:
            try:
                self._rate_limit_reset = float(reset)
            except ValueError:
                logger.warning("Non-numeric X-RateLimit-Reset header: %r", reset)

    def _backoff(self, attempt: int) -> float:
        return min(self.MAX_BACKOFF, self.BASE_BACKOFF ** (attempt + 1)) + random.uniform(
            0, 1
        )

    async def _raw_request(
        self,
        method: str,
        path: str,
        params: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Make an HTTP request with retries and error handling.

        Args:
            method: HTTP method
            path: API path (e.g., /repos/owner/repo/tarball) or absolute URL
            params: Query parameters

        Returns:
            httpx.Response with a 2xx status

        Raises:
            TransportError: On non-retryable errors or exhausted retries
            RateLimitExceeded: When the rate limit is exhausted after retries
        """
        for attempt in range(self.max_retries + 1):
            try:
                response = await self._client.request(method, path, params=params)
            except httpx.TimeoutException as e:
                if attempt < self.max_retries:
                    backoff = self._backoff(attempt)
                    logger.warning(
                        "Request timeout. Retrying in %.1fs (attempt %d/%d)",
                        backoff,
                        attempt + 1,
                        self.max_retries,
                    )
                    await asyncio.sleep(backoff)
                    continue
                raise TransportError(
                    f"Request timeout after {self.max_retries} retries: {e}"
                ) from e
            except httpx.HTTPError as e:
                raise TransportError(f"HTTP error: {e}") from e

            self._update_rate_limits(response)
            status = response.status_code

            # Primary rate limit exhausted -- wait for reset and retry
            if status == 403 and response.headers.get("X-RateLimit-Remaining") == "0":
                reset = float(response.headers.get("X-RateLimit-Reset", "0"))
                if attempt < self.max_retries:
                    wait = max(1.0, reset - time.time())
                    logger.warning(
                        "Rate limit hit. Waiting %.0fs (attempt %d/%d)",
                        wait,
                        attempt + 1,
                        self.max_retries,
                    )
                    await asyncio.sleep(min(wait, self.MAX_BACKOFF))
                    continue
                raise RateLimitExceeded(datetime.fromtimestamp(reset, tz=timezone.utc))

            # Secondary rate limit (Retry-After header)
            if status == 429:
                retry_after = int(response.headers.get("Retry-After", "60"))
                if attempt < self.max_retries:
                    logger.warning(
                        "Secondary rate limit. Retry-After: %ds (attempt %d/%d)",
                        retry_after,
                        attempt + 1,
                        self.max_retries,
                    )
                    await asyncio.sleep(min(retry_after, self.MAX_BACKOFF))
                    continue
                raise RateLimitExceeded(
                    datetime.fromtimestamp(time.time() + retry_after, tz=timezone.utc),
                    "Secondary rate limit exceeded",
                )

            # Server errors (retryable)
            if status >= 500:
                if attempt < self.max_retries:
                    backoff = self._backoff(attempt)
                    logger.warning(
                        "Server error %d. Retrying in %.1fs (attempt %d/%d)",
                        status,
                        backoff,
                        attempt + 1,
                        self.max_retries,
                    )
                    await asyncio.sleep(backoff)
                    continue
                raise TransportError(
                    f"GitHub API server error {status} after {self.max_retries} retries",
                    status,
                )

            # Client errors (non-retryable)
            if status >= 400:
                raise TransportError(
                    f"GitHub API error {status}: {self._error_message(response)}",
                    status,
                )

            return response

        raise TransportError("Request failed after all retries")

    def get_rate_limit_status(self) -> dict[str, Any]:
        """Current rate limit status for metrics/logging."""
        return {
            "primary_remaining": self._rate_limit_remaining,
            "primary_reset": self._rate_limit_reset,
        }
