"""Unit tests for the GitHub REST client.

Tests GitHubClient with:
- Authentication headers
- Tarball download (single request)
- File content via inline base64 or download_url
- Error handling (retries, backoff, rate limits, non-retryable errors)
"""

import base64
import time
from unittest.mock import AsyncMock, Mock, patch

import httpx
import pytest

from mirror.exceptions import RateLimitExceeded, TransportError
from mirror.github.client import GitHubClient


# =============================================================================
# Test Fixtures
# =============================================================================


@pytest.fixture
def github_client():
    """GitHubClient with a short retry budget."""
    return GitHubClient(token="ghs_test_token_123", repo="octo/docs", max_retries=2)


@pytest.fixture
def no_sleep():
    with patch("mirror.github.client.asyncio.sleep", new=AsyncMock()) as sleep:
        yield sleep


def _mock_response(
    status_code: int = 200,
    json_data: dict | list | None = None,
    headers: dict | None = None,
    content: bytes = b"{}",
) -> Mock:
    """Create a mock httpx.Response with given attributes."""
    resp = Mock(spec=httpx.Response)
    resp.status_code = status_code
    resp.json.return_value = json_data if json_data is not None else {}
    resp.content = content
    resp.text = content.decode(errors="replace") if content else ""
    _headers = {
        "X-RateLimit-Remaining": "4999",
        "X-RateLimit-Reset": str(int(time.time()) + 3600),
    }
    if headers:
        _headers.update(headers)
    resp.headers = _headers
    return resp


# =============================================================================
# Connection Tests
# =============================================================================


class TestConnection:
    def test_bearer_token_in_headers(self, github_client):
        assert github_client._client.headers["Authorization"] == "Bearer ghs_test_token_123"

    def test_github_headers(self, github_client):
        headers = github_client._client.headers
        assert headers["Accept"] == "application/vnd.github+json"
        assert headers["X-GitHub-Api-Version"] == "2022-11-28"
        assert headers["User-Agent"].startswith("repo-mirror/")

    def test_custom_base_url(self):
        client = GitHubClient("t", "o/r", base_url="https://ghe.example.test/api/v3/")
        assert client.base_url == "https://ghe.example.test/api/v3"

    @pytest.mark.asyncio
    async def test_context_manager_closes(self):
        async with GitHubClient("t", "o/r") as client:
            pass
        assert client._client.is_closed


# =============================================================================
# Repository Endpoints
# =============================================================================


class TestDownloadTarball:
    @pytest.mark.asyncio
    async def test_single_request(self, github_client):
        mock_request = AsyncMock(return_value=_mock_response(content=b"\x1f\x8barchive"))

        with patch.object(github_client._client, "request", new=mock_request):
            data = await github_client.download_tarball()

        assert data == b"\x1f\x8barchive"
        mock_request.assert_awaited_once_with("GET", "/repos/octo/docs/tarball", params=None)

    @pytest.mark.asyncio
    async def test_ref_is_quoted(self, github_client):
        mock_request = AsyncMock(return_value=_mock_response(content=b"x"))

        with patch.object(github_client._client, "request", new=mock_request):
            await github_client.download_tarball(ref="release/1.0")

        assert mock_request.call_args.args[1] == "/repos/octo/docs/tarball/release%2F1.0"

    @pytest.mark.asyncio
    async def test_not_found_raises_transport_error(self, github_client):
        resp = _mock_response(
            status_code=404,
            json_data={"message": "Not Found"},
            content=b'{"message": "Not Found"}',
        )

        with patch.object(github_client._client, "request", new=AsyncMock(return_value=resp)):
            with pytest.raises(TransportError) as exc_info:
                await github_client.download_tarball()

        assert exc_info.value.status_code == 404
        assert "Not Found" in str(exc_info.value)


class TestGetFileContent:
    @pytest.mark.asyncio
    async def test_inline_base64_content(self, github_client):
        encoded = base64.b64encode("# Título\n".encode()).decode()
        resp = _mock_response(
            json_data={"type": "file", "encoding": "base64", "content": encoded}
        )
        mock_request = AsyncMock(return_value=resp)

        with patch.object(github_client._client, "request", new=mock_request):
            text = await github_client.get_file_content("docs/README.md")

        assert text == "# Título\n"
        assert mock_request.await_count == 1
        assert mock_request.call_args.args[1] == "/repos/octo/docs/contents/docs/README.md"

    @pytest.mark.asyncio
    async def test_follows_download_url(self, github_client):
        meta = _mock_response(
            json_data={
                "type": "file",
                "encoding": "none",
                "content": "",
                "download_url": "https://raw.example.test/octo/docs/main/big.md",
            }
        )
        raw = _mock_response(content=b"large body")
        mock_request = AsyncMock(side_effect=[meta, raw])

        with patch.object(github_client._client, "request", new=mock_request):
            text = await github_client.get_file_content("big.md", ref="main")

        assert text == "large body"
        first, second = mock_request.call_args_list
        assert first.kwargs["params"] == {"ref": "main"}
        assert second.args[1] == "https://raw.example.test/octo/docs/main/big.md"

    @pytest.mark.asyncio
    async def test_directory_rejected(self, github_client):
        resp = _mock_response(json_data=[{"type": "file", "path": "docs/a.md"}])

        with patch.object(github_client._client, "request", new=AsyncMock(return_value=resp)):
            with pytest.raises(TransportError, match="directory"):
                await github_client.get_file_content("docs")

    @pytest.mark.asyncio
    async def test_symlink_rejected(self, github_client):
        resp = _mock_response(json_data={"type": "symlink", "target": "a.md"})

        with patch.object(github_client._client, "request", new=AsyncMock(return_value=resp)):
            with pytest.raises(TransportError, match="Not a regular file"):
                await github_client.get_file_content("link.md")

    @pytest.mark.asyncio
    async def test_missing_download_url(self, github_client):
        resp = _mock_response(json_data={"type": "file", "download_url": None})

        with patch.object(github_client._client, "request", new=AsyncMock(return_value=resp)):
            with pytest.raises(TransportError, match="download_url"):
                await github_client.get_file_content("a.md")

    @pytest.mark.asyncio
    async def test_invalid_json(self, github_client):
        resp = _mock_response()
        resp.json.side_effect = ValueError("Expecting value")

        with patch.object(github_client._client, "request", new=AsyncMock(return_value=resp)):
            with pytest.raises(TransportError, match="Invalid JSON"):
                await github_client.get_file_content("a.md")


class TestListInstallationRepositories:
    @pytest.mark.asyncio
    async def test_lists_repositories(self, github_client):
        resp = _mock_response(
            json_data={"total_count": 1, "repositories": [{"full_name": "octo/docs"}]}
        )

        with patch.object(github_client._client, "request", new=AsyncMock(return_value=resp)):
            repos = await github_client.list_installation_repositories()

        assert [r["full_name"] for r in repos] == ["octo/docs"]

    @pytest.mark.asyncio
    async def test_follows_pages(self, github_client):
        first = _mock_response(
            json_data={"repositories": [{"full_name": f"octo/r{i}"} for i in range(100)]}
        )
        second = _mock_response(json_data={"repositories": [{"full_name": "octo/last"}]})
        mock_request = AsyncMock(side_effect=[first, second])

        with patch.object(github_client._client, "request", new=mock_request):
            repos = await github_client.list_installation_repositories()

        assert len(repos) == 101
        assert repos[-1]["full_name"] == "octo/last"
        assert [c.kwargs["params"]["page"] for c in mock_request.call_args_list] == ["1", "2"]


# =============================================================================
# Error Handling
# =============================================================================


class TestRetries:
    @pytest.mark.asyncio
    async def test_server_error_retried(self, github_client, no_sleep):
        mock_request = AsyncMock(
            side_effect=[_mock_response(status_code=502), _mock_response(content=b"ok")]
        )

        with patch.object(github_client._client, "request", new=mock_request):
            assert await github_client.download_tarball() == b"ok"

        assert mock_request.await_count == 2
        no_sleep.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_server_error_exhausts_retries(self, github_client, no_sleep):
        mock_request = AsyncMock(return_value=_mock_response(status_code=503))

        with patch.object(github_client._client, "request", new=mock_request):
            with pytest.raises(TransportError) as exc_info:
                await github_client.download_tarball()

        assert exc_info.value.status_code == 503
        assert mock_request.await_count == 3

    @pytest.mark.asyncio
    async def test_timeout_retried_then_raised(self, github_client, no_sleep):
        mock_request = AsyncMock(side_effect=httpx.ReadTimeout("slow"))

        with patch.object(github_client._client, "request", new=mock_request):
            with pytest.raises(TransportError, match="timeout"):
                await github_client.download_tarball()

        assert mock_request.await_count == 3

    @pytest.mark.asyncio
    async def test_connection_error_not_retried(self, github_client, no_sleep):
        mock_request = AsyncMock(side_effect=httpx.ConnectError("refused"))

        with patch.object(github_client._client, "request", new=mock_request):
            with pytest.raises(TransportError, match="HTTP error"):
                await github_client.download_tarball()

        assert mock_request.await_count == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 404, 422])
    async def test_client_errors_not_retried(self, github_client, no_sleep, status):
        mock_request = AsyncMock(return_value=_mock_response(status_code=status))

        with patch.object(github_client._client, "request", new=mock_request):
            with pytest.raises(TransportError):
                await github_client.download_tarball()

        assert mock_request.await_count == 1
        no_sleep.assert_not_awaited()


class TestRateLimits:
    @pytest.mark.asyncio
    async def test_primary_rate_limit_waits_then_succeeds(self, github_client, no_sleep):
        limited = _mock_response(
            status_code=403,
            headers={
                "X-RateLimit-Remaining": "0",
                "X-RateLimit-Reset": str(int(time.time()) + 5),
            },
        )
        mock_request = AsyncMock(side_effect=[limited, _mock_response(content=b"ok")])

        with patch.object(github_client._client, "request", new=mock_request):
            assert await github_client.download_tarball() == b"ok"

        no_sleep.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_primary_rate_limit_exhausted(self, github_client, no_sleep):
        limited = _mock_response(
            status_code=403,
            headers={"X-RateLimit-Remaining": "0", "X-RateLimit-Reset": "1700000000"},
        )

        with patch.object(github_client._client, "request", new=AsyncMock(return_value=limited)):
            with pytest.raises(RateLimitExceeded) as exc_info:
                await github_client.download_tarball()

        assert exc_info.value.status_code == 429
        assert exc_info.value.reset_at.timestamp() == 1700000000

    @pytest.mark.asyncio
    async def test_secondary_rate_limit_retry_after(self, github_client, no_sleep):
        limited = _mock_response(status_code=429, headers={"Retry-After": "7"})
        mock_request = AsyncMock(side_effect=[limited, _mock_response(content=b"ok")])

        with patch.object(github_client._client, "request", new=mock_request):
            assert await github_client.download_tarball() == b"ok"

        no_sleep.assert_awaited_once_with(7)

    @pytest.mark.asyncio
    async def test_plain_forbidden_is_client_error(self, github_client, no_sleep):
        resp = _mock_response(status_code=403, json_data={"message": "Resource not accessible"})

        with patch.object(github_client._client, "request", new=AsyncMock(return_value=resp)):
            with pytest.raises(TransportError, match="Resource not accessible"):
                await github_client.download_tarball()

    @pytest.mark.asyncio
    async def test_rate_limit_tracking(self, github_client):
        resp = _mock_response(
            content=b"x",
            headers={"X-RateLimit-Remaining": "42", "X-RateLimit-Reset": "1700000000"},
        )

        with patch.object(github_client._client, "request", new=AsyncMock(return_value=resp)):
            await github_client.download_tarball()

        assert github_client.get_rate_limit_status() == {
            "primary_remaining": 42,
            "primary_reset": 1700000000.0,
        }
