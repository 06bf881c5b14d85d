"""
Test cases for the remote API fetcher.
HTTP is faked with httpx.MockTransport.
"""

import httpx
import pytest

from datasource.api_fetcher import ApiFetcher
from jobsync.errors import FetchError


class TestApiFetcher:
    """Test cases for ApiFetcher."""

    @pytest.mark.asyncio
    async def test_fetch_returns_body(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["headers"] = request.headers
            return httpx.Response(200, content=b'{"id": 1}')

        fetcher = ApiFetcher(user_agent="TestAgent/1.0", transport=httpx.MockTransport(handler))
        try:
            body = await fetcher.fetch("https://example.com/badges/1", headers={"x-api-key": "secret"})
        finally:
            await fetcher.close()

        assert body == b'{"id": 1}'
        assert seen["headers"]["user-agent"] == "TestAgent/1.0"
        assert seen["headers"]["x-api-key"] == "secret"

    @pytest.mark.asyncio
    async def test_non_2xx_raises_fetch_error(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(404, content=b"not found"))
        fetcher = ApiFetcher(transport=transport)

        with pytest.raises(FetchError, match="404"):
            await fetcher.fetch("https://example.com/badges/1")
        await fetcher.close()

    @pytest.mark.asyncio
    async def test_transport_error_raises_fetch_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        fetcher = ApiFetcher(transport=httpx.MockTransport(handler))

        with pytest.raises(FetchError):
            await fetcher.fetch("https://example.com/badges/1")
        await fetcher.close()

    @pytest.mark.asyncio
    async def test_close_without_client(self):
        fetcher = ApiFetcher()
        await fetcher.close()
        assert fetcher._client is None
