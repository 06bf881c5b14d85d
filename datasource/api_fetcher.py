"""
Async HTTP transport for the remote data API.
"""

from typing import Dict, Optional

import httpx
import structlog

from jobsync.errors import FetchError

logger = structlog.get_logger(__name__)


class ApiFetcher:
    """
    Thin httpx wrapper returning raw response bodies.
    No retries: a failed fetch is retried by the next sweep.
    """

    def __init__(
        self,
        timeout: float = 30,
        user_agent: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize the fetcher.

        Args:
            timeout: Transport timeout in seconds
            user_agent: User-Agent header sent with every request
            transport: Optional httpx transport (tests use MockTransport)
        """
        headers = {"User-Agent": user_agent} if user_agent else {}
        self.client_config = {
            "timeout": timeout,
            "headers": headers,
            "follow_redirects": True,
            "limits": httpx.Limits(max_keepalive_connections=20, max_connections=100),
        }
        if transport is not None:
            self.client_config["transport"] = transport
        self._client: Optional[httpx.AsyncClient] = None
        self.logger = logger.bind(component="api_fetcher")

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(**self.client_config)
        return self._client

    async def fetch(self, url: str, headers: Optional[Dict[str, str]] = None) -> bytes:
        """
        GET a URL and return the body.

        Args:
            url: URL to fetch
            headers: Extra request headers (API keys)

        Returns:
            Response body bytes

        Raises:
            FetchError: On transport failure or a non-2xx status
        """
        try:
            response = await self._get_client().get(url, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise FetchError(f"{url} returned status {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise FetchError(f"request to {url} failed: {e}") from e

        self.logger.debug("Fetched", url=url, status=response.status_code, size=len(response.content))
        return response.content

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
