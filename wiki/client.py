"""
Async MediaWiki API client.
Handles login, category listing, page writes and cache purges.
All page writes share one throttle: at most one edit per rolling second.
"""

from typing import Any, Dict, List, Optional, Type

import httpx
import structlog
from asyncio_throttle import Throttler

from jobsync.errors import ConfigError, FetchError, PublishError, PurgeError, SyncError

logger = structlog.get_logger(__name__)

CATEGORY_NAMESPACE = "Category:"


class WikiClient:
    """
    MediaWiki client bound to one bot account.
    """

    def __init__(
        self,
        api_url: str,
        username: str,
        password: str,
        user_agent: str = "RobloxAPID/1.0",
        timeout: float = 30,
        edit_rate_limit: float = 1,
        edit_period: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize the wiki client.

        Args:
            api_url: URL of the wiki's api.php
            username: Bot username
            password: Bot password
            user_agent: User-Agent sent with every request
            timeout: Transport timeout in seconds
            edit_rate_limit: Edits allowed per edit_period
            edit_period: Throttle window in seconds
            transport: Optional httpx transport (tests use MockTransport)
        """
        self.api_url = api_url
        self.username = username
        self.password = password
        self.throttler = Throttler(rate_limit=edit_rate_limit, period=edit_period)

        client_config: Dict[str, Any] = {
            "timeout": timeout,
            "headers": {"User-Agent": user_agent},
            "follow_redirects": True,
        }
        if transport is not None:
            client_config["transport"] = transport
        self.client = httpx.AsyncClient(**client_config)
        self.logger = logger.bind(component="wiki_client")

    async def close(self) -> None:
        await self.client.aclose()

    async def _call(
        self,
        method: str,
        params: Dict[str, Any],
        error_cls: Type[SyncError]
    ) -> Dict[str, Any]:
        """Issue an API request and return the decoded JSON body."""
        params = {"format": "json", "formatversion": "2", **params}
        try:
            if method == "POST":
                response = await self.client.post(self.api_url, data=params)
            else:
                response = await self.client.get(self.api_url, params=params)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise error_cls(f"{params.get('action')} request failed: {e}") from e

        if not isinstance(data, dict):
            raise error_cls(f"{params.get('action')} returned an unexpected body")
        if "error" in data:
            error = data["error"]
            raise error_cls(f"{params.get('action')} failed: {error.get('code')}: {error.get('info')}")
        return data

    async def _get_token(self, token_type: str, error_cls: Type[SyncError]) -> str:
        data = await self._call("GET", {"action": "query", "meta": "tokens", "type": token_type}, error_cls)
        token = data.get("query", {}).get("tokens", {}).get(f"{token_type}token")
        if not token:
            raise error_cls(f"no {token_type} token returned")
        return token

    async def login(self) -> None:
        """
        Log in and verify the account holds the bot right.

        Raises:
            ConfigError: On bad credentials or a missing bot right
        """
        login_token = await self._get_token("login", ConfigError)
        data = await self._call(
            "POST",
            {
                "action": "login",
                "lgname": self.username,
                "lgpassword": self.password,
                "lgtoken": login_token,
            },
            ConfigError,
        )
        result = data.get("login", {})
        if result.get("result") != "Success":
            raise ConfigError(f"wiki login failed: {result.get('reason') or result.get('result')}")

        data = await self._call(
            "GET",
            {"action": "query", "meta": "userinfo", "uiprop": "rights"},
            ConfigError,
        )
        rights = data.get("query", {}).get("userinfo", {}).get("rights", [])
        if "bot" not in rights:
            raise ConfigError("user does not have bot user rights, you may not proceed without it")

        self.logger.info("Logged in to wiki", username=self.username, api_url=self.api_url)

    async def push(self, title: str, content: str, summary: str) -> None:
        """
        Create or overwrite a page.

        Raises:
            PublishError: If the edit fails
        """
        async with self.throttler:
            self.logger.debug("Pushing page", title=title, summary=summary)
            token = await self._get_token("csrf", PublishError)
            data = await self._call(
                "POST",
                {
                    "action": "edit",
                    "title": title,
                    "text": content,
                    "summary": summary,
                    "bot": "true",
                    "token": token,
                },
                PublishError,
            )

        result = data.get("edit", {}).get("result")
        if result != "Success":
            raise PublishError(f"edit of {title} was not accepted: {result}")
        self.logger.info("Pushed page", title=title)

    @staticmethod
    def _first_page(data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        pages = data.get("query", {}).get("pages") or []
        if not pages:
            return None
        page = pages[0]
        if page.get("missing") or page.get("invalid") or page.get("pageid") == -1:
            return None
        return page

    async def page_exists(self, title: str) -> bool:
        """
        Check whether a page exists.

        Raises:
            FetchError: If the query fails
        """
        data = await self._call("GET", {"action": "query", "prop": "info", "titles": title}, FetchError)
        return self._first_page(data) is not None

    async def get_page(self, title: str) -> Optional[str]:
        """Return the wikitext of a page, or None if it does not exist."""
        data = await self._call(
            "GET",
            {
                "action": "query",
                "prop": "revisions",
                "titles": title,
                "rvprop": "content",
                "rvslots": "main",
            },
            FetchError,
        )
        page = self._first_page(data)
        if page is None:
            return None
        revisions = page.get("revisions") or []
        if not revisions:
            raise FetchError(f"no revisions found for {title}")
        return revisions[0].get("slots", {}).get("main", {}).get("content", "")

    async def _list_all(self, params: Dict[str, Any], list_key: str) -> List[Dict[str, Any]]:
        """Run a list query, following continuation."""
        items: List[Dict[str, Any]] = []
        request = dict(params)
        while True:
            data = await self._call("GET", request, FetchError)
            items.extend(data.get("query", {}).get(list_key, []))
            if "continue" not in data:
                return items
            request = {**params, **data["continue"]}

    async def list_categories(self, prefix: str) -> List[str]:
        """
        List every category whose name starts with prefix.

        Returns:
            Category labels including the ``Category:`` namespace
        """
        if not prefix:
            raise ConfigError("prefix cannot be empty")

        items = await self._list_all(
            {
                "action": "query",
                "list": "allcategories",
                "acprefix": prefix[:1].upper() + prefix[1:],
                "aclimit": "max",
            },
            "allcategories",
        )
        titles = []
        for item in items:
            name = item.get("category") or item.get("*")
            if name:
                titles.append(CATEGORY_NAMESPACE + name)
        return titles

    async def get_category_members(self, category: str) -> List[str]:
        """List page titles in a category."""
        if not category:
            raise ConfigError("category cannot be empty")
        if not category.lower().startswith(CATEGORY_NAMESPACE.lower()):
            category = CATEGORY_NAMESPACE + category

        items = await self._list_all(
            {
                "action": "query",
                "list": "categorymembers",
                "cmtitle": category,
                "cmlimit": "max",
            },
            "categorymembers",
        )
        return [item["title"] for item in items if item.get("title")]

    async def purge_pages(self, titles: List[str]) -> None:
        """
        Purge the parser cache of the given pages.

        Raises:
            PurgeError: If the purge request fails
        """
        if not titles:
            return
        await self._call("POST", {"action": "purge", "titles": "|".join(titles)}, PurgeError)
        self.logger.debug("Purged pages", count=len(titles))

    async def purge_category_members(self, category: str) -> None:
        """Purge every page that belongs to a category."""
        try:
            titles = await self.get_category_members(category)
        except FetchError as e:
            raise PurgeError(f"cannot list members of {category}: {e}") from e
        await self.purge_pages(titles)

    async def setup_module(self, title: str, version: str, content: str) -> bool:
        """
        Make sure the module page exists at the required version.

        The first line of the page is expected to be ``-- <version>``.

        Returns:
            True if the page was written
        """
        existing = await self.get_page(title)
        if existing is None:
            self.logger.info("Module page not found, creating", title=title, version=version)
            await self.push(title, content, f"Initializing Roapid module, version {version}")
            return True

        first_line = existing.split("\n", 1)[0]
        if not first_line.startswith("-- "):
            self.logger.info("Module page missing version comment, overwriting", title=title, version=version)
            await self.push(title, content, f"Updating Roapid module to version {version}")
            return True

        existing_version = first_line[3:].strip()
        if existing_version != version:
            self.logger.info("Updating module page", title=title, old_version=existing_version, version=version)
            await self.push(title, content, f"Updating Roapid module from {existing_version} to {version}")
            return True

        self.logger.info("Module page is up to date", title=title, version=version)
        return False
