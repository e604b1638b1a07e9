"""Exa search and page-content client."""

from enum import Enum
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from saiman.utils.logging import get_logger

logger = get_logger(__name__)

EXA_BASE_URL = "https://api.exa.ai"
EXA_TIMEOUT = httpx.Timeout(60.0, connect=10.0)


class SearchType(str, Enum):
    FAST = "fast"  # Quick lookups, <500ms
    AUTO = "auto"  # Balanced quality/speed
    DEEP = "deep"  # Comprehensive research, several seconds


class LivecrawlMode(str, Enum):
    FALLBACK = "fallback"  # Cached content first
    PREFERRED = "preferred"  # Fresh content when possible
    ALWAYS = "always"  # Always crawl


class ExaError(Exception):
    """Base class for Exa failures."""


class ExaAuthenticationError(ExaError):
    def __init__(self) -> None:
        super().__init__("Exa authentication failed. Check EXA_API_KEY.")


class ExaRateLimitedError(ExaError):
    def __init__(self) -> None:
        super().__init__("Exa rate limit exceeded. Wait a moment before searching again.")


class ExaApiError(ExaError):
    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(f"Exa API error ({status_code}): {body}")


class ExaNetworkError(ExaError):
    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"Network error contacting Exa: {detail}")


class ExaInvalidResponseError(ExaError):
    def __init__(self, detail: str = ""):
        super().__init__(f"Invalid response from Exa API{': ' + detail if detail else ''}")


class ExaResult(BaseModel):
    """A single search hit or fetched page."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    title: str | None = None
    url: str
    text: str | None = None
    published_date: str | None = Field(default=None, alias="publishedDate")
    author: str | None = None


class ExaResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    results: list[ExaResult]


class ExaClient:
    """Client for the Exa ``/search`` and ``/contents`` endpoints."""

    def __init__(
        self,
        api_key: str,
        base_url: str = EXA_BASE_URL,
        timeout: httpx.Timeout = EXA_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def search(
        self,
        query: str,
        num_results: int = 5,
        max_characters: int | None = 2000,
        search_type: SearchType = SearchType.AUTO,
        livecrawl: LivecrawlMode = LivecrawlMode.FALLBACK,
        include_domains: list[str] | None = None,
    ) -> list[ExaResult]:
        """Search the web.

        Args:
            query: The search query
            num_results: Number of results (1-50)
            max_characters: Max characters of text per result; ``None`` skips content retrieval
            search_type: fast, auto or deep
            livecrawl: Content freshness mode
            include_domains: Restrict results to these domains

        Returns:
            Results in ranking order
        """
        payload: dict[str, Any] = {
            "query": query,
            "type": SearchType(search_type).value,
            "numResults": num_results,
        }
        if max_characters is not None:
            payload["contents"] = {
                "text": {"maxCharacters": max_characters},
                "livecrawl": LivecrawlMode(livecrawl).value,
            }
        if include_domains:
            payload["includeDomains"] = include_domains

        logger.debug(f"Exa search: {query!r} ({payload['type']}, {num_results} results)")
        return await self._post("/search", payload)

    async def get_contents(
        self,
        urls: list[str],
        max_characters: int = 5000,
        livecrawl: LivecrawlMode = LivecrawlMode.FALLBACK,
    ) -> list[ExaResult]:
        """Fetch page text for specific URLs. Pages that cannot be fetched are left out."""
        payload = {
            "urls": urls,
            "text": {"maxCharacters": max_characters},
            "livecrawl": LivecrawlMode(livecrawl).value,
        }
        logger.debug(f"Exa contents: {len(urls)} URL(s)")
        return await self._post("/contents", payload)

    async def _post(self, path: str, payload: dict[str, Any]) -> list[ExaResult]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "x-api-key": self.api_key,
            "Content-Type": "application/json",
        }

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.post(f"{self.base_url}{path}", headers=headers, json=payload)
            except httpx.TransportError as e:
                logger.error(f"Exa request to {path} failed: {e}")
                raise ExaNetworkError(str(e) or type(e).__name__) from e

        if response.status_code == 401:
            raise ExaAuthenticationError()
        if response.status_code == 429:
            raise ExaRateLimitedError()
        if response.status_code != 200:
            logger.error(f"Exa API error ({response.status_code}): {response.text}")
            raise ExaApiError(response.status_code, response.text or "Unknown error")

        try:
            return ExaResponse.model_validate_json(response.content).results
        except ValidationError as e:
            raise ExaInvalidResponseError(str(e.errors()[0]["msg"]) if e.errors() else "") from e
