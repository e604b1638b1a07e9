"""Page content fetch tool backed by Exa."""

from pydantic import Field, field_validator

from saiman.clients.exa import ExaClient, LivecrawlMode
from saiman.tools.base import ParameterType, Tool, ToolInput, ToolParameter, UrlList, divider
from saiman.tools.web_search import LIVECRAWL_MODES, format_result

MAX_URLS = 10


class GetPageContentsInput(ToolInput):
    urls: UrlList
    max_characters: int = Field(5000, ge=100, le=50000)
    livecrawl: LivecrawlMode = LivecrawlMode.FALLBACK

    @field_validator("urls")
    @classmethod
    def validate_urls(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("URLs array cannot be empty. Provide at least one URL.")
        for url in v:
            if not url.startswith(("http://", "https://")):
                raise ValueError(f"Invalid URL '{url}'. URLs must start with http:// or https://")
        if len(v) > MAX_URLS:
            raise ValueError(f"Too many URLs ({len(v)}). Maximum is {MAX_URLS} URLs per request.")
        return v


class GetPageContentsTool(Tool):
    name = "get_page_contents"
    description = (
        "Fetch full content from specific URLs. Use when you have a URL and need to read it - "
        "e.g., a link the user shared, or a page from search results you want to explore deeper. "
        "Returns raw page content."
    )
    parameters = (
        ToolParameter(
            name="urls",
            type=ParameterType.ARRAY,
            description="URL or array of URLs to fetch content from.",
        ),
        ToolParameter(
            name="max_characters",
            type=ParameterType.INTEGER,
            description="Max characters of content per page. Default: 5000. Use higher values for long articles.",
            required=False,
        ),
        ToolParameter(
            name="livecrawl",
            type=ParameterType.STRING,
            description=(
                "Content freshness. Default: 'fallback' (cached, faster). "
                "Use 'preferred' for pages that update frequently."
            ),
            required=False,
            enum_values=LIVECRAWL_MODES,
        ),
    )

    def __init__(self, exa_client: ExaClient):
        self.exa_client = exa_client

    async def execute(self, arguments: str) -> str:
        args = GetPageContentsInput.parse(arguments)

        results = await self.exa_client.get_contents(
            args.urls, max_characters=args.max_characters, livecrawl=args.livecrawl
        )

        if not results:
            return "No content could be fetched from the provided URL(s)."

        output = f"Page contents for {len(args.urls)} URL(s):\n"
        output += divider() + "\n\n"
        for index, result in enumerate(results, start=1):
            output += format_result(index, result, empty_text="[No text content available]")
        return output
