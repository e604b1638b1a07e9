"""Web search tool backed by Exa."""

from pydantic import Field, field_validator

from saiman.clients.exa import ExaClient, ExaResult, LivecrawlMode, SearchType
from saiman.tools.base import ParameterType, Tool, ToolInput, ToolParameter, divider

SEARCH_TYPES = tuple(mode.value for mode in SearchType)
LIVECRAWL_MODES = tuple(mode.value for mode in LivecrawlMode)


def format_result(index: int, result: ExaResult, empty_text: str | None = None) -> str:
    """Numbered entry shared by the search and page-content tools."""
    output = f"[{index}] {result.title or 'Untitled'}\n"
    output += f"URL: {result.url}\n"
    if result.author:
        output += f"Author: {result.author}\n"
    if result.published_date:
        output += f"Published: {result.published_date}\n"

    if result.text:
        output += f"\n{result.text}\n"
    elif empty_text is not None:
        output += f"\n{empty_text}\n"

    output += "\n" + divider("-") + "\n\n"
    return output


class WebSearchInput(ToolInput):
    query: str
    num_results: int = Field(5, ge=1, le=50)
    max_characters: int = Field(2000, ge=100, le=20000)
    search_type: SearchType = SearchType.AUTO
    livecrawl: LivecrawlMode = LivecrawlMode.FALLBACK

    @field_validator("query")
    @classmethod
    def validate_query(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Missing or empty 'query' parameter. Provide a search query string.")
        return v


class WebSearchTool(Tool):
    name = "web_search"
    description = (
        "Search the web using Exa's neural search. Returns raw page content for you to synthesize.\n"
        "\n"
        "When to use:\n"
        "- Information likely outdated or changed since August 2025\n"
        "- Facts you're uncertain about (dates, statistics, current status)\n"
        "- Current events, news, prices, recent developments\n"
        "- Technical docs, APIs, or specs that update frequently\n"
        "\n"
        "When NOT to use:\n"
        "- You confidently know the answer\n"
        "- Reasoning, analysis, math, or creative tasks\n"
        "- Well-established facts within your training data"
    )
    parameters = (
        ToolParameter(
            name="query",
            type=ParameterType.STRING,
            description="The search query. Be specific and targeted for better results.",
        ),
        ToolParameter(
            name="num_results",
            type=ParameterType.INTEGER,
            description=(
                "Number of results to return (1-50). Default: 5. Use 3-5 for simple facts, 10-20 for research."
            ),
            required=False,
        ),
        ToolParameter(
            name="max_characters",
            type=ParameterType.INTEGER,
            description=(
                "Max characters of content per result. Default: 2000. "
                "Use 1000-2000 for quick answers, 5000+ for detailed content."
            ),
            required=False,
        ),
        ToolParameter(
            name="search_type",
            type=ParameterType.STRING,
            description=(
                "Search type. Default: 'auto'. Options: 'fast' (<500ms, quick lookups), "
                "'auto' (balanced), 'deep' (comprehensive, several seconds)."
            ),
            required=False,
            enum_values=SEARCH_TYPES,
        ),
        ToolParameter(
            name="livecrawl",
            type=ParameterType.STRING,
            description=(
                "Content freshness. Default: 'fallback' (cached, faster). "
                "Use 'preferred' for current events, 'always' for real-time data."
            ),
            required=False,
            enum_values=LIVECRAWL_MODES,
        ),
    )

    def __init__(self, exa_client: ExaClient):
        self.exa_client = exa_client

    async def execute(self, arguments: str) -> str:
        args = WebSearchInput.parse(arguments)

        results = await self.exa_client.search(
            args.query,
            num_results=args.num_results,
            max_characters=args.max_characters,
            search_type=args.search_type,
            livecrawl=args.livecrawl,
        )

        if not results:
            return f"No results found for query: {args.query}"

        output = f"Search results for: {args.query}\n"
        output += f"[type: {args.search_type.value}, results: {len(results)}, max_chars: {args.max_characters}]\n"
        output += divider() + "\n\n"
        for index, result in enumerate(results, start=1):
            output += format_result(index, result)
        return output
