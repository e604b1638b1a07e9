"""Reddit thread search through Exa, restricted to reddit.com."""

import re
from datetime import date, datetime

from pydantic import Field, field_validator

from saiman.clients.exa import ExaClient, LivecrawlMode, SearchType
from saiman.tools.base import ParameterType, Tool, ToolInput, ToolParameter, divider

_SUBREDDIT_PATTERN = re.compile(r"/r/([^/]+)/")


def extract_subreddit(url: str) -> str | None:
    """``r/<name>`` from a thread URL."""
    match = _SUBREDDIT_PATTERN.search(url)
    return f"r/{match.group(1)}" if match else None


def format_date(iso_date: str) -> str:
    """``Oct 15, 2024`` from an ISO date or timestamp; the input itself when unparseable."""
    try:
        parsed: date = datetime.fromisoformat(iso_date).date()
    except ValueError:
        try:
            parsed = date.fromisoformat(iso_date[:10])
        except ValueError:
            return iso_date
    return f"{parsed:%b} {parsed.day}, {parsed.year}"


class RedditSearchInput(ToolInput):
    query: str
    num_results: int = Field(10, ge=1, le=30)

    @field_validator("query")
    @classmethod
    def validate_query(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Missing or empty 'query' parameter.")
        return v


class RedditSearchTool(Tool):
    name = "reddit_search"
    description = (
        "Search Reddit for threads and discussions. Returns titles, URLs, subreddits, and dates. "
        "Use reddit_read to fetch full thread content and comments.\n"
        "\n"
        "When to use:\n"
        "- Recommendations (restaurants, APIs, libraries, tools)\n"
        '- Opinions and experiences ("is X worth it", "X vs Y")\n'
        '- Real-world troubleshooting ("X not working")\n'
        "- Local knowledge (city subreddits for restaurants, neighborhoods, etc.)"
    )
    parameters = (
        ToolParameter(
            name="query",
            type=ParameterType.STRING,
            description="Search query. Include subreddit names to filter (e.g., 'buyitforlife best backpack').",
        ),
        ToolParameter(
            name="num_results",
            type=ParameterType.INTEGER,
            description="Number of threads to return (1-30). Default: 10.",
            required=False,
        ),
    )

    def __init__(self, exa_client: ExaClient):
        self.exa_client = exa_client

    async def execute(self, arguments: str) -> str:
        args = RedditSearchInput.parse(arguments)
        query = args.query

        # Exa cannot crawl Reddit, so only titles and URLs are requested
        results = await self.exa_client.search(
            query,
            num_results=args.num_results,
            max_characters=None,
            search_type=SearchType.AUTO,
            livecrawl=LivecrawlMode.FALLBACK,
            include_domains=["reddit.com"],
        )

        if not results:
            return f"No Reddit threads found for: {query}"

        output = f"Reddit search results for: {query}\n"
        output += divider() + "\n\n"
        for index, result in enumerate(results, start=1):
            output += f"[{index}] {result.title or 'Untitled'}\n"
            output += f"    {extract_subreddit(result.url) or 'reddit'}"
            if result.published_date:
                output += f" | {format_date(result.published_date)}"
            output += f"\n    {result.url}\n\n"
        return output
