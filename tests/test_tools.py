"""Tests for the agent tools and the tool registry."""

import json
from datetime import UTC, datetime
from typing import Literal
from unittest.mock import AsyncMock, Mock

import pytest
from pydantic import Field

from saiman.clients.exa import ExaClient, ExaResult, LivecrawlMode, SearchType
from saiman.clients.reddit import RedditClient, RedditComment, RedditRateLimitedError, RedditThread
from saiman.models.llm import ToolCall
from saiman.tools import InvalidArgumentsError, ToolRegistry, UnknownToolError, build_default_registry
from saiman.tools.base import ParameterType, ToolInput, ToolParameter, UrlList
from saiman.tools.page_contents import GetPageContentsTool
from saiman.tools.reddit_read import RedditReadTool, format_comment
from saiman.tools.reddit_search import RedditSearchTool, extract_subreddit, format_date
from saiman.tools.web_search import WebSearchTool

from tests.conftest import EchoTool


@pytest.fixture
def exa_client():
    client = Mock(spec=ExaClient)
    client.search = AsyncMock(return_value=[])
    client.get_contents = AsyncMock(return_value=[])
    return client


@pytest.fixture
def reddit_client():
    client = Mock(spec=RedditClient)
    client.fetch_threads = AsyncMock(return_value=[])
    return client


def _thread(**overrides) -> RedditThread:
    values = {
        "title": "Best budget keyboard?",
        "selftext": "Looking for something under $50.",
        "author": "typist",
        "score": 42,
        "num_comments": 3,
        "subreddit": "MechanicalKeyboards",
        "created_at": datetime(2024, 10, 15, tzinfo=UTC),
        "url": "https://www.reddit.com/r/MechanicalKeyboards/comments/abc/best/",
        "comments": [],
    }
    values.update(overrides)
    return RedditThread(**values)


class SampleInput(ToolInput):
    n: int = Field(5, ge=1, le=50)
    mode: Literal["fast", "auto"] = "auto"


class SampleUrlsInput(ToolInput):
    urls: UrlList


class TestToolInput:
    """Tests for argument parsing and validation."""

    def test_parse_rejects_invalid_json(self):
        """Test that malformed JSON is reported."""
        with pytest.raises(InvalidArgumentsError, match="Failed to parse arguments as JSON"):
            SampleInput.parse("{not json")

    def test_parse_rejects_non_object(self):
        """Test that a JSON array is rejected."""
        with pytest.raises(InvalidArgumentsError, match="Failed to parse arguments as JSON"):
            SampleInput.parse("[1, 2]")

    def test_blank_arguments_use_defaults(self):
        """Test that an empty payload parses to the defaults."""
        args = SampleInput.parse("  ")
        assert args.n == 5
        assert args.mode == "auto"

    def test_integer_bounds_name_received_value(self):
        """Test that an out-of-range integer is reported with the value received."""
        with pytest.raises(InvalidArgumentsError, match=r"Invalid n 51\. Input should be less than or equal to 50"):
            SampleInput.parse('{"n": 51}')

    def test_integer_accepts_whole_floats(self):
        """Test that 10.0 is accepted as 10."""
        assert SampleInput.parse('{"n": 10.0}').n == 10

    def test_choice(self):
        """Test enumerated choices."""
        with pytest.raises(InvalidArgumentsError, match="Invalid mode 'slow'"):
            SampleInput.parse('{"mode": "slow"}')

    def test_undeclared_parameter_rejected(self):
        """Test that properties outside the schema are rejected."""
        with pytest.raises(InvalidArgumentsError, match="Unexpected parameter 'other'."):
            SampleInput.parse('{"other": 1}')

    def test_url_list_accepts_single_string(self):
        """Test that a lone URL becomes a one-element list."""
        assert SampleUrlsInput.parse('{"urls": "https://a.com"}').urls == ["https://a.com"]

    def test_url_list_errors(self):
        """Test missing URLs and non-string entries."""
        with pytest.raises(InvalidArgumentsError, match="Missing required 'urls' parameter."):
            SampleUrlsInput.parse("{}")
        with pytest.raises(InvalidArgumentsError, match=r"Invalid urls\.0 1\."):
            SampleUrlsInput.parse('{"urls": [1]}')


class TestToolSchema:
    """Tests for function-calling schemas."""

    def test_schema_shape(self):
        """Test that the schema lists properties and required names."""
        schema = EchoTool().to_schema()
        assert schema["name"] == "echo"
        assert schema["input_schema"] == {
            "type": "object",
            "properties": {"text": {"type": "string", "description": "Text to echo"}},
            "required": ["text"],
            "additionalProperties": False,
        }

    def test_enum_values(self):
        """Test enumerated parameter schema."""
        param = ToolParameter("mode", ParameterType.STRING, "Mode", required=False, enum_values=("a", "b"))
        assert param.to_schema()["enum"] == ["a", "b"]

    def test_web_search_schema(self, exa_client):
        """Test that only the query is required for web search."""
        schema = WebSearchTool(exa_client).to_schema()
        assert schema["input_schema"]["required"] == ["query"]
        assert schema["input_schema"]["properties"]["search_type"]["enum"] == ["fast", "auto", "deep"]
        assert schema["input_schema"]["properties"]["livecrawl"]["enum"] == ["fallback", "preferred", "always"]


class TestToolRegistry:
    """Tests for the tool registry."""

    def test_register_and_lookup(self):
        """Test registration and lookup by name."""
        tool = EchoTool()
        registry = ToolRegistry([tool])

        assert registry.has_tool("echo")
        assert registry.get("echo") is tool
        assert registry.get_tool_names() == ["echo"]
        assert registry.schemas() == [tool.to_schema()]

    def test_register_replaces_same_name(self):
        """Test that re-registering a name replaces the tool."""
        first, second = EchoTool(), EchoTool()
        registry = ToolRegistry([first])
        registry.register(second)

        assert registry.all_tools == [second]

    def test_unregister(self):
        """Test removing a tool."""
        registry = ToolRegistry([EchoTool()])
        registry.unregister("echo")
        registry.unregister("missing")
        assert registry.all_tools == []

    @pytest.mark.asyncio
    async def test_execute_dispatches(self):
        """Test that execution goes to the named tool."""
        tool = EchoTool()
        registry = ToolRegistry([tool])

        result = await registry.execute(ToolCall(id="1", name="echo", arguments='{"text": "hi"}'))

        assert result == "echo: hi"
        assert tool.calls == ['{"text": "hi"}']

    @pytest.mark.asyncio
    async def test_execute_unknown_tool(self):
        """Test that an unknown tool name fails."""
        with pytest.raises(UnknownToolError, match="Unknown tool: nope"):
            await ToolRegistry().execute(ToolCall(id="1", name="nope"))

    def test_default_registry(self, exa_client, reddit_client):
        """Test the built-in tool set."""
        registry = build_default_registry(exa_client, reddit_client)
        assert registry.get_tool_names() == ["web_search", "get_page_contents", "reddit_search", "reddit_read"]


class TestWebSearchTool:
    """Tests for the web search tool."""

    @pytest.mark.asyncio
    async def test_defaults_passed_to_client(self, exa_client):
        """Test default search options."""
        await WebSearchTool(exa_client).execute('{"query": "python"}')

        exa_client.search.assert_awaited_once_with(
            "python",
            num_results=5,
            max_characters=2000,
            search_type=SearchType.AUTO,
            livecrawl=LivecrawlMode.FALLBACK,
        )

    @pytest.mark.asyncio
    async def test_missing_query(self, exa_client):
        """Test that an empty query is rejected before searching."""
        with pytest.raises(InvalidArgumentsError, match="Missing or empty 'query' parameter"):
            await WebSearchTool(exa_client).execute('{"query": "  "}')
        exa_client.search.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_search_type(self, exa_client):
        """Test that unknown search types are rejected."""
        with pytest.raises(InvalidArgumentsError, match="Invalid search_type 'slow'"):
            await WebSearchTool(exa_client).execute('{"query": "x", "search_type": "slow"}')

    @pytest.mark.asyncio
    async def test_out_of_range_num_results(self, exa_client):
        """Test that the rejected value is named in the error."""
        with pytest.raises(InvalidArgumentsError, match="Invalid num_results 51"):
            await WebSearchTool(exa_client).execute('{"query": "x", "num_results": 51}')
        exa_client.search.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_enum_values_passed_as_modes(self, exa_client):
        """Test that search type and livecrawl reach the client as enum members."""
        await WebSearchTool(exa_client).execute('{"query": "x", "search_type": "fast", "livecrawl": "always"}')
        kwargs = exa_client.search.await_args.kwargs
        assert kwargs["search_type"] is SearchType.FAST
        assert kwargs["livecrawl"] is LivecrawlMode.ALWAYS

    @pytest.mark.asyncio
    async def test_no_results(self, exa_client):
        """Test the empty result message."""
        result = await WebSearchTool(exa_client).execute('{"query": "nothing"}')
        assert result == "No results found for query: nothing"

    @pytest.mark.asyncio
    async def test_formats_results(self, exa_client):
        """Test the numbered result listing."""
        exa_client.search.return_value = [
            ExaResult(title="Python", url="https://python.org", text="Python is great", author="PSF"),
            ExaResult(title=None, url="https://example.com", published_date="2024-10-15"),
        ]

        result = await WebSearchTool(exa_client).execute(
            json.dumps({"query": "python", "search_type": "deep", "num_results": 10})
        )

        assert result.startswith("Search results for: python\n[type: deep, results: 2, max_chars: 2000]\n" + "=" * 60)
        assert "[1] Python\nURL: https://python.org\nAuthor: PSF\n\nPython is great\n" in result
        assert "[2] Untitled\nURL: https://example.com\nPublished: 2024-10-15\n" in result
        assert result.count("-" * 60) == 2


class TestGetPageContentsTool:
    """Tests for the page contents tool."""

    @pytest.mark.asyncio
    async def test_single_url_string(self, exa_client):
        """Test that a single URL string is accepted."""
        exa_client.get_contents.return_value = [ExaResult(title="Doc", url="https://a.com", text="Body")]

        result = await GetPageContentsTool(exa_client).execute('{"urls": "https://a.com"}')

        exa_client.get_contents.assert_awaited_once_with(
            ["https://a.com"], max_characters=5000, livecrawl=LivecrawlMode.FALLBACK
        )
        assert result.startswith("Page contents for 1 URL(s):\n" + "=" * 60 + "\n\n")
        assert "[1] Doc\nURL: https://a.com\n\nBody\n" in result

    @pytest.mark.asyncio
    async def test_missing_text(self, exa_client):
        """Test placeholder for pages without text."""
        exa_client.get_contents.return_value = [ExaResult(title="Doc", url="https://a.com")]
        result = await GetPageContentsTool(exa_client).execute('{"urls": ["https://a.com"]}')
        assert "[No text content available]" in result

    @pytest.mark.asyncio
    async def test_rejects_non_http_urls(self, exa_client):
        """Test URL scheme validation."""
        with pytest.raises(InvalidArgumentsError, match="Invalid URL 'ftp://a.com'"):
            await GetPageContentsTool(exa_client).execute('{"urls": ["ftp://a.com"]}')

    @pytest.mark.asyncio
    async def test_too_many_urls(self, exa_client):
        """Test the URL cap."""
        urls = [f"https://a.com/{i}" for i in range(11)]
        with pytest.raises(InvalidArgumentsError, match=r"Too many URLs \(11\). Maximum is 10 URLs per request."):
            await GetPageContentsTool(exa_client).execute(json.dumps({"urls": urls}))

    @pytest.mark.asyncio
    async def test_missing_and_empty(self, exa_client):
        """Test missing and empty URL arguments."""
        tool = GetPageContentsTool(exa_client)
        with pytest.raises(InvalidArgumentsError, match="Missing required 'urls' parameter"):
            await tool.execute("{}")
        with pytest.raises(InvalidArgumentsError, match="URLs array cannot be empty"):
            await tool.execute('{"urls": []}')

    @pytest.mark.asyncio
    async def test_nothing_fetched(self, exa_client):
        """Test the message when no page could be fetched."""
        result = await GetPageContentsTool(exa_client).execute('{"urls": ["https://a.com"]}')
        assert result == "No content could be fetched from the provided URL(s)."


class TestRedditSearchTool:
    """Tests for the Reddit search tool."""

    def test_extract_subreddit(self):
        """Test subreddit extraction from thread URLs."""
        assert extract_subreddit("https://www.reddit.com/r/python/comments/abc/title/") == "r/python"
        assert extract_subreddit("https://www.reddit.com/user/someone") is None

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("2024-10-15T12:30:00.000Z", "Oct 15, 2024"),
            ("2024-01-05", "Jan 5, 2024"),
            ("yesterday", "yesterday"),
        ],
    )
    def test_format_date(self, value, expected):
        """Test date display."""
        assert format_date(value) == expected

    @pytest.mark.asyncio
    async def test_restricts_to_reddit(self, exa_client):
        """Test that searches are limited to reddit.com without page text."""
        await RedditSearchTool(exa_client).execute('{"query": "keyboards"}')

        exa_client.search.assert_awaited_once_with(
            "keyboards",
            num_results=10,
            max_characters=None,
            search_type=SearchType.AUTO,
            livecrawl=LivecrawlMode.FALLBACK,
            include_domains=["reddit.com"],
        )

    @pytest.mark.asyncio
    async def test_formats_results(self, exa_client):
        """Test the thread listing."""
        exa_client.search.return_value = [
            ExaResult(
                title="Budget boards",
                url="https://www.reddit.com/r/MechanicalKeyboards/comments/abc/budget/",
                published_date="2024-10-15T08:00:00.000Z",
            ),
            ExaResult(title="Other", url="https://www.reddit.com/comments/xyz"),
        ]

        result = await RedditSearchTool(exa_client).execute('{"query": "keyboards"}')

        assert result.startswith("Reddit search results for: keyboards\n" + "=" * 60 + "\n\n")
        assert (
            "[1] Budget boards\n    r/MechanicalKeyboards | Oct 15, 2024\n"
            "    https://www.reddit.com/r/MechanicalKeyboards/comments/abc/budget/\n\n"
        ) in result
        assert "[2] Other\n    reddit\n    https://www.reddit.com/comments/xyz\n\n" in result

    @pytest.mark.asyncio
    async def test_no_results(self, exa_client):
        """Test the empty result message."""
        result = await RedditSearchTool(exa_client).execute('{"query": "nothing"}')
        assert result == "No Reddit threads found for: nothing"


class TestRedditReadTool:
    """Tests for the Reddit thread reader tool."""

    def test_format_comment_indents_replies(self):
        """Test nested reply indentation."""
        comment = RedditComment(
            author="a",
            body="line one\nline two",
            score=10,
            depth=0,
            replies=[RedditComment(author="b", body="reply", score=2, depth=1)],
        )

        assert format_comment(comment) == (
            "[10 pts] u/a\nline one\nline two\n\n    [2 pts] u/b\n    reply\n\n"
        )

    @pytest.mark.asyncio
    async def test_rejects_non_reddit_urls(self, reddit_client):
        """Test that only Reddit URLs are accepted."""
        with pytest.raises(InvalidArgumentsError, match="'https://example.com' is not a Reddit URL."):
            await RedditReadTool(reddit_client).execute('{"urls": ["https://example.com"]}')
        reddit_client.fetch_threads.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_too_many_urls(self, reddit_client):
        """Test the URL cap."""
        urls = [f"https://reddit.com/r/x/comments/{i}" for i in range(11)]
        with pytest.raises(InvalidArgumentsError, match=r"Too many URLs \(11\). Maximum is 10 per request."):
            await RedditReadTool(reddit_client).execute(json.dumps({"urls": urls}))

    @pytest.mark.asyncio
    async def test_formats_thread(self, reddit_client):
        """Test the thread rendering."""
        thread = _thread(comments=[RedditComment(author="fan", body="Get a Keychron", score=30, depth=0)])
        reddit_client.fetch_threads.return_value = [thread]

        result = await RedditReadTool(reddit_client).execute(json.dumps({"urls": thread.url}))

        assert result.startswith("Reddit Thread: Best budget keyboard?\n" + "=" * 60 + "\n")
        assert (
            "r/MechanicalKeyboards | Posted by u/typist | Oct 15, 2024 | Score: 42 | 3 comments\n\n"
            "Looking for something under $50.\n"
        ) in result
        assert "TOP COMMENTS\n" in result
        assert "[30 pts] u/fan\nGet a Keychron\n" in result

    @pytest.mark.asyncio
    async def test_link_post_placeholder(self, reddit_client):
        """Test placeholder for posts without text."""
        reddit_client.fetch_threads.return_value = [_thread(selftext="")]
        result = await RedditReadTool(reddit_client).execute('{"urls": "https://reddit.com/r/x/comments/1"}')
        assert "[Link post - no text content]" in result
        assert "TOP COMMENTS" not in result

    @pytest.mark.asyncio
    async def test_partial_failure(self, reddit_client):
        """Test that a failed thread is reported inline next to the readable ones."""
        urls = ["https://reddit.com/r/x/comments/1", "https://reddit.com/r/x/comments/2"]
        reddit_client.fetch_threads.return_value = [_thread(), RedditRateLimitedError()]

        result = await RedditReadTool(reddit_client).execute(json.dumps({"urls": urls}))

        reddit_client.fetch_threads.assert_awaited_once_with(urls)
        assert "Reddit Thread: Best budget keyboard?" in result
        assert "\n" + "=" * 60 + "\n\nError fetching https://reddit.com/r/x/comments/2: Reddit rate limit exceeded." in result
