"""Tests for the Reddit client and comment tree parsing."""

import asyncio

import httpx
import pytest

from saiman.clients.reddit import (
    MAX_TOTAL_COMMENTS,
    RedditApiError,
    RedditAuthenticationError,
    RedditClient,
    RedditInvalidResponseError,
    RedditNetworkError,
    RedditParseError,
    RedditRateLimitedError,
    RedditThreadNotFoundError,
    normalize_thread_url,
    parse_comments,
    parse_thread,
)

THREAD_URL = "https://www.reddit.com/r/python/comments/abc123/asyncio_tips/"


def comment(body: str, author: str = "user", score: int = 1, replies: list | None = None) -> dict:
    data = {"author": author, "body": body, "score": score}
    data["replies"] = {"kind": "Listing", "data": {"children": replies}} if replies else ""
    return {"kind": "t1", "data": data}


def thread_payload(comments: list | None = None, **post) -> list:
    post_data = {
        "title": "Asyncio tips",
        "selftext": "Share your tips.",
        "author": "op",
        "score": 120,
        "num_comments": 2,
        "subreddit": "python",
        "created_utc": 1729000000.0,
    }
    post_data.update(post)
    return [
        {"kind": "Listing", "data": {"children": [{"kind": "t3", "data": post_data}]}},
        {"kind": "Listing", "data": {"children": comments or []}},
    ]


class TestNormalizeThreadUrl:
    """Tests for JSON endpoint URL construction."""

    @pytest.mark.parametrize(
        "url",
        [
            "https://www.reddit.com/r/python/comments/abc123/asyncio_tips/",
            "https://www.reddit.com/r/python/comments/abc123/asyncio_tips",
            "https://www.reddit.com/r/python/comments/abc123/asyncio_tips/?utm_source=share",
            "https://www.reddit.com/r/python/comments/abc123/asyncio_tips.json",
        ],
    )
    def test_normalizes(self, url):
        """Test that query strings, trailing slashes and .json suffixes are handled."""
        assert normalize_thread_url(url) == (
            "https://www.reddit.com/r/python/comments/abc123/asyncio_tips.json?sort=top"
        )


class TestParseComments:
    """Tests for comment tree limits."""

    def test_nested_replies(self):
        """Test depth tracking through reply listings."""
        children = [comment("top", replies=[comment("reply", replies=[comment("deep")])])]

        comments, _ = parse_comments(children)

        assert comments[0].body == "top"
        assert comments[0].replies[0].depth == 1
        assert comments[0].replies[0].replies[0].depth == 2
        assert comments[0].count() == 3

    def test_depth_limit(self):
        """Test that replies below depth 2 are dropped."""
        children = [comment("d0", replies=[comment("d1", replies=[comment("d2", replies=[comment("d3")])])])]

        comments, _ = parse_comments(children)

        assert comments[0].replies[0].replies[0].replies == []

    def test_branch_limits(self):
        """Test 20 top-level comments, 5 replies and 2 second-level replies."""
        second_level = [comment(f"r2-{i}") for i in range(4)]
        first_level = [comment(f"r1-{i}", replies=second_level) for i in range(8)]
        top_level = [comment(f"top-{i}") for i in range(25)]
        top_level[0] = comment("top-0", replies=first_level)

        comments, _ = parse_comments(top_level)

        assert len(comments) == 20
        assert len(comments[0].replies) == 5
        assert all(len(reply.replies) == 2 for reply in comments[0].replies)

    def test_total_budget(self):
        """Test the global comment cap."""
        top_level = [comment(f"top-{i}", replies=[comment(f"r-{i}-{j}") for j in range(5)]) for i in range(20)]

        comments, remaining = parse_comments(top_level)

        assert sum(item.count() for item in comments) == MAX_TOTAL_COMMENTS
        assert remaining == 0
        assert len(comments) == 17

    def test_skips_deleted_and_non_comments(self):
        """Test that removed comments and 'more' stubs are skipped without spending budget."""
        children = [
            comment("[deleted]", author="[deleted]"),
            comment("[removed]", author="[deleted]"),
            {"kind": "more", "data": {"children": ["x", "y"]}},
            comment("kept"),
        ]

        comments, remaining = parse_comments(children)

        assert [item.body for item in comments] == ["kept"]
        assert remaining == MAX_TOTAL_COMMENTS - 1

    def test_missing_fields_default(self):
        """Test defaults for comments with missing fields."""
        comments, _ = parse_comments([{"kind": "t1", "data": {}}])
        assert comments[0].author == "[deleted]"
        assert comments[0].body == ""
        assert comments[0].score == 0


class TestParseThread:
    """Tests for thread parsing."""

    def test_parses_post(self):
        """Test post fields and comments."""
        thread = parse_thread(thread_payload([comment("Use TaskGroup", score=50)]), THREAD_URL)

        assert thread.title == "Asyncio tips"
        assert thread.subreddit == "python"
        assert thread.score == 120
        assert thread.url == THREAD_URL
        assert thread.created_at.year == 2024
        assert thread.comments[0].body == "Use TaskGroup"

    def test_post_defaults(self):
        """Test defaults for a sparse post."""
        payload = [{"data": {"children": [{"data": {}}]}}, {"data": {"children": []}}]
        thread = parse_thread(payload, THREAD_URL)

        assert thread.title == "Untitled"
        assert thread.author == "[deleted]"
        assert thread.subreddit == "unknown"
        assert thread.comments == []

    @pytest.mark.parametrize("payload", [{}, [], [{"data": {"children": []}}], "text"])
    def test_malformed(self, payload):
        """Test that unexpected structures raise a parse error."""
        with pytest.raises(RedditParseError, match="Failed to parse thread structure"):
            parse_thread(payload, THREAD_URL)


class TestRedditClient:
    """Tests for fetching threads over HTTP."""

    @staticmethod
    def _client(handler) -> RedditClient:
        return RedditClient(transport=httpx.MockTransport(handler))

    @pytest.mark.asyncio
    async def test_fetch_thread(self):
        """Test the request URL, user agent and parsed result."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=thread_payload())

        thread = await self._client(handler).fetch_thread(THREAD_URL)

        assert str(seen[0].url) == "https://www.reddit.com/r/python/comments/abc123/asyncio_tips.json?sort=top"
        assert "Mozilla/5.0" in seen[0].headers["user-agent"]
        assert thread.title == "Asyncio tips"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("status_code", "error_type"),
        [
            (401, RedditAuthenticationError),
            (404, RedditThreadNotFoundError),
            (429, RedditRateLimitedError),
            (503, RedditApiError),
        ],
    )
    async def test_status_errors(self, status_code, error_type):
        """Test mapping of error statuses."""
        client = self._client(lambda request: httpx.Response(status_code, text="nope"))
        with pytest.raises(error_type):
            await client.fetch_thread(THREAD_URL)

    @pytest.mark.asyncio
    async def test_not_found_message(self):
        """Test the not-found message names the URL."""
        client = self._client(lambda request: httpx.Response(404))
        with pytest.raises(RedditThreadNotFoundError, match="It may have been deleted or the URL is incorrect"):
            await client.fetch_thread(THREAD_URL)

    @pytest.mark.asyncio
    async def test_undecodable_body(self):
        """Test that a non-JSON body is reported as invalid."""
        client = self._client(lambda request: httpx.Response(200, text="<html>login</html>"))
        with pytest.raises(RedditInvalidResponseError):
            await client.fetch_thread(THREAD_URL)

    @pytest.mark.asyncio
    async def test_network_error(self):
        """Test that connection failures are wrapped."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection reset")

        with pytest.raises(RedditNetworkError, match="connection reset"):
            await self._client(handler).fetch_thread(THREAD_URL)

    @pytest.mark.asyncio
    async def test_fetch_threads_keeps_order_and_errors(self):
        """Test that results line up with the input URLs, failures included."""
        urls = [
            "https://www.reddit.com/r/a/comments/1/first/",
            "https://www.reddit.com/r/b/comments/2/missing/",
            "https://www.reddit.com/r/c/comments/3/third/",
        ]

        def handler(request: httpx.Request) -> httpx.Response:
            if "missing" in request.url.path:
                return httpx.Response(404)
            title = request.url.path.split("/")[-1].removesuffix(".json")
            return httpx.Response(200, json=thread_payload(title=title))

        results = await self._client(handler).fetch_threads(urls)

        assert results[0].title == "first"
        assert isinstance(results[1], RedditThreadNotFoundError)
        assert results[2].title == "third"

    @pytest.mark.asyncio
    async def test_fetch_threads_concurrency_cap(self):
        """Test that no more than the configured number of fetches run at once."""
        active = 0
        peak = 0

        class SlowTransport(httpx.AsyncBaseTransport):
            async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
                nonlocal active, peak
                active += 1
                peak = max(peak, active)
                await asyncio.sleep(0.01)
                active -= 1
                return httpx.Response(200, json=thread_payload())

        client = RedditClient(max_concurrency=2, transport=SlowTransport())
        urls = [f"https://www.reddit.com/r/x/comments/{i}/t/" for i in range(6)]

        results = await client.fetch_threads(urls)

        assert len(results) == 6
        assert peak <= 2


def test_normalize_short_domain():
    """Test normalization of a bare reddit.com thread URL."""
    assert normalize_thread_url("https://reddit.com/r/test/comments/abc/title/?share=1") == (
        "https://reddit.com/r/test/comments/abc/title.json?sort=top"
    )
