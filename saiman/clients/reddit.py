"""Reddit thread reader using the public ``.json`` endpoints."""

import asyncio
import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import httpx

from saiman.utils.logging import get_logger

logger = get_logger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
REDDIT_TIMEOUT = httpx.Timeout(30.0)

MAX_COMMENT_DEPTH = 3
MAX_TOP_LEVEL_COMMENTS = 20
MAX_TOTAL_COMMENTS = 100
MAX_CONCURRENT_FETCHES = 5

_DELETED = "[deleted]"


class RedditError(Exception):
    """Base class for Reddit failures."""


class RedditAuthenticationError(RedditError):
    def __init__(self) -> None:
        super().__init__("Reddit refused the request (HTTP 401). The thread may require login.")


class RedditRateLimitedError(RedditError):
    def __init__(self) -> None:
        super().__init__(
            "Reddit rate limit exceeded. Wait a few seconds before retrying, "
            "or reduce the number of threads being fetched at once."
        )


class RedditApiError(RedditError):
    def __init__(self, status_code: int, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(f"Reddit API error (HTTP {status_code}). Try again or use fewer URLs.")


class RedditNetworkError(RedditError):
    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"Network error fetching Reddit: {detail}")


class RedditInvalidResponseError(RedditError):
    def __init__(self) -> None:
        super().__init__("Invalid response from Reddit. The thread may have been deleted or made private.")


class RedditThreadNotFoundError(RedditError):
    def __init__(self, url: str):
        self.url = url
        super().__init__(f"Thread not found: {url}. It may have been deleted or the URL is incorrect.")


class RedditParseError(RedditError):
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Failed to parse Reddit response: {reason}. The thread format may be unsupported.")


@dataclass
class RedditComment:
    author: str
    body: str
    score: int
    depth: int
    replies: list["RedditComment"] = field(default_factory=list)

    def count(self) -> int:
        """This comment plus all nested replies."""
        return 1 + sum(reply.count() for reply in self.replies)


@dataclass
class RedditThread:
    title: str
    selftext: str
    author: str
    score: int
    num_comments: int
    subreddit: str
    created_at: datetime
    url: str
    comments: list[RedditComment] = field(default_factory=list)


def normalize_thread_url(url: str) -> str:
    """Turn a thread URL into its top-sorted JSON endpoint."""
    clean_url = url.split("?", 1)[0].rstrip("/")
    if clean_url.endswith(".json"):
        clean_url = clean_url[: -len(".json")]
    return f"{clean_url}.json?sort=top"


def _branch_limit(depth: int) -> int:
    if depth == 0:
        return MAX_TOP_LEVEL_COMMENTS
    return 5 if depth == 1 else 2


def parse_comments(
    children: list[Any], depth: int = 0, budget: int = MAX_TOTAL_COMMENTS
) -> tuple[list[RedditComment], int]:
    """Depth-first comment extraction.

    Returns the parsed comments and the remaining global budget. Only the first
    ``_branch_limit(depth)`` children of each listing are considered; deleted or removed
    comments are skipped without spending budget.
    """
    if depth >= MAX_COMMENT_DEPTH or budget <= 0:
        return [], budget

    comments: list[RedditComment] = []
    for child in children[: _branch_limit(depth)]:
        if budget <= 0:
            break
        if not isinstance(child, dict) or child.get("kind") != "t1" or not isinstance(child.get("data"), dict):
            continue

        data = child["data"]
        author = data.get("author") if isinstance(data.get("author"), str) else _DELETED
        body = data.get("body") if isinstance(data.get("body"), str) else ""
        score = data.get("score") if isinstance(data.get("score"), int) else 0

        if author == _DELETED and body in ("[deleted]", "[removed]"):
            continue

        budget -= 1

        replies: list[RedditComment] = []
        reply_listing = data.get("replies")
        if isinstance(reply_listing, dict):
            reply_children = (reply_listing.get("data") or {}).get("children")
            if isinstance(reply_children, list):
                replies, budget = parse_comments(reply_children, depth + 1, budget)

        comments.append(RedditComment(author=author, body=body, score=score, depth=depth, replies=replies))

    return comments, budget


def parse_thread(payload: Any, original_url: str) -> RedditThread:
    """Build a thread from the ``[post listing, comment listing]`` JSON pair."""
    try:
        post = payload[0]["data"]["children"][0]["data"]
        if not isinstance(post, dict) or len(payload) < 2:
            raise TypeError
    except (KeyError, IndexError, TypeError) as e:
        raise RedditParseError("Failed to parse thread structure") from e

    comment_children = []
    comment_listing = payload[1].get("data") if isinstance(payload[1], dict) else None
    if isinstance(comment_listing, dict) and isinstance(comment_listing.get("children"), list):
        comment_children = comment_listing["children"]
    comments, _ = parse_comments(comment_children)

    created_utc = post.get("created_utc")
    return RedditThread(
        title=post.get("title") or "Untitled",
        selftext=post.get("selftext") or "",
        author=post.get("author") or _DELETED,
        score=int(post.get("score") or 0),
        num_comments=int(post.get("num_comments") or 0),
        subreddit=post.get("subreddit") or "unknown",
        created_at=datetime.fromtimestamp(float(created_utc or 0), tz=UTC),
        url=original_url,
        comments=comments,
    )


class RedditClient:
    """Fetches Reddit threads with a capped comment tree."""

    def __init__(
        self,
        timeout: httpx.Timeout = REDDIT_TIMEOUT,
        max_concurrency: int = MAX_CONCURRENT_FETCHES,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.timeout = timeout
        self.max_concurrency = max_concurrency
        self.transport = transport

    async def fetch_thread(self, url: str) -> RedditThread:
        """Fetch a thread and its top comments."""
        json_url = normalize_thread_url(url)

        async with httpx.AsyncClient(
            timeout=self.timeout,
            transport=self.transport,
            headers={"User-Agent": USER_AGENT},
            follow_redirects=True,
        ) as client:
            try:
                response = await client.get(json_url)
            except httpx.InvalidURL as e:
                logger.error(f"Reddit: Invalid URL format: {url}")
                raise RedditParseError("Invalid URL format") from e
            except httpx.TransportError as e:
                logger.error(f"Reddit: Network error for {url}: {e}")
                raise RedditNetworkError(str(e) or type(e).__name__) from e

        match response.status_code:
            case 200:
                pass
            case 401:
                logger.error(f"Reddit: Unauthorized (401): {url}")
                raise RedditAuthenticationError()
            case 404:
                logger.error(f"Reddit: Thread not found (404): {url}")
                raise RedditThreadNotFoundError(url)
            case 429:
                logger.error("Reddit: Rate limited (429)")
                raise RedditRateLimitedError()
            case status:
                logger.error(f"Reddit: API error ({status}) for {url}")
                raise RedditApiError(status, response.text)

        try:
            payload = json.loads(response.content)
        except ValueError as e:
            logger.error(f"Reddit: Undecodable body for {url}")
            raise RedditInvalidResponseError() from e

        try:
            return parse_thread(payload, original_url=url)
        except RedditParseError as e:
            logger.error(f"Reddit: Parse error for {url}: {e}")
            raise

    async def fetch_threads(self, urls: list[str]) -> list[RedditThread | RedditError]:
        """Fetch several threads concurrently.

        Returns one entry per URL, in input order: the thread, or the error that stopped it.
        """
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def fetch_one(url: str) -> RedditThread | RedditError:
            async with semaphore:
                try:
                    return await self.fetch_thread(url)
                except RedditError as e:
                    return e

        return list(await asyncio.gather(*(fetch_one(url) for url in urls)))
