"""Reddit thread reader tool."""

from pydantic import field_validator

from saiman.clients.reddit import RedditClient, RedditComment, RedditThread
from saiman.tools.base import ParameterType, Tool, ToolInput, ToolParameter, UrlList, divider

MAX_URLS = 10


def format_comment(comment: RedditComment, indent: str = "") -> str:
    output = f"{indent}[{comment.score} pts] u/{comment.author}\n"
    for line in comment.body.split("\n"):
        output += f"{indent}{line}\n"
    output += "\n"
    for reply in comment.replies:
        output += format_comment(reply, indent + "    ")
    return output


def format_thread(thread: RedditThread) -> str:
    created = thread.created_at
    output = f"Reddit Thread: {thread.title}\n"
    output += divider() + "\n"
    output += (
        f"r/{thread.subreddit} | Posted by u/{thread.author} | {created:%b} {created.day}, {created.year} | "
        f"Score: {thread.score} | {thread.num_comments} comments\n\n"
    )

    if thread.selftext:
        output += thread.selftext + "\n"
    else:
        output += "[Link post - no text content]\n"

    if thread.comments:
        output += "\n" + divider("-") + "\n"
        output += "TOP COMMENTS\n"
        output += divider("-") + "\n\n"
        for comment in thread.comments:
            output += format_comment(comment)

    return output


class RedditReadInput(ToolInput):
    urls: UrlList

    @field_validator("urls")
    @classmethod
    def validate_urls(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("URLs array cannot be empty.")
        for url in v:
            if "reddit.com" not in url:
                raise ValueError(f"'{url}' is not a Reddit URL.")
        if len(v) > MAX_URLS:
            raise ValueError(f"Too many URLs ({len(v)}). Maximum is {MAX_URLS} per request.")
        return v


class RedditReadTool(Tool):
    name = "reddit_read"
    description = (
        "Fetch full content from Reddit threads including the post and top comments. "
        "Use after reddit_search to read threads you want to explore in detail.\n"
        "\n"
        "Returns: Post content, metadata (score, author, date), and top comments with replies."
    )
    parameters = (
        ToolParameter(
            name="urls",
            type=ParameterType.ARRAY,
            description="Reddit URL or array of URLs to read.",
        ),
    )

    def __init__(self, reddit_client: RedditClient):
        self.reddit_client = reddit_client

    async def execute(self, arguments: str) -> str:
        urls = RedditReadInput.parse(arguments).urls
        results = await self.reddit_client.fetch_threads(urls)

        # Partial failures are reported inline so the readable threads still reach the model
        output = ""
        for index, (url, result) in enumerate(zip(urls, results)):
            if index > 0:
                output += "\n" + divider() + "\n\n"
            if isinstance(result, RedditThread):
                output += format_thread(result)
            else:
                output += f"Error fetching {url}: {result}\n"
        return output
