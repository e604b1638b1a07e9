"""Conversation, message and attachment models."""

import base64
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import PurePath
from typing import Any, Literal

from cuid2 import cuid_wrapper
from pydantic import BaseModel, Field

from saiman.models.llm import ContentBlock, ImageBlock, ImageSource, TextBlock, ThinkingBlock, ToolCall

cuid = cuid_wrapper()

MessageRole = Literal["user", "assistant", "system"]

MAX_ATTACHMENTS_PER_MESSAGE = 6
MAX_IMAGE_DIMENSION = 1568
SUPPORTED_IMAGE_EXTENSIONS = ("jpg", "jpeg", "png", "gif", "webp", "heic")

_MIME_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "heic": "image/heic",
}


def _now() -> datetime:
    return datetime.now(UTC)


class Attachment(BaseModel):
    """Reference to an image stored under the attachments directory."""

    id: str = Field(default_factory=cuid)
    filename: str
    mime_type: str
    relative_path: str
    width: int
    height: int
    created_at: datetime = Field(default_factory=_now)

    @staticmethod
    def mime_type_for(filename: str) -> str:
        """MIME type from the file extension, JPEG when unknown."""
        extension = PurePath(filename).suffix.lstrip(".").lower()
        return _MIME_TYPES.get(extension, "image/jpeg")

    @staticmethod
    def is_supported(filename: str) -> bool:
        return PurePath(filename).suffix.lstrip(".").lower() in SUPPORTED_IMAGE_EXTENSIONS


ImageLoader = Callable[[Attachment], bytes | None]


class Conversation(BaseModel):
    """A persisted conversation."""

    id: str = Field(default_factory=cuid)
    title: str = "New Conversation"
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    def is_stale(self, timeout_minutes: int, now: datetime | None = None) -> bool:
        """Whether the conversation is too old to be continued automatically."""
        now = now or _now()
        return now - self.updated_at > timedelta(minutes=timeout_minutes)


class Message(BaseModel):
    """One turn of a conversation."""

    id: str = Field(default_factory=cuid)
    conversation_id: str
    role: MessageRole
    content: str = ""
    tool_calls: list[ToolCall] | None = None
    attachments: list[Attachment] | None = None
    thinking_blocks: list[ThinkingBlock] | None = None
    tool_usage_summary: str | None = None  # Display only, never sent to the model
    created_at: datetime = Field(default_factory=_now)

    def content_blocks(self, load_image: ImageLoader | None = None) -> list[ContentBlock]:
        """Typed blocks for this message in wire order.

        Assistant messages: reasoning blocks, text, tool_use requests.
        User messages: images, text, tool_result blocks.
        """
        blocks: list[ContentBlock] = []

        if self.role == "assistant" and self.thinking_blocks:
            blocks.extend(self.thinking_blocks)

        if self.role == "user" and self.attachments and load_image is not None:
            for attachment in self.attachments:
                image_data = load_image(attachment)
                if image_data is None:
                    continue
                blocks.append(
                    ImageBlock(
                        source=ImageSource(
                            media_type=attachment.mime_type,
                            data=base64.b64encode(image_data).decode("ascii"),
                        )
                    )
                )

        if self.content:
            blocks.append(TextBlock(text=self.content))

        if self.tool_calls:
            if self.role == "assistant":
                blocks.extend(call.to_tool_use() for call in self.tool_calls)
            else:
                blocks.extend(call.to_tool_result() for call in self.tool_calls)

        return blocks

    def to_wire(self, load_image: ImageLoader | None = None) -> dict[str, Any]:
        """Render as a provider message; plain text content stays a string."""
        role = "assistant" if self.role == "assistant" else "user"

        has_tool_calls = bool(self.tool_calls)
        has_attachments = self.role == "user" and bool(self.attachments)
        has_thinking = self.role == "assistant" and bool(self.thinking_blocks)

        if not (has_tool_calls or has_attachments or has_thinking):
            return {"role": role, "content": self.content}

        return {"role": role, "content": [block.to_wire() for block in self.content_blocks(load_image)]}


def _count_urls(arguments: str) -> int:
    """Number of URLs in a batch tool call's arguments (1 when it cannot tell)."""
    urls = ToolCall(id="", name="", arguments=arguments).input_dict().get("urls")
    if isinstance(urls, list):
        return len(urls)
    return 1


def _plural(count: int, singular: str, plural: str) -> str:
    return f"1 {singular}" if count == 1 else f"{count} {plural}"


def generate_tool_usage_summary(tool_calls: list[ToolCall]) -> str | None:
    """Short display line describing the tools used during a turn.

    Example: ``"🛠️ 2 web searches, 1 page read, 3 Reddit searches, 2 Reddit threads read"``
    """
    if not tool_calls:
        return None

    web_searches = 0
    pages_read = 0
    reddit_searches = 0
    reddit_threads_read = 0

    for call in tool_calls:
        if call.name == "web_search":
            web_searches += 1
        elif call.name == "get_page_contents":
            pages_read += _count_urls(call.arguments)
        elif call.name == "reddit_search":
            reddit_searches += 1
        elif call.name == "reddit_read":
            reddit_threads_read += _count_urls(call.arguments)

    parts: list[str] = []
    if web_searches:
        parts.append(_plural(web_searches, "web search", "web searches"))
    if pages_read:
        parts.append(_plural(pages_read, "page read", "pages read"))
    if reddit_searches:
        parts.append(_plural(reddit_searches, "Reddit search", "Reddit searches"))
    if reddit_threads_read:
        parts.append(_plural(reddit_threads_read, "Reddit thread read", "Reddit threads read"))

    if not parts:
        return None
    return "🛠️ " + ", ".join(parts)
