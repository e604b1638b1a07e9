"""Wire-format content blocks and model call results."""

import json
from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel


# Content block types
class TextBlock(BaseModel):
    """Text content block."""

    type: Literal["text"] = "text"
    text: str

    class Config:
        extra = "ignore"  # Ignore any additional fields from the provider

    def to_wire(self) -> dict[str, Any]:
        return {"type": "text", "text": self.text}


class ImageSource(BaseModel):
    """Inline base64 image payload."""

    type: Literal["base64"] = "base64"
    media_type: str
    data: str


class ImageBlock(BaseModel):
    """Image content block (user messages only)."""

    type: Literal["image"] = "image"
    source: ImageSource

    def to_wire(self) -> dict[str, Any]:
        return {"type": "image", "source": self.source.model_dump()}


class ThinkingBlock(BaseModel):
    """Extended-reasoning block.

    The signature (for ``thinking``) and the encrypted payload (for
    ``redacted_thinking``) are opaque continuity tokens: they are stored and sent back
    exactly as received.
    """

    type: Literal["thinking", "redacted_thinking"] = "thinking"
    thinking: str | None = None
    signature: str | None = None
    data: str | None = None

    class Config:
        extra = "ignore"

    def to_wire(self) -> dict[str, Any]:
        if self.type == "redacted_thinking":
            block: dict[str, Any] = {"type": "redacted_thinking"}
            if self.data is not None:
                block["data"] = self.data
            return block

        block = {"type": "thinking"}
        if self.thinking is not None:
            block["thinking"] = self.thinking
        if self.signature is not None:
            block["signature"] = self.signature
        return block


class ToolUseBlock(BaseModel):
    """Tool use content block."""

    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: dict[str, Any]

    class Config:
        extra = "ignore"

    def to_wire(self) -> dict[str, Any]:
        return {"type": "tool_use", "id": self.id, "name": self.name, "input": self.input}


class ToolResultBlock(BaseModel):
    """Tool result content block."""

    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: str
    is_error: bool = False

    class Config:
        extra = "ignore"

    def to_wire(self) -> dict[str, Any]:
        block: dict[str, Any] = {"type": "tool_result", "tool_use_id": self.tool_use_id, "content": self.content}
        # Only flag failures so the model can adapt
        if self.is_error:
            block["is_error"] = True
        return block


ContentBlock = TextBlock | ImageBlock | ThinkingBlock | ToolUseBlock | ToolResultBlock


class ToolCall(BaseModel):
    """A tool invocation requested by the model, and later its resolution."""

    id: str
    name: str
    arguments: str = "{}"
    result: str | None = None
    is_error: bool = False

    def input_dict(self) -> dict[str, Any]:
        """Decode the argument payload; anything that is not a JSON object becomes ``{}``."""
        try:
            decoded = json.loads(self.arguments)
        except ValueError:
            return {}
        return decoded if isinstance(decoded, dict) else {}

    def resolved(self, result: str, is_error: bool = False) -> "ToolCall":
        """Copy of this call carrying its result."""
        return self.model_copy(update={"result": result, "is_error": is_error})

    def to_tool_use(self) -> ToolUseBlock:
        return ToolUseBlock(id=self.id, name=self.name, input=self.input_dict())

    def to_tool_result(self) -> ToolResultBlock:
        return ToolResultBlock(tool_use_id=self.id, content=self.result or "", is_error=self.is_error)


@dataclass
class TokenUsage:
    """Token usage reported for a single model call."""

    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass
class AgentResponse:
    """Normalized result of one model call."""

    text: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    thinking_blocks: list[ThinkingBlock] = field(default_factory=list)
    stop_reason: str | None = None
    usage: TokenUsage | None = None


@dataclass(frozen=True)
class ToolChoice:
    """How the model may use the offered tools."""

    type: Literal["auto", "any", "tool"] = "auto"
    name: str | None = None

    @classmethod
    def auto(cls) -> "ToolChoice":
        return cls("auto")

    @classmethod
    def any(cls) -> "ToolChoice":
        return cls("any")

    @classmethod
    def tool(cls, name: str) -> "ToolChoice":
        return cls("tool", name)

    def to_dict(self) -> dict[str, str]:
        if self.type == "tool" and self.name:
            return {"type": "tool", "name": self.name}
        return {"type": self.type}
