"""Bedrock model client with rate limiting, retries and message normalization."""

import asyncio
import json
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from anthropic import APIConnectionError, APIStatusError, APITimeoutError, AsyncAnthropicBedrock
from limits import parse
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter

from saiman.models.llm import AgentResponse, ThinkingBlock, TokenUsage, ToolCall, ToolChoice
from saiman.models.messages import ImageLoader, Message
from saiman.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class ModelClientError(Exception):
    """Base class for model invocation failures."""


class ModelApiError(ModelClientError):
    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(f"Bedrock API error ({status_code}): {body}")


class ModelTimeoutError(ModelClientError):
    def __init__(self) -> None:
        super().__init__("The model request timed out")


class ModelNetworkError(ModelClientError):
    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"Network error contacting Bedrock: {detail}")


class ModelInvalidResponseError(ModelClientError):
    def __init__(self, detail: str = ""):
        super().__init__(f"Invalid response from Bedrock{': ' + detail if detail else ''}")


@dataclass
class BedrockConfig:
    """Configuration for the Bedrock client."""

    model: str = "us.anthropic.claude-opus-4-5-20251101-v1:0"
    max_tokens: int = 21333
    thinking_budget_tokens: int = 16000
    timeout: float = 300.0  # Extended reasoning can take minutes
    max_retries: int = 3
    retry_delay: float = 1.0
    requests_per_minute: int = 50
    tokens_per_minute: int = 400_000


class ModelRateLimiter:
    """Moving-window limit on requests and estimated input tokens."""

    def __init__(self, requests_per_minute: int = 50, tokens_per_minute: int = 400_000):
        self.storage = MemoryStorage()
        self.limiter = MovingWindowRateLimiter(self.storage)

        self.request_limit = parse(f"{requests_per_minute}/minute")
        self.token_limit = parse(f"{tokens_per_minute}/minute")

    async def _wait_for(self, limit: Any, identifier: str, cost: int = 1) -> None:
        if self.limiter.hit(limit, identifier, cost=cost):
            return
        window_stats = self.limiter.get_window_stats(limit, identifier)
        wait_time = max(0.0, window_stats.reset_time - time.time())
        if wait_time > 0:
            logger.warning(f"Rate limit for {identifier} exceeded, waiting {wait_time:.2f}s")
            await asyncio.sleep(wait_time)

    async def check_rate_limit(self, estimated_tokens: int, identifier: str = "bedrock") -> None:
        """Wait until the request fits within both limits."""
        logger.debug(f"Checking rate limit for {estimated_tokens} tokens, identifier: {identifier}")
        await self._wait_for(self.request_limit, identifier)
        # A single request larger than the whole window is let through
        cost = min(max(estimated_tokens, 1), self.token_limit.amount)
        await self._wait_for(self.token_limit, f"{identifier}_tokens", cost=cost)


def _is_error_text(content: str | list[Any]) -> bool:
    return isinstance(content, str) and content.startswith("Error:")


def _is_empty(content: str | list[Any]) -> bool:
    return not content.strip() if isinstance(content, str) else not content


def _as_blocks(content: str | list[dict[str, Any]]) -> list[dict[str, Any]]:
    if isinstance(content, str):
        return [{"type": "text", "text": content}]
    return list(content)


def ensure_message_alternation(
    messages: list[Message], load_image: ImageLoader | None = None
) -> list[dict[str, Any]]:
    """Render history as strictly alternating user/assistant wire messages.

    System messages are dropped (the prompt travels separately). Empty messages and
    stored error text are dropped. Consecutive messages with the same role are merged
    into one block list, in order.
    """
    normalized: list[dict[str, Any]] = []

    for message in messages:
        if message.role == "system":
            continue

        wire = message.to_wire(load_image)
        content = wire["content"]
        if _is_empty(content) or _is_error_text(content):
            continue

        if normalized and normalized[-1]["role"] == wire["role"]:
            previous = normalized[-1]
            previous["content"] = _as_blocks(previous["content"]) + _as_blocks(content)
        else:
            normalized.append(wire)

    return normalized


def parse_response(payload: dict[str, Any]) -> AgentResponse:
    """Normalize a Messages API response body."""
    content = payload.get("content")
    if not isinstance(content, list):
        raise ModelInvalidResponseError("missing content")

    text_parts: list[str] = []
    tool_calls: list[ToolCall] = []
    thinking_blocks: list[ThinkingBlock] = []

    for block in content:
        if not isinstance(block, dict):
            continue
        match block.get("type"):
            case "text":
                text_parts.append(block.get("text") or "")
            case "thinking":
                thinking_blocks.append(
                    ThinkingBlock(type="thinking", thinking=block.get("thinking"), signature=block.get("signature"))
                )
            case "redacted_thinking":
                thinking_blocks.append(ThinkingBlock(type="redacted_thinking", data=block.get("data")))
            case "tool_use":
                tool_calls.append(
                    ToolCall(
                        id=block.get("id") or "",
                        name=block.get("name") or "",
                        arguments=json.dumps(block.get("input") or {}),
                    )
                )
            case other:
                logger.debug(f"Ignoring content block type: {other}")

    usage = None
    raw_usage = payload.get("usage")
    if isinstance(raw_usage, dict):
        usage = TokenUsage(
            input_tokens=raw_usage.get("input_tokens") or 0,
            output_tokens=raw_usage.get("output_tokens") or 0,
        )

    return AgentResponse(
        text="".join(text_parts),
        tool_calls=tool_calls,
        thinking_blocks=thinking_blocks,
        stop_reason=payload.get("stop_reason"),
        usage=usage,
    )


def _estimate_tokens(system_prompt: str, messages: list[dict[str, Any]]) -> int:
    """Rough input size, about 4 characters per token."""
    text_content = system_prompt
    for message in messages:
        content = message["content"]
        if isinstance(content, str):
            text_content += content
            continue
        for block in content:
            text_content += block.get("text") or block.get("thinking") or ""
            if block.get("type") == "tool_result":
                text_content += block.get("content") or ""
    return len(text_content) // 4


def _describe(messages: list[dict[str, Any]]) -> str:
    parts = []
    for message in messages:
        content = message["content"]
        kinds = "text" if isinstance(content, str) else ",".join(block.get("type", "?") for block in content)
        parts.append(f"{message['role']}[{kinds}]")
    return " ".join(parts)


class BedrockClient:
    """Invokes Claude on Bedrock with extended thinking and tool use."""

    def __init__(
        self,
        system_prompt: str | Callable[[], str],
        aws_access_key: str | None = None,
        aws_secret_key: str | None = None,
        aws_session_token: str | None = None,
        aws_region: str = "us-east-1",
        config: BedrockConfig | None = None,
        load_image: ImageLoader | None = None,
        client: AsyncAnthropicBedrock | None = None,
    ):
        """Initialize the client.

        Args:
            system_prompt: Prompt text, or a callable producing it per request
            aws_access_key: AWS access key id
            aws_secret_key: AWS secret access key
            aws_session_token: Optional session token for temporary credentials
            aws_region: Bedrock region
            config: Client configuration
            load_image: Reads stored attachment bytes when rendering user messages
            client: Preconfigured SDK client
        """
        self.config = config or BedrockConfig()
        self._system_prompt = system_prompt
        self.load_image = load_image
        self.rate_limiter = ModelRateLimiter(self.config.requests_per_minute, self.config.tokens_per_minute)
        # Request signing is handled by the SDK; retries happen here
        self.client = client or AsyncAnthropicBedrock(
            aws_access_key=aws_access_key,
            aws_secret_key=aws_secret_key,
            aws_session_token=aws_session_token,
            aws_region=aws_region,
            timeout=self.config.timeout,
            max_retries=0,
        )

    @property
    def system_prompt(self) -> str:
        return self._system_prompt() if callable(self._system_prompt) else self._system_prompt

    def build_request(
        self,
        messages: list[Message],
        tools: list[dict[str, Any]],
        tool_choice: ToolChoice,
        model_id: str | None = None,
    ) -> dict[str, Any]:
        """Keyword arguments for one Messages API call."""
        request: dict[str, Any] = {
            "model": model_id or self.config.model,
            "max_tokens": self.config.max_tokens,
            "system": self.system_prompt,
            "thinking": {"type": "enabled", "budget_tokens": self.config.thinking_budget_tokens},
            "messages": ensure_message_alternation(messages, self.load_image),
        }
        if tools:
            request["tools"] = tools
            request["tool_choice"] = tool_choice.to_dict()
        return request

    async def send_message(
        self,
        messages: list[Message],
        tools: list[dict[str, Any]],
        tool_choice: ToolChoice | None = None,
        model_id: str | None = None,
    ) -> AgentResponse:
        """Send the conversation and return the normalized response.

        Raises:
            ModelApiError: Non-success status after retries
            ModelTimeoutError: The request exceeded the client timeout
            ModelNetworkError: Connection failure after retries
            ModelInvalidResponseError: The response body could not be read
        """
        request = self.build_request(messages, tools, tool_choice or ToolChoice.auto(), model_id)

        estimated_tokens = _estimate_tokens(request["system"], request["messages"])
        await self.rate_limiter.check_rate_limit(estimated_tokens)

        logger.debug(
            f"Bedrock request ({request['model']}, {len(tools)} tools): {_describe(request['messages'])}"
        )
        raw = await self._request_with_retries(lambda: self.client.messages.create(**request))

        payload = raw.model_dump() if hasattr(raw, "model_dump") else raw
        if not isinstance(payload, dict):
            raise ModelInvalidResponseError("unexpected body")
        response = parse_response(payload)

        logger.debug(
            f"Bedrock response: {len(response.text)} chars, {len(response.tool_calls)} tool calls, "
            f"{len(response.thinking_blocks)} thinking blocks, stop reason {response.stop_reason}"
        )
        return response

    async def _request_with_retries(self, call: Callable[[], Awaitable[T]]) -> T:
        """Execute a model request, retrying throttling, server errors and dropped connections."""
        for attempt in range(self.config.max_retries):
            last_attempt = attempt == self.config.max_retries - 1
            try:
                return await call()

            except APITimeoutError as e:
                logger.error("Bedrock request timed out")
                raise ModelTimeoutError() from e

            except APIStatusError as e:
                retryable = e.status_code == 429 or e.status_code >= 500
                if retryable and not last_attempt:
                    delay = self.config.retry_delay * (2**attempt)
                    logger.warning(f"Bedrock returned {e.status_code}, retrying in {delay:.1f}s")
                    await asyncio.sleep(delay)
                    continue
                body = e.response.text if e.response is not None else str(e)
                logger.error(f"Bedrock API error ({e.status_code}): {body}")
                raise ModelApiError(e.status_code, body) from e

            except APIConnectionError as e:
                if not last_attempt:
                    delay = self.config.retry_delay * (2**attempt)
                    logger.warning(f"Bedrock connection failed, retrying in {delay:.1f}s")
                    await asyncio.sleep(delay)
                    continue
                logger.error(f"Bedrock connection failed: {e}")
                raise ModelNetworkError(str(e)) from e

        raise ModelClientError(f"Failed to complete request after {self.config.max_retries} attempts")
