"""Shared fixtures and test doubles."""

import asyncio
from typing import Any

import pytest

from saiman.config import Settings
from saiman.models.llm import AgentResponse, TokenUsage, ToolCall, ToolChoice
from saiman.models.messages import Message
from saiman.tools.base import ParameterType, Tool, ToolInput, ToolParameter


class ScriptedModelClient:
    """Model client returning queued responses, or raising queued exceptions.

    Every call records a snapshot of the messages, the tool schemas and the model id.
    When ``gate`` is set, each call waits on it before answering.
    """

    def __init__(self, responses: list[AgentResponse | BaseException] | None = None):
        self.responses = list(responses or [])
        self.calls: list[dict[str, Any]] = []
        self.gate: asyncio.Event | None = None
        self.started = asyncio.Event()

    async def send_message(
        self,
        messages: list[Message],
        tools: list[dict[str, Any]],
        tool_choice: ToolChoice | None = None,
        model_id: str | None = None,
    ) -> AgentResponse:
        self.calls.append({"messages": list(messages), "tools": tools, "model_id": model_id})
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        if not self.responses:
            raise AssertionError("No scripted response left")
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response


class EchoInput(ToolInput):
    text: str


class EchoTool(Tool):
    """Returns its text argument."""

    name = "echo"
    description = "Echo the text back."
    parameters = (ToolParameter("text", ParameterType.STRING, "Text to echo"),)

    def __init__(self) -> None:
        self.calls: list[str] = []

    async def execute(self, arguments: str) -> str:
        self.calls.append(arguments)
        return f"echo: {EchoInput.parse(arguments).text}"


class FailingTool(Tool):
    name = "broken"
    description = "Always fails."

    async def execute(self, arguments: str) -> str:
        raise RuntimeError("boom")


def text_response(text: str, input_tokens: int = 10, output_tokens: int = 5) -> AgentResponse:
    return AgentResponse(text=text, stop_reason="end_turn", usage=TokenUsage(input_tokens, output_tokens))


def tool_response(*calls: ToolCall, text: str = "") -> AgentResponse:
    return AgentResponse(text=text, tool_calls=list(calls), stop_reason="tool_use", usage=TokenUsage(20, 10))


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings isolated from the environment's files and the user's home directory."""
    return Settings(
        _env_file=None,
        use_aws_profile=False,
        aws_access_key_id="AKIATESTKEY000000000",
        aws_secret_access_key="secret",
        aws_region="us-west-2",
        exa_api_key="exa-test-key",
        data_dir=tmp_path / "saiman",
        max_tool_calls=3,
    )
