"""Agent loop: model calls and tool execution until the model answers."""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from saiman.clients.bedrock import ModelTimeoutError
from saiman.models.agent import AgentRunResult, AgentState
from saiman.models.llm import AgentResponse, ToolCall, ToolChoice
from saiman.models.messages import Message
from saiman.prompts import SYNTHESIS_PROMPT, TITLE_PROMPT
from saiman.services.usage import TokenTracker
from saiman.tools.registry import ToolRegistry
from saiman.utils.logging import get_logger

logger = get_logger(__name__)

TIMEOUT_MESSAGE = (
    "The request timed out. This can happen with complex reasoning tasks. "
    "Try simplifying the question or starting a new conversation."
)
TOOL_LIMIT_EMPTY_MESSAGE = "I was unable to complete this request - the tool call limit was reached."
TOOL_LIMIT_ERROR_MESSAGE = (
    "I was unable to complete this request - the tool call limit was reached and an error occurred."
)

MAX_TITLE_LENGTH = 50
TITLE_CONTEXT_MESSAGES = 4

OnComplete = Callable[[str, list[ToolCall]], None]


class ModelClient(Protocol):
    async def send_message(
        self,
        messages: list[Message],
        tools: list[dict[str, Any]],
        tool_choice: ToolChoice | None = None,
        model_id: str | None = None,
    ) -> AgentResponse: ...


@dataclass
class _Run:
    """Bookkeeping for one in-flight run."""

    task: asyncio.Task | None = None
    cancel_requested: bool = False
    in_model_call: bool = False


class AgentLoop:
    """Runs one conversation turn at a time against the model and tool registry."""

    def __init__(
        self,
        model_client: ModelClient,
        registry: ToolRegistry,
        tracker: TokenTracker | None = None,
        max_tool_calls: int = 10,
        title_model_id: str | None = None,
        on_state_change: Callable[[AgentState], None] | None = None,
    ):
        self.model_client = model_client
        self.registry = registry
        self.tracker = tracker
        self.max_tool_calls = max_tool_calls
        self.title_model_id = title_model_id
        self.on_state_change = on_state_change

        self.state = AgentState.idle()
        self.current_response = ""
        self.tool_call_count = 0
        self._run: _Run | None = None

    @property
    def is_running(self) -> bool:
        return self._run is not None and self._run.task is not None and not self._run.task.done()

    def run(self, messages: list[Message], on_complete: OnComplete | None = None) -> asyncio.Task:
        """Start a run over ``messages``, cancelling any run already in flight.

        ``on_complete`` receives the final text and every completed tool call. It is not
        called when the run is cancelled.
        """
        if self._run is not None:
            self.cancel()

        run = _Run()
        self._run = run
        run.task = asyncio.create_task(self._execute(run, list(messages), on_complete))
        return run.task

    async def ask(self, messages: list[Message]) -> AgentRunResult | None:
        """Run to completion and return the result, or ``None`` if cancelled."""
        return await self.run(messages)

    def cancel(self) -> None:
        """Stop the current run. Safe to call at any time.

        A model request in flight is abandoned; a tool call that has already started
        finishes, and its result is discarded.
        """
        run = self._run
        self._run = None
        if run is not None:
            run.cancel_requested = True
            if run.in_model_call and run.task is not None and not run.task.done():
                run.task.cancel()

        self._set_state(AgentState.cancelled())
        self.current_response = ""
        self.tool_call_count = 0

    def _set_state(self, state: AgentState, run: _Run | None = None) -> None:
        # A superseded run must not overwrite the state of its successor
        if run is not None and run is not self._run:
            return
        self.state = state
        if self.on_state_change is not None:
            self.on_state_change(state)

    def _finish(self, run: _Run, text: str, tool_calls: list[ToolCall], on_complete: OnComplete | None) -> None:
        if run is self._run and on_complete is not None:
            on_complete(text, tool_calls)

    def _record_usage(self, response: AgentResponse) -> None:
        if self.tracker is not None and response.usage is not None:
            self.tracker.add(response.usage)

    async def _call_model(self, run: _Run, messages: list[Message], tools: list[dict[str, Any]]) -> AgentResponse:
        run.in_model_call = True
        try:
            response = await self.model_client.send_message(messages, tools)
        finally:
            run.in_model_call = False
        self._record_usage(response)
        return response

    async def _execute(
        self, run: _Run, messages: list[Message], on_complete: OnComplete | None
    ) -> AgentRunResult | None:
        conversation_id = messages[0].conversation_id if messages else ""
        working = messages
        all_tool_calls: list[ToolCall] = []
        iterations = 0

        self._set_state(AgentState.thinking(), run)
        self.current_response = ""
        self.tool_call_count = 0

        logger.info(f"Agent loop starting with {len(messages)} messages, max tool calls: {self.max_tool_calls}")
        tools = self.registry.schemas()

        try:
            while iterations < self.max_tool_calls:
                if run.cancel_requested:
                    self._set_state(AgentState.cancelled(), run)
                    return None

                try:
                    response = await self._call_model(run, working, tools)
                except (ModelTimeoutError, TimeoutError) as e:
                    logger.error(f"Model request timed out: {e}")
                    self._set_state(AgentState.failed(e), run)
                    self._finish(run, TIMEOUT_MESSAGE, all_tool_calls, on_complete)
                    return AgentRunResult(TIMEOUT_MESSAGE, all_tool_calls, iterations)
                except Exception as e:
                    logger.error(f"Model request failed: {e}")
                    self._set_state(AgentState.failed(e), run)
                    text = f"Error: {e}"
                    self._finish(run, text, all_tool_calls, on_complete)
                    return AgentRunResult(text, all_tool_calls, iterations)

                if response.text and run is self._run:
                    self.current_response = response.text

                if not response.tool_calls:
                    logger.info(f"Agent loop completed after {iterations} tool rounds")
                    self._set_state(AgentState.idle(), run)
                    self._finish(run, response.text, all_tool_calls, on_complete)
                    return AgentRunResult(response.text, all_tool_calls, iterations)

                logger.info(f"Processing {len(response.tool_calls)} tool calls")
                completed: list[ToolCall] = []
                for tool_call in response.tool_calls:
                    if run.cancel_requested:
                        self._set_state(AgentState.cancelled(), run)
                        return None

                    self._set_state(AgentState.executing_tool(tool_call.name), run)
                    if run is self._run:
                        self.tool_call_count += 1
                    completed_call = await self._execute_tool(tool_call)
                    completed.append(completed_call)
                    all_tool_calls.append(completed_call)

                # Requested calls go back unresolved so tool_use precedes tool_result
                working.append(
                    Message(
                        conversation_id=conversation_id,
                        role="assistant",
                        content=response.text,
                        tool_calls=response.tool_calls,
                        thinking_blocks=response.thinking_blocks or None,
                    )
                )
                working.append(Message(conversation_id=conversation_id, role="user", content="", tool_calls=completed))
                logger.debug(
                    f"Appended {len(response.tool_calls)} tool_use blocks, "
                    f"{len(response.thinking_blocks)} thinking blocks and {len(completed)} tool results"
                )

                iterations += 1
                self._set_state(AgentState.thinking(), run)

            if run.cancel_requested:
                self._set_state(AgentState.cancelled(), run)
                return None
            return await self._synthesize(run, conversation_id, working, all_tool_calls, iterations, on_complete)

        except asyncio.CancelledError:
            logger.info("Agent loop cancelled")
            self._set_state(AgentState.cancelled(), run)
            return None

    async def _execute_tool(self, tool_call: ToolCall) -> ToolCall:
        logger.debug(f"Executing tool: {tool_call.name} with args: {tool_call.arguments}")
        try:
            result = await self.registry.execute(tool_call)
        except Exception as e:
            logger.error(f"Tool {tool_call.name} failed: {e}")
            return tool_call.resolved(f"Error executing tool: {e}", is_error=True)

        logger.debug(f"Tool {tool_call.name} result: {result[:200]}...")
        return tool_call.resolved(result)

    async def _synthesize(
        self,
        run: _Run,
        conversation_id: str,
        working: list[Message],
        all_tool_calls: list[ToolCall],
        iterations: int,
        on_complete: OnComplete | None,
    ) -> AgentRunResult:
        """Final tool-free call once the iteration cap is reached."""
        logger.warning(f"Max tool calls reached ({self.max_tool_calls}), forcing final response")
        self._set_state(AgentState.thinking(), run)
        working.append(Message(conversation_id=conversation_id, role="user", content=SYNTHESIS_PROMPT))

        try:
            final = await self._call_model(run, working, [])
        except Exception as e:
            logger.error(f"Final synthesis call failed: {e}")
            text = TOOL_LIMIT_ERROR_MESSAGE
        else:
            if final.text:
                text = (
                    final.text
                    + "\n\n---\n*Note: This response may be incomplete - the tool call limit "
                    + f"({self.max_tool_calls}) was reached.*"
                )
            else:
                text = TOOL_LIMIT_EMPTY_MESSAGE

        self._set_state(AgentState.idle(), run)
        self._finish(run, text, all_tool_calls, on_complete)
        return AgentRunResult(text, all_tool_calls, iterations, hit_tool_limit=True)

    async def generate_title(self, messages: list[Message]) -> str | None:
        """Short title for a conversation from its most recent messages, or ``None``."""
        history = [message for message in messages if message.role != "system"][-TITLE_CONTEXT_MESSAGES:]
        conversation_id = history[0].conversation_id if history else ""
        history.append(Message(conversation_id=conversation_id, role="user", content=TITLE_PROMPT))

        try:
            response = await self.model_client.send_message(history, [], model_id=self.title_model_id)
        except Exception as e:
            logger.warning(f"Title generation failed: {e}")
            return None
        self._record_usage(response)

        title = response.text.strip()
        if len(title) > MAX_TITLE_LENGTH:
            return title[: MAX_TITLE_LENGTH - 3] + "..."
        return title or None
