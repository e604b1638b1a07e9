"""Agent loop state and results."""

from dataclasses import dataclass, field
from enum import Enum

from saiman.models.llm import ToolCall


class AgentStateKind(str, Enum):
    IDLE = "idle"
    THINKING = "thinking"
    EXECUTING_TOOL = "executing_tool"
    RESPONDING = "responding"
    ERROR = "error"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class AgentState:
    """Current phase of an agent run.

    ``tool_name`` is set only while executing a tool, ``error`` only in the error state.
    """

    kind: AgentStateKind = AgentStateKind.IDLE
    tool_name: str | None = None
    error: BaseException | None = field(default=None, compare=False)

    @classmethod
    def idle(cls) -> "AgentState":
        return cls(AgentStateKind.IDLE)

    @classmethod
    def thinking(cls) -> "AgentState":
        return cls(AgentStateKind.THINKING)

    @classmethod
    def executing_tool(cls, name: str) -> "AgentState":
        return cls(AgentStateKind.EXECUTING_TOOL, tool_name=name)

    @classmethod
    def responding(cls) -> "AgentState":
        return cls(AgentStateKind.RESPONDING)

    @classmethod
    def failed(cls, cause: BaseException) -> "AgentState":
        return cls(AgentStateKind.ERROR, error=cause)

    @classmethod
    def cancelled(cls) -> "AgentState":
        return cls(AgentStateKind.CANCELLED)

    def __str__(self) -> str:
        if self.kind is AgentStateKind.EXECUTING_TOOL:
            return f"executing_tool({self.tool_name})"
        if self.kind is AgentStateKind.ERROR:
            return f"error({self.error})"
        return self.kind.value


@dataclass
class AgentRunResult:
    """Final text of a run plus every tool call completed along the way."""

    text: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    iterations: int = 0
    hit_tool_limit: bool = False
