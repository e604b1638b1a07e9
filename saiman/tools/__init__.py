"""Tools the agent can call."""

from saiman.tools.base import ExecutionFailedError, InvalidArgumentsError, Tool, ToolError, UnknownToolError
from saiman.tools.registry import ToolRegistry, build_default_registry

__all__ = [
    "ExecutionFailedError",
    "InvalidArgumentsError",
    "Tool",
    "ToolError",
    "ToolRegistry",
    "UnknownToolError",
    "build_default_registry",
]
