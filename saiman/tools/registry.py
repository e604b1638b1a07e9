"""Tools registry for managing agent tools."""

from typing import Any

from saiman.clients.exa import ExaClient
from saiman.clients.reddit import RedditClient
from saiman.models.llm import ToolCall
from saiman.tools.base import Tool, UnknownToolError
from saiman.tools.page_contents import GetPageContentsTool
from saiman.tools.reddit_read import RedditReadTool
from saiman.tools.reddit_search import RedditSearchTool
from saiman.tools.web_search import WebSearchTool
from saiman.utils.logging import get_logger

logger = get_logger(__name__)


class ToolRegistry:
    """Lookup table from tool name to tool. The only way the agent loop runs tools."""

    def __init__(self, tools: list[Tool] | None = None):
        self._tools: dict[str, Tool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        """Register a tool, replacing any tool with the same name."""
        self._tools[tool.name] = tool

    def unregister(self, name: str) -> None:
        self._tools.pop(name, None)

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    @property
    def all_tools(self) -> list[Tool]:
        return list(self._tools.values())

    def get_tool_names(self) -> list[str]:
        """Get list of all registered tool names."""
        return list(self._tools.keys())

    def has_tool(self, name: str) -> bool:
        """Check if a tool is registered."""
        return name in self._tools

    def schemas(self) -> list[dict[str, Any]]:
        return [tool.to_schema() for tool in self._tools.values()]

    async def execute(self, tool_call: ToolCall) -> str:
        """Run the named tool with the call's argument payload."""
        tool = self._tools.get(tool_call.name)
        if tool is None:
            raise UnknownToolError(tool_call.name)
        return await tool.execute(tool_call.arguments)


def build_default_registry(exa_client: ExaClient, reddit_client: RedditClient) -> ToolRegistry:
    """Registry with the web and Reddit tools."""
    registry = ToolRegistry(
        [
            WebSearchTool(exa_client),
            GetPageContentsTool(exa_client),
            RedditSearchTool(exa_client),
            RedditReadTool(reddit_client),
        ]
    )
    logger.debug(f"Registered tools: {', '.join(registry.get_tool_names())}")
    return registry
