"""MCP tools/list and tools/call handlers.

Adapts the tool registry to the MCP result shapes. Tool failures are not
converted here; they propagate as ToolError so the dispatcher can turn them
into JSON-RPC error responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from chess_trainer_mcp.plugins.registry import ToolRegistry


@dataclass
class ToolsListResult:
    """Result of tools/list request."""

    tools: list[dict[str, Any]]

    def to_dict(self) -> dict[str, Any]:
        """Convert to MCP result format.

        Returns:
            Dictionary in MCP tools/list result format.
        """
        return {"tools": self.tools}


class ToolsHandler:
    """Handles tools/list and tools/call MCP requests."""

    def __init__(self, registry: ToolRegistry) -> None:
        """Initialize the handler.

        Args:
            registry: Tool registry for listing and routing calls.
        """
        self._registry = registry

    async def handle_list(self) -> ToolsListResult:
        """Handle tools/list request.

        Returns:
            ToolsListResult with all available tools.
        """
        tools = await self._registry.list_tools()
        return ToolsListResult(tools=tools)

    async def handle_call(self, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        """Handle tools/call request.

        Args:
            name: Name of the tool to call.
            arguments: Tool arguments.

        Returns:
            Result in MCP tools/call format.

        Raises:
            ToolError: If the tool is unknown or fails.
        """
        result = await self._registry.call_tool(name, arguments)
        return result.to_dict()
