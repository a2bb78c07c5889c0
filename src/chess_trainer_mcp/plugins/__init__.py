"""Tool plugins for the Chess Trainer MCP server."""

from chess_trainer_mcp.plugins.base import (
    PluginBase,
    ToolDefinition,
    ToolError,
    ToolExecutionError,
    ToolNotFoundError,
    ToolResult,
)
from chess_trainer_mcp.plugins.registry import ToolRegistry

__all__ = [
    "PluginBase",
    "ToolDefinition",
    "ToolError",
    "ToolExecutionError",
    "ToolNotFoundError",
    "ToolRegistry",
    "ToolResult",
]
