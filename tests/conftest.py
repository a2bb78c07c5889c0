"""Shared fixtures for bridge tests."""

import asyncio
import io
from typing import Any

import pytest

from chess_trainer_mcp.config import BridgeConfig
from chess_trainer_mcp.plugins.base import (
    PluginBase,
    ToolDefinition,
    ToolExecutionError,
    ToolResult,
)
from chess_trainer_mcp.plugins.registry import ToolRegistry
from chess_trainer_mcp.protocol.guard import OutputChannelGuard
from chess_trainer_mcp.server import MCPServer


class MockPlugin(PluginBase):
    """Plugin with an echo tool, a sleeping tool and a failing tool."""

    @property
    def name(self) -> str:
        return "mock"

    @property
    def version(self) -> str:
        return "1.0.0"

    def get_tools(self) -> list[ToolDefinition]:
        return [
            ToolDefinition(
                name="echo",
                description="Echoes input",
                input_schema={
                    "type": "object",
                    "properties": {"message": {"type": "string"}},
                    "required": ["message"],
                },
            ),
            ToolDefinition(
                name="sleep",
                description="Sleeps, then echoes",
                input_schema={
                    "type": "object",
                    "properties": {
                        "seconds": {"type": "number", "minimum": 0},
                        "message": {"type": "string"},
                    },
                    "required": ["seconds"],
                },
            ),
            ToolDefinition(
                name="fail",
                description="Always fails",
                input_schema={"type": "object", "properties": {}},
            ),
        ]

    async def execute(self, tool_name: str, arguments: dict[str, Any]) -> ToolResult:
        if tool_name == "echo":
            return ToolResult.text(arguments["message"])
        if tool_name == "sleep":
            await asyncio.sleep(arguments["seconds"])
            return ToolResult.text(arguments.get("message", "done"))
        if tool_name == "fail":
            raise ToolExecutionError("fail always fails")
        raise ToolExecutionError(f"Unknown tool: {tool_name}")


@pytest.fixture
def stdout() -> io.StringIO:
    """Captured protocol stream."""
    return io.StringIO()


@pytest.fixture
def stderr() -> io.StringIO:
    """Captured diagnostic stream."""
    return io.StringIO()


@pytest.fixture
def guard(stdout: io.StringIO, stderr: io.StringIO) -> OutputChannelGuard:
    """Guard writing to in-memory streams."""
    return OutputChannelGuard(stdout=stdout, stderr=stderr)


@pytest.fixture
def fast_config() -> BridgeConfig:
    """Configuration with short shutdown deadlines."""
    return BridgeConfig(drain_timeout=0.5, grace_period=1.0, hard_timeout=5.0)


@pytest.fixture
def registry() -> ToolRegistry:
    """Registry holding the mock plugin."""
    registry = ToolRegistry()
    registry.register_plugin(MockPlugin())
    return registry


@pytest.fixture
def server(registry: ToolRegistry, fast_config: BridgeConfig, guard: OutputChannelGuard) -> MCPServer:
    """Server with the mock plugin registered."""
    return MCPServer(registry=registry, config=fast_config, guard=guard)
