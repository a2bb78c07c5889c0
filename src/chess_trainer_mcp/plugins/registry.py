"""Tool registry - lists tools and routes calls to the owning plugin."""

from __future__ import annotations

from typing import Any

from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError
from loguru import logger

from chess_trainer_mcp.plugins.base import (
    PluginBase,
    ToolDefinition,
    ToolExecutionError,
    ToolNotFoundError,
    ToolResult,
)


class ToolRegistry:
    """Routes tool calls to registered plugins.

    Maintains a registry of plugins and their tools. Tool names are unique,
    and the tool set is frozen once it has been published via ``list_tools``.
    """

    def __init__(self) -> None:
        """Initialize the registry."""
        self._plugins: list[PluginBase] = []
        self._tool_map: dict[str, tuple[PluginBase, ToolDefinition]] = {}
        self._validators: dict[str, Draft202012Validator] = {}
        self._published = False

    @property
    def published(self) -> bool:
        """Whether the tool set has been listed to a client."""
        return self._published

    def register_plugin(self, plugin: PluginBase) -> None:
        """Register a plugin and index its tools.

        Args:
            plugin: Plugin instance to register.

        Raises:
            RuntimeError: If the tool set was already published.
            ValueError: If a tool name is already taken or its schema is invalid.
        """
        if self._published:
            raise RuntimeError("Cannot register plugins after tools were published")

        tools = plugin.get_tools()
        for tool in tools:
            if tool.name in self._tool_map:
                raise ValueError(f"Duplicate tool name: {tool.name}")
            try:
                Draft202012Validator.check_schema(tool.input_schema)
            except SchemaError as e:
                raise ValueError(f"Invalid schema for tool {tool.name}: {e.message}") from e

        self._plugins.append(plugin)
        for tool in tools:
            self._tool_map[tool.name] = (plugin, tool)
            self._validators[tool.name] = Draft202012Validator(tool.input_schema)

        logger.debug(f"Registered plugin {plugin.name} {plugin.version} ({len(tools)} tools)")

    async def list_tools(self) -> list[dict[str, Any]]:
        """List all available tools in MCP format.

        Returns:
            List of tool definitions in MCP format, in registration order.
        """
        self._published = True
        return [tool.to_dict() for _, tool in self._tool_map.values()]

    def get_tool_schema(self, tool_name: str) -> dict[str, Any] | None:
        """Get the input schema for a tool.

        Args:
            tool_name: Name of the tool.

        Returns:
            Input schema dict or None if tool not found.
        """
        entry = self._tool_map.get(tool_name)
        if entry is None:
            return None
        return entry[1].input_schema

    def validate_arguments(self, tool_name: str, arguments: dict[str, Any]) -> None:
        """Validate arguments against the tool's input schema.

        Raises:
            ToolExecutionError: If the arguments do not match the schema.
        """
        validator = self._validators[tool_name]
        error = next(iter(validator.iter_errors(arguments)), None)
        if error is not None:
            path = ".".join(str(p) for p in error.path) if error.path else "root"
            raise ToolExecutionError(
                f"Invalid arguments for tool {tool_name} at '{path}': {error.message}"
            )

    async def call_tool(self, tool_name: str, arguments: dict[str, Any]) -> ToolResult:
        """Call a tool by name.

        Args:
            tool_name: Name of the tool to call.
            arguments: Arguments to pass to the tool.

        Returns:
            ToolResult from the tool execution.

        Raises:
            ToolNotFoundError: If the tool is not registered.
            ToolExecutionError: If the arguments are invalid or the tool fails.
        """
        entry = self._tool_map.get(tool_name)
        if entry is None:
            raise ToolNotFoundError(f"Unknown tool: {tool_name}")

        self.validate_arguments(tool_name, arguments)

        plugin = entry[0]
        try:
            return await plugin.execute(tool_name, arguments)
        except ToolExecutionError:
            raise
        except Exception as e:
            raise ToolExecutionError(f"Tool '{tool_name}' execution failed: {e}") from e

    async def aclose(self) -> None:
        """Release resources held by every registered plugin."""
        for plugin in self._plugins:
            try:
                await plugin.aclose()
            except Exception as e:
                logger.warning(f"Plugin {plugin.name} failed to close: {e}")
