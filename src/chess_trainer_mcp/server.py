"""MCP Server - method dispatch.

Maps JSON-RPC methods to handlers and turns every per-request failure into a
JSON-RPC error response.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Literal

from chess_trainer_mcp.config import BridgeConfig
from chess_trainer_mcp.plugins.base import PluginBase, ToolError
from chess_trainer_mcp.plugins.registry import ToolRegistry
from chess_trainer_mcp.protocol.guard import OutputChannelGuard
from chess_trainer_mcp.protocol.jsonrpc import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    METHOD_NOT_FOUND,
    JsonRpcError,
    JsonRpcNotification,
    JsonRpcRequest,
    format_error,
    format_response,
    parse_message,
)
from chess_trainer_mcp.protocol.lifecycle import LifecycleManager
from chess_trainer_mcp.protocol.tools import ToolsHandler

Handler = Callable[[dict[str, Any]], Awaitable[Any]]


@dataclass(frozen=True)
class Route:
    """A method table entry.

    ``kind`` is "request" for methods that reply, "notification" for methods
    that never reply even when the client sent an id.
    """

    handler: Handler
    kind: Literal["request", "notification"] = "request"


class MCPServer:
    """MCP Server implementation.

    Provides the JSON-RPC method layer:
    - Lifecycle management (initialize/initialized)
    - Tool listing and execution through the tool registry
    """

    def __init__(
        self,
        registry: ToolRegistry | None = None,
        config: BridgeConfig | None = None,
        guard: OutputChannelGuard | None = None,
    ) -> None:
        """Initialize the server.

        Args:
            registry: Tool registry (an empty one is created if omitted).
            config: Bridge configuration.
            guard: Output channel guard providing the diagnostic logger.
        """
        config = config or BridgeConfig()
        self._log = (guard or OutputChannelGuard()).logger

        self._lifecycle = LifecycleManager(
            server_info=config.server_info,
            protocol_version=config.protocol_version,
        )
        self._registry = registry or ToolRegistry()
        self._tools_handler = ToolsHandler(self._registry)

        self._routes: dict[str, Route] = {
            "initialize": Route(self._initialize),
            "initialized": Route(self._initialized, kind="notification"),
            "notifications/initialized": Route(self._initialized, kind="notification"),
            "tools/list": Route(self._tools_list),
            "tools/call": Route(self._tools_call),
        }

    @property
    def lifecycle(self) -> LifecycleManager:
        """Connection lifecycle state."""
        return self._lifecycle

    @property
    def registry(self) -> ToolRegistry:
        """The tool registry behind tools/list and tools/call."""
        return self._registry

    def register_plugin(self, plugin: PluginBase) -> None:
        """Register a plugin.

        Args:
            plugin: Plugin to register.
        """
        self._registry.register_plugin(plugin)

    async def handle_message(self, raw_message: str) -> str | None:
        """Handle an incoming JSON-RPC message.

        Never raises for a per-request failure; those become error responses.

        Args:
            raw_message: Raw JSON-RPC message string.

        Returns:
            Response string or None for notifications.
        """
        try:
            message = parse_message(raw_message)
        except JsonRpcError as e:
            self._log.warning(f"Rejected input line: {e.message}")
            return format_error(None, e.code, e.message)

        if isinstance(message, JsonRpcNotification):
            await self._handle_notification(message)
            return None
        return await self._handle_request(message)

    async def _handle_notification(self, notification: JsonRpcNotification) -> None:
        """Handle a notification (no response).

        Args:
            notification: The notification to handle.
        """
        route = self._routes.get(notification.method)
        if route is None:
            self._log.debug(f"Ignoring notification: {notification.method}")
            return

        try:
            await route.handler(notification.params or {})
        except Exception as e:
            self._log.warning(f"Notification {notification.method} failed: {e}")

    async def _handle_request(self, request: JsonRpcRequest) -> str | None:
        """Handle a request and return response.

        Args:
            request: The request to handle.

        Returns:
            JSON-RPC response string, or None for notification-only methods.
        """
        route = self._routes.get(request.method)
        if route is None:
            return format_error(request.id, METHOD_NOT_FOUND, f"Method not found: {request.method}")

        try:
            result = await route.handler(request.params or {})
        except JsonRpcError as e:
            return format_error(request.id, e.code, e.message, e.data)
        except ToolError as e:
            self._log.warning(f"Request {request.id!r} ({request.method}) failed: {e}")
            return format_error(request.id, INTERNAL_ERROR, str(e))
        except Exception as e:
            self._log.exception(f"Request {request.id!r} ({request.method}) raised")
            return format_error(request.id, INTERNAL_ERROR, str(e) or type(e).__name__)

        if route.kind == "notification":
            return None
        return format_response(request.id, result)

    async def _initialize(self, params: dict[str, Any]) -> dict[str, Any]:
        result = self._lifecycle.handle_initialize(params)
        client = self._lifecycle.client_info or {}
        self._log.info(
            f"Initialized for client {client.get('name', 'unknown')} {client.get('version', '')}".rstrip()
        )
        return result

    async def _initialized(self, params: dict[str, Any]) -> None:
        self._lifecycle.handle_initialized()
        self._log.debug("Client acknowledged initialization")

    async def _tools_list(self, params: dict[str, Any]) -> dict[str, Any]:
        result = await self._tools_handler.handle_list()
        return result.to_dict()

    async def _tools_call(self, params: dict[str, Any]) -> dict[str, Any]:
        name = params.get("name", "")
        if not isinstance(name, str):
            raise JsonRpcError(INVALID_PARAMS, "Invalid params: name must be a string")

        arguments = params.get("arguments")
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise JsonRpcError(INVALID_PARAMS, "Invalid params: arguments must be an object")

        if not self._lifecycle.is_ready:
            self._log.debug(f"Tool call before handshake: {name}")

        return await self._tools_handler.handle_call(name, arguments)

    async def aclose(self) -> None:
        """Close the server and clean up resources."""
        await self._registry.aclose()

    async def __aenter__(self) -> MCPServer:
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.aclose()
