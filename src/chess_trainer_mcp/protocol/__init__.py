"""MCP Protocol layer for JSON-RPC communication over stdio."""

from chess_trainer_mcp.protocol.framing import FramingError, RequestFramer, open_stdin
from chess_trainer_mcp.protocol.guard import OutputChannelGuard
from chess_trainer_mcp.protocol.jsonrpc import (
    JsonRpcError,
    JsonRpcNotification,
    JsonRpcRequest,
    ParseError,
    format_error,
    format_notification,
    format_response,
    parse_message,
)
from chess_trainer_mcp.protocol.lifecycle import (
    MCP_PROTOCOL_VERSION,
    LifecycleManager,
    LifecycleState,
)
from chess_trainer_mcp.protocol.tools import ToolsHandler, ToolsListResult

__all__ = [
    "FramingError",
    "JsonRpcError",
    "JsonRpcNotification",
    "JsonRpcRequest",
    "LifecycleManager",
    "LifecycleState",
    "MCP_PROTOCOL_VERSION",
    "OutputChannelGuard",
    "ParseError",
    "RequestFramer",
    "ToolsHandler",
    "ToolsListResult",
    "format_error",
    "format_notification",
    "format_response",
    "open_stdin",
    "parse_message",
]
