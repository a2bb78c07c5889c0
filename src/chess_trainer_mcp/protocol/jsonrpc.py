"""JSON-RPC 2.0 message parsing and formatting.

Implements the JSON-RPC 2.0 wire format used by MCP over stdio: one compact
JSON object per line.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from typing import Any

# Standard JSON-RPC 2.0 error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

JSONRPC_VERSION = "2.0"

# Maximum message size (1 MB)
MAX_MESSAGE_SIZE = 1_048_576

# Compact separators keep every message free of extraneous whitespace
_SEPARATORS = (",", ":")

MessageId = int | float | str | None


class JsonRpcError(Exception):
    """JSON-RPC error with code and message."""

    def __init__(self, code: int, message: str, data: Any | None = None) -> None:
        """Initialize the error.

        Args:
            code: JSON-RPC error code.
            message: Human-readable error message.
            data: Optional additional error data.
        """
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data


class ParseError(JsonRpcError):
    """Raised when an input line cannot be decoded into a message."""

    pass


@dataclass
class JsonRpcRequest:
    """Represents a JSON-RPC request (has a non-null id)."""

    id: int | float | str
    method: str
    params: dict[str, Any] | None = None


@dataclass
class JsonRpcNotification:
    """Represents a JSON-RPC notification (id absent or null)."""

    method: str
    params: dict[str, Any] | None = None


def _is_valid_id(value: Any) -> bool:
    # bool is an int subclass but never a valid id
    if isinstance(value, bool):
        return False
    if isinstance(value, float):
        return math.isfinite(value)
    return value is None or isinstance(value, int | str)


def parse_message(raw: str) -> JsonRpcRequest | JsonRpcNotification:
    """Parse a JSON-RPC message from a string.

    Args:
        raw: Raw JSON string (one line).

    Returns:
        Parsed request or notification.

    Raises:
        ParseError: If the message is malformed or structurally invalid.
    """
    # Check message size before parsing to prevent DoS
    if len(raw) > MAX_MESSAGE_SIZE:
        raise ParseError(
            PARSE_ERROR, f"Message too large: {len(raw)} bytes exceeds {MAX_MESSAGE_SIZE} limit"
        )

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ParseError(PARSE_ERROR, f"Parse error: {e}") from e

    if not isinstance(data, dict):
        raise ParseError(INVALID_REQUEST, "Invalid Request: message must be an object")

    if data.get("jsonrpc") != JSONRPC_VERSION:
        raise ParseError(INVALID_REQUEST, "Invalid Request: jsonrpc must be '2.0'")

    method = data.get("method")
    if not isinstance(method, str):
        raise ParseError(INVALID_REQUEST, "Invalid Request: method must be a string")

    params = data.get("params")
    if params is not None and not isinstance(params, dict):
        raise ParseError(INVALID_REQUEST, "Invalid Request: params must be an object")

    msg_id = data.get("id")
    if not _is_valid_id(msg_id):
        raise ParseError(INVALID_REQUEST, "Invalid Request: id must be a number, string or null")

    if msg_id is None:
        return JsonRpcNotification(method=method, params=params)
    return JsonRpcRequest(id=msg_id, method=method, params=params)


def encode(message: dict[str, Any]) -> str:
    """Serialize a message dict to its single-line wire form."""
    return json.dumps(message, separators=_SEPARATORS, ensure_ascii=False)


def format_response(msg_id: MessageId, result: Any) -> str:
    """Format a successful JSON-RPC response.

    Args:
        msg_id: Request ID to echo back.
        result: Result payload.

    Returns:
        JSON string.
    """
    return encode({"jsonrpc": JSONRPC_VERSION, "id": msg_id, "result": result})


def format_error(
    msg_id: MessageId,
    code: int,
    message: str,
    data: Any | None = None,
) -> str:
    """Format a JSON-RPC error response.

    Args:
        msg_id: Request ID (or None for parse errors).
        code: Error code.
        message: Error message.
        data: Optional error data.

    Returns:
        JSON string.
    """
    error_obj: dict[str, Any] = {
        "code": code,
        "message": message,
    }
    if data is not None:
        error_obj["data"] = data

    return encode({"jsonrpc": JSONRPC_VERSION, "id": msg_id, "error": error_obj})


def format_notification(method: str, params: dict[str, Any] | None = None) -> str:
    """Format a JSON-RPC notification (server to client).

    Args:
        method: Notification method name.
        params: Optional parameters.

    Returns:
        JSON string.
    """
    notification: dict[str, Any] = {
        "jsonrpc": JSONRPC_VERSION,
        "method": method,
    }
    if params is not None:
        notification["params"] = params

    return encode(notification)
