"""Tests for JSON-RPC 2.0 message parsing and formatting."""

import json

import pytest

from chess_trainer_mcp.protocol.jsonrpc import (
    INTERNAL_ERROR,
    INVALID_REQUEST,
    MAX_MESSAGE_SIZE,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    JsonRpcError,
    JsonRpcNotification,
    JsonRpcRequest,
    ParseError,
    format_error,
    format_notification,
    format_response,
    parse_message,
)


class TestJsonRpcRequest:
    """Tests for parsing JSON-RPC requests."""

    def test_parses_valid_request(self):
        """Should parse a valid request."""
        data = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "tools/list",
            "params": {"cursor": "abc"},
        }
        msg = parse_message(json.dumps(data))

        assert isinstance(msg, JsonRpcRequest)
        assert msg.id == 1
        assert msg.method == "tools/list"
        assert msg.params == {"cursor": "abc"}

    def test_parses_request_with_string_id(self):
        """Should accept string IDs."""
        data = {"jsonrpc": "2.0", "id": "req-123", "method": "test"}
        msg = parse_message(json.dumps(data))

        assert isinstance(msg, JsonRpcRequest)
        assert msg.id == "req-123"

    def test_parses_request_with_zero_id(self):
        """Zero is a valid id, not a notification."""
        msg = parse_message('{"jsonrpc":"2.0","id":0,"method":"ping"}')

        assert isinstance(msg, JsonRpcRequest)
        assert msg.id == 0

    def test_parses_request_without_params(self):
        """Should parse request without params."""
        data = {"jsonrpc": "2.0", "id": 1, "method": "ping"}
        msg = parse_message(json.dumps(data))

        assert isinstance(msg, JsonRpcRequest)
        assert msg.params is None

    def test_rejects_missing_jsonrpc_version(self):
        """Should reject missing jsonrpc field."""
        data = {"id": 1, "method": "test"}
        with pytest.raises(JsonRpcError) as exc_info:
            parse_message(json.dumps(data))
        assert exc_info.value.code == INVALID_REQUEST

    def test_rejects_wrong_jsonrpc_version(self):
        """Should reject wrong jsonrpc version."""
        data = {"jsonrpc": "1.0", "id": 1, "method": "test"}
        with pytest.raises(JsonRpcError) as exc_info:
            parse_message(json.dumps(data))
        assert exc_info.value.code == INVALID_REQUEST

    def test_rejects_missing_method(self):
        """Should reject request without method."""
        data = {"jsonrpc": "2.0", "id": 1}
        with pytest.raises(JsonRpcError) as exc_info:
            parse_message(json.dumps(data))
        assert exc_info.value.code == INVALID_REQUEST

    def test_rejects_non_object_params(self):
        """Positional params are not used by MCP."""
        with pytest.raises(JsonRpcError) as exc_info:
            parse_message('{"jsonrpc":"2.0","id":1,"method":"x","params":[1,2]}')
        assert exc_info.value.code == INVALID_REQUEST

    @pytest.mark.parametrize("bad_id", [True, [1], {"a": 1}])
    def test_rejects_invalid_id_types(self, bad_id):
        """Ids must be numbers, strings or null."""
        data = {"jsonrpc": "2.0", "id": bad_id, "method": "x"}
        with pytest.raises(JsonRpcError) as exc_info:
            parse_message(json.dumps(data))
        assert exc_info.value.code == INVALID_REQUEST


class TestJsonRpcNotification:
    """Tests for parsing JSON-RPC notifications."""

    def test_parses_notification_without_id(self):
        """A message without id is a notification."""
        msg = parse_message('{"jsonrpc":"2.0","method":"notifications/initialized"}')

        assert isinstance(msg, JsonRpcNotification)
        assert msg.method == "notifications/initialized"

    def test_null_id_is_notification(self):
        """A null id is treated like an absent one."""
        msg = parse_message('{"jsonrpc":"2.0","id":null,"method":"initialized"}')

        assert isinstance(msg, JsonRpcNotification)


class TestParseErrors:
    """Tests for undecodable input."""

    def test_rejects_invalid_json(self):
        """Garbage input is a parse error."""
        with pytest.raises(ParseError) as exc_info:
            parse_message("not json")
        assert exc_info.value.code == PARSE_ERROR
        assert exc_info.value.message.startswith("Parse error")

    def test_rejects_array_payload(self):
        """Batches are not supported."""
        with pytest.raises(ParseError) as exc_info:
            parse_message('[{"jsonrpc":"2.0","id":1,"method":"x"}]')
        assert exc_info.value.code == INVALID_REQUEST

    def test_rejects_oversized_message(self):
        """Messages above the size limit are rejected before decoding."""
        raw = '{"jsonrpc":"2.0","id":1,"method":"x","params":{"p":"' + "a" * MAX_MESSAGE_SIZE + '"}}'
        with pytest.raises(ParseError) as exc_info:
            parse_message(raw)
        assert "too large" in exc_info.value.message


class TestFormatting:
    """Tests for serializing outgoing messages."""

    def test_format_response(self):
        """Should produce a compact single-line response."""
        line = format_response(1, {"ok": True})

        assert line == '{"jsonrpc":"2.0","id":1,"result":{"ok":true}}'
        assert "\n" not in line

    def test_format_error_with_data(self):
        """Should include data only when provided."""
        with_data = json.loads(format_error("a", INTERNAL_ERROR, "boom", {"detail": 1}))
        without = json.loads(format_error("a", METHOD_NOT_FOUND, "Method not found: x"))

        assert with_data["error"] == {"code": INTERNAL_ERROR, "message": "boom", "data": {"detail": 1}}
        assert without["error"] == {"code": METHOD_NOT_FOUND, "message": "Method not found: x"}

    def test_format_error_null_id(self):
        """Parse errors are reported with a null id."""
        data = json.loads(format_error(None, PARSE_ERROR, "Parse error"))

        assert data["id"] is None

    def test_embedded_newlines_are_escaped(self):
        """Newlines in payload text never break the one-line framing."""
        line = format_response(2, {"text": "line one\nline two\r\n"})

        assert "\n" not in line
        assert "\r" not in line
        assert json.loads(line)["result"]["text"] == "line one\nline two\r\n"

    def test_non_ascii_is_kept(self):
        """Unicode text is written as-is."""
        line = format_response(3, {"opening": "Réti Opening"})

        assert "Réti" in line

    def test_format_notification(self):
        """Notifications carry no id."""
        data = json.loads(format_notification("notifications/initialized", {}))

        assert data == {"jsonrpc": "2.0", "method": "notifications/initialized", "params": {}}
