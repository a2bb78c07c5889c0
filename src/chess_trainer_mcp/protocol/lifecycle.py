"""MCP lifecycle management.

Handles the initialize/initialized handshake and tracks connection state
from first contact through shutdown.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from chess_trainer_mcp import __version__

# Protocol version advertised by this server
MCP_PROTOCOL_VERSION = "2024-11-05"

SERVER_NAME = "chess-trainer-mcp"


class LifecycleState(Enum):
    """MCP connection lifecycle states."""

    AWAITING_HANDSHAKE = "awaiting_handshake"
    READY = "ready"
    SHUTTING_DOWN = "shutting_down"
    TERMINATED = "terminated"


@dataclass
class LifecycleManager:
    """Manages MCP connection lifecycle.

    The handshake is lenient: ``initialize`` may be repeated and never fails,
    and nothing here blocks tool calls made before it.
    """

    server_info: dict[str, str] = field(
        default_factory=lambda: {"name": SERVER_NAME, "version": __version__}
    )
    protocol_version: str = MCP_PROTOCOL_VERSION
    capabilities: dict[str, Any] = field(
        default_factory=lambda: {"tools": {"listChanged": False}}
    )
    state: LifecycleState = LifecycleState.AWAITING_HANDSHAKE
    client_info: dict[str, Any] | None = None
    client_capabilities: dict[str, Any] | None = None
    client_acknowledged: bool = False

    @property
    def is_ready(self) -> bool:
        """Check if the handshake has completed."""
        return self.state == LifecycleState.READY

    @property
    def is_shutting_down(self) -> bool:
        """Check if shutdown has begun (or finished)."""
        return self.state in (LifecycleState.SHUTTING_DOWN, LifecycleState.TERMINATED)

    def handle_initialize(self, params: dict[str, Any]) -> dict[str, Any]:
        """Handle initialize request.

        Args:
            params: Initialize request parameters.

        Returns:
            Initialize response result.
        """
        client_info = params.get("clientInfo")
        if isinstance(client_info, dict):
            self.client_info = client_info
        capabilities = params.get("capabilities")
        if isinstance(capabilities, dict):
            self.client_capabilities = capabilities

        if self.state == LifecycleState.AWAITING_HANDSHAKE:
            self.state = LifecycleState.READY

        return {
            "protocolVersion": self.protocol_version,
            "capabilities": self.capabilities,
            "serverInfo": self.server_info,
        }

    def handle_initialized(self) -> None:
        """Handle the client's initialized notification."""
        self.client_acknowledged = True
        if self.state == LifecycleState.AWAITING_HANDSHAKE:
            self.state = LifecycleState.READY

    def begin_shutdown(self) -> None:
        """Enter SHUTTING_DOWN."""
        if self.state != LifecycleState.TERMINATED:
            self.state = LifecycleState.SHUTTING_DOWN

    def terminate(self) -> None:
        """Enter TERMINATED."""
        self.state = LifecycleState.TERMINATED
