"""Chess Trainer web server plugin.

Game management tools are forwarded to the Chess Trainer web server's
``/api/mcp/<action>`` endpoints. The plugin can also launch and stop the web
server as a child process owned by the bridge.
"""

from __future__ import annotations

import asyncio
import json
import sys
from typing import Any
from urllib.parse import urlencode

import httpx
from loguru import logger

from chess_trainer_mcp.config import BridgeConfig
from chess_trainer_mcp.plugins.base import (
    PluginBase,
    ToolDefinition,
    ToolExecutionError,
    ToolResult,
)
from chess_trainer_mcp.plugins.webserver import WebServerError, WebServerProcess

USER_AGENT = "chess-trainer-mcp/1.0 (Trainer Plugin)"

# tool name -> web server action
PROXY_ACTIONS = {
    "list_active_games": "list_active_games",
    "get_game_state": "get_game_state",
    "reset_game": "reset_game",
    "make_move": "make_move",
    "suggest_best_move": "suggest_move",
}

EMBED_MODES = ["full", "board-only", "minimal"]

_GAME_ID = {"type": "string", "description": "ID of the game", "minLength": 1}
_PORT = {
    "type": "integer",
    "description": "Port of the web server",
    "default": 3456,
    "minimum": 1,
    "maximum": 65535,
}


def _not_running(port: int, detail: str | None = None) -> ToolResult:
    text = (
        "Chess Trainer Server Not Running\n\n"
        f"The chess trainer web server is not running on port {port}.\n"
        "Please start it first using the 'launch_chess_trainer' tool."
    )
    if detail:
        text += f"\n\nError: {detail}"
    return ToolResult.text(text)


class TrainerPlugin(PluginBase):
    """Tools that drive the Chess Trainer web server over HTTP."""

    def __init__(
        self,
        config: BridgeConfig | None = None,
        client: httpx.AsyncClient | None = None,
        process: WebServerProcess | None = None,
    ) -> None:
        """Initialize the plugin with a reusable HTTP client.

        Args:
            config: Bridge configuration (web_server section).
            client: HTTP client; a pooled client is created if omitted.
            process: Handle for the owned web server process.
        """
        self._config = config or BridgeConfig()
        self._client = client or httpx.AsyncClient(
            headers={"User-Agent": USER_AGENT},
            timeout=self._config.web_request_timeout,
        )
        self._process = process or WebServerProcess(self._config.web_command)

    @property
    def name(self) -> str:
        """Return plugin identifier."""
        return "trainer"

    @property
    def version(self) -> str:
        """Return plugin version."""
        return "1.0.0"

    @property
    def process(self) -> WebServerProcess:
        """The owned web server process."""
        return self._process

    def _port(self) -> int:
        return self._process.port or self._config.web_port

    def _base_url(self, port: int | None = None) -> str:
        return f"http://{self._config.web_host}:{port or self._port()}"

    def get_tools(self) -> list[ToolDefinition]:
        """Return available tools."""
        return [
            ToolDefinition(
                name="launch_chess_trainer",
                description="Launch the Chess Trainer web server with optional browser opening",
                input_schema={
                    "type": "object",
                    "properties": {
                        "port": {**_PORT, "description": "Port to run the web server on"},
                        "auto_open_browser": {
                            "type": "boolean",
                            "default": True,
                            "description": "Automatically open browser after starting",
                        },
                    },
                },
            ),
            ToolDefinition(
                name="stop_chess_trainer",
                description="Stop the Chess Trainer web server",
                input_schema={
                    "type": "object",
                    "properties": {"port": {**_PORT, "description": "Port of the server to stop"}},
                },
            ),
            ToolDefinition(
                name="create_game",
                description="Create a new chess game with specific settings",
                input_schema={
                    "type": "object",
                    "properties": {
                        "game_id": {**_GAME_ID, "description": "Unique identifier for the game"},
                        "mode": {
                            "type": "string",
                            "enum": ["human_vs_human", "human_vs_ai"],
                            "default": "human_vs_ai",
                        },
                        "player_color": {
                            "type": "string",
                            "enum": ["white", "black"],
                            "default": "white",
                            "description": "Player color when playing against AI",
                        },
                        "ai_elo": {
                            "type": "integer",
                            "minimum": 800,
                            "maximum": 2800,
                            "default": 1500,
                            "description": "AI strength in ELO rating (800-2800)",
                        },
                        "ai_time_limit": {
                            "type": "integer",
                            "minimum": 200,
                            "maximum": 5000,
                            "default": 1000,
                            "description": "AI thinking time in milliseconds",
                        },
                    },
                    "required": ["game_id"],
                },
            ),
            ToolDefinition(
                name="list_active_games",
                description="List all currently active chess games",
                input_schema={"type": "object", "properties": {}},
            ),
            ToolDefinition(
                name="get_game_state",
                description="Get the current state of a specific chess game",
                input_schema={
                    "type": "object",
                    "properties": {"game_id": _GAME_ID},
                    "required": ["game_id"],
                },
            ),
            ToolDefinition(
                name="reset_game",
                description="Reset a game to the starting position",
                input_schema={
                    "type": "object",
                    "properties": {"game_id": {**_GAME_ID, "description": "ID of the game to reset"}},
                    "required": ["game_id"],
                },
            ),
            ToolDefinition(
                name="make_move",
                description="Make a move in an active chess game",
                input_schema={
                    "type": "object",
                    "properties": {
                        "game_id": _GAME_ID,
                        "move": {
                            "type": "string",
                            "description": 'Move in algebraic notation (e.g., "e2e4", "Nf3", "O-O")',
                        },
                    },
                    "required": ["game_id", "move"],
                },
            ),
            ToolDefinition(
                name="suggest_best_move",
                description="Get the best move suggestion for the current position",
                input_schema={
                    "type": "object",
                    "properties": {
                        "game_id": _GAME_ID,
                        "depth": {
                            "type": "integer",
                            "minimum": 1,
                            "maximum": 20,
                            "default": 12,
                            "description": "Analysis depth",
                        },
                    },
                    "required": ["game_id"],
                },
            ),
            ToolDefinition(
                name="get_embeddable_url",
                description="Get an embeddable URL for iframe integration",
                input_schema={
                    "type": "object",
                    "properties": {
                        "game_id": {**_GAME_ID, "description": "Game ID to embed"},
                        "mode": {"type": "string", "enum": EMBED_MODES, "default": "minimal"},
                        "width": {"type": "integer", "minimum": 300, "maximum": 1200, "default": 600},
                        "height": {"type": "integer", "minimum": 300, "maximum": 1200, "default": 600},
                        "allow_moves": {"type": "boolean", "default": True},
                        "show_controls": {"type": "boolean", "default": False},
                    },
                    "required": ["game_id"],
                },
            ),
        ]

    async def execute(self, tool_name: str, arguments: dict[str, Any]) -> ToolResult:
        """Execute a tool.

        Args:
            tool_name: Name of the tool to execute.
            arguments: Tool arguments.

        Returns:
            ToolResult with the web server's answer.

        Raises:
            ToolExecutionError: If the web server fails in an unexpected way.
        """
        if tool_name == "launch_chess_trainer":
            return await self._launch(
                arguments.get("port", self._config.web_port),
                arguments.get("auto_open_browser", True),
            )
        if tool_name == "stop_chess_trainer":
            return await self._stop(arguments.get("port", self._config.web_port))
        if tool_name == "create_game":
            return await self._create_game(arguments)
        if tool_name == "get_embeddable_url":
            return await self._embeddable_url(arguments)
        if tool_name in PROXY_ACTIONS:
            return await self._proxy(PROXY_ACTIONS[tool_name], arguments)
        raise ToolExecutionError(f"Unknown tool: {tool_name}")

    async def _is_healthy(self, port: int) -> bool:
        try:
            response = await self._client.get(f"{self._base_url(port)}/api/health")
        except httpx.HTTPError:
            return False
        return response.is_success

    async def _post(self, action: str, payload: dict[str, Any]) -> dict[str, Any]:
        response = await self._client.post(f"{self._base_url()}/api/mcp/{action}", json=payload)
        response.raise_for_status()
        return response.json()

    async def _proxy(self, action: str, arguments: dict[str, Any]) -> ToolResult:
        try:
            result = await self._post(action, arguments)
        except httpx.ConnectError as e:
            return _not_running(self._port(), str(e))
        except httpx.HTTPStatusError as e:
            raise ToolExecutionError(
                f"Web server responded with status {e.response.status_code}"
            ) from e
        except (httpx.HTTPError, json.JSONDecodeError) as e:
            raise ToolExecutionError(f"Failed to connect to web server: {e}") from e

        text = result.get("message") if isinstance(result, dict) else None
        return ToolResult.text(text or json.dumps(result, indent=2))

    async def _launch(self, port: int, auto_open_browser: bool) -> ToolResult:
        url = self._base_url(port)
        if await self._is_healthy(port):
            return ToolResult.text(
                "Chess Trainer Already Running!\n\n"
                f"Web Interface: {url}\n"
                f"WebSocket: ws://{self._config.web_host}:{port}/ws\n\n"
                "The server is already active. You can:\n"
                f"- Open {url} in your browser\n"
                "- Use 'create_game' to start a new game\n"
                "- Use 'list_active_games' to see current games"
            )

        try:
            await self._process.start(port)
        except WebServerError as e:
            raise ToolExecutionError(f"Failed to launch Chess Trainer: {e}") from e

        for _ in range(self._config.web_startup_retries):
            await asyncio.sleep(self._config.web_startup_delay)
            if self._process.exited:
                raise ToolExecutionError("Failed to launch Chess Trainer: web server exited during startup")
            if await self._is_healthy(port):
                break
        else:
            await self._process.stop()
            raise ToolExecutionError(
                f"Failed to launch Chess Trainer: server failed to start after "
                f"{self._config.web_startup_retries} attempts"
            )

        browser_message = ""
        if auto_open_browser:
            browser_message = (
                "Browser opened automatically\n"
                if await self._open_browser(url)
                else "Could not open browser automatically\n"
            )

        return ToolResult.text(
            "Chess Trainer Started Successfully!\n\n"
            f"Web Interface: {url}\n"
            f"WebSocket: ws://{self._config.web_host}:{port}/ws\n"
            f"{browser_message}"
            "\nThe server is now running. You can:\n"
            "- Use 'create_game' to start a new game\n"
            f"- Visit {url} in your browser"
        )

    async def _open_browser(self, url: str) -> bool:
        if sys.platform == "darwin":
            argv = ["open", url]
        elif sys.platform == "win32":
            argv = ["cmd", "/c", "start", "", url]
        else:
            argv = ["xdg-open", url]
        try:
            opener = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
            return await opener.wait() == 0
        except OSError as e:
            logger.warning(f"Could not open browser: {e}")
            return False

    async def _stop(self, port: int) -> ToolResult:
        if self._process.running:
            await self._process.stop()
            return ToolResult.text(
                "Server stopped\n\nThe Chess Trainer server has been stopped."
            )
        if await self._is_healthy(port):
            return ToolResult.text(
                f"A Chess Trainer server is running on port {port} but was not started "
                "by this bridge, so it was left running."
            )
        return ToolResult.text(
            f"No server found running on port {port}\n\n"
            "The server may not be running or may have already been stopped."
        )

    async def _create_game(self, arguments: dict[str, Any]) -> ToolResult:
        game_id = arguments["game_id"]
        mode = arguments.get("mode", "human_vs_ai")
        player_color = arguments.get("player_color", "white")
        ai_elo = arguments.get("ai_elo", 1500)
        ai_time_limit = arguments.get("ai_time_limit", 1000)

        payload = {
            "game_id": game_id,
            "gameSettings": {
                "mode": mode,
                "playerColor": player_color,
                "aiEloRating": ai_elo,
                "aiTimeLimit": ai_time_limit,
            },
        }
        try:
            await self._post("reset_game", payload)
        except httpx.ConnectError as e:
            return _not_running(self._port(), str(e))
        except httpx.HTTPStatusError as e:
            raise ToolExecutionError(
                f"Failed to create game: server responded with status {e.response.status_code}"
            ) from e
        except (httpx.HTTPError, json.JSONDecodeError) as e:
            raise ToolExecutionError(f"Failed to create game: {e}") from e

        text = (
            "Chess Game Created!\n\n"
            f"Game ID: {game_id}\n"
            f"Mode: {'Human vs AI' if mode == 'human_vs_ai' else 'Human vs Human'}\n"
        )
        if mode == "human_vs_ai":
            text += (
                f"Your Color: {player_color}\n"
                f"AI Strength: {ai_elo} ELO\n"
                f"AI Think Time: {ai_time_limit / 1000}s\n"
            )
        text += (
            f"\nPlay at: {self._base_url()}\n"
            "\nNext steps:\n"
            f"- Use 'make_move {game_id} <move>' to play\n"
            f"- Use 'get_game_state {game_id}' to see the board\n"
            f"- Use 'suggest_best_move {game_id}' for help"
        )
        return ToolResult.text(text)

    async def _embeddable_url(self, arguments: dict[str, Any]) -> ToolResult:
        port = self._port()
        if not await self._is_healthy(port):
            return _not_running(port)

        parameters = {
            "game_id": arguments["game_id"],
            "mode": arguments.get("mode", "minimal"),
            "width": arguments.get("width", 600),
            "height": arguments.get("height", 600),
            "allow_moves": arguments.get("allow_moves", True),
            "show_controls": arguments.get("show_controls", False),
        }
        query = urlencode(
            {k: str(v).lower() if isinstance(v, bool) else v for k, v in parameters.items()}
        )
        embed_url = f"{self._base_url(port)}/embed?{query}"
        iframe_code = (
            f'<iframe src="{embed_url}" width="{parameters["width"]}" '
            f'height="{parameters["height"]}" frameborder="0" allow="fullscreen" '
            'style="border: 1px solid #ccc; border-radius: 8px;"></iframe>'
        )

        result = ToolResult.text(
            "Embeddable Chess Board URL\n\n"
            f"Game ID: {parameters['game_id']}\n"
            f"Mode: {parameters['mode']}\n"
            f"Size: {parameters['width']}x{parameters['height']}\n"
            f"Interactive: {'Yes' if parameters['allow_moves'] else 'View Only'}\n"
            f"Controls: {'Visible' if parameters['show_controls'] else 'Hidden'}\n\n"
            f"Embed URL:\n{embed_url}\n\n"
            f"IFrame Code:\n```html\n{iframe_code}\n```"
        )
        result.data = {"url": embed_url, "iframe_code": iframe_code, "parameters": parameters}
        return result

    async def aclose(self) -> None:
        """Close the HTTP client and release resources."""
        await self._client.aclose()
