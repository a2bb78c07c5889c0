"""Chess Trainer MCP bridge - command line entry point.

Runs the bridge on stdin/stdout. Register additional tool plugins in
``build_server()``; their tools appear in tools/list automatically and their
arguments are validated against the declared input schema before
``execute()`` is called.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from dataclasses import replace
from pathlib import Path

from chess_trainer_mcp import __version__
from chess_trainer_mcp.bridge import EXIT_FATAL, StdioBridge
from chess_trainer_mcp.config import BridgeConfig, ConfigLoadError, load_config
from chess_trainer_mcp.plugins.analysis import AnalysisPlugin
from chess_trainer_mcp.plugins.registry import ToolRegistry
from chess_trainer_mcp.plugins.trainer import TrainerPlugin
from chess_trainer_mcp.protocol.guard import OutputChannelGuard
from chess_trainer_mcp.server import MCPServer

EXIT_USAGE = 2

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


def build_parser() -> argparse.ArgumentParser:
    """Build the command line parser."""
    parser = argparse.ArgumentParser(
        prog="chess-trainer-mcp",
        description="Chess Trainer MCP bridge (JSON-RPC over stdio)",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        default=None,
        help="Path to bridge configuration YAML (default: config/bridge.yaml if present)",
    )
    parser.add_argument(
        "--announce-ready",
        action="store_true",
        default=None,
        help="Send notifications/initialized as soon as the bridge starts",
    )
    parser.add_argument(
        "--log-level",
        choices=LOG_LEVELS,
        type=str.upper,
        default=None,
        help="Minimum diagnostic log level (overrides the config file)",
    )
    parser.add_argument(
        "--version",
        "-v",
        action="version",
        version=f"chess-trainer-mcp {__version__}",
    )
    return parser


def build_server(
    config: BridgeConfig, guard: OutputChannelGuard
) -> tuple[MCPServer, TrainerPlugin]:
    """Create the server with the built-in plugins registered.

    Args:
        config: Bridge configuration.
        guard: Output channel guard.

    Returns:
        The server and the trainer plugin (owner of the web server process).
    """
    registry = ToolRegistry()
    trainer = TrainerPlugin(config)
    registry.register_plugin(AnalysisPlugin())
    registry.register_plugin(trainer)
    return MCPServer(registry=registry, config=config, guard=guard), trainer


def main(argv: list[str] | None = None) -> int:
    """Run the bridge.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:]).

    Returns:
        Exit code: 0 graceful, 1 fatal or forced, 2 bad usage or config.
    """
    args = build_parser().parse_args(argv)

    # Capture the real stdout before anything else can write to it
    guard = OutputChannelGuard()
    guard.install(args.log_level or "INFO")
    log = guard.logger

    try:
        config = load_config(args.config)
    except ConfigLoadError as e:
        log.error(f"Error loading config: {e}")
        guard.uninstall()
        return EXIT_USAGE

    overrides = {}
    if args.announce_ready is not None:
        overrides["announce_ready"] = args.announce_ready
    if args.log_level is not None:
        overrides["log_level"] = args.log_level
    config = replace(config, **overrides)

    if args.log_level is None and config.log_level != "INFO":
        guard.uninstall()
        guard.install(config.log_level)

    try:
        server, trainer = build_server(config, guard)
        bridge = StdioBridge(server, guard, config=config, owned_service=trainer.process)
        return asyncio.run(bridge.run())
    except Exception:
        log.exception("Bridge failed")
        return EXIT_FATAL
    finally:
        guard.uninstall()


if __name__ == "__main__":
    sys.exit(main())
