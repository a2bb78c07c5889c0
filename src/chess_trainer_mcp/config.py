"""Bridge configuration loader.

Loads server identity, logging, shutdown timing and web-server settings from
a YAML file. Every setting has a default, so the file itself is optional.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from chess_trainer_mcp import __version__
from chess_trainer_mcp.protocol.lifecycle import MCP_PROTOCOL_VERSION, SERVER_NAME

DEFAULT_CONFIG_PATH = Path("config/bridge.yaml")

_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}")


class ConfigLoadError(Exception):
    """Raised when configuration loading or validation fails."""

    pass


def expand_env_vars(value: str) -> str:
    """Expand environment variables in a string.

    Supports ${VAR_NAME} syntax. Unknown variables are left unchanged.

    Args:
        value: String potentially containing environment variable references.

    Returns:
        String with known environment variables expanded.
    """

    def replacer(match: re.Match[str]) -> str:
        env_value = os.environ.get(match.group(1))
        if env_value is not None:
            return env_value
        return match.group(0)

    return _ENV_PATTERN.sub(replacer, value)


def _positive_float(section: dict[str, Any], key: str, default: float) -> float:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int | float) or value <= 0:
        raise ConfigLoadError(f"'{key}' must be a positive number")
    return float(value)


def _section(config: dict[str, Any], name: str) -> dict[str, Any]:
    section = config.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigLoadError(f"'{name}' must be a mapping")
    return section


@dataclass
class BridgeConfig:
    """Bridge configuration.

    Fixed for the process lifetime once loaded.
    """

    # Server identity
    server_name: str = SERVER_NAME
    server_version: str = __version__
    protocol_version: str = MCP_PROTOCOL_VERSION
    announce_ready: bool = False

    # Logging
    log_level: str = "INFO"

    # Shutdown timing (seconds)
    drain_timeout: float = 2.0
    grace_period: float = 3.0
    hard_timeout: float = 10.0

    # Web server settings
    web_host: str = "localhost"
    web_port: int = 3456
    web_command: list[str] = field(default_factory=list)
    web_request_timeout: float = 10.0
    web_startup_retries: int = 10
    web_startup_delay: float = 1.0

    @property
    def server_info(self) -> dict[str, str]:
        """serverInfo block for the initialize result."""
        return {"name": self.server_name, "version": self.server_version}

    @classmethod
    def from_dict(cls, config: dict[str, Any]) -> BridgeConfig:
        """Create a BridgeConfig from a configuration dictionary.

        Args:
            config: Dictionary parsed from YAML configuration.

        Returns:
            BridgeConfig instance with all settings populated.

        Raises:
            ConfigLoadError: If a setting has the wrong type.
        """
        server = _section(config, "server")
        logging_ = _section(config, "logging")
        shutdown = _section(config, "shutdown")
        web = _section(config, "web_server")

        command = web.get("command", [])
        if isinstance(command, str):
            command = command.split()
        if not isinstance(command, list):
            raise ConfigLoadError("'web_server.command' must be a list or a string")

        drain_timeout = _positive_float(shutdown, "drain_timeout", 2.0)
        grace_period = _positive_float(shutdown, "grace_period", 3.0)
        hard_timeout = _positive_float(shutdown, "hard_timeout", 10.0)
        if not drain_timeout <= grace_period < hard_timeout:
            raise ConfigLoadError(
                "Shutdown timing must satisfy drain_timeout <= grace_period < hard_timeout"
            )

        port = web.get("port", 3456)
        if isinstance(port, bool) or not isinstance(port, int) or not 0 < port < 65536:
            raise ConfigLoadError("'web_server.port' must be a valid TCP port")

        return cls(
            server_name=str(server.get("name", SERVER_NAME)),
            server_version=str(server.get("version", __version__)),
            protocol_version=str(server.get("protocol_version", MCP_PROTOCOL_VERSION)),
            announce_ready=bool(server.get("announce_ready", False)),
            log_level=str(logging_.get("level", "INFO")).upper(),
            drain_timeout=drain_timeout,
            grace_period=grace_period,
            hard_timeout=hard_timeout,
            web_host=str(web.get("host", "localhost")),
            web_port=port,
            web_command=[expand_env_vars(str(part)) for part in command],
            web_request_timeout=_positive_float(web, "request_timeout", 10.0),
            web_startup_retries=int(web.get("startup_retries", 10)),
            web_startup_delay=_positive_float(web, "startup_delay", 1.0),
        )


def load_config(path: Path | None = None) -> BridgeConfig:
    """Load bridge configuration from a YAML file.

    Args:
        path: Path to the YAML file. A missing default file yields defaults.

    Returns:
        BridgeConfig instance.

    Raises:
        ConfigLoadError: If an explicit file is missing, or the file cannot be
            parsed or validated.
    """
    if path is None:
        if not DEFAULT_CONFIG_PATH.exists():
            return BridgeConfig()
        path = DEFAULT_CONFIG_PATH

    if not path.exists():
        raise ConfigLoadError(f"Config file not found: {path}")

    try:
        with open(path, encoding="utf-8") as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigLoadError(f"Failed to parse config YAML: {e}") from e

    if config is None:
        return BridgeConfig()

    if not isinstance(config, dict):
        raise ConfigLoadError("Config must be a YAML mapping")

    return BridgeConfig.from_dict(config)
