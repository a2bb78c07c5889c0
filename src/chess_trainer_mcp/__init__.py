"""Chess Trainer MCP server: chess tools exposed over JSON-RPC on stdio."""

__version__ = "1.0.11"
