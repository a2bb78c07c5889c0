#!/usr/bin/env python3
"""Chess Trainer MCP bridge - main entry point.

Equivalent to ``chess-trainer-mcp`` or ``python -m chess_trainer_mcp``.
"""

from __future__ import annotations

import sys

from chess_trainer_mcp.cli import main

if __name__ == "__main__":
    sys.exit(main())
