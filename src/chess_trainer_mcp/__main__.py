import sys

from chess_trainer_mcp.cli import main

sys.exit(main())
