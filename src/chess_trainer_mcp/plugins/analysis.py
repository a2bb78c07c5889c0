"""Chess analysis plugin.

Position validation, move evaluation, PGN generation and opening lookup,
built on python-chess. Evaluation is a two-ply material search: enough to
rank candidate moves, not a substitute for a real engine.
"""

from __future__ import annotations

import asyncio
from datetime import date
from typing import Any

import chess
import chess.pgn

from chess_trainer_mcp.plugins.base import (
    PluginBase,
    ToolDefinition,
    ToolExecutionError,
    ToolResult,
)

# Centipawn values; the king is never counted as material
PIECE_VALUES: dict[int, int] = {
    chess.PAWN: 100,
    chess.KNIGHT: 320,
    chess.BISHOP: 330,
    chess.ROOK: 500,
    chess.QUEEN: 900,
    chess.KING: 0,
}

MATE_SCORE = 100_000

FEN_FORMAT_HINT = "FEN format: <pieces> <turn> <castling> <en-passant> <halfmove> <fullmove>"

# Keyed by comma-joined SAN moves; longest match wins, then the first move
OPENINGS: dict[str, tuple[str, str]] = {
    "e4": ("King's Pawn", "Controls center, develops pieces quickly"),
    "d4": ("Queen's Pawn", "Solid center control, strategic play"),
    "Nf3": ("Réti Opening", "Flexible development, delays center commitment"),
    "c4": ("English Opening", "Controls d5, flexible pawn structure"),
    "e4,e5,Nf3,Nc6,Bb5": ("Ruy Lopez", "Pressures e5 pawn, aims for center control"),
    "e4,e5,Nf3,Nc6,Bc4": ("Italian Game", "Quick development, targets f7 weakness"),
    "e4,c5": ("Sicilian Defense", "Asymmetrical, fights for initiative"),
    "e4,e6": ("French Defense", "Solid pawn chain, counterattacks the center with ...d5"),
    "e4,c6": ("Caro-Kann Defense", "Solid structure, supports ...d5 without blocking the bishop"),
    "d4,d5,c4": ("Queen's Gambit", "Challenges black's center, gains space"),
    "d4,Nf6,c4,g6": ("King's Indian Defense", "Flexible setup, counterattack potential"),
}

OPENING_PRINCIPLES = (
    "Control the center with pawns",
    "Develop knights before bishops",
    "Castle early for king safety",
    "Don't move the same piece twice",
    "Don't bring queen out too early",
    "Connect your rooks",
)


def _fen_schema(description: str) -> dict[str, Any]:
    return {"type": "string", "description": description, "minLength": 1}


def load_board(fen: str) -> chess.Board:
    """Parse a FEN string into a board.

    Raises:
        ToolExecutionError: If the FEN is malformed or the position is illegal.
    """
    try:
        board = chess.Board(fen)
    except ValueError as e:
        raise ToolExecutionError(f"Invalid FEN: {e}") from e
    if not board.is_valid():
        raise ToolExecutionError(f"Invalid FEN: illegal position ({board.status().name})")
    return board


def parse_move(board: chess.Board, move: str) -> chess.Move:
    """Parse a move in SAN or UCI notation.

    Raises:
        ValueError: If the move is not legal in the position.
    """
    try:
        parsed = board.parse_san(move)
    except ValueError:
        parsed = chess.Move.from_uci(move)
    # parse_san and from_uci both accept null moves
    if not parsed or parsed not in board.legal_moves:
        raise chess.IllegalMoveError(f"illegal uci: {move!r} in {board.fen()}")
    return parsed


def material_balance(board: chess.Board) -> int:
    """Material in centipawns from White's point of view."""
    score = 0
    for piece_type, value in PIECE_VALUES.items():
        score += value * len(board.pieces(piece_type, chess.WHITE))
        score -= value * len(board.pieces(piece_type, chess.BLACK))
    return score


def evaluate(board: chess.Board) -> int:
    """Static evaluation in centipawns from White's point of view."""
    if board.is_checkmate():
        return -MATE_SCORE if board.turn == chess.WHITE else MATE_SCORE
    if board.is_stalemate() or board.is_insufficient_material():
        return 0
    return material_balance(board)


def rank_moves(board: chess.Board) -> list[tuple[chess.Move, int]]:
    """Score every legal move by the worst reply it allows.

    Returns:
        (move, score) pairs, best first for the side to move. Scores are
        from White's point of view.
    """
    sign = 1 if board.turn == chess.WHITE else -1
    ranked = []
    for move in board.legal_moves:
        board.push(move)
        if board.is_game_over():
            score = evaluate(board)
        else:
            replies = []
            for reply in board.legal_moves:
                board.push(reply)
                replies.append(evaluate(board))
                board.pop()
            # Opponent picks the reply that is worst for us
            score = min(replies, key=lambda s: s * sign)
        board.pop()
        ranked.append((move, score))

    ranked.sort(key=lambda item: item[1] * sign, reverse=True)
    return ranked


def format_score(score: int) -> str:
    """Format a White-relative centipawn score, e.g. '+0.34' or '#'."""
    if abs(score) >= MATE_SCORE:
        return "Mate for White" if score > 0 else "Mate for Black"
    return f"{score / 100:+.2f}"


def assess(score: int) -> str:
    """Describe a White-relative score in words."""
    if abs(score) >= MATE_SCORE:
        return "Forced mate"
    if abs(score) < 50:
        return "Roughly equal"
    side = "White" if score > 0 else "Black"
    if abs(score) < 150:
        return f"Slightly better for {side}"
    if abs(score) < 400:
        return f"Clearly better for {side}"
    return f"Winning for {side}"


class AnalysisPlugin(PluginBase):
    """Chess analysis tools that work on FEN positions and move lists."""

    @property
    def name(self) -> str:
        """Return plugin identifier."""
        return "analysis"

    @property
    def version(self) -> str:
        """Return plugin version."""
        return "1.0.0"

    def get_tools(self) -> list[ToolDefinition]:
        """Return available tools."""
        return [
            ToolDefinition(
                name="analyze_position",
                description="Analyze a chess position (material search, not a full engine)",
                input_schema={
                    "type": "object",
                    "properties": {
                        "fen": _fen_schema("FEN string of the position to analyze"),
                        "depth": {
                            "type": "integer",
                            "description": "Requested depth (advisory; the search is always two plies)",
                            "default": 15,
                            "minimum": 1,
                            "maximum": 20,
                        },
                    },
                    "required": ["fen"],
                },
            ),
            ToolDefinition(
                name="evaluate_move",
                description="Evaluate the quality of a chess move",
                input_schema={
                    "type": "object",
                    "properties": {
                        "fen": _fen_schema("FEN string before the move"),
                        "move": {
                            "type": "string",
                            "description": 'Move in algebraic notation (e.g., "e2e4", "Nf3", "O-O")',
                        },
                    },
                    "required": ["fen", "move"],
                },
            ),
            ToolDefinition(
                name="get_best_moves",
                description="Get the top N best moves for a position",
                input_schema={
                    "type": "object",
                    "properties": {
                        "fen": _fen_schema("FEN string of the position"),
                        "count": {
                            "type": "integer",
                            "description": "Number of best moves to return",
                            "default": 3,
                            "minimum": 1,
                            "maximum": 10,
                        },
                    },
                    "required": ["fen"],
                },
            ),
            ToolDefinition(
                name="validate_fen",
                description="Validate a FEN string and get position information",
                input_schema={
                    "type": "object",
                    "properties": {"fen": {"type": "string", "description": "FEN string to validate"}},
                    "required": ["fen"],
                },
            ),
            ToolDefinition(
                name="generate_pgn",
                description="Generate PGN notation from a list of moves",
                input_schema={
                    "type": "object",
                    "properties": {
                        "moves": {
                            "type": "array",
                            "items": {"type": "string"},
                            "description": "Array of moves in algebraic notation",
                        },
                        "white_player": {"type": "string", "default": "Player1"},
                        "black_player": {"type": "string", "default": "Player2"},
                        "event": {"type": "string", "default": "Chess Trainer Game"},
                        "date": {"type": "string", "description": "Game date (YYYY.MM.DD format)"},
                    },
                    "required": ["moves"],
                },
            ),
            ToolDefinition(
                name="explain_opening",
                description="Get explanation and principles of a chess opening",
                input_schema={
                    "type": "object",
                    "properties": {
                        "moves": {
                            "type": "array",
                            "items": {"type": "string"},
                            "description": "Opening moves in algebraic notation",
                        },
                        "opening_name": {
                            "type": "string",
                            "description": "Name of the opening (if known)",
                        },
                    },
                    "required": ["moves"],
                },
            ),
        ]

    async def execute(self, tool_name: str, arguments: dict[str, Any]) -> ToolResult:
        """Execute a tool.

        Args:
            tool_name: Name of the tool to execute.
            arguments: Tool arguments.

        Returns:
            ToolResult with the analysis text.
        """
        # Move searches run off the event loop
        if tool_name == "analyze_position":
            return await asyncio.to_thread(
                self._analyze_position, arguments["fen"], arguments.get("depth", 15)
            )
        if tool_name == "evaluate_move":
            return await asyncio.to_thread(self._evaluate_move, arguments["fen"], arguments["move"])
        if tool_name == "get_best_moves":
            return await asyncio.to_thread(
                self._get_best_moves, arguments["fen"], arguments.get("count", 3)
            )
        if tool_name == "validate_fen":
            return self._validate_fen(arguments["fen"])
        if tool_name == "generate_pgn":
            return self._generate_pgn(arguments)
        if tool_name == "explain_opening":
            return self._explain_opening(arguments["moves"], arguments.get("opening_name"))
        raise ToolExecutionError(f"Unknown tool: {tool_name}")

    def _analyze_position(self, fen: str, depth: int) -> ToolResult:
        board = load_board(fen)
        text = f"Position Analysis\n\nFEN: {board.fen()}\nSearch: 2 plies (requested depth {depth})\n\n"

        if board.is_game_over():
            outcome = board.outcome()
            result = outcome.result() if outcome else "*"
            return ToolResult.text(text + f"Game over: {result}")

        ranked = rank_moves(board)
        best_move, score = ranked[0]
        line = board.variation_san([best_move])
        return ToolResult.text(
            text
            + f"Evaluation: {format_score(score)}\n"
            + f"Best Move: {board.san(best_move)} ({best_move.uci()})\n"
            + f"Principal Variation: {line}\n"
            + f"Assessment: {assess(score)}"
        )

    def _evaluate_move(self, fen: str, move: str) -> ToolResult:
        board = load_board(fen)
        try:
            parsed = parse_move(board, move)
        except ValueError:
            return ToolResult.text(
                "Invalid Move\n\n"
                f'Move "{move}" is not legal in the given position.\n'
                "Please check the move notation and try again."
            )

        ranked = rank_moves(board)
        position = next(i for i, (m, _) in enumerate(ranked) if m == parsed)
        score = ranked[position][1]
        best_move, best_score = ranked[0]
        san = board.san(parsed)
        best_san = board.san(best_move)
        board.push(parsed)

        text = (
            f"Move Evaluation: {san}\n\n"
            "Move is legal\n"
            f"New position: {board.fen()}\n"
            f"Evaluation after move: {format_score(score)}\n"
            f"Rank: {position + 1} of {len(ranked)} legal moves\n"
        )
        if parsed != best_move and best_score != score:
            text += f"Better was: {best_san} ({format_score(best_score)})"
        else:
            text += "This is among the best moves in the position."
        return ToolResult.text(text)

    def _get_best_moves(self, fen: str, count: int) -> ToolResult:
        board = load_board(fen)
        if board.is_game_over():
            return ToolResult.text(f"Best Moves Analysis\n\nPosition: {board.fen()}\n\nNo legal moves.")

        lines = [f"Best Moves Analysis\n\nPosition: {board.fen()}\n"]
        for i, (move, score) in enumerate(rank_moves(board)[:count], 1):
            lines.append(f"{i}. {board.san(move)} ({format_score(score)})")
        return ToolResult.text("\n".join(lines))

    def _validate_fen(self, fen: str) -> ToolResult:
        try:
            board = load_board(fen)
        except ToolExecutionError as e:
            return ToolResult.text(
                "Invalid FEN Position\n\n"
                "The provided FEN string is not valid.\n"
                f"Error: {e}\n\n"
                f"{FEN_FORMAT_HINT}"
            )

        turn = "White" if board.turn == chess.WHITE else "Black"
        status = f"Valid FEN Position\n\nFEN: {board.fen()}\n\nTurn: {turn}\n"
        if board.is_check():
            status += "Check: Yes\n"
        if board.is_checkmate():
            winner = "Black" if board.turn == chess.WHITE else "White"
            status += f"Checkmate: Yes - {winner} wins!\n"
        if board.is_stalemate():
            status += "Stalemate: Yes - Draw!\n"
        if board.is_insufficient_material():
            status += "Insufficient Material: Yes\n"
        if board.can_claim_fifty_moves():
            status += "Fifty-move rule: Draw can be claimed\n"

        return ToolResult.text(status)

    def _generate_pgn(self, arguments: dict[str, Any]) -> ToolResult:
        moves: list[str] = arguments["moves"]
        game_date = arguments.get("date") or date.today().strftime("%Y.%m.%d")

        game = chess.pgn.Game()
        game.headers["Event"] = arguments.get("event", "Chess Trainer Game")
        game.headers["Site"] = "Chess Trainer MCP"
        game.headers["Date"] = game_date
        game.headers["Round"] = "?"
        game.headers["White"] = arguments.get("white_player", "Player1")
        game.headers["Black"] = arguments.get("black_player", "Player2")
        game.headers["Result"] = "*"

        board = game.board()
        node: chess.pgn.GameNode = game
        valid: list[str] = []
        for move in moves:
            try:
                parsed = parse_move(board, move)
            except ValueError as e:
                return ToolResult.text(
                    "Error in move sequence\n\n"
                    f'Failed at move "{move}"\n'
                    f"{e}\n\n"
                    f"Valid moves so far: {' '.join(valid)}"
                )
            valid.append(board.san(parsed))
            node = node.add_variation(parsed)
            board.push(parsed)

        pgn = str(game)
        return ToolResult.text(
            f"Generated PGN\n\n{pgn}\n\n"
            f"{len(valid)} moves validated and formatted\n"
            "This PGN can be imported into any chess software"
        )

    def _explain_opening(self, moves: list[str], opening_name: str | None) -> ToolResult:
        key = ",".join(moves)
        opening = OPENINGS.get(key)
        if opening is None:
            # Longest known prefix
            for length in range(len(moves) - 1, 0, -1):
                opening = OPENINGS.get(",".join(moves[:length]))
                if opening is not None:
                    break
        if opening is None:
            opening = (opening_name or "Unknown Opening", "Develops pieces and controls center")

        name, idea = opening
        principles = "\n".join(f"- {p}" for p in OPENING_PRINCIPLES)
        return ToolResult.text(
            "Opening Analysis\n\n"
            f"Opening: {name}\n"
            f"Moves: {' '.join(moves)}\n\n"
            f"Main Idea: {idea}\n\n"
            f"General Opening Principles:\n{principles}"
        )
