"""Tests for the chess analysis plugin."""

import threading

import chess
import pytest

from chess_trainer_mcp.plugins import analysis
from chess_trainer_mcp.plugins.analysis import (
    MATE_SCORE,
    AnalysisPlugin,
    format_score,
    load_board,
    material_balance,
    parse_move,
    rank_moves,
)
from chess_trainer_mcp.plugins.base import ToolExecutionError
from chess_trainer_mcp.plugins.registry import ToolRegistry

START_FEN = chess.STARTING_FEN
FOOLS_MATE_FEN = "rnb1kbnr/pppp1ppp/8/4p3/6Pq/5P2/PPPPP2P/RNBQKBNR w KQkq - 1 3"
HANGING_QUEEN_FEN = "4k3/8/8/3q4/8/8/8/3RK3 w - - 0 1"


def text_of(result) -> str:
    return result.content[0]["text"]


@pytest.fixture
def plugin() -> AnalysisPlugin:
    return AnalysisPlugin()


class TestHelpers:
    """Tests for the board helpers."""

    def test_load_board_rejects_garbage(self):
        """Malformed FEN raises ToolExecutionError."""
        with pytest.raises(ToolExecutionError, match="Invalid FEN"):
            load_board("not a fen")

    def test_load_board_rejects_illegal_position(self):
        """Positions without kings are refused."""
        with pytest.raises(ToolExecutionError, match="illegal position"):
            load_board("8/8/8/8/8/8/8/8 w - - 0 1")

    def test_parse_move_accepts_san_and_uci(self):
        """Both notations resolve to the same move."""
        board = chess.Board()

        assert parse_move(board, "Nf3") == parse_move(board, "g1f3")

    def test_parse_move_rejects_illegal(self):
        """Illegal moves raise ValueError."""
        with pytest.raises(ValueError):
            parse_move(chess.Board(), "e2e5")

    @pytest.mark.parametrize("move", ["--", "Z0", "0000", "@@@@"])
    def test_parse_move_rejects_null_move(self, move):
        """Null move notations are not moves."""
        with pytest.raises(ValueError):
            parse_move(chess.Board(), move)

    def test_material_balance(self):
        """Material is counted from White's point of view."""
        assert material_balance(chess.Board()) == 0
        assert material_balance(chess.Board(HANGING_QUEEN_FEN)) == 500 - 900

    def test_rank_moves_prefers_winning_material(self):
        """Capturing an undefended queen ranks first."""
        board = chess.Board(HANGING_QUEEN_FEN)

        best, score = rank_moves(board)[0]

        assert board.san(best) == "Rxd5"
        assert score == 500

    def test_format_score(self):
        """Scores are shown in pawns, mates in words."""
        assert format_score(34) == "+0.34"
        assert format_score(-150) == "-1.50"
        assert format_score(MATE_SCORE) == "Mate for White"
        assert format_score(-MATE_SCORE) == "Mate for Black"


class TestTools:
    """Tests for tool execution."""

    def test_declares_six_tools(self, plugin):
        """All analysis tools are declared with valid schemas."""
        registry = ToolRegistry()
        registry.register_plugin(plugin)

        names = [tool.name for tool in plugin.get_tools()]
        assert names == [
            "analyze_position",
            "evaluate_move",
            "get_best_moves",
            "validate_fen",
            "generate_pgn",
            "explain_opening",
        ]

    @pytest.mark.asyncio
    async def test_validate_fen_start_position(self, plugin):
        """The start position is valid with White to move."""
        text = text_of(await plugin.execute("validate_fen", {"fen": START_FEN}))

        assert text.startswith("Valid FEN Position")
        assert "Turn: White" in text
        assert "Check" not in text

    @pytest.mark.asyncio
    async def test_validate_fen_checkmate(self, plugin):
        """Checkmate is reported with the winner."""
        text = text_of(await plugin.execute("validate_fen", {"fen": FOOLS_MATE_FEN}))

        assert "Check: Yes" in text
        assert "Checkmate: Yes - Black wins!" in text

    @pytest.mark.asyncio
    async def test_validate_fen_invalid(self, plugin):
        """Invalid FEN is a normal result, not an error."""
        result = await plugin.execute("validate_fen", {"fen": "not a fen"})

        assert text_of(result).startswith("Invalid FEN Position")
        assert not result.is_error

    @pytest.mark.asyncio
    async def test_analyze_position(self, plugin):
        """Analysis names the best move and an assessment."""
        text = text_of(await plugin.execute("analyze_position", {"fen": HANGING_QUEEN_FEN, "depth": 5}))

        assert "Search: 2 plies (requested depth 5)" in text
        assert "Best Move: Rxd5 (d1d5)" in text
        assert "Assessment: Winning for White" in text

    @pytest.mark.asyncio
    async def test_analyze_finished_game(self, plugin):
        """A mated position reports the result."""
        text = text_of(await plugin.execute("analyze_position", {"fen": FOOLS_MATE_FEN}))

        assert "Game over: 0-1" in text

    @pytest.mark.asyncio
    async def test_analyze_invalid_fen_raises(self, plugin):
        """Tools other than validate_fen reject bad FEN."""
        with pytest.raises(ToolExecutionError):
            await plugin.execute("analyze_position", {"fen": "bad"})

    @pytest.mark.asyncio
    async def test_evaluate_legal_move(self, plugin):
        """A legal move is evaluated and ranked."""
        text = text_of(await plugin.execute("evaluate_move", {"fen": START_FEN, "move": "e2e4"}))

        assert text.startswith("Move Evaluation: e4")
        assert "Move is legal" in text
        assert "of 20 legal moves" in text

    @pytest.mark.asyncio
    async def test_evaluate_suggests_better_move(self, plugin):
        """Missing a free queen is pointed out."""
        text = text_of(await plugin.execute("evaluate_move", {"fen": HANGING_QUEEN_FEN, "move": "Ke2"}))

        assert "Better was: Rxd5" in text

    @pytest.mark.asyncio
    async def test_evaluate_illegal_move(self, plugin):
        """An illegal move is reported as text."""
        text = text_of(await plugin.execute("evaluate_move", {"fen": START_FEN, "move": "e5"}))

        assert text.startswith("Invalid Move")

    @pytest.mark.asyncio
    async def test_evaluate_null_move(self, plugin):
        """A null move is reported as invalid, not ranked."""
        text = text_of(await plugin.execute("evaluate_move", {"fen": START_FEN, "move": "--"}))

        assert text.startswith("Invalid Move")

    @pytest.mark.asyncio
    async def test_get_best_moves_count(self, plugin):
        """Returns the requested number of candidates."""
        text = text_of(await plugin.execute("get_best_moves", {"fen": HANGING_QUEEN_FEN, "count": 2}))

        assert "1. Rxd5" in text
        assert "2. " in text
        assert "3. " not in text

    @pytest.mark.asyncio
    async def test_generate_pgn(self, plugin):
        """Moves are validated and written as PGN."""
        text = text_of(
            await plugin.execute(
                "generate_pgn",
                {
                    "moves": ["e4", "e5", "g1f3"],
                    "white_player": "Alice",
                    "black_player": "Bob",
                    "date": "2024.01.01",
                },
            )
        )

        assert '[White "Alice"]' in text
        assert '[Date "2024.01.01"]' in text
        assert "1. e4 e5 2. Nf3" in text
        assert "3 moves validated" in text

    @pytest.mark.asyncio
    async def test_generate_pgn_bad_move(self, plugin):
        """The first illegal move stops generation."""
        text = text_of(await plugin.execute("generate_pgn", {"moves": ["e4", "e4"]}))

        assert text.startswith("Error in move sequence")
        assert 'Failed at move "e4"' in text
        assert "Valid moves so far: e4" in text

    @pytest.mark.asyncio
    async def test_generate_pgn_null_move(self, plugin):
        """A null move in the sequence stops generation."""
        text = text_of(await plugin.execute("generate_pgn", {"moves": ["e4", "--", "e5"]}))

        assert text.startswith("Error in move sequence")
        assert 'Failed at move "--"' in text
        assert "Valid moves so far: e4" in text

    @pytest.mark.asyncio
    async def test_search_runs_off_event_loop(self, plugin, monkeypatch):
        """The move search runs in a worker thread."""
        threads = []

        def recording_rank_moves(board):
            threads.append(threading.current_thread())
            return original(board)

        original = analysis.rank_moves
        monkeypatch.setattr(analysis, "rank_moves", recording_rank_moves)

        for name, arguments in [
            ("analyze_position", {"fen": HANGING_QUEEN_FEN}),
            ("evaluate_move", {"fen": START_FEN, "move": "e4"}),
            ("get_best_moves", {"fen": START_FEN}),
        ]:
            await plugin.execute(name, arguments)

        assert len(threads) == 3
        assert all(thread is not threading.main_thread() for thread in threads)

    @pytest.mark.asyncio
    async def test_explain_known_opening(self, plugin):
        """Exact sequences are recognised."""
        text = text_of(
            await plugin.execute("explain_opening", {"moves": ["e4", "e5", "Nf3", "Nc6", "Bb5"]})
        )

        assert "Opening: Ruy Lopez" in text
        assert "Control the center with pawns" in text

    @pytest.mark.asyncio
    async def test_explain_opening_by_prefix(self, plugin):
        """Longer sequences fall back to the longest known prefix."""
        text = text_of(await plugin.execute("explain_opening", {"moves": ["e4", "c5", "Nf3"]}))

        assert "Opening: Sicilian Defense" in text

    @pytest.mark.asyncio
    async def test_explain_unknown_opening_uses_name(self, plugin):
        """Unknown sequences use the caller's name."""
        text = text_of(
            await plugin.execute("explain_opening", {"moves": ["a3"], "opening_name": "Anderssen"})
        )

        assert "Opening: Anderssen" in text

    @pytest.mark.asyncio
    async def test_unknown_tool(self, plugin):
        """Unknown tool names raise."""
        with pytest.raises(ToolExecutionError):
            await plugin.execute("castle_queenside", {})
