"""
Status derivation: Position -> GameStatus.

The status is never stored on its own. It is recomputed from the board after
every applied move, undo and reset, so it cannot drift from the position.

Order of the checks matters. A checkmated side is also in check, so
checkmate has to be asked first or the game would be reported as a plain
check. Stalemate and the automatic draws come next because they end the
game; check and "to move" only describe an ongoing one.
"""

from dataclasses import dataclass
from enum import Enum

import chess


class Phase(str, Enum):
    ONGOING = "ongoing"
    CHECK = "check"
    CHECKMATE = "checkmate"
    STALEMATE = "stalemate"
    DRAW = "draw"


TERMINAL_PHASES = frozenset({Phase.CHECKMATE, Phase.STALEMATE, Phase.DRAW})

# Game-over reasons python-chess reports without a claim, other than
# checkmate and stalemate, mapped to the text shown under the board.
_DRAW_TEXT: dict[chess.Termination, str] = {
    chess.Termination.INSUFFICIENT_MATERIAL: "Draw by insufficient material!",
    chess.Termination.SEVENTYFIVE_MOVES: "Draw by the seventy-five-move rule!",
    chess.Termination.FIVEFOLD_REPETITION: "Draw by fivefold repetition!",
}


@dataclass(frozen=True)
class GameStatus:
    """
    Display-facing summary of a position.

    Attributes:
        phase:         Where the game stands.
        side_to_move:  chess.WHITE or chess.BLACK.
        winner:        The winning colour after checkmate, else None.
        text:          Human-readable status line.
        check_square:  Square name of the king in check ("e1"), else None.
    """

    phase: Phase
    side_to_move: chess.Color
    winner: chess.Color | None
    text: str
    check_square: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES


def color_name(color: chess.Color) -> str:
    """'White' or 'Black'."""
    return chess.COLOR_NAMES[color].capitalize()


def derive_status(board: chess.Board) -> GameStatus:
    """
    Ask the rules oracle where the game stands.

    Args:
        board: The current position. Not modified.

    Returns:
        GameStatus for the side to move. The first matching condition wins:
        checkmate, stalemate, automatic draw, check, ongoing.
    """
    turn = board.turn
    king = board.king(turn)
    check_square = chess.square_name(king) if king is not None and board.is_check() else None

    if board.is_checkmate():
        winner = not turn
        return GameStatus(
            Phase.CHECKMATE,
            turn,
            winner,
            f"Checkmate! {color_name(winner)} wins",
            check_square,
        )

    if board.is_stalemate():
        return GameStatus(Phase.STALEMATE, turn, None, "Stalemate!")

    outcome = board.outcome()
    if outcome is not None:
        text = _DRAW_TEXT.get(outcome.termination, "Draw!")
        return GameStatus(Phase.DRAW, turn, None, text, check_square)

    if check_square is not None:
        return GameStatus(Phase.CHECK, turn, None, f"{color_name(turn)} is in check", check_square)

    return GameStatus(Phase.ONGOING, turn, None, f"{color_name(turn)} to move")
