"""
UCI (Universal Chess Interface) protocol adapter, GUI side.

The playground talks to the engine the way a chess GUI does: it writes
commands to the engine's stdin and reads free-form lines from its stdout.
This module only translates between the controller's vocabulary (FEN strings,
square names, depths) and those text lines. It does no I/O.

Protocol overview:
    GUI → Engine: uci, isready, setoption, ucinewgame, position, go, stop, quit
    Engine → GUI: id, option, uciok, readyok, info, bestmove

Only the "bestmove" line drives the turn controller. Every other line
(identification, option lists, search info, diagnostics) is ignored.

A search always ends with exactly one "bestmove" line, even when it was
interrupted by "stop". That guarantee is what lets the controller match
replies to requests by counting them.
"""

from dataclasses import dataclass

import chess

from playground.errors import ProtocolViolationError

# Sentinels an engine sends instead of a move when the side to move has no
# legal move. "(none)" is what Stockfish sends; "0000" is the UCI null move.
NO_MOVE_SENTINELS: frozenset[str] = frozenset({"(none)", "0000"})

_PROMOTION_LETTERS = frozenset("qrbn")


# ---------------------------------------------------------------------------
# Outbound commands
# ---------------------------------------------------------------------------


def cmd_uci() -> str:
    return "uci"


def cmd_isready() -> str:
    return "isready"


def cmd_ucinewgame() -> str:
    return "ucinewgame"


def cmd_setoption(name: str, value: object) -> str:
    """
    Build a "setoption" command.

    UCI option names may contain spaces ("Skill Level"), which is why the
    protocol brackets them with the literal "name" and "value" tokens.
    """
    return f"setoption name {name} value {value}"


def cmd_position(fen: str) -> str:
    """Build "position fen <FEN>" for an arbitrary position."""
    return f"position fen {fen}"


def cmd_go_depth(depth: int) -> str:
    """Build "go depth <N>". Depth must be a positive integer."""
    if depth < 1:
        raise ValueError(f"search depth must be positive, got {depth}")
    return f"go depth {depth}"


def cmd_stop() -> str:
    return "stop"


def cmd_quit() -> str:
    return "quit"


# ---------------------------------------------------------------------------
# Inbound lines
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BestMove:
    """
    A parsed "bestmove" line.

    Attributes:
        move:   Coordinate move text ("e2e4", "e7e8q"), or None when the
                engine reported that no move exists.
        ponder: The move the engine expects in reply, if it sent one.
    """

    move: str | None
    ponder: str | None = None

    @property
    def is_no_move(self) -> bool:
        return self.move is None


def parse_bestmove(line: str) -> BestMove | None:
    """
    Recognise a "bestmove" line.

    Formats:
        bestmove e2e4
        bestmove e2e4 ponder e7e5
        bestmove (none)

    Args:
        line: One line of engine output, with or without trailing whitespace.

    Returns:
        BestMove for a bestmove line, None for any other line.

    Raises:
        ProtocolViolationError: The line starts with "bestmove" but carries
                                no move token.
    """
    tokens = line.split()
    if not tokens or tokens[0] != "bestmove":
        return None
    if len(tokens) < 2:
        raise ProtocolViolationError(f"bestmove line without a move: {line!r}")

    move = tokens[1]
    ponder = None
    if len(tokens) >= 4 and tokens[2] == "ponder":
        ponder = tokens[3]

    if move in NO_MOVE_SENTINELS:
        return BestMove(None, ponder)
    return BestMove(move, ponder)


def split_coordinate_move(text: str) -> tuple[str, str, str | None]:
    """
    Split a coordinate move into source, destination and promotion.

    The move is exactly four characters (two square names) plus an optional
    fifth character naming the promotion piece.

    Args:
        text: Coordinate move text, e.g. "g1f3" or "a7a8q".

    Returns:
        (from_square, to_square, promotion) where promotion is one of
        "q", "r", "b", "n" or None.

    Raises:
        ProtocolViolationError: The text is not a coordinate move.
    """
    if len(text) not in (4, 5):
        raise ProtocolViolationError(f"coordinate move must be 4 or 5 characters: {text!r}")

    from_square, to_square = text[0:2], text[2:4]
    for name in (from_square, to_square):
        if name not in chess.SQUARE_NAMES:
            raise ProtocolViolationError(f"not a square in {text!r}: {name!r}")

    promotion = text[4].lower() if len(text) == 5 else None
    if promotion is not None and promotion not in _PROMOTION_LETTERS:
        raise ProtocolViolationError(f"bad promotion piece in {text!r}")
    return from_square, to_square, promotion
