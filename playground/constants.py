"""
Playground constants: defaults for the turn controller and its engine link.

Every tunable default lives here so that the settings model, the web layer
and the tools never introduce their own magic numbers.
"""

import chess

# ---------------------------------------------------------------------------
# Engine search
# ---------------------------------------------------------------------------
# Depth passed to "go depth <N>". Deeper searches play stronger moves but
# keep the board locked for longer; 15 replies in well under a second with a
# modern Stockfish build.

DEFAULT_SEARCH_DEPTH: int = 15
MIN_SEARCH_DEPTH: int = 1
MAX_SEARCH_DEPTH: int = 30

# Seconds to wait for a "bestmove" reply before giving the board back to the
# human. A conformant engine at the default depth never gets close to this.
DEFAULT_ENGINE_TIMEOUT: float = 30.0
MIN_ENGINE_TIMEOUT: float = 1.0
MAX_ENGINE_TIMEOUT: float = 300.0

# Seconds to wait for the engine process to exit after "quit" before it is
# killed.
ENGINE_QUIT_GRACE: float = 2.0

DEFAULT_ENGINE_COMMAND: str = "stockfish"

# ---------------------------------------------------------------------------
# Human moves
# ---------------------------------------------------------------------------
# Length of the undo window opened after every human move. 0 disables undo.

DEFAULT_UNDO_SECONDS: float = 5.0
MAX_UNDO_SECONDS: float = 60.0

# Piece a pawn becomes when the proposal does not name one.
DEFAULT_PROMOTION: str = "q"

PROMOTION_PIECES: dict[str, int] = {
    "q": chess.QUEEN,
    "r": chess.ROOK,
    "b": chess.BISHOP,
    "n": chess.KNIGHT,
}

# ---------------------------------------------------------------------------
# Environment variables read by PlaygroundSettings.from_env()
# ---------------------------------------------------------------------------

ENV_PREFIX: str = "CHESS_PLAYGROUND_"
