"""
Runtime configuration for the playground.

Settings are a pydantic model so that the same validation applies whether the
values come from code, from tests or from the environment. Validators clamp
numeric values into their safe range instead of rejecting them, the same way
the web layer treats client-supplied limits.

Environment variables (all optional):
    CHESS_PLAYGROUND_ENGINE          Engine command line, e.g. "stockfish".
                                     Empty disables the engine.
    CHESS_PLAYGROUND_ENGINE_COLOR    "white", "black" or "none".
    CHESS_PLAYGROUND_DEPTH           Search depth for "go depth <N>".
    CHESS_PLAYGROUND_ENGINE_TIMEOUT  Seconds to wait for "bestmove".
    CHESS_PLAYGROUND_UNDO_SECONDS    Undo window length; 0 disables undo.
    CHESS_PLAYGROUND_PROMOTION       Default promotion piece: q, r, b or n.
    CHESS_PLAYGROUND_START_FEN       Position every new game starts from.
"""

import os
import shlex
from typing import Literal, Mapping

import chess
from pydantic import BaseModel, field_validator

from playground.constants import (
    DEFAULT_ENGINE_COMMAND,
    DEFAULT_ENGINE_TIMEOUT,
    DEFAULT_PROMOTION,
    DEFAULT_SEARCH_DEPTH,
    DEFAULT_UNDO_SECONDS,
    ENV_PREFIX,
    MAX_ENGINE_TIMEOUT,
    MAX_SEARCH_DEPTH,
    MAX_UNDO_SECONDS,
    MIN_ENGINE_TIMEOUT,
    MIN_SEARCH_DEPTH,
    PROMOTION_PIECES,
)


class PlaygroundSettings(BaseModel):
    """
    Everything the turn controller and the web app can be tuned with.

    Fields:
        engine_command:  Command line of the UCI engine. None or an empty
                         string runs the playground without an engine.
        engine_color:    Side the engine plays, or "none" for a two-player
                         board.
        search_depth:    Depth sent with every "go depth" command.
        engine_timeout:  Seconds before an unanswered search is abandoned.
        engine_options:  Pairs sent as "setoption name <k> value <v>" after
                         the handshake (e.g. {"Skill Level": "5"}).
        undo_seconds:    Length of the undo window after a human move.
        promotion_piece: Piece used when a promoting proposal names none.
        start_fen:       Position a new game starts from.
    """

    engine_command: str | None = DEFAULT_ENGINE_COMMAND
    engine_color: Literal["white", "black", "none"] = "black"
    search_depth: int = DEFAULT_SEARCH_DEPTH
    engine_timeout: float = DEFAULT_ENGINE_TIMEOUT
    engine_options: dict[str, str] = {}
    undo_seconds: float = DEFAULT_UNDO_SECONDS
    promotion_piece: str = DEFAULT_PROMOTION
    start_fen: str = chess.STARTING_FEN

    @field_validator("engine_command")
    @classmethod
    def blank_command_disables_engine(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        return v.strip()

    @field_validator("engine_color", mode="before")
    @classmethod
    def lowercase_color(cls, v: object) -> object:
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("search_depth")
    @classmethod
    def clamp_search_depth(cls, v: int) -> int:
        """Clamp search_depth to [MIN_SEARCH_DEPTH, MAX_SEARCH_DEPTH]."""
        return max(MIN_SEARCH_DEPTH, min(v, MAX_SEARCH_DEPTH))

    @field_validator("engine_timeout")
    @classmethod
    def clamp_engine_timeout(cls, v: float) -> float:
        """Clamp engine_timeout to [MIN_ENGINE_TIMEOUT, MAX_ENGINE_TIMEOUT]."""
        return max(MIN_ENGINE_TIMEOUT, min(v, MAX_ENGINE_TIMEOUT))

    @field_validator("undo_seconds")
    @classmethod
    def clamp_undo_seconds(cls, v: float) -> float:
        return max(0.0, min(v, MAX_UNDO_SECONDS))

    @field_validator("promotion_piece")
    @classmethod
    def check_promotion_piece(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in PROMOTION_PIECES:
            raise ValueError(f"promotion_piece must be one of {sorted(PROMOTION_PIECES)}")
        return v

    @field_validator("start_fen")
    @classmethod
    def check_start_fen(cls, v: str) -> str:
        """Reject FENs python-chess cannot load, illegal setups, and finished games."""
        board = chess.Board(v)  # raises ValueError on a malformed FEN
        if not board.is_valid():
            raise ValueError(f"start_fen is not a legal position: {board.status()!r}")
        if board.is_game_over():
            raise ValueError("start_fen must not be a finished game")
        return board.fen()

    # -----------------------------------------------------------------------
    # Derived values
    # -----------------------------------------------------------------------

    @property
    def engine_side(self) -> chess.Color | None:
        """The python-chess colour the engine plays, or None."""
        if self.engine_command is None or self.engine_color == "none":
            return None
        return chess.WHITE if self.engine_color == "white" else chess.BLACK

    @property
    def engine_argv(self) -> list[str]:
        """engine_command split into an argv list for subprocess."""
        return shlex.split(self.engine_command) if self.engine_command else []

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "PlaygroundSettings":
        """
        Build settings from CHESS_PLAYGROUND_* environment variables.

        Unset variables keep their defaults. Values are handed to pydantic as
        strings and coerced by the model, so "15" becomes 15.

        Args:
            environ: Mapping to read from. Defaults to os.environ.

        Returns:
            A validated PlaygroundSettings instance.
        """
        env = os.environ if environ is None else environ
        names = {
            "ENGINE": "engine_command",
            "ENGINE_COLOR": "engine_color",
            "DEPTH": "search_depth",
            "ENGINE_TIMEOUT": "engine_timeout",
            "UNDO_SECONDS": "undo_seconds",
            "PROMOTION": "promotion_piece",
            "START_FEN": "start_fen",
        }
        values = {
            field: env[ENV_PREFIX + suffix]
            for suffix, field in names.items()
            if ENV_PREFIX + suffix in env
        }
        return cls(**values)
