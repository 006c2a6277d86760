"""
Undo window: a short-lived allowance to take back the last human move.
"""

import time
from dataclasses import dataclass
from typing import Callable

import chess

from playground.timers import Cancellable, Scheduler


@dataclass
class UndoWindow:
    """
    The position before the last human move, plus its countdown.

    The countdown is one scheduled callback. It is cancelled when the window
    is used or replaced, so an expired window can never fire into a game that
    has moved on.

    Attributes:
        prior_board: Position the undo restores, with its move stack so that
                     repetition counting survives the undo.
        expires_at:  Deadline on the window's clock.
        handle:      The scheduled expiry callback.
        clock:       Monotonic clock used for remaining().
    """

    prior_board: chess.Board
    expires_at: float
    handle: Cancellable
    clock: Callable[[], float] = time.monotonic

    @classmethod
    def open(
        cls,
        prior_board: chess.Board,
        seconds: float,
        on_expire: Callable[[], None],
        scheduler: Scheduler,
        clock: Callable[[], float] = time.monotonic,
    ) -> "UndoWindow":
        handle = scheduler(seconds, on_expire)
        return cls(prior_board, clock() + seconds, handle, clock)

    @property
    def prior_fen(self) -> str:
        return self.prior_board.fen()

    def remaining(self) -> float:
        """Seconds left before the window closes, never negative."""
        return max(0.0, self.expires_at - self.clock())

    def cancel(self) -> None:
        self.handle.cancel()
