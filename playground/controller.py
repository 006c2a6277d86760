"""
Turn controller: the state machine between the board UI, the rules oracle
and the engine process.

States:
    AWAITING_HUMAN   The display may propose moves.
    AWAITING_ENGINE  One search request is outstanding; human input is locked.
    TERMINAL         Checkmate, stalemate or an automatic draw. Only reset and
                     undo are accepted.

Position handling:
    The controller owns the only chess.Board. It is never modified after it
    has been published: every accepted move is pushed onto a copy, and the
    copy replaces the old board by assignment. The display only ever sees the
    FEN string.

Threading model:
    Three kinds of threads call in: HTTP workers (moves, reset, undo), the
    engine reader thread (output lines, exit) and timer threads (undo expiry,
    engine timeout). Every entry point takes the same re-entrant lock, so
    within the controller the game advances one event at a time.

Engine requests:
    UCI answers every "go" with exactly one "bestmove", in order. The
    controller numbers its requests and keeps the ids of the searches it has
    written in a FIFO. A bestmove is matched to the head of the FIFO; if that
    id is not the request the game is currently waiting for (a reset or a
    timeout happened in between) the reply is stale and dropped. A new
    request is only written once the FIFO is empty, so at most one search is
    ever running inside the engine.
"""

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Protocol

import chess

from interface.uci import (
    cmd_go_depth,
    cmd_isready,
    cmd_position,
    cmd_setoption,
    cmd_stop,
    cmd_uci,
    cmd_ucinewgame,
    parse_bestmove,
    split_coordinate_move,
)
from playground.config import PlaygroundSettings
from playground.constants import PROMOTION_PIECES
from playground.errors import (
    EngineUnavailableError,
    IllegalMoveError,
    ProtocolViolationError,
)
from playground.status import GameStatus, derive_status
from playground.timers import Cancellable, Scheduler, thread_timer
from playground.undo import UndoWindow

_log = logging.getLogger(__name__)


class TurnPhase(str, Enum):
    AWAITING_HUMAN = "awaiting_human"
    AWAITING_ENGINE = "awaiting_engine"
    TERMINAL = "terminal"


class EngineLink(Protocol):
    """What the controller needs from an engine process."""

    def start(
        self,
        on_line: Callable[[str], None],
        on_exit: Callable[[int | None], None],
    ) -> None: ...

    def send(self, command: str) -> None: ...

    def close(self) -> None: ...


@dataclass(frozen=True)
class MoveProposal:
    """A candidate move: square names plus an optional promotion letter."""

    from_square: str
    to_square: str
    promotion: str | None = None


@dataclass(frozen=True)
class Snapshot:
    """
    Read-only view of the game for the display layer.

    Attributes:
        fen:            Encoding of the current position.
        status:         Derived status of that position.
        turn_phase:     Controller state.
        ai_thinking:    True while an engine search is outstanding.
        game_over:      True in TERMINAL.
        interactive:    Whether pieces may be dragged.
        highlights:     Square name -> "check" or "last-move".
        undo_remaining: Seconds left in the undo window, None without one.
        last_move:      Last applied move in coordinate notation.
        error:          Engine problem to show next to the status, if any.
    """

    fen: str
    status: GameStatus
    turn_phase: TurnPhase
    ai_thinking: bool
    game_over: bool
    interactive: bool
    highlights: dict[str, str] = field(default_factory=dict)
    undo_remaining: float | None = None
    last_move: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class MoveOutcome:
    """Result of a proposal. accepted=False means the piece snaps back."""

    accepted: bool
    snapshot: Snapshot
    reason: str | None = None


@dataclass
class _SearchRequest:
    request_id: int
    fen: str
    sent: bool = False
    timeout: Cancellable | None = None


class TurnController:
    """
    Owns the position and sequences human moves, engine replies, reset and
    undo.

    Usage:
        with TurnController(settings, engine=EngineProcess(settings.engine_argv)) as ctrl:
            ctrl.propose_move("e2", "e4")
            ctrl.snapshot()

    Args:
        settings:  Playground settings. Defaults to PlaygroundSettings().
        engine:    Engine link, or None to play without an engine.
        scheduler: Factory for cancellable one-shot timers.
        clock:     Monotonic clock for the undo countdown.
    """

    def __init__(
        self,
        settings: PlaygroundSettings | None = None,
        engine: EngineLink | None = None,
        scheduler: Scheduler = thread_timer,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings or PlaygroundSettings()
        self._engine = engine
        self._engine_side = self.settings.engine_side if engine is not None else None
        self._scheduler = scheduler
        self._clock = clock
        self._lock = threading.RLock()

        self._board = chess.Board(self.settings.start_fen)
        self._status = derive_status(self._board)
        self._turn = TurnPhase.AWAITING_HUMAN
        self._last_move: chess.Move | None = None
        self._undo: UndoWindow | None = None
        self._error: str | None = None

        self._engine_alive = False
        self._next_request_id = 0
        self._pending: _SearchRequest | None = None
        self._in_flight: deque[int] = deque()

        self._started = False
        self._closed = False

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------

    def start(self) -> None:
        """
        Acquire the engine and open the first game.

        The engine gets the UCI handshake and any configured options. If it
        cannot be started the playground keeps running as a two-player board
        and reports the problem in the snapshot's error field.
        """
        with self._lock:
            if self._started or self._closed:
                return
            self._started = True

            if self._engine is not None:
                try:
                    self._engine.start(self.on_engine_line, self.on_engine_exit)
                    self._engine_alive = True
                    self._engine.send(cmd_uci())
                    for name, value in self.settings.engine_options.items():
                        self._engine.send(cmd_setoption(name, value))
                    self._engine.send(cmd_isready())
                except EngineUnavailableError as exc:
                    _log.error("Engine unavailable, continuing without it: %s", exc)
                    self._engine_alive = False
                    self._error = f"Engine unavailable: {exc}"

            self._new_game()

    def close(self) -> None:
        """
        Cancel every timer and terminate the engine.

        The engine is closed outside the lock: its reader thread reports the
        exit through on_engine_exit, which needs the lock too.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._abandon_search()
            self._drop_undo()
            engine = self._engine if self._started else None
            self._engine_alive = False
        if engine is not None:
            engine.close()

    def __enter__(self) -> "TurnController":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # -----------------------------------------------------------------------
    # Display-facing operations
    # -----------------------------------------------------------------------

    def snapshot(self) -> Snapshot:
        with self._lock:
            return self._snapshot()

    def propose_move(
        self,
        from_square: str,
        to_square: str,
        promotion: str | None = None,
    ) -> MoveOutcome:
        """
        Validate and apply a human move.

        Args:
            from_square: Source square name, e.g. "e2".
            to_square:   Destination square name, e.g. "e4".
            promotion:   "q", "r", "b" or "n". Only used when the move is a
                         promotion; the configured default applies otherwise.

        Returns:
            MoveOutcome. A rejected proposal leaves the game untouched.
        """
        proposal = MoveProposal(from_square, to_square, promotion)
        with self._lock:
            try:
                move = self._human_move(proposal)
            except IllegalMoveError as exc:
                _log.debug("Rejected %s%s: %s", from_square, to_square, exc)
                return MoveOutcome(False, self._snapshot(), str(exc))

            prior = self._board
            self._apply(move)
            self._open_undo(prior)
            self._clear_error()
            _log.info("Human move=%s fen=%s", move.uci(), self._board.fen())
            self._settle()
            return MoveOutcome(True, self._snapshot())

    def reset(self) -> Snapshot:
        """Start a new game from the configured position. Always allowed."""
        with self._lock:
            self._abandon_search()
            if self._engine_alive and not self._in_flight:
                self._send(cmd_ucinewgame())
            self._new_game()
            return self._snapshot()

    def undo(self) -> bool:
        """
        Restore the position before the last human move.

        Allowed while an undo window is open and no search is outstanding.
        If the engine already replied, its reply is taken back as well.

        Returns:
            True if the position was restored.
        """
        with self._lock:
            window = self._undo
            if window is None or self._turn is TurnPhase.AWAITING_ENGINE:
                return False
            self._drop_undo()
            self._board = window.prior_board
            self._last_move = self._board.peek() if self._board.move_stack else None
            self._clear_error()
            self._status = derive_status(self._board)
            self._turn = TurnPhase.AWAITING_HUMAN
            _log.info("Undo fen=%s", self._board.fen())
            return True

    def request_engine_move(self) -> bool:
        """
        Ask the engine again after a timeout or a bad reply.

        Returns:
            True if a search was requested. False when the game is over, a
            search is already outstanding, there is no engine, or it is not
            the engine's turn.
        """
        with self._lock:
            if self._turn is not TurnPhase.AWAITING_HUMAN or not self._engine_alive:
                return False
            if self._board.turn != self._engine_side:
                return False
            self._error = None
            self._request_search()
            return True

    # -----------------------------------------------------------------------
    # Engine-facing callbacks
    # -----------------------------------------------------------------------

    def on_engine_line(self, line: str) -> None:
        """Handle one line of engine output. Only "bestmove" lines matter."""
        with self._lock:
            if self._closed:
                return
            try:
                best = parse_bestmove(line)
            except ProtocolViolationError as exc:
                if self._take_reply() is not None:
                    self._protocol_violation(exc)
                return
            if best is None:
                return

            request = self._take_reply()
            if request is None:
                return

            if best.is_no_move:
                _log.warning("Engine reports no move for fen=%s", self._board.fen())
                self._settle(dispatch=False)
                if not self._status.is_terminal:
                    self._error = "Engine reported no move in an ongoing game"
                return

            try:
                move = self._engine_move(best.move)
            except ProtocolViolationError as exc:
                self._protocol_violation(exc)
                return

            self._apply(move)
            _log.info("Engine move=%s fen=%s", move.uci(), self._board.fen())
            self._settle(dispatch=False)

    def on_engine_exit(self, returncode: int | None) -> None:
        """The engine's output closed. Unlock the board if it was thinking."""
        with self._lock:
            if self._closed:
                return
            _log.error("Engine exited: returncode=%s", returncode)
            self._engine_alive = False
            self._in_flight.clear()
            self._error = f"Engine stopped (exit code {returncode})"
            if self._pending is not None:
                self._cancel_timeout(self._pending)
                self._pending = None
                self._turn = TurnPhase.AWAITING_HUMAN

    # -----------------------------------------------------------------------
    # Internal helpers: moves and state
    # -----------------------------------------------------------------------

    def _human_move(self, proposal: MoveProposal) -> chess.Move:
        """Turn a human proposal into a legal move, or raise IllegalMoveError."""
        if self._turn is TurnPhase.AWAITING_ENGINE:
            raise IllegalMoveError("engine is thinking")
        if self._turn is TurnPhase.TERMINAL:
            raise IllegalMoveError("game is over")

        try:
            from_sq = chess.parse_square(proposal.from_square)
            to_sq = chess.parse_square(proposal.to_square)
        except ValueError as exc:
            raise IllegalMoveError(f"unknown square: {exc}") from exc

        piece = self._board.piece_at(from_sq)
        if piece is None or piece.color != self._board.turn:
            raise IllegalMoveError(f"no movable piece on {proposal.from_square}")

        promotion = None
        last_rank = 7 if piece.color == chess.WHITE else 0
        if piece.piece_type == chess.PAWN and chess.square_rank(to_sq) == last_rank:
            letter = (proposal.promotion or self.settings.promotion_piece).lower()
            if letter not in PROMOTION_PIECES:
                raise IllegalMoveError(f"cannot promote to {letter!r}")
            promotion = PROMOTION_PIECES[letter]

        move = chess.Move(from_sq, to_sq, promotion=promotion)
        if move not in self._board.legal_moves:
            raise IllegalMoveError(
                f"{proposal.from_square}{proposal.to_square} is not a legal move"
            )
        return move

    def _engine_move(self, text: str) -> chess.Move:
        """Turn a bestmove token into a legal move, or raise ProtocolViolationError."""
        from_name, to_name, letter = split_coordinate_move(text)
        from_sq = chess.parse_square(from_name)
        legal_targets = {
            m.to_square for m in self._board.legal_moves if m.from_square == from_sq
        }
        to_sq = chess.parse_square(to_name)
        if to_sq not in legal_targets:
            raise ProtocolViolationError(f"engine proposed illegal move {text}")
        promotion = PROMOTION_PIECES[letter] if letter else None
        move = chess.Move(from_sq, to_sq, promotion=promotion)
        if move not in self._board.legal_moves:
            raise ProtocolViolationError(f"engine proposed illegal move {text}")
        return move

    def _apply(self, move: chess.Move) -> None:
        board = self._board.copy()
        board.push(move)
        self._board = board
        self._last_move = move

    def _settle(self, dispatch: bool = True) -> None:
        """
        Recompute status and pick the next state.

        Args:
            dispatch: Request a search if the engine is to move. Engine
                      replies pass False; the engine never moves twice.
        """
        self._status = derive_status(self._board)
        if self._status.is_terminal:
            self._abandon_search()
            self._turn = TurnPhase.TERMINAL
            _log.info("Game over: %s", self._status.text)
        elif dispatch and self._engine_alive and self._board.turn == self._engine_side:
            self._request_search()
        else:
            self._turn = TurnPhase.AWAITING_HUMAN

    def _new_game(self) -> None:
        self._drop_undo()
        self._board = chess.Board(self.settings.start_fen)
        self._last_move = None
        self._clear_error()
        self._settle()

    def _open_undo(self, prior: chess.Board) -> None:
        self._drop_undo()
        if self.settings.undo_seconds <= 0:
            return
        window: UndoWindow | None = None

        def expire() -> None:
            with self._lock:
                if self._undo is window:
                    self._undo = None

        window = UndoWindow.open(
            prior, self.settings.undo_seconds, expire, self._scheduler, self._clock
        )
        self._undo = window

    def _drop_undo(self) -> None:
        if self._undo is not None:
            self._undo.cancel()
            self._undo = None

    def _clear_error(self) -> None:
        """Drop the error line, unless it reports an engine that is gone."""
        if self._engine is None or self._engine_alive:
            self._error = None

    def _snapshot(self) -> Snapshot:
        highlights: dict[str, str] = {}
        if self._last_move is not None:
            highlights[chess.square_name(self._last_move.from_square)] = "last-move"
            highlights[chess.square_name(self._last_move.to_square)] = "last-move"
        if self._status.check_square is not None:
            highlights[self._status.check_square] = "check"

        ai_thinking = self._turn is TurnPhase.AWAITING_ENGINE
        game_over = self._turn is TurnPhase.TERMINAL
        return Snapshot(
            fen=self._board.fen(),
            status=self._status,
            turn_phase=self._turn,
            ai_thinking=ai_thinking,
            game_over=game_over,
            interactive=not ai_thinking and not game_over,
            highlights=highlights,
            undo_remaining=self._undo.remaining() if self._undo is not None else None,
            last_move=self._last_move.uci() if self._last_move is not None else None,
            error=self._error,
        )

    # -----------------------------------------------------------------------
    # Internal helpers: search requests
    # -----------------------------------------------------------------------

    def _request_search(self) -> None:
        self._abandon_search()
        self._next_request_id += 1
        request = _SearchRequest(self._next_request_id, self._board.fen())
        request_id = request.request_id
        request.timeout = self._scheduler(
            self.settings.engine_timeout, lambda: self._on_timeout(request_id)
        )
        self._pending = request
        self._turn = TurnPhase.AWAITING_ENGINE
        self._flush_request()

    def _flush_request(self) -> None:
        """Write the pending request once no earlier search is outstanding."""
        request = self._pending
        if request is None or request.sent or self._in_flight:
            return
        try:
            self._engine_send(cmd_position(request.fen))
            self._engine_send(cmd_go_depth(self.settings.search_depth))
        except EngineUnavailableError as exc:
            _log.error("Cannot send search request %d: %s", request.request_id, exc)
            self._cancel_timeout(request)
            self._pending = None
            self._engine_alive = False
            self._error = f"Engine unavailable: {exc}"
            self._turn = TurnPhase.AWAITING_HUMAN
            return
        request.sent = True
        self._in_flight.append(request.request_id)
        _log.debug("Search request %d sent for fen=%s", request.request_id, request.fen)

    def _take_reply(self) -> _SearchRequest | None:
        """
        Match a bestmove to the oldest outstanding search.

        Returns:
            The pending request the reply answers, or None if the reply is
            stale or unexpected. A stale reply frees the engine, so a queued
            request is written here.
        """
        if not self._in_flight:
            _log.warning("Ignoring bestmove with no search outstanding")
            return None
        request_id = self._in_flight.popleft()
        request = self._pending
        if request is None or request.request_id != request_id:
            _log.info("Discarding stale bestmove for request %d", request_id)
            self._flush_request()
            return None
        self._cancel_timeout(request)
        self._pending = None
        return request

    def _abandon_search(self) -> None:
        """Forget the pending request; a search already running is stopped."""
        request = self._pending
        if request is None:
            return
        self._pending = None
        self._cancel_timeout(request)
        if request.sent:
            self._send(cmd_stop())

    def _on_timeout(self, request_id: int) -> None:
        with self._lock:
            request = self._pending
            if request is None or request.request_id != request_id:
                return
            _log.warning(
                "Engine did not answer request %d within %.1fs",
                request_id,
                self.settings.engine_timeout,
            )
            self._abandon_search()
            self._error = f"Engine did not reply within {self.settings.engine_timeout:g}s"
            self._turn = TurnPhase.AWAITING_HUMAN

    def _protocol_violation(self, exc: ProtocolViolationError) -> None:
        _log.error("Protocol violation, reply discarded: %s", exc)
        self._error = f"Engine error: {exc}"
        self._turn = TurnPhase.AWAITING_HUMAN

    def _cancel_timeout(self, request: _SearchRequest) -> None:
        if request.timeout is not None:
            request.timeout.cancel()
            request.timeout = None

    def _engine_send(self, command: str) -> None:
        if self._engine is None or not self._engine_alive:
            raise EngineUnavailableError("engine is not running")
        self._engine.send(command)

    def _send(self, command: str) -> None:
        """Best-effort send for commands whose loss is harmless (stop, ucinewgame)."""
        try:
            self._engine_send(command)
        except EngineUnavailableError as exc:
            _log.debug("Dropped %r: %s", command, exc)
