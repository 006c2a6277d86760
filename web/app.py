"""
FastAPI web application for the chess playground.

Exposes the turn controller as a small JSON API and serves the chessboard.js
page that drives it. The page proposes moves on drop, snaps the piece back
when the API rejects them, and polls the state while the engine thinks.

Architecture notes:
- One game per process: the controller lives on app.state and is created in
  the lifespan handler, so the engine process is started with the app and
  terminated on shutdown on every exit path.
- Sync endpoints (not async): every route takes the controller's lock, and
  FastAPI runs sync handlers in its thread pool, away from the event loop.
- Rejected moves are a normal outcome, not an HTTP error: /api/move answers
  200 with accepted=false. Malformed input (unknown squares, bad promotion
  letters) is rejected by the request model with 422.
- Static files mounted LAST: route registration is first-match, so API routes
  must be registered before the StaticFiles catch-all.
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Callable

import chess
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, field_validator

from interface.process import EngineProcess
from playground.config import PlaygroundSettings
from playground.constants import PROMOTION_PIECES
from playground.controller import Snapshot, TurnController

# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------

logging.basicConfig(level=logging.INFO)
_log = logging.getLogger(__name__)

# Resolved from this file, so the app works from any working directory.
_STATIC_DIR = Path(__file__).parent / "static"

ControllerFactory = Callable[[], TurnController]


def default_controller() -> TurnController:
    """Build a controller from CHESS_PLAYGROUND_* environment variables."""
    settings = PlaygroundSettings.from_env()
    engine = EngineProcess(settings.engine_argv) if settings.engine_command else None
    return TurnController(settings, engine=engine)


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------


class MoveRequest(BaseModel):
    """
    A move proposal from the board.

    Fields:
        from_square: Square the piece was dragged from ("e2").
        to_square:   Square it was dropped on ("e4").
        promotion:   Piece letter for a promoting pawn (q, r, b, n). When
                     omitted the configured default is used.
    """

    from_square: str
    to_square: str
    promotion: str | None = None

    @field_validator("from_square", "to_square")
    @classmethod
    def check_square(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in chess.SQUARE_NAMES:
            raise ValueError(f"not a square: {v!r}")
        return v

    @field_validator("promotion")
    @classmethod
    def check_promotion(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip().lower()
        if v not in PROMOTION_PIECES:
            raise ValueError(f"promotion must be one of {sorted(PROMOTION_PIECES)}")
        return v


class StateResponse(BaseModel):
    """
    Everything the board page renders.

    Fields:
        fen:            Current position.
        status:         Status line ("White to move", "Checkmate! Black wins").
        phase:          ongoing, check, checkmate, stalemate or draw.
        turn_phase:     awaiting_human, awaiting_engine or terminal.
        side_to_move:   "white" or "black".
        winner:         "white"/"black" after checkmate, else None.
        ai_thinking:    True while the engine is searching.
        game_over:      True once the game has ended.
        interactive:    Whether pieces may be dragged.
        highlights:     Square -> "check" or "last-move".
        undo_remaining: Seconds left to undo, None when undo is unavailable.
        last_move:      Last move in coordinate notation.
        error:          Engine problem to display, if any.
    """

    fen: str
    status: str
    phase: str
    turn_phase: str
    side_to_move: str
    winner: str | None
    ai_thinking: bool
    game_over: bool
    interactive: bool
    highlights: dict[str, str]
    undo_remaining: float | None
    last_move: str | None
    error: str | None

    @classmethod
    def from_snapshot(cls, snap: Snapshot) -> "StateResponse":
        status = snap.status
        return cls(
            fen=snap.fen,
            status=status.text,
            phase=status.phase.value,
            turn_phase=snap.turn_phase.value,
            side_to_move=chess.COLOR_NAMES[status.side_to_move],
            winner=chess.COLOR_NAMES[status.winner] if status.winner is not None else None,
            ai_thinking=snap.ai_thinking,
            game_over=snap.game_over,
            interactive=snap.interactive,
            highlights=snap.highlights,
            undo_remaining=snap.undo_remaining,
            last_move=snap.last_move,
            error=snap.error,
        )


class MoveResponse(BaseModel):
    """
    Result of a move proposal.

    Fields:
        accepted: False means the board must snap the piece back.
        reason:   Why the move was rejected.
        state:    Game state after the proposal.
    """

    accepted: bool
    reason: str | None = None
    state: StateResponse


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def get_controller(request: Request) -> TurnController:
    return request.app.state.controller


def create_app(controller_factory: ControllerFactory = default_controller) -> FastAPI:
    """
    Build the FastAPI app around a turn controller.

    Args:
        controller_factory: Called once at startup. Tests pass a factory that
                            wires a fake engine.

    Returns:
        The configured FastAPI application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        controller = controller_factory()
        controller.start()
        app.state.controller = controller
        _log.info("Playground ready: %s", controller.snapshot().status.text)
        try:
            yield
        finally:
            # Waits for the engine to quit; keep it off the event loop.
            await run_in_threadpool(controller.close)

    app = FastAPI(title="Chess Playground", version="1.0.0", lifespan=lifespan)

    # -----------------------------------------------------------------------
    # API routes (registered BEFORE StaticFiles mount)
    # -----------------------------------------------------------------------

    @app.get("/api/state", response_model=StateResponse)
    def api_state(controller: TurnController = Depends(get_controller)) -> StateResponse:
        """Current position and UI flags. Polled while the engine thinks."""
        return StateResponse.from_snapshot(controller.snapshot())

    @app.post("/api/move", response_model=MoveResponse)
    def api_move(
        move: MoveRequest,
        controller: TurnController = Depends(get_controller),
    ) -> MoveResponse:
        """
        Propose a human move.

        The move is validated by the rules oracle. If it is accepted and the
        engine plays the side now to move, the engine search starts before
        this returns, so the response already has ai_thinking=true.
        """
        outcome = controller.propose_move(move.from_square, move.to_square, move.promotion)
        return MoveResponse(
            accepted=outcome.accepted,
            reason=outcome.reason,
            state=StateResponse.from_snapshot(outcome.snapshot),
        )

    @app.post("/api/reset", response_model=StateResponse)
    def api_reset(controller: TurnController = Depends(get_controller)) -> StateResponse:
        """Start a new game. Any engine reply still on its way is discarded."""
        return StateResponse.from_snapshot(controller.reset())

    @app.post("/api/undo", response_model=StateResponse)
    def api_undo(controller: TurnController = Depends(get_controller)) -> StateResponse:
        """
        Take back the last human move (and the engine's reply to it).

        Raises:
            HTTPException 409: No undo window is open, or the engine is
                               still thinking.
        """
        if not controller.undo():
            raise HTTPException(status_code=409, detail="Nothing to undo")
        return StateResponse.from_snapshot(controller.snapshot())

    @app.post("/api/engine-move", response_model=StateResponse)
    def api_engine_move(controller: TurnController = Depends(get_controller)) -> StateResponse:
        """
        Ask the engine to move again after a timeout or engine error.

        Raises:
            HTTPException 409: It is not the engine's turn, the game is over,
                               or no engine is running.
        """
        if not controller.request_engine_move():
            raise HTTPException(status_code=409, detail="The engine cannot move now")
        return StateResponse.from_snapshot(controller.snapshot())

    @app.get("/", include_in_schema=False)
    def serve_root() -> FileResponse:
        """Serve the board page."""
        return FileResponse(_STATIC_DIR / "index.html")

    # -----------------------------------------------------------------------
    # Static files last: the mount would shadow any route registered after it.
    # -----------------------------------------------------------------------

    app.mount("/static", StaticFiles(directory=_STATIC_DIR), name="static")
    return app


app = create_app()
