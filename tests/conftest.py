"""
Shared fixtures: a manual timer scheduler and an in-memory engine link.

Neither fixture starts threads, so controller tests are deterministic: engine
replies are delivered by calling FakeEngine.reply(), and timers fire only
when a test calls ManualScheduler.fire().
"""

import sys
from pathlib import Path
from typing import Callable

import pytest

from playground.config import PlaygroundSettings
from playground.controller import TurnController
from playground.errors import EngineUnavailableError

FAKE_ENGINE_SCRIPT = Path(__file__).parent / "fake_engine.py"

# 1.f3 e5 2.g4 Qh4#
FOOLS_MATE_FEN = "rnb1kbnr/pppp1ppp/8/4p3/6Pq/5P2/PPPPP2P/RNBQKBNR w KQkq - 1 3"
# Black to move, no legal move, not in check.
STALEMATE_FEN = "7k/5Q2/6K1/8/8/8/8/8 b - - 0 1"


class ScheduledCall:
    def __init__(self, delay: float, callback: Callable[[], None]) -> None:
        self.delay = delay
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Records timers; a test decides when they fire."""

    def __init__(self) -> None:
        self.calls: list[ScheduledCall] = []

    def __call__(self, delay: float, callback: Callable[[], None]) -> ScheduledCall:
        call = ScheduledCall(delay, callback)
        self.calls.append(call)
        return call

    def pending(self, delay: float | None = None) -> list[ScheduledCall]:
        return [
            c for c in self.calls
            if not c.cancelled and not c.fired and (delay is None or c.delay == delay)
        ]

    def fire(self, delay: float) -> int:
        """Fire every pending timer with this delay. Returns how many fired."""
        due = self.pending(delay)
        for call in due:
            call.fired = True
            call.callback()
        return len(due)


class FakeEngine:
    """An EngineLink that records commands and lets tests inject output."""

    def __init__(self, fail_start: bool = False) -> None:
        self.fail_start = fail_start
        self.sent: list[str] = []
        self.started = False
        self.closed = False
        self.dead = False
        self._on_line: Callable[[str], None] | None = None
        self._on_exit: Callable[[int | None], None] | None = None

    def start(self, on_line: Callable[[str], None], on_exit: Callable[[int | None], None]) -> None:
        if self.fail_start:
            raise EngineUnavailableError("cannot start engine 'missing'")
        self.started = True
        self._on_line = on_line
        self._on_exit = on_exit

    def send(self, command: str) -> None:
        if self.closed or self.dead:
            raise EngineUnavailableError("engine is not running")
        self.sent.append(command)

    def close(self) -> None:
        self.closed = True

    # --- test helpers -------------------------------------------------------

    def reply(self, line: str) -> None:
        assert self._on_line is not None
        self._on_line(line)

    def exit(self, returncode: int | None = 1) -> None:
        assert self._on_exit is not None
        self.dead = True
        self._on_exit(returncode)

    def searches(self) -> list[str]:
        return [c for c in self.sent if c.startswith("go ")]

    def positions(self) -> list[str]:
        return [c for c in self.sent if c.startswith("position ")]


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def settings() -> PlaygroundSettings:
    return PlaygroundSettings(
        engine_command="fake",
        engine_color="black",
        search_depth=10,
        engine_timeout=30.0,
        undo_seconds=5.0,
    )


@pytest.fixture
def make_controller(scheduler: ManualScheduler, engine: FakeEngine):
    """Factory for started controllers; every one is closed at teardown."""
    created: list[TurnController] = []

    def factory(settings: PlaygroundSettings, with_engine: bool = True) -> TurnController:
        ctrl = TurnController(
            settings,
            engine=engine if with_engine else None,
            scheduler=scheduler,
            clock=lambda: 100.0,
        )
        ctrl.start()
        created.append(ctrl)
        return ctrl

    yield factory
    for ctrl in created:
        ctrl.close()


@pytest.fixture
def fake_engine_argv() -> list[str]:
    """Command line of the scripted UCI engine used by subprocess tests."""
    return [sys.executable, str(FAKE_ENGINE_SCRIPT)]
