"""
Scheduling seam for the controller's timers.

The undo countdown and the engine reply timeout are single cancellable
callbacks. Production code backs them with daemon ``threading.Timer`` threads;
tests pass a scheduler that fires callbacks on demand.
"""

import threading
from typing import Callable, Protocol


class Cancellable(Protocol):
    def cancel(self) -> None: ...


Scheduler = Callable[[float, Callable[[], None]], Cancellable]


def thread_timer(delay: float, callback: Callable[[], None]) -> threading.Timer:
    """Run ``callback`` once after ``delay`` seconds on a daemon thread."""
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    timer.start()
    return timer
