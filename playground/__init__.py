"""
Chess playground core package.

This package sequences a game between a human at the board and an optional
UCI engine. Move legality, check and mate detection are delegated to
python-chess; move selection is delegated to the engine.

Modules:
    constants  — Defaults for search depth, timeouts, undo and promotion
    config     — PlaygroundSettings (pydantic), loaded from the environment
    errors     — Exception taxonomy
    status     — Position -> GameStatus derivation
    timers     — Cancellable one-shot timer seam
    undo       — Undo window with its countdown
    controller — Turn controller state machine
"""
