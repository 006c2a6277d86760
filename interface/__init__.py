"""
Interface package: talking to a UCI chess engine.

Modules:
    uci     — Command formatting and "bestmove" parsing (no I/O).
    process — EngineProcess: the engine as a child process with a stdout
              reader thread.
"""
