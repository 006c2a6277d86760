#!/usr/bin/env python3
"""
Probe: measure how long a UCI engine takes to answer at a given depth.

The playground locks the board while the engine thinks, so the search depth
is a trade between strength and waiting time. Run this against the engine
binary you intend to deploy and pick the deepest setting whose worst reply
time you are happy to wait for. It also doubles as a smoke test that the
binary speaks UCI at all.

Usage: python3 tools/probe.py --engine stockfish --depth 12
"""
import argparse
import os
import queue
import shlex
import sys
import time

# Make the repo packages importable when run as `python tools/probe.py`.
_REPO_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _REPO_ROOT not in sys.path:
    sys.path.insert(0, _REPO_ROOT)

import chess

from interface.process import EngineProcess
from interface.uci import cmd_go_depth, cmd_isready, cmd_position, cmd_uci, parse_bestmove
from playground.constants import DEFAULT_ENGINE_COMMAND, DEFAULT_SEARCH_DEPTH
from playground.errors import EngineUnavailableError


def _fen_after(*moves: str) -> str:
    board = chess.Board()
    for uci_move in moves:
        board.push_uci(uci_move)
    return board.fen()


# Positions spanning opening, middlegame and endgame. Fixed so that runs
# against different engines or depths stay comparable.
POSITIONS = [
    ("Start",        chess.STARTING_FEN),
    ("After 1.e4",   _fen_after("e2e4")),
    ("Italian",      _fen_after("e2e4", "e7e5", "g1f3", "b8c6", "f1c4")),
    ("Complex mid",  "r2q1rk1/ppp2ppp/2np1n2/2b1p1B1/2B1P1b1/2NP1N2/PPP2PPP/R2Q1RK1 w - - 0 8"),
    ("Rook ending",  "8/5pk1/6p1/7p/7P/6P1/5PK1/8 w - - 0 1"),
    ("Mated",        "rnb1kbnr/pppp1ppp/8/4p3/6Pq/5P2/PPPPP2P/RNBQKBNR w KQkq - 1 3"),
]


def probe(
    argv: list[str],
    depth: int,
    timeout: float,
    positions: list[tuple[str, str]] = POSITIONS,
) -> list[dict]:
    """
    Search every position once and time the replies.

    Args:
        argv:      Engine command line.
        depth:     Search depth for "go depth".
        timeout:   Seconds to wait for each "bestmove".
        positions: (label, fen) pairs.

    Returns:
        One dict per position with keys: label, move, seconds. move is
        "(none)" when the engine reported no move and "timeout" when it did
        not answer in time.

    Raises:
        EngineUnavailableError: The engine cannot be started or exits.
    """
    lines: queue.Queue[str | None] = queue.Queue()
    results = []

    with EngineProcess(argv) as engine:
        engine.start(lines.put, lambda returncode: lines.put(None))
        engine.send(cmd_uci())
        engine.send(cmd_isready())

        for label, fen in positions:
            engine.send(cmd_position(fen))
            engine.send(cmd_go_depth(depth))
            start = time.monotonic()
            move = "timeout"
            deadline = start + timeout
            while True:
                try:
                    line = lines.get(timeout=max(0.0, deadline - time.monotonic()))
                except queue.Empty:
                    break
                if line is None:
                    raise EngineUnavailableError("engine exited during the probe")
                best = parse_bestmove(line)
                if best is not None:
                    move = best.move or "(none)"
                    break
            results.append(
                {"label": label, "move": move, "seconds": time.monotonic() - start}
            )
            if move == "timeout":
                break

    return results


def main(args: list[str] | None = None) -> int:
    """Run the probe and print a summary table."""
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--engine", default=DEFAULT_ENGINE_COMMAND, help="engine command line")
    parser.add_argument("--depth", type=int, default=DEFAULT_SEARCH_DEPTH)
    parser.add_argument("--timeout", type=float, default=60.0, help="seconds per position")
    opts = parser.parse_args(args)

    print(f"Engine: {opts.engine}  depth: {opts.depth}")
    print()
    print(f"{'Position':<14} {'Move':<8} {'Seconds':>8}")
    print("-" * 32)

    try:
        results = probe(shlex.split(opts.engine), opts.depth, opts.timeout)
    except EngineUnavailableError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    for r in results:
        print(f"{r['label']:<14} {r['move']:<8} {r['seconds']:>8.3f}")

    answered = [r for r in results if r["move"] != "timeout"]
    if answered:
        print("-" * 32)
        print(f"{'WORST':<14} {'':<8} {max(r['seconds'] for r in answered):>8.3f}")
    return 0 if len(answered) == len(results) else 2


if __name__ == "__main__":
    sys.exit(main())
