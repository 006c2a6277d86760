"""
Engine process handle: a UCI engine running as a child process.

Threading model:
    The engine is spawned with text pipes. A daemon reader thread iterates
    over its stdout and hands every line to the on_line callback, then calls
    on_exit once the pipe closes. Writes happen on the caller's thread and
    are serialized by a lock, so a timer thread and an HTTP worker can both
    send commands safely.

Lifecycle:
    start() acquires the process, close() releases it. close() is safe to
    call on every exit path, including after the engine has crashed, and the
    handle is a context manager so callers can rely on "with".

Critical rule: the engine's stderr is discarded. Engines print banners and
debug output there, and nothing on stderr is part of the protocol.
"""

import logging
import subprocess
import threading
from typing import Callable, Sequence

from interface.uci import cmd_quit
from playground.constants import ENGINE_QUIT_GRACE
from playground.errors import EngineUnavailableError

_log = logging.getLogger(__name__)

LineCallback = Callable[[str], None]
ExitCallback = Callable[[int | None], None]


class EngineProcess:
    """
    Owns one engine child process and its stdout reader thread.

    Attributes:
        argv:  Command line used to spawn the engine.
        cwd:   Working directory for the engine, or None.
    """

    def __init__(self, argv: Sequence[str], cwd: str | None = None) -> None:
        if not argv:
            raise ValueError("engine command line is empty")
        self.argv: list[str] = list(argv)
        self.cwd = cwd
        self._proc: subprocess.Popen[str] | None = None
        self._reader: threading.Thread | None = None
        self._write_lock = threading.Lock()

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------

    def start(self, on_line: LineCallback, on_exit: ExitCallback) -> None:
        """
        Spawn the engine and start forwarding its output.

        Args:
            on_line: Called on the reader thread with every stripped,
                     non-empty stdout line.
            on_exit: Called on the reader thread once stdout closes, with the
                     process return code (None if it is still shutting down).

        Raises:
            EngineUnavailableError: The binary cannot be executed.
        """
        if self._proc is not None:
            return
        try:
            self._proc = subprocess.Popen(
                self.argv,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
                text=True,
                bufsize=1,
                cwd=self.cwd,
            )
        except OSError as exc:
            raise EngineUnavailableError(f"cannot start engine {self.argv[0]!r}: {exc}") from exc

        _log.info("Engine started: pid=%d argv=%s", self._proc.pid, self.argv)
        proc = self._proc

        def read_lines() -> None:
            """Forward engine stdout until the pipe closes."""
            assert proc.stdout is not None
            try:
                for raw_line in proc.stdout:
                    line = raw_line.strip()
                    if line:
                        on_line(line)
            except (OSError, ValueError) as exc:
                # ValueError: the pipe was closed under us by close().
                _log.debug("Engine stdout reader stopped: %s", exc)
            finally:
                on_exit(self._reap(proc))

        self._reader = threading.Thread(target=read_lines, name="engine-reader", daemon=True)
        self._reader.start()

    def close(self) -> None:
        """
        Ask the engine to quit, then make sure it is gone.

        Sends "quit", waits ENGINE_QUIT_GRACE seconds, and kills the process
        if it is still running. Calling close() twice is harmless.
        """
        proc = self._proc
        if proc is None:
            return
        self._proc = None

        try:
            self._write(proc, cmd_quit())
        except EngineUnavailableError:
            pass  # already dead; the wait below reaps it

        try:
            proc.wait(timeout=ENGINE_QUIT_GRACE)
        except subprocess.TimeoutExpired:
            _log.warning("Engine pid=%d ignored quit; killing it", proc.pid)
            proc.kill()
            proc.wait()

        if proc.stdin is not None:
            try:
                proc.stdin.close()
            except OSError:
                pass  # unflushed data for a process that already exited
        if self._reader is not None and self._reader is not threading.current_thread():
            self._reader.join(timeout=ENGINE_QUIT_GRACE)
        self._reader = None
        _log.info("Engine stopped: pid=%d returncode=%s", proc.pid, proc.returncode)

    def __enter__(self) -> "EngineProcess":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # -----------------------------------------------------------------------
    # I/O
    # -----------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._proc is not None and self._proc.poll() is None

    def send(self, command: str) -> None:
        """
        Write one command line to the engine.

        Raises:
            EngineUnavailableError: The engine was never started, has been
                                    closed, or its stdin is broken.
        """
        proc = self._proc
        if proc is None or proc.poll() is not None:
            raise EngineUnavailableError("engine is not running")
        self._write(proc, command)

    @staticmethod
    def _reap(proc: "subprocess.Popen[str]") -> int | None:
        """Return code of a process whose stdout just closed, None if it lingers."""
        try:
            return proc.wait(timeout=ENGINE_QUIT_GRACE)
        except subprocess.TimeoutExpired:
            return None

    def _write(self, proc: "subprocess.Popen[str]", command: str) -> None:
        with self._write_lock:
            try:
                assert proc.stdin is not None
                proc.stdin.write(command + "\n")
                proc.stdin.flush()
            except (BrokenPipeError, OSError, ValueError) as exc:
                raise EngineUnavailableError(f"cannot write to engine: {exc}") from exc
        _log.debug("engine << %s", command)
