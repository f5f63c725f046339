"""Input adapters: chunk reassembly, stdin, followed files and child processes."""

from __future__ import annotations

import codecs
import logging
import shlex
import subprocess
import threading
from collections.abc import Generator, Iterable
from pathlib import Path
from typing import IO

import psutil

from loopwatch.config import IngestionConfig, LoopwatchConfig
from loopwatch.core.engine import StreamEngine

logger = logging.getLogger("loopwatch.sources")

_MB = 1024 * 1024

# Re-warn about a growing file every this many megabytes
_SIZE_WARNING_STEP_MB = 10


class LineBuffer:
    """Reassemble arbitrary text or byte fragments into complete lines.

    The trailing partial line is held back until its newline arrives.
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""

    def feed(self, chunk: str | bytes) -> list[str]:
        """Add a fragment and return the lines it completed."""
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)

        self._buffer += chunk
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        return [line.rstrip("\r") for line in lines]

    def flush(self) -> list[str]:
        """Return whatever partial line is left and clear the buffer."""
        rest = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        return [rest.rstrip("\r")] if rest else []


def read_stream(
    stream: IO[str], stop_event: threading.Event | None = None
) -> Generator[str, None, None]:
    """Yield lines from a text stream such as stdin until EOF or stop."""
    try:
        for line in stream:
            if stop_event is not None and stop_event.is_set():
                return
            yield line.rstrip("\r\n")
    except (OSError, ValueError) as exc:
        # ValueError: the stream was closed under us during shutdown
        logger.warning("Input stream closed: %s", exc)


def read_file_lines(path: Path, max_line_length: int) -> list[str]:
    """Read every line of a file, clipping overly long lines."""
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            return [line.rstrip("\r\n")[:max_line_length] for line in f]
    except OSError as exc:
        logger.warning("Cannot read %s: %s", path, exc)
        return []


class _SizeMonitor:
    """Log warnings as a followed file grows past the configured limits."""

    def __init__(self, config: IngestionConfig) -> None:
        self._config = config
        self._last_warning_mb = 0.0
        self._over_limit = False

    def check(self, path: Path, size: int) -> None:
        size_mb = size / _MB
        if (
            size_mb > self._config.warn_file_size_mb
            and size_mb - self._last_warning_mb > _SIZE_WARNING_STEP_MB
        ):
            logger.warning("Log file %s is %.1fMB - consider rotating", path, size_mb)
            self._last_warning_mb = size_mb

        if size_mb > self._config.max_file_size_mb and not self._over_limit:
            logger.error(
                "Log file %s exceeds %dMB - performance may degrade",
                path,
                self._config.max_file_size_mb,
            )
            self._over_limit = True


def _read_from(
    path: Path, position: int, buffer: LineBuffer, max_line_length: int
) -> tuple[int, list[str]]:
    """Read bytes appended since ``position``; returns the new position and lines."""
    with open(path, "rb") as f:
        f.seek(position)
        data = f.read()
    lines = buffer.feed(data)
    return position + len(data), [line[:max_line_length] for line in lines]


def follow_file(
    path: Path,
    config: IngestionConfig | None = None,
    stop_event: threading.Event | None = None,
) -> Generator[str, None, None]:
    """Yield the existing lines of a file, then lines appended to it.

    Watching uses watchfiles and ends when ``stop_event`` is set. A file that
    shrinks (truncated or rotated in place) is re-read from the start.
    """
    from watchfiles import watch

    if config is None:
        config = IngestionConfig()

    path = Path(path).resolve()
    buffer = LineBuffer()
    sizes = _SizeMonitor(config)
    position = 0

    def _drain() -> Generator[str, None, None]:
        nonlocal position, buffer
        try:
            size = path.stat().st_size
        except OSError as exc:
            logger.warning("Cannot stat %s: %s", path, exc)
            return

        sizes.check(path, size)
        if size < position:
            logger.info("File %s shrank, re-reading from the start", path)
            position = 0
            buffer = LineBuffer()
        if size == position:
            return

        try:
            position, lines = _read_from(path, position, buffer, config.max_line_length)
        except OSError as exc:
            logger.warning("Cannot read %s: %s", path, exc)
            return
        yield from lines

    yield from _drain()

    debounce_ms = max(int(config.poll_interval * 1000), 50)
    for changes in watch(
        path.parent,
        stop_event=stop_event,
        debounce=debounce_ms,
        recursive=False,
    ):
        if not any(Path(p) == path for _change, p in changes):
            continue
        yield from _drain()


class ChildProcess:
    """Run the loop script and stream its output lines.

    The script is executed directly with its arguments as an argv list (no
    shell), with stdout and stderr piped.
    """

    def __init__(self, script: str, args: Iterable[str] = ()) -> None:
        self.script = script
        self.args = list(args)
        self._proc: subprocess.Popen[str] | None = None

    @property
    def argv(self) -> list[str]:
        return [self.script, *self.args]

    @property
    def command(self) -> str:
        """Shell-quoted command line, for display only."""
        return shlex.join(self.argv)

    @property
    def pid(self) -> int | None:
        return self._proc.pid if self._proc else None

    def start(self) -> None:
        self._proc = subprocess.Popen(
            self.argv,
            stdin=None,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
            bufsize=1,
        )
        logger.debug("Started %s (pid %d)", self.command, self._proc.pid)

    def stream(self, name: str) -> Generator[str, None, None]:
        """Yield lines from ``stdout`` or ``stderr``."""
        if self._proc is None:
            raise RuntimeError("process not started")
        pipe = self._proc.stdout if name == "stdout" else self._proc.stderr
        if pipe is None:
            raise RuntimeError(f"{name} is not piped")
        yield from read_stream(pipe)

    def wait(self) -> int:
        if self._proc is None:
            raise RuntimeError("process not started")
        return self._proc.wait()

    def terminate(self, timeout: float = 3.0) -> None:
        """Terminate the process tree, killing whatever outlives ``timeout``."""
        if self._proc is None or self._proc.poll() is not None:
            return

        try:
            parent = psutil.Process(self._proc.pid)
            procs = parent.children(recursive=True) + [parent]
        except psutil.NoSuchProcess:
            return

        for proc in procs:
            try:
                proc.terminate()
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                logger.debug("Could not terminate pid %d", proc.pid)

        _gone, alive = psutil.wait_procs(procs, timeout=timeout)
        for proc in alive:
            try:
                proc.kill()
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                logger.debug("Could not kill pid %d", proc.pid)


def replay_log(path: Path, config: LoopwatchConfig) -> StreamEngine:
    """Fold every line of a finished log into a fresh engine.

    Raises:
        FileNotFoundError: if ``path`` is not a regular file.
    """
    if not path.is_file():
        raise FileNotFoundError(f"No such log file: {path}")
    engine = StreamEngine(config.engine)
    for line in read_file_lines(path, config.ingestion.max_line_length):
        engine.classify(line)
    return engine
