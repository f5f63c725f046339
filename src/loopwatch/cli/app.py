"""Typer CLI for loopwatch."""

from __future__ import annotations

import json
import logging
import queue
import signal
import sys
import threading
import time
from collections.abc import Iterator
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.live import Live

from loopwatch.cli.dashboard import Dashboard, DashboardLogHandler
from loopwatch.cli.formatters import format_summary, stats_to_dict
from loopwatch.config import LoopwatchConfig
from loopwatch.core.engine import StreamEngine
from loopwatch.core.sources import ChildProcess, follow_file, read_stream, replay_log
from loopwatch.logging_setup import setup_logging
from loopwatch.models.enums import EventKind
from loopwatch.models.runtime import ErrorPayload, ParsedEvent

app = typer.Typer(
    name="loopwatch",
    help="Live monitor for agent loop stream-json output.",
    no_args_is_help=True,
)
console = Console(stderr=True)
logger = logging.getLogger("loopwatch.cli")

_VERBOSE = False

# Queue item kinds pushed by reader threads
_LINE = "line"
_STDERR = "stderr"
_NOTICE = "notice"
_ERROR = "error"
_EOF = "eof"


@app.callback()
def _main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging")] = False,
) -> None:
    global _VERBOSE  # noqa: PLW0603
    _VERBOSE = verbose


def _config() -> LoopwatchConfig:
    return LoopwatchConfig.load()


def _log_level() -> int:
    return logging.DEBUG if _VERBOSE else logging.INFO


def _pump(items: queue.Queue, kind: str, lines: Iterator[str]) -> None:
    """Push every line from ``lines`` onto the queue, then an EOF marker."""
    try:
        for line in lines:
            items.put((kind, line))
    except Exception as exc:
        logger.exception("Input reader failed")
        items.put((_ERROR, f"Input reader failed: {exc}"))
    finally:
        items.put((_EOF, kind))


def _start_reader(items: queue.Queue, kind: str, lines: Iterator[str]) -> threading.Thread:
    thread = threading.Thread(target=_pump, args=(items, kind, lines), daemon=True)
    thread.start()
    return thread


def _monitor(
    config: LoopwatchConfig,
    items: queue.Queue,
    readers: int,
    stop_event: threading.Event,
    banner: str,
) -> StreamEngine:
    """Drain reader output into the engine and render until stopped.

    The engine is only touched from this thread.
    """
    engine = StreamEngine(config.engine)
    dashboard = Dashboard(config.display)
    handler = DashboardLogHandler(dashboard)
    handler.setFormatter(logging.Formatter("%(message)s"))
    pkg_logger = logging.getLogger("loopwatch")
    pkg_logger.addHandler(handler)
    pkg_logger.setLevel(_log_level())

    def _on_signal(signum, _frame) -> None:
        stop_event.set()

    previous = {
        sig: signal.signal(sig, _on_signal) for sig in (signal.SIGINT, signal.SIGTERM)
    }

    dashboard.log_message(banner)
    refresh = config.display.refresh_interval
    open_readers = readers

    def _handle(kind: str, value) -> None:
        nonlocal open_readers
        if kind == _EOF:
            open_readers -= 1
            if open_readers == 0:
                dashboard.log_message("Input stream closed")
        elif kind == _ERROR:
            event = ParsedEvent(EventKind.ERROR, ErrorPayload(value), value)
            engine.apply(event)
            dashboard.log_event(event)
        elif kind == _STDERR:
            dashboard.log_message(value, "warn")
        elif kind == _NOTICE:
            level, text = value
            dashboard.log_message(text, level)
        else:
            event = engine.classify(value)
            if event is not None:
                dashboard.log_event(event)

    try:
        with Live(dashboard, console=Console(), screen=True, auto_refresh=False) as live:
            deadline = time.monotonic() + refresh
            while not stop_event.is_set():
                timeout = max(deadline - time.monotonic(), 0.0)
                try:
                    _handle(*items.get(timeout=timeout))
                except queue.Empty:
                    pass

                if time.monotonic() >= deadline:
                    dashboard.update_stats(engine.snapshot())
                    live.refresh()
                    deadline = time.monotonic() + refresh
    finally:
        pkg_logger.removeHandler(handler)
        for sig, old in previous.items():
            signal.signal(sig, old)

    return engine


@app.command()
def watch() -> None:
    """Monitor stream-json read from stdin."""
    config = _config()
    items: queue.Queue = queue.Queue()
    stop_event = threading.Event()

    _start_reader(items, _LINE, read_stream(sys.stdin, stop_event))
    _monitor(config, items, 1, stop_event, "Reading from stdin... (pipe ralph.sh output here)")


@app.command("file")
def follow(
    path: Annotated[Path, typer.Argument(help="Log file to follow")],
) -> None:
    """Monitor a log file, following appended lines."""
    config = _config()
    if not path.is_file():
        console.print(f"[red]File not found:[/red] {path}")
        raise typer.Exit(1)

    items: queue.Queue = queue.Queue()
    stop_event = threading.Event()
    _start_reader(items, _LINE, follow_file(path, config.ingestion, stop_event))
    _monitor(config, items, 1, stop_event, f"Watching file: {path}")


@app.command(context_settings={"allow_extra_args": True, "ignore_unknown_options": True})
def run(
    ctx: typer.Context,
    script: Annotated[
        Optional[str], typer.Option("--script", help="Loop script to run")
    ] = None,
) -> None:
    """Run the loop script and monitor its output."""
    config = _config()
    child = ChildProcess(script or config.run.script, ctx.args)
    items: queue.Queue = queue.Queue()
    stop_event = threading.Event()

    if not Path(child.script).exists():
        items.put((_NOTICE, ("error", f"{child.script} not found in current directory")))

    try:
        child.start()
    except OSError as exc:
        console.print(f"[red]Failed to start {child.command}:[/red] {exc}")
        raise typer.Exit(1)

    _start_reader(items, _LINE, child.stream("stdout"))
    _start_reader(items, _STDERR, child.stream("stderr"))

    def _wait() -> None:
        code = child.wait()
        level = "info" if code == 0 else "error"
        items.put((_NOTICE, (level, f"{child.script} exited with code {code}")))

    threading.Thread(target=_wait, daemon=True).start()

    try:
        _monitor(config, items, 2, stop_event, f"Starting {child.command}")
    finally:
        child.terminate()


@app.command()
def summary(
    path: Annotated[Path, typer.Argument(help="Complete log file to summarize")],
    as_json: Annotated[bool, typer.Option("--json", help="Emit JSON")] = False,
) -> None:
    """Classify a finished log once and print the final stats."""
    setup_logging(_log_level())
    config = _config()
    if not path.is_file():
        console.print(f"[red]File not found:[/red] {path}")
        raise typer.Exit(1)

    engine = replay_log(path, config)
    stats = engine.snapshot()

    if as_json:
        typer.echo(json.dumps(stats_to_dict(stats), indent=2))
        return

    typer.echo(format_summary(stats))
    if engine.pending_count:
        typer.echo(f"\nUnfinished tool calls: {engine.pending_count}")


def main() -> None:
    """Entry point for the loopwatch CLI."""
    app()


if __name__ == "__main__":
    main()
