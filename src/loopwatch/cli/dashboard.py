"""Rich terminal dashboard that renders polled snapshots and logged events."""

from __future__ import annotations

import logging
import threading
from collections import deque
from datetime import datetime, timezone

from rich.console import Group
from rich.layout import Layout
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from loopwatch.cli.formatters import (
    describe_event,
    error_details,
    format_duration,
    format_elapsed,
    format_number,
    short_model,
)
from loopwatch.config import DisplayConfig
from loopwatch.models.enums import EventKind
from loopwatch.models.runtime import (
    LoopStats,
    ParsedEvent,
    ToolCallPayload,
    ToolResultPayload,
)

_LEVEL_STYLES = {"info": "blue", "warn": "yellow", "error": "red"}


def _clock() -> str:
    return datetime.now().strftime("%H:%M:%S")


class Dashboard:
    """Holds panel contents and builds a renderable layout on demand.

    Rendering is done by ``rich.live.Live`` from the CLI; this class only
    keeps state for the activity, errors and subagent panels.
    """

    def __init__(self, config: DisplayConfig | None = None) -> None:
        self._config = config or DisplayConfig()
        self._stats: LoopStats | None = None
        self.activity: deque[Text] = deque(maxlen=self._config.log_lines)
        self.errors: deque[Text] = deque(maxlen=self._config.log_lines)
        self.subagents: deque[Text] = deque(maxlen=self._config.log_lines)
        # Log records may arrive from adapter threads
        self._lock = threading.Lock()

    def update_stats(self, stats: LoopStats) -> None:
        self._stats = stats

    def clear_logs(self) -> None:
        with self._lock:
            self.activity.clear()
            self.errors.clear()
            self.subagents.clear()

    def _append(self, target: deque[Text], line: Text) -> None:
        with self._lock:
            target.append(line)

    def log_message(self, message: str, level: str = "info") -> None:
        style = _LEVEL_STYLES.get(level, "white")
        line = Text.from_markup(f"[{style}][{_clock()}][/{style}] {escape(message)}")
        self._append(self.activity, line)
        if level == "error":
            self._append(self.errors, line)

    def log_event(self, event: ParsedEvent) -> None:
        time = event.observed_at.astimezone().strftime("%H:%M:%S")
        payload = event.payload

        if isinstance(payload, ToolCallPayload) and payload.name == "Task":
            params = payload.input
            launch = Text.from_markup(
                f"[cyan][{time}][/cyan] [bold yellow]LAUNCH[/bold yellow] "
                f"\\[{escape(str(params.get('model') or 'opus'))}/"
                f"{escape(str(params.get('subagent_type') or 'general'))}] "
                f"{escape(str(params.get('description') or 'Unknown task'))}"
            )
            self._append(self.subagents, launch)
            return

        if isinstance(payload, ToolResultPayload) and not payload.success:
            name = escape(payload.tool_name or "unknown")
            self._append(
                self.activity,
                Text.from_markup(
                    f"[cyan][{time}][/cyan] [red]{name} failed "
                    f"({format_duration(payload.duration)})[/red]"
                ),
            )
            self._append(
                self.errors,
                Text.from_markup(f"[bold red]\\[{time}] {name} failed[/bold red]"),
            )
            for line in error_details(payload):
                self._append(self.errors, Text(line))
            return

        description = describe_event(event)
        if description is None:
            return
        style = "magenta" if event.kind == EventKind.LOOP_MARKER else "white"
        if event.kind == EventKind.UNKNOWN:
            style = "dim"
        line = Text(f"[{time}] ", style="cyan")
        line.append(description, style=style)
        self._append(self.activity, line)
        if event.kind == EventKind.ERROR:
            self._append(self.errors, line)

    # --- rendering ----------------------------------------------------------

    def _stats_panel(self, stats: LoopStats) -> Panel:
        last_commit = (
            format_elapsed(stats.last_commit_time) + " ago"
            if stats.last_commit_time
            else "none"
        )
        body = Text.from_markup(
            f"[bold]Iteration:[/bold] [green]{stats.iteration}[/green]\n"
            f"[bold]Runtime:[/bold]   {format_elapsed(stats.start_time)}\n"
            f"[bold]Model:[/bold]     [cyan]{escape(short_model(stats.current_model))}[/cyan]\n"
            f"[bold]Tools:[/bold]     [green]{stats.success_count}[/green] ok / "
            f"[red]{stats.failure_count}[/red] failed ({stats.success_rate:.1f}%)\n"
            f"[bold]Subagents:[/bold] [blue]{len(stats.subagents)}[/blue]\n"
            f"[bold]Last Commit:[/bold] [magenta]{last_commit}[/magenta]"
        )
        return Panel(body, title="Loop", border_style="green")

    def _tokens_panel(self, stats: LoopStats) -> Panel:
        body = Text.from_markup(
            f"[bold]Input:[/bold]  [yellow]{format_number(stats.total_input_tokens)}[/yellow]\n"
            f"[bold]Output:[/bold] [green]{format_number(stats.total_output_tokens)}[/green]\n"
            f"[bold]Total:[/bold]  [cyan]{format_number(stats.total_tokens)}[/cyan]\n"
            f"[bold]Cache:[/bold]  {stats.cache_hit_rate:.1f}% hit rate\n"
            f"[bold]Cost:[/bold]   ~${stats.estimated_cost:.2f}"
        )
        return Panel(body, title="Tokens", border_style="yellow")

    def _tools_panel(self, stats: LoopStats) -> Panel:
        table = Table(expand=True, box=None)
        table.add_column("Tool", style="bold", no_wrap=True)
        table.add_column("Status")
        table.add_column("Duration", justify="right")
        table.add_column("Time")

        for call in reversed(stats.tool_calls[-self._config.recent_tools :]):
            table.add_row(
                call.name[:18],
                "[green]ok[/green]" if call.success else "[red]fail[/red]",
                format_duration(call.duration),
                call.timestamp.astimezone().strftime("%H:%M:%S"),
            )

        counts = Text()
        for name, count in stats.tool_counts.most_common(6):
            counts.append(f"{name[:10]}:{count}  ", style="blue")
        return Panel(Group(table, counts), title="Recent Tools", border_style="cyan")

    def _log_panel(self, lines: deque[Text], title: str, style: str) -> Panel:
        with self._lock:
            recent = list(lines)[-30:]
        return Panel(Group(*recent), title=title, border_style=style)

    def render(self) -> Layout:
        stats = self._stats or LoopStats(start_time=datetime.now(timezone.utc))
        layout = Layout()
        layout.split_column(
            Layout(name="top", size=9),
            Layout(name="middle"),
            Layout(name="bottom"),
        )
        layout["top"].split_row(
            Layout(self._stats_panel(stats)),
            Layout(self._tokens_panel(stats)),
            Layout(self._tools_panel(stats), ratio=2),
        )
        layout["middle"].update(self._log_panel(self.activity, "Activity", "white"))
        layout["bottom"].split_row(
            Layout(self._log_panel(self.errors, "Errors", "red")),
            Layout(self._log_panel(self.subagents, "Subagents", "blue")),
        )
        return layout

    def __rich__(self) -> Layout:
        return self.render()


class DashboardLogHandler(logging.Handler):
    """Route loopwatch log records into the dashboard's activity panel."""

    def __init__(self, dashboard: Dashboard) -> None:
        super().__init__()
        self._dashboard = dashboard

    def emit(self, record: logging.LogRecord) -> None:
        if record.levelno >= logging.ERROR:
            level = "error"
        elif record.levelno >= logging.WARNING:
            level = "warn"
        else:
            level = "info"
        try:
            self._dashboard.log_message(self.format(record), level)
        except Exception:
            self.handleError(record)
