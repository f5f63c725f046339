"""Text formatters for stats snapshots and events."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from loopwatch.models.runtime import (
    ErrorPayload,
    LoopMarkerPayload,
    LoopStats,
    ParsedEvent,
    TextPayload,
    ToolCallPayload,
    ToolResultPayload,
    UnknownPayload,
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def format_elapsed(since: datetime, now: datetime | None = None) -> str:
    """Elapsed time as ``1h 2m 3s`` / ``2m 3s`` / ``3s``."""
    seconds = max(int(((now or _now()) - since).total_seconds()), 0)
    minutes, secs = divmod(seconds, 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def format_duration(seconds: float | None) -> str:
    if seconds is None:
        return "-"
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}m {secs}s"


def format_number(n: int) -> str:
    """Compact token count: 950, 12.3K, 4.56M."""
    if n >= 1_000_000:
        return f"{n / 1_000_000:.2f}M"
    if n >= 1_000:
        return f"{n / 1_000:.1f}K"
    return str(n)


def short_model(model: str) -> str:
    """``claude-opus-4-1-20250805`` -> ``claude-opus``."""
    return "-".join(model.split("-")[:2])


def _clip(text: str, limit: int) -> str:
    text = text.replace("\n", " ")
    return text if len(text) <= limit else text[: limit - 3] + "..."


def _tool_detail(params: dict[str, Any]) -> str:
    if "command" in params:
        return ": " + _clip(str(params["command"]), 40)
    if "description" in params:
        return ": " + _clip(str(params["description"]), 40)
    if "file_path" in params:
        return ": " + _clip(str(params["file_path"]), 60)
    if "pattern" in params:
        return ": " + _clip(str(params["pattern"]), 40)
    return ""


def describe_event(event: ParsedEvent) -> str | None:
    """One-line description of an event for the activity log.

    Returns None for events that are not worth showing.
    """
    payload = event.payload
    if isinstance(payload, LoopMarkerPayload):
        return f"=== LOOP {payload.iteration} ==="
    if isinstance(payload, ToolCallPayload):
        return f"-> {payload.name}{_tool_detail(payload.input)}"
    if isinstance(payload, ToolResultPayload):
        name = payload.tool_name or "unknown"
        status = "ok" if payload.success else "FAILED"
        return f"<- {name} {status} ({format_duration(payload.duration)})"
    if isinstance(payload, TextPayload):
        first = payload.text.strip().split("\n")[0] if payload.text.strip() else ""
        return _clip(first, 100) if first else None
    if isinstance(payload, ErrorPayload):
        return f"! {_clip(payload.message, 100)}"
    if isinstance(payload, UnknownPayload) and payload.text:
        return _clip(payload.text, 100)
    return None


def error_details(payload: ToolResultPayload, max_lines: int = 10) -> list[str]:
    """Failure details for the errors panel: stderr, content, then stdout."""
    sections: list[str] = []
    for title, body in (
        ("STDERR", payload.stderr),
        ("ERROR", payload.content),
        ("STDOUT", payload.stdout),
    ):
        if body and body.strip():
            sections.append(f"{title}:")
            sections.extend(f"  {line}" for line in body.strip().split("\n")[:max_lines])
    return sections


def format_summary(stats: LoopStats, now: datetime | None = None) -> str:
    """Plain-text summary of a snapshot."""
    last_commit = (
        format_elapsed(stats.last_commit_time, now) + " ago"
        if stats.last_commit_time
        else "none"
    )
    lines = [
        f"Iteration:    {stats.iteration}",
        f"Runtime:      {format_elapsed(stats.start_time, now)}",
        f"Model:        {stats.current_model}",
        f"Session:      {stats.session_id or '-'}",
        f"Tools:        {stats.success_count} ok / {stats.failure_count} failed "
        f"({stats.success_rate:.1f}%)",
        f"Subagents:    {len(stats.subagents)}",
        f"Last commit:  {last_commit}",
        "",
        f"Input:        {format_number(stats.total_input_tokens)}",
        f"Output:       {format_number(stats.total_output_tokens)}",
        f"Total:        {format_number(stats.total_tokens)}",
        f"Cache read:   {format_number(stats.total_cache_read_tokens)}",
        f"Cache write:  {format_number(stats.total_cache_creation_tokens)}",
        f"Cache hits:   {stats.cache_hit_rate:.1f}%",
        f"Est. cost:    ${stats.estimated_cost:.2f}",
    ]
    if stats.errors:
        lines.append("")
        lines.append(f"Errors ({len(stats.errors)}):")
        lines.extend(f"  - {_clip(e, 100)}" for e in stats.errors[-5:])
    return "\n".join(lines)


def stats_to_dict(stats: LoopStats) -> dict[str, Any]:
    """JSON-serializable view of a snapshot."""

    def _iso(dt: datetime | None) -> str | None:
        return dt.isoformat() if dt else None

    return {
        "iteration": stats.iteration,
        "start_time": _iso(stats.start_time),
        "total_input_tokens": stats.total_input_tokens,
        "total_output_tokens": stats.total_output_tokens,
        "total_cache_read_tokens": stats.total_cache_read_tokens,
        "total_cache_creation_tokens": stats.total_cache_creation_tokens,
        "tool_calls": [
            {
                "name": t.name,
                "success": t.success,
                "timestamp": _iso(t.timestamp),
                "duration": t.duration,
            }
            for t in stats.tool_calls
        ],
        "errors": list(stats.errors),
        "current_model": stats.current_model,
        "session_id": stats.session_id,
        "last_activity": _iso(stats.last_activity),
        "last_commit_time": _iso(stats.last_commit_time),
        "model_switches": [
            {"from": m.from_model, "to": m.to_model, "timestamp": _iso(m.timestamp)}
            for m in stats.model_switches
        ],
        "session_changes": stats.session_changes,
        "subagents": [
            {
                "description": s.description,
                "subagent_type": s.subagent_type,
                "model": s.model,
                "timestamp": _iso(s.timestamp),
            }
            for s in stats.subagents
        ],
        "file_operations": [
            {"path": f.path, "operation": f.operation, "timestamp": _iso(f.timestamp)}
            for f in stats.file_operations
        ],
        "estimated_cost": round(stats.estimated_cost, 4),
    }
