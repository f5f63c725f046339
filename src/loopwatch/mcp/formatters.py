"""Markdown formatters for LLM-friendly output."""

from __future__ import annotations

from loopwatch.cli.formatters import format_duration, format_elapsed, format_number
from loopwatch.models.runtime import LoopStats


def format_stats(stats: LoopStats, pending: int = 0) -> str:
    """Format a snapshot as a markdown table."""
    last_commit = (
        format_elapsed(stats.last_commit_time) + " ago" if stats.last_commit_time else "none"
    )
    lines = [
        f"## Loop Stats: iteration {stats.iteration}",
        f"**Model:** `{stats.current_model}`  ",
        f"**Session:** `{stats.session_id or '-'}`  ",
        f"**Runtime:** {format_elapsed(stats.start_time)}",
        "",
        "| Metric | Value |",
        "|--------|-------|",
        f"| Tool calls | {len(stats.tool_calls)} |",
        f"| Succeeded | {stats.success_count} |",
        f"| Failed | {stats.failure_count} |",
        f"| Success rate | {stats.success_rate:.1f}% |",
        f"| Pending calls | {pending} |",
        f"| Input tokens | {format_number(stats.total_input_tokens)} |",
        f"| Output tokens | {format_number(stats.total_output_tokens)} |",
        f"| Cache hit rate | {stats.cache_hit_rate:.1f}% |",
        f"| Est. cost | ${stats.estimated_cost:.2f} |",
        f"| Subagents | {len(stats.subagents)} |",
        f"| Model switches | {len(stats.model_switches)} |",
        f"| Last commit | {last_commit} |",
    ]
    return "\n".join(lines)


def format_errors(errors: list[str], limit: int) -> str:
    """Format the most recent errors as a bulleted list."""
    if not errors:
        return "## Recent Errors\n\nNo errors recorded."

    recent = errors[-limit:] if limit > 0 else []
    lines = [f"## Recent Errors ({len(recent)} of {len(errors)})", ""]
    for e in recent:
        lines.append(f"- {e}")
    return "\n".join(lines)


def format_tools(stats: LoopStats, limit: int) -> str:
    """Format per-tool counts and the most recent calls."""
    if not stats.tool_calls:
        return "No tool calls recorded."

    lines = [
        "## Tool Usage",
        "",
        "| Tool | Calls |",
        "|------|-------|",
    ]
    for name, count in stats.tool_counts.most_common():
        lines.append(f"| {name} | {count} |")

    recent = stats.tool_calls[-limit:] if limit > 0 else []
    lines.extend([
        "",
        "## Recent Calls",
        "",
        "| Tool | Status | Duration | Time |",
        "|------|--------|----------|------|",
    ])
    for call in reversed(recent):
        status = "ok" if call.success else "FAILED"
        lines.append(
            f"| {call.name} | {status} | {format_duration(call.duration)} "
            f"| {call.timestamp.isoformat()} |"
        )
    return "\n".join(lines)


def format_subagents(stats: LoopStats) -> str:
    """Format subagent launches and model switches."""
    if not stats.subagents and not stats.model_switches:
        return "No subagents launched and no model switches."

    lines: list[str] = []
    if stats.subagents:
        lines.extend([
            "## Subagents",
            "",
            "| Time | Model | Type | Description |",
            "|------|-------|------|-------------|",
        ])
        for s in stats.subagents:
            lines.append(
                f"| {s.timestamp.isoformat()} | {s.model} | {s.subagent_type} | {s.description} |"
            )
    if stats.model_switches:
        if lines:
            lines.append("")
        lines.extend(["## Model Switches", ""])
        for m in stats.model_switches:
            lines.append(f"- `{m.timestamp.isoformat()}` {m.from_model} -> {m.to_model}")
    return "\n".join(lines)
