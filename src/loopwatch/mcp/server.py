"""FastMCP server factory with tools for inspecting loop logs."""

from __future__ import annotations

from pathlib import Path

from loopwatch.config import LoopwatchConfig
from loopwatch.core.sources import replay_log
from loopwatch.mcp.formatters import (
    format_errors,
    format_stats,
    format_subagents,
    format_tools,
)


def create_server(config: LoopwatchConfig | None = None):
    """Create and return a configured FastMCP server instance.

    Args:
        config: Optional pre-loaded config. If None, loads from cwd.
    """
    from mcp.server.fastmcp import FastMCP

    mcp = FastMCP("loopwatch", instructions="Statistics for agent loop stream-json logs")
    _config = config or LoopwatchConfig.load()

    def _resolve(path: str) -> Path:
        p = Path(path)
        return p if p.is_absolute() else _config.project_path / p

    @mcp.tool()
    def loopwatch_stats(path: str) -> str:
        """Summarize a loop log: iteration, model, tokens, tool success rate.

        Args:
            path: Log file with stream-json output (relative to the project)
        """
        try:
            engine = replay_log(_resolve(path), _config)
            return format_stats(engine.snapshot(), engine.pending_count)
        except OSError as exc:
            return f"Error reading log: {exc}"

    @mcp.tool()
    def loopwatch_errors(path: str, limit: int | None = None) -> str:
        """List the most recent tool errors in a loop log.

        Args:
            path: Log file with stream-json output
            limit: Max entries to return (default from config)
        """
        limit_val = limit if limit is not None else _config.mcp.default_query_limit
        try:
            stats = replay_log(_resolve(path), _config).snapshot()
            return format_errors(stats.errors, limit_val)
        except OSError as exc:
            return f"Error reading log: {exc}"

    @mcp.tool()
    def loopwatch_tools(path: str, limit: int | None = None) -> str:
        """Show per-tool call counts and the most recent calls.

        Args:
            path: Log file with stream-json output
            limit: Max recent calls to return (default from config)
        """
        limit_val = limit if limit is not None else _config.mcp.default_query_limit
        try:
            stats = replay_log(_resolve(path), _config).snapshot()
            return format_tools(stats, limit_val)
        except OSError as exc:
            return f"Error reading log: {exc}"

    @mcp.tool()
    def loopwatch_subagents(path: str) -> str:
        """List subagent launches and model switches in a loop log.

        Args:
            path: Log file with stream-json output
        """
        try:
            stats = replay_log(_resolve(path), _config).snapshot()
            return format_subagents(stats)
        except OSError as exc:
            return f"Error reading log: {exc}"

    return mcp


def main() -> None:
    """Entry point for loopwatch-mcp (stdio transport)."""
    server = create_server()
    server.run()


if __name__ == "__main__":
    main()
