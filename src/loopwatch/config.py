"""Layered configuration: .loopwatch/config.toml -> LOOPWATCH_* env vars -> defaults."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

try:
    import tomllib  # 3.11+
except ModuleNotFoundError:
    import tomli as tomllib  # type: ignore[no-redef]


@dataclass(frozen=True, slots=True)
class EngineConfig:
    """Stats engine settings."""

    error_truncate: int = 200
    unknown_tool_name: str = "unknown"


@dataclass(frozen=True, slots=True)
class IngestionConfig:
    """Input adapter settings."""

    poll_interval: float = 0.1
    max_line_length: int = 1_048_576
    warn_file_size_mb: int = 50
    max_file_size_mb: int = 100


@dataclass(frozen=True, slots=True)
class DisplayConfig:
    """Dashboard settings."""

    refresh_interval: float = 0.5
    recent_tools: int = 10
    log_lines: int = 200


@dataclass(frozen=True, slots=True)
class RunConfig:
    """Child process settings for ``loopwatch run``."""

    script: str = "./ralph.sh"


@dataclass(frozen=True, slots=True)
class McpConfig:
    """MCP server settings."""

    default_query_limit: int = 20


@dataclass(frozen=True, slots=True)
class LoopwatchConfig:
    """Top-level configuration container."""

    project_path: Path = field(default_factory=Path.cwd)
    engine: EngineConfig = field(default_factory=EngineConfig)
    ingestion: IngestionConfig = field(default_factory=IngestionConfig)
    display: DisplayConfig = field(default_factory=DisplayConfig)
    run: RunConfig = field(default_factory=RunConfig)
    mcp: McpConfig = field(default_factory=McpConfig)

    @property
    def loopwatch_dir(self) -> Path:
        return self.project_path / ".loopwatch"

    @property
    def config_path(self) -> Path:
        return self.loopwatch_dir / "config.toml"

    @classmethod
    def load(cls, project_path: Path | None = None) -> LoopwatchConfig:
        """Load config with layering: TOML file -> env vars -> defaults."""
        project = Path(project_path) if project_path else Path.cwd()
        toml_path = project / ".loopwatch" / "config.toml"

        toml_data: dict = {}
        if toml_path.is_file():
            with open(toml_path, "rb") as f:
                toml_data = tomllib.load(f)

        engine_data = toml_data.get("engine", {})
        ingestion_data = toml_data.get("ingestion", {})
        display_data = toml_data.get("display", {})
        run_data = toml_data.get("run", {})
        mcp_data = toml_data.get("mcp", {})

        # Use literal defaults (slots=True prevents class-level attribute access)
        _engine_defaults = EngineConfig()
        _ingest_defaults = IngestionConfig()
        _display_defaults = DisplayConfig()
        _run_defaults = RunConfig()
        _mcp_defaults = McpConfig()

        engine = EngineConfig(
            error_truncate=int(
                os.environ.get(
                    "LOOPWATCH_ERROR_TRUNCATE",
                    engine_data.get("error_truncate", _engine_defaults.error_truncate),
                )
            ),
            unknown_tool_name=engine_data.get(
                "unknown_tool_name", _engine_defaults.unknown_tool_name
            ),
        )

        ingestion = IngestionConfig(
            poll_interval=float(
                os.environ.get(
                    "LOOPWATCH_POLL_INTERVAL",
                    ingestion_data.get("poll_interval", _ingest_defaults.poll_interval),
                )
            ),
            max_line_length=int(
                os.environ.get(
                    "LOOPWATCH_MAX_LINE_LENGTH",
                    ingestion_data.get(
                        "max_line_length", _ingest_defaults.max_line_length
                    ),
                )
            ),
            warn_file_size_mb=int(
                os.environ.get(
                    "LOOPWATCH_WARN_FILE_SIZE_MB",
                    ingestion_data.get(
                        "warn_file_size_mb", _ingest_defaults.warn_file_size_mb
                    ),
                )
            ),
            max_file_size_mb=int(
                os.environ.get(
                    "LOOPWATCH_MAX_FILE_SIZE_MB",
                    ingestion_data.get(
                        "max_file_size_mb", _ingest_defaults.max_file_size_mb
                    ),
                )
            ),
        )

        display = DisplayConfig(
            refresh_interval=float(
                os.environ.get(
                    "LOOPWATCH_REFRESH_INTERVAL",
                    display_data.get(
                        "refresh_interval", _display_defaults.refresh_interval
                    ),
                )
            ),
            recent_tools=int(
                os.environ.get(
                    "LOOPWATCH_RECENT_TOOLS",
                    display_data.get("recent_tools", _display_defaults.recent_tools),
                )
            ),
            log_lines=int(
                os.environ.get(
                    "LOOPWATCH_LOG_LINES",
                    display_data.get("log_lines", _display_defaults.log_lines),
                )
            ),
        )

        run = RunConfig(
            script=os.environ.get(
                "LOOPWATCH_SCRIPT",
                run_data.get("script", _run_defaults.script),
            ),
        )

        mcp = McpConfig(
            default_query_limit=int(
                os.environ.get(
                    "LOOPWATCH_QUERY_LIMIT",
                    mcp_data.get(
                        "default_query_limit", _mcp_defaults.default_query_limit
                    ),
                )
            ),
        )

        return cls(
            project_path=project,
            engine=engine,
            ingestion=ingestion,
            display=display,
            run=run,
            mcp=mcp,
        )
