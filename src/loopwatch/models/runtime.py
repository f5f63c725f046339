"""Dataclass models for classified events and aggregated loop statistics."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Union

from loopwatch.models.enums import EventKind
from loopwatch.models.messages import StreamMessage


def _now() -> datetime:
    return datetime.now(timezone.utc)


# --- event payloads ---------------------------------------------------------


@dataclass(frozen=True, slots=True)
class LoopMarkerPayload:
    iteration: int


@dataclass(frozen=True, slots=True)
class ToolCallPayload:
    name: str
    input: dict[str, Any]
    id: str
    model: str = ""


@dataclass(frozen=True, slots=True)
class ToolResultPayload:
    """Outcome of a tool call. Name and duration are filled in by correlation."""

    tool_use_id: str
    content: str
    is_error: bool
    tool_name: str | None = None
    duration: float | None = None  # seconds
    stdout: str | None = None
    stderr: str | None = None

    @property
    def success(self) -> bool:
        return not self.is_error


@dataclass(frozen=True, slots=True)
class TextPayload:
    text: str
    model: str = ""


@dataclass(frozen=True, slots=True)
class ErrorPayload:
    message: str


@dataclass(frozen=True, slots=True)
class UnknownPayload:
    """Unclassified input: plain text, or well-formed JSON of another shape."""

    text: str | None = None
    document: Any = None


EventPayload = Union[
    LoopMarkerPayload,
    ToolCallPayload,
    ToolResultPayload,
    TextPayload,
    ErrorPayload,
    UnknownPayload,
]


@dataclass(frozen=True, slots=True)
class ParsedEvent:
    """A single classified line.

    ``observed_at`` is the time of classification; the stream carries no
    reliable emission timestamp. ``message`` is the decoded structured
    message the event was derived from, if any.
    """

    kind: EventKind
    payload: EventPayload
    raw_text: str
    observed_at: datetime = field(default_factory=_now)
    message: StreamMessage | None = None


# --- aggregation records ----------------------------------------------------


@dataclass(frozen=True, slots=True)
class PendingCall:
    """A tool invocation still waiting for its result."""

    tool_name: str
    started_at: datetime


@dataclass(frozen=True, slots=True)
class ToolCallRecord:
    """A completed tool call."""

    name: str
    success: bool
    timestamp: datetime
    duration: float | None = None  # seconds, None when the call was never seen


@dataclass(frozen=True, slots=True)
class ModelSwitch:
    from_model: str
    to_model: str
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class SubagentLaunch:
    description: str
    subagent_type: str
    model: str
    timestamp: datetime
    prompt: str = ""


@dataclass(frozen=True, slots=True)
class FileOperation:
    path: str
    operation: str
    timestamp: datetime


@dataclass(slots=True)
class LoopStats:
    """Aggregated statistics for one monitoring session.

    The engine mutates its own instance; everything handed out is a copy
    produced by ``StreamEngine.snapshot()``.
    """

    iteration: int = 0
    start_time: datetime = field(default_factory=_now)
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_cache_read_tokens: int = 0
    total_cache_creation_tokens: int = 0
    tool_calls: list[ToolCallRecord] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    current_model: str = "unknown"
    session_id: str = ""
    last_activity: datetime = field(default_factory=_now)
    last_commit_time: datetime | None = None
    model_switches: list[ModelSwitch] = field(default_factory=list)
    session_changes: int = 0
    subagents: list[SubagentLaunch] = field(default_factory=list)
    file_operations: list[FileOperation] = field(default_factory=list)
    estimated_cost: float = 0.0

    @property
    def success_count(self) -> int:
        return sum(1 for t in self.tool_calls if t.success)

    @property
    def failure_count(self) -> int:
        return len(self.tool_calls) - self.success_count

    @property
    def success_rate(self) -> float:
        """Percentage of successful tool calls (100.0 when none ran yet)."""
        if not self.tool_calls:
            return 100.0
        return self.success_count / len(self.tool_calls) * 100

    @property
    def total_tokens(self) -> int:
        return self.total_input_tokens + self.total_output_tokens

    @property
    def cache_hit_rate(self) -> float:
        """Share of prompt tokens served from cache, as a percentage."""
        prompt = self.total_input_tokens + self.total_cache_read_tokens
        if self.total_input_tokens <= 0 or prompt <= 0:
            return 0.0
        return self.total_cache_read_tokens / prompt * 100

    @property
    def tool_counts(self) -> Counter[str]:
        return Counter(t.name for t in self.tool_calls)
