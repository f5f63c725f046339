"""Frozen dataclass models for the two structured stream-json message shapes."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union


@dataclass(frozen=True, slots=True)
class TokenUsage:
    """Token counters reported on an assistant turn. Absent fields are 0."""

    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_input_tokens: int = 0
    cache_read_input_tokens: int = 0


@dataclass(frozen=True, slots=True)
class ToolUseBlock:
    """A tool invocation item inside assistant content."""

    id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class TextBlock:
    """A free-text item inside assistant content."""

    text: str


@dataclass(frozen=True, slots=True)
class ToolResultBlock:
    """A tool result item inside user content."""

    tool_use_id: str
    content: str = ""
    is_error: bool = False


@dataclass(frozen=True, slots=True)
class ToolOutput:
    """Side-channel stdout/stderr attached to a user turn."""

    stdout: str | None = None
    stderr: str | None = None
    interrupted: bool = False


@dataclass(frozen=True, slots=True)
class AssistantMessage:
    """An assistant turn: model, usage and content items."""

    model: str = ""
    session_id: str = ""
    usage: TokenUsage = field(default_factory=TokenUsage)
    content: tuple[ToolUseBlock | TextBlock, ...] = ()
    message_id: str = ""
    uuid: str = ""

    @property
    def tool_uses(self) -> list[ToolUseBlock]:
        return [c for c in self.content if isinstance(c, ToolUseBlock)]

    @property
    def texts(self) -> list[TextBlock]:
        return [c for c in self.content if isinstance(c, TextBlock)]


@dataclass(frozen=True, slots=True)
class UserMessage:
    """A user turn carrying tool results."""

    session_id: str = ""
    content: tuple[ToolResultBlock, ...] = ()
    tool_use_result: ToolOutput | None = None
    uuid: str = ""

    @property
    def first_result(self) -> ToolResultBlock | None:
        return self.content[0] if self.content else None


# Closed set of structured messages the classifier understands.
StreamMessage = Union[AssistantMessage, UserMessage]
