"""loopwatch data models."""

from loopwatch.models.enums import EventKind, FileOperationKind, MessageType
from loopwatch.models.messages import (
    AssistantMessage,
    StreamMessage,
    TextBlock,
    TokenUsage,
    ToolOutput,
    ToolResultBlock,
    ToolUseBlock,
    UserMessage,
)
from loopwatch.models.runtime import (
    ErrorPayload,
    FileOperation,
    LoopMarkerPayload,
    LoopStats,
    ModelSwitch,
    ParsedEvent,
    PendingCall,
    SubagentLaunch,
    TextPayload,
    ToolCallPayload,
    ToolCallRecord,
    ToolResultPayload,
    UnknownPayload,
)

__all__ = [
    "EventKind",
    "MessageType",
    "FileOperationKind",
    "TokenUsage",
    "ToolUseBlock",
    "TextBlock",
    "ToolResultBlock",
    "ToolOutput",
    "AssistantMessage",
    "UserMessage",
    "StreamMessage",
    "LoopMarkerPayload",
    "ToolCallPayload",
    "ToolResultPayload",
    "TextPayload",
    "ErrorPayload",
    "UnknownPayload",
    "ParsedEvent",
    "PendingCall",
    "ToolCallRecord",
    "ModelSwitch",
    "SubagentLaunch",
    "FileOperation",
    "LoopStats",
]
