"""Enumerations for loopwatch stream models."""

from enum import Enum


class EventKind(str, Enum):
    """Kind of a classified stream line."""

    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    TEXT = "text"
    LOOP_MARKER = "loop_marker"
    ERROR = "error"
    UNKNOWN = "unknown"


class MessageType(str, Enum):
    """Discriminator of a structured stream-json message."""

    ASSISTANT = "assistant"
    USER = "user"


class FileOperationKind(str, Enum):
    """File operation inferred from a tool invocation."""

    CREATE = "create"
    EDIT = "edit"
    READ = "read"
    DELETE = "delete"
