"""Line classification: loop markers, stream-json messages and plain text."""

from __future__ import annotations

import json
import math
import re
from datetime import datetime, timezone
from typing import Any

from loopwatch.models.enums import EventKind, MessageType
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
    LoopMarkerPayload,
    ParsedEvent,
    TextPayload,
    ToolCallPayload,
    ToolResultPayload,
    UnknownPayload,
)

# ========== LOOP 7 ==========
LOOP_MARKER_RE = re.compile(r"={10,}\s*LOOP\s*(\d+)\s*={10,}")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _as_int(value: Any) -> int:
    """Coerce a usage counter to a non-negative int; malformed values count as 0."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return max(value, 0)
    if isinstance(value, float) and math.isfinite(value):
        return max(int(value), 0)
    return 0


def _as_str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _flatten_content(content: Any) -> str:
    """Tool result content is either a string or a list of text blocks."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for item in content:
            if isinstance(item, dict) and isinstance(item.get("text"), str):
                parts.append(item["text"])
            elif isinstance(item, str):
                parts.append(item)
        return "\n".join(parts)
    return ""


def _decode_usage(raw: Any) -> TokenUsage:
    if not isinstance(raw, dict):
        return TokenUsage()
    return TokenUsage(
        input_tokens=_as_int(raw.get("input_tokens")),
        output_tokens=_as_int(raw.get("output_tokens")),
        cache_creation_input_tokens=_as_int(raw.get("cache_creation_input_tokens")),
        cache_read_input_tokens=_as_int(raw.get("cache_read_input_tokens")),
    )


def _decode_assistant(doc: dict, body: dict) -> AssistantMessage:
    content: list[ToolUseBlock | TextBlock] = []
    raw_content = body.get("content")
    items = raw_content if isinstance(raw_content, list) else []
    for item in items:
        if not isinstance(item, dict):
            continue
        item_type = item.get("type")
        if item_type == "tool_use":
            tool_input = item.get("input")
            content.append(
                ToolUseBlock(
                    id=_as_str(item.get("id")),
                    name=_as_str(item.get("name")),
                    input=tool_input if isinstance(tool_input, dict) else {},
                )
            )
        elif item_type == "text":
            content.append(TextBlock(text=_as_str(item.get("text"))))

    return AssistantMessage(
        model=_as_str(body.get("model")),
        session_id=_as_str(doc.get("session_id")),
        usage=_decode_usage(body.get("usage")),
        content=tuple(content),
        message_id=_as_str(body.get("id")),
        uuid=_as_str(doc.get("uuid")),
    )


def _decode_user(doc: dict, body: dict) -> UserMessage:
    results = []
    raw_content = body.get("content")
    if isinstance(raw_content, list):
        for item in raw_content:
            if isinstance(item, dict) and item.get("type") == "tool_result":
                results.append(
                    ToolResultBlock(
                        tool_use_id=_as_str(item.get("tool_use_id")),
                        content=_flatten_content(item.get("content")),
                        is_error=bool(item.get("is_error", False)),
                    )
                )

    output = None
    side = doc.get("tool_use_result")
    if isinstance(side, dict):
        stdout = side.get("stdout")
        stderr = side.get("stderr")
        output = ToolOutput(
            stdout=stdout if isinstance(stdout, str) else None,
            stderr=stderr if isinstance(stderr, str) else None,
            interrupted=bool(side.get("interrupted", False)),
        )

    return UserMessage(
        session_id=_as_str(doc.get("session_id")),
        content=tuple(results),
        tool_use_result=output,
        uuid=_as_str(doc.get("uuid")),
    )


def decode_message(doc: Any) -> StreamMessage | None:
    """Decode a parsed JSON document into a known message shape, or None."""
    if not isinstance(doc, dict):
        return None
    body = doc.get("message")
    if not isinstance(body, dict):
        return None

    msg_type = doc.get("type")
    if msg_type == MessageType.ASSISTANT.value:
        return _decode_assistant(doc, body)
    if msg_type == MessageType.USER.value:
        return _decode_user(doc, body)
    return None


def event_for_message(
    message: StreamMessage,
    raw_text: str,
    document: Any = None,
    observed_at: datetime | None = None,
) -> ParsedEvent:
    """Build the single event surfaced for a structured message."""
    ts = observed_at or _now()

    if isinstance(message, AssistantMessage):
        tool_uses = message.tool_uses
        if tool_uses:
            first = tool_uses[0]
            payload = ToolCallPayload(
                name=first.name, input=first.input, id=first.id, model=message.model
            )
            return ParsedEvent(EventKind.TOOL_CALL, payload, raw_text, ts, message)

        texts = message.texts
        if texts:
            payload = TextPayload(
                text="\n".join(t.text for t in texts), model=message.model
            )
            return ParsedEvent(EventKind.TEXT, payload, raw_text, ts, message)

    elif isinstance(message, UserMessage):
        result = message.first_result
        if result is not None:
            side = message.tool_use_result
            payload = ToolResultPayload(
                tool_use_id=result.tool_use_id,
                content=result.content,
                is_error=result.is_error,
                stdout=side.stdout if side else None,
                stderr=side.stderr if side else None,
            )
            return ParsedEvent(EventKind.TOOL_RESULT, payload, raw_text, ts, message)

    else:
        raise TypeError(f"unsupported message type: {type(message).__name__}")

    return ParsedEvent(
        EventKind.UNKNOWN, UnknownPayload(document=document), raw_text, ts, message
    )


def classify(line: str) -> ParsedEvent | None:
    """Classify one line (without its trailing newline).

    Returns None for blank lines. Never raises for malformed input; anything
    that is not a loop marker or a known message becomes an ``unknown`` event.
    """
    if not isinstance(line, str):
        raise TypeError(f"classify() expects str, got {type(line).__name__}")

    stripped = line.strip()
    if not stripped:
        return None

    m = LOOP_MARKER_RE.search(stripped)
    if m:
        try:
            iteration = int(m.group(1))
        except ValueError:
            # Too many digits for int()
            return ParsedEvent(EventKind.UNKNOWN, UnknownPayload(text=stripped), line)
        return ParsedEvent(
            EventKind.LOOP_MARKER, LoopMarkerPayload(iteration=iteration), line
        )

    try:
        doc = json.loads(stripped)
    except (json.JSONDecodeError, ValueError, RecursionError):
        # Deeply nested input exhausts the decoder stack
        return ParsedEvent(EventKind.UNKNOWN, UnknownPayload(text=stripped), line)

    message = decode_message(doc)
    if message is None:
        return ParsedEvent(EventKind.UNKNOWN, UnknownPayload(document=doc), line)
    return event_for_message(message, line, document=doc)
