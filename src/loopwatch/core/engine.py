"""Stats engine: folds classified events into a single LoopStats record."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import replace
from datetime import datetime, timezone

from loopwatch.config import EngineConfig
from loopwatch.core.classifier import classify, decode_message, event_for_message
from loopwatch.core.pricing import estimate_cost
from loopwatch.models.enums import EventKind, FileOperationKind
from loopwatch.models.messages import (
    AssistantMessage,
    StreamMessage,
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
    ToolCallPayload,
    ToolCallRecord,
    ToolResultPayload,
    UnknownPayload,
)

logger = logging.getLogger("loopwatch.engine")

_COMMIT_MARKERS = ("git push", "git commit")

_FILE_TOOLS: dict[str, str] = {
    "Read": FileOperationKind.READ.value,
    "Write": FileOperationKind.CREATE.value,
    "Edit": FileOperationKind.EDIT.value,
    "MultiEdit": FileOperationKind.EDIT.value,
    "NotebookEdit": FileOperationKind.EDIT.value,
}

_SUBAGENT_TOOL = "Task"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class StreamEngine:
    """Owns one session's LoopStats and its pending tool-call table.

    Not thread-safe: feed it from a single thread. Pending calls that never
    receive a result stay in the table for the life of the engine.
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        clock: Callable[[], datetime] = _now,
    ) -> None:
        self._config = config or EngineConfig()
        self._clock = clock
        self._pending: dict[str, PendingCall] = {}
        self._stats = LoopStats(start_time=clock(), last_activity=clock())

    @property
    def pending_count(self) -> int:
        """Number of tool calls still waiting for a result."""
        return len(self._pending)

    def reset(self) -> None:
        """Drop all state and start a fresh session."""
        self._pending.clear()
        now = self._clock()
        self._stats = LoopStats(start_time=now, last_activity=now)

    def snapshot(self) -> LoopStats:
        """Return an independent copy of the current statistics."""
        s = self._stats
        return replace(
            s,
            tool_calls=list(s.tool_calls),
            errors=list(s.errors),
            model_switches=list(s.model_switches),
            subagents=list(s.subagents),
            file_operations=list(s.file_operations),
        )

    def classify(self, line: str) -> ParsedEvent | None:
        """Classify a line and fold it into the stats in one step.

        The returned event is the one to display: for tool results it carries
        the correlated tool name and duration.
        """
        event = classify(line)
        if event is None:
            return None
        return self._fold(event)

    def apply(self, source: ParsedEvent | StreamMessage | Mapping) -> LoopStats:
        """Fold an event, a decoded message or a raw message mapping.

        Returns a snapshot taken after the update.
        """
        if isinstance(source, ParsedEvent):
            event = source
        elif isinstance(source, (AssistantMessage, UserMessage)):
            event = event_for_message(source, "", observed_at=self._clock())
        elif isinstance(source, Mapping):
            doc = dict(source)
            message = decode_message(doc)
            if message is None:
                event = ParsedEvent(
                    EventKind.UNKNOWN, UnknownPayload(document=doc), "", self._clock()
                )
            else:
                event = event_for_message(
                    message, "", document=doc, observed_at=self._clock()
                )
        else:
            raise TypeError(f"cannot apply {type(source).__name__}")

        self._fold(event)
        return self.snapshot()

    # --- folding ------------------------------------------------------------

    def _fold(self, event: ParsedEvent) -> ParsedEvent:
        now = self._clock()
        stats = self._stats

        payload = event.payload
        if isinstance(payload, LoopMarkerPayload):
            # The monitored script owns its loop counter; a lower value is accepted.
            stats.iteration = payload.iteration
            return event

        stats.last_activity = now

        # The message carries usage, model and session; tool calls and
        # results are folded from the payload.
        if isinstance(event.message, AssistantMessage):
            self._fold_assistant(event.message, now)
        elif isinstance(payload, ToolCallPayload):
            self._register_call(
                ToolUseBlock(id=payload.id, name=payload.name, input=payload.input), now
            )

        if isinstance(payload, ToolResultPayload):
            return self._fold_result(event, payload, now)
        if isinstance(payload, ErrorPayload):
            stats.errors.append(payload.message[: self._config.error_truncate])

        return event

    def _fold_assistant(self, msg: AssistantMessage, now: datetime) -> None:
        stats = self._stats
        usage = msg.usage
        stats.total_input_tokens += usage.input_tokens
        stats.total_output_tokens += usage.output_tokens
        stats.total_cache_read_tokens += usage.cache_read_input_tokens
        stats.total_cache_creation_tokens += usage.cache_creation_input_tokens

        if msg.model:
            previous = stats.current_model
            if previous not in ("", "unknown") and previous != msg.model:
                stats.model_switches.append(ModelSwitch(previous, msg.model, now))
                logger.info("Model switch: %s -> %s", previous, msg.model)
            stats.current_model = msg.model

        if msg.session_id:
            if stats.session_id and stats.session_id != msg.session_id:
                stats.session_changes += 1
                logger.info("Session changed: %s -> %s", stats.session_id, msg.session_id)
            stats.session_id = msg.session_id

        stats.estimated_cost += estimate_cost(
            msg.model or stats.current_model,
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            cache_read_tokens=usage.cache_read_input_tokens,
            cache_creation_tokens=usage.cache_creation_input_tokens,
        )

        for tool in msg.tool_uses:
            self._register_call(tool, now)

    def _register_call(self, tool: ToolUseBlock, now: datetime) -> None:
        self._pending[tool.id] = PendingCall(tool_name=tool.name, started_at=now)
        self._track_tool_use(tool, now)

    def _track_tool_use(self, tool: ToolUseBlock, now: datetime) -> None:
        stats = self._stats
        params = tool.input

        if tool.name == _SUBAGENT_TOOL:
            stats.subagents.append(
                SubagentLaunch(
                    description=str(params.get("description") or "Unknown task"),
                    subagent_type=str(params.get("subagent_type") or "general"),
                    model=str(params.get("model") or "opus"),
                    timestamp=now,
                    prompt=str(params.get("prompt") or ""),
                )
            )
            return

        operation = _FILE_TOOLS.get(tool.name)
        path = params.get("file_path") or params.get("notebook_path")
        if operation and isinstance(path, str) and path:
            stats.file_operations.append(FileOperation(path, operation, now))

    def _fold_result(
        self, event: ParsedEvent, payload: ToolResultPayload, now: datetime
    ) -> ParsedEvent:
        stats = self._stats
        pending = self._pending.pop(payload.tool_use_id, None)
        if pending is not None:
            name = pending.tool_name
            duration: float | None = (now - pending.started_at).total_seconds()
        else:
            name = self._config.unknown_tool_name
            duration = None
            logger.debug("Tool result for unseen call %s", payload.tool_use_id)

        stats.tool_calls.append(
            ToolCallRecord(
                name=name, success=payload.success, timestamp=now, duration=duration
            )
        )

        if payload.is_error:
            stats.errors.append(payload.content[: self._config.error_truncate])
        elif payload.content:
            lowered = payload.content.lower()
            if any(marker in lowered for marker in _COMMIT_MARKERS):
                stats.last_commit_time = now

        return replace(
            event,
            payload=replace(
                payload,
                tool_name=pending.tool_name if pending else None,
                duration=duration,
            ),
        )

