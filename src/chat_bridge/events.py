"""
Streaming event protocol.

``chat_stream`` reports progress through ``StreamCallbacks``. Presentation
layers that prefer one message type per event can build the callbacks from a
sink with ``StreamCallbacks.from_sink`` and receive ``StreamEvent`` objects:

    type         data
    ----------   ---------------------------------------------------------
    text         chunk of assistant text
    tool-call    {id, name, arguments, status: "pending"}
    tool-result  {toolCallId, result, status: "success" | "error"}
    complete     full accumulated assistant text
    error        error message string
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Literal, Optional

from chat_bridge.types import ToolCallRecord, ToolCallStatus

__all__ = ["EventType", "StreamEvent", "StreamCallbacks", "CallbackGuard"]

logger = logging.getLogger(__name__)

EventType = Literal["text", "tool-call", "tool-result", "complete", "error"]


@dataclass(frozen=True, slots=True)
class StreamEvent:
    type: EventType
    data: Any

    def as_dict(self) -> dict[str, Any]:
        return {"type": self.type, "data": self.data}


def _noop(*_: Any) -> None:
    return None


@dataclass
class StreamCallbacks:
    on_text_chunk: Callable[[str], None] = _noop
    on_tool_call: Callable[[ToolCallRecord], None] = _noop
    on_tool_result: Callable[[str, str, ToolCallStatus], None] = _noop
    on_complete: Callable[[str], None] = _noop
    on_error: Callable[[Exception], None] = _noop

    @classmethod
    def from_sink(cls, send: Callable[[StreamEvent], None]) -> "StreamCallbacks":
        """Map every callback onto a single event sink."""
        return cls(
            on_text_chunk=lambda chunk: send(StreamEvent("text", chunk)),
            on_tool_call=lambda record: send(
                StreamEvent(
                    "tool-call",
                    {
                        "id": record.id,
                        "name": record.name,
                        "arguments": record.arguments,
                        "status": ToolCallStatus.PENDING.value,
                    },
                )
            ),
            on_tool_result=lambda call_id, result, status: send(
                StreamEvent(
                    "tool-result",
                    {"toolCallId": call_id, "result": result, "status": ToolCallStatus(status).value},
                )
            ),
            on_complete=lambda text: send(StreamEvent("complete", text)),
            on_error=lambda exc: send(StreamEvent("error", str(exc) or exc.__class__.__name__)),
        )


class CallbackGuard:
    """Enforces the terminal-event rules for one streaming invocation.

    ``on_complete`` fires at most once; ``on_error`` fires at most once and
    never after ``on_complete``.
    """

    def __init__(self, callbacks: StreamCallbacks) -> None:
        self.callbacks = callbacks
        self.completed = False
        self.errored = False

    @property
    def finished(self) -> bool:
        return self.completed or self.errored

    def text(self, chunk: str) -> None:
        if not self.finished:
            self.callbacks.on_text_chunk(chunk)

    def complete(self, text: str) -> None:
        if self.finished:
            return
        self.completed = True
        self.callbacks.on_complete(text)

    def error(self, exc: Exception) -> bool:
        if self.finished:
            logger.warning("Dropping error after stream finished: %s", exc)
            return False
        self.errored = True
        try:
            self.callbacks.on_error(exc)
        except Exception:
            logger.exception("on_error callback raised")
        return True
