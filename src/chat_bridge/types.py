"""
Core types for chat-bridge.
"""

from __future__ import annotations

import json
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any, Literal, Optional

from chat_bridge.errors import ChatBridgeError, ToolArgumentParseError

__all__ = [
    "ChatMessage",
    "Role",
    "Message",
    "ToolCallRequest",
    "ToolCallResult",
    "ToolCallStatus",
    "ToolCallRecord",
    "ToolSpec",
    "ToolResult",
    "ToolServerDescriptor",
    "ChatResult",
    "ServerResult",
    "new_call_id",
    "stringify_result",
]


# Provider-shaped chat message, as sent over the wire.
ChatMessage = dict[str, Any]

Role = Literal["user", "assistant"]


@dataclass(frozen=True, slots=True)
class Message:
    """One entry of the conversation log."""

    role: Role
    content: str

    def as_chat_message(self) -> ChatMessage:
        return {"role": self.role, "content": self.content}


@dataclass(slots=True)
class ToolCallRequest:
    """A model-agnostic request emitted by the LLM to call a tool.

    ``arguments`` is kept as the raw JSON text the backend produced so that
    malformed arguments can be detected (and skipped) by the caller.
    """

    id: str
    name: str
    arguments: str

    def parse_arguments(self) -> dict[str, Any]:
        if not self.arguments or not self.arguments.strip():
            return {}
        try:
            parsed = json.loads(self.arguments)
        except json.JSONDecodeError as exc:
            raise ToolArgumentParseError(
                f"Malformed arguments for tool {self.name!r}: {self.arguments!r}", exc
            ) from exc
        if not isinstance(parsed, dict):
            raise ToolArgumentParseError(
                f"Arguments for tool {self.name!r} must be a JSON object, got {type(parsed).__name__}"
            )
        return parsed


@dataclass(slots=True)
class ToolCallResult:
    """Payload to send back to the LLM after the tool finished running."""

    id: str  # must match the request id
    content: str
    is_error: bool = False


class ToolCallStatus(StrEnum):
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class ToolCallRecord:
    """Bookkeeping for one tool invocation, from request to terminal outcome.

    The record moves from ``pending`` to ``success`` or ``error`` exactly once.
    """

    id: str
    name: str
    arguments: str
    result: Optional[str] = None
    status: ToolCallStatus = ToolCallStatus.PENDING
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False, compare=False)

    @property
    def is_pending(self) -> bool:
        return self.status is ToolCallStatus.PENDING

    def succeed(self, result: str) -> bool:
        return self._resolve(ToolCallStatus.SUCCESS, result)

    def fail(self, error: str) -> bool:
        return self._resolve(ToolCallStatus.ERROR, error or "Tool execution failed")

    def _resolve(self, status: ToolCallStatus, result: str) -> bool:
        """Apply a terminal state. Returns False if the record was already terminal."""
        with self._lock:
            if self.status is not ToolCallStatus.PENDING:
                return False
            self.result = result
            self.status = status
            return True

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "arguments": self.arguments,
            "result": self.result,
            "status": self.status.value,
        }


@dataclass(frozen=True, slots=True)
class ToolSpec:
    """A tool as advertised by the tool provider."""

    name: str
    description: str = ""
    input_schema: dict[str, Any] = field(default_factory=dict)

    def as_function_tool(self) -> dict[str, Any]:
        """OpenAI-style function tool, understood by llama-server and the adapters."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.input_schema or {"type": "object", "properties": {}},
            },
        }


@dataclass(slots=True)
class ToolResult:
    """Outcome of one ``execute_tool`` call on the provider."""

    success: bool
    result: Any = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, result: Any) -> "ToolResult":
        return cls(success=True, result=result)

    @classmethod
    def failed(cls, error: str) -> "ToolResult":
        return cls(success=False, error=error)


@dataclass(slots=True)
class ToolServerDescriptor:
    id: str
    name: str
    endpoint: str
    tools: list[ToolSpec] = field(default_factory=list)
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(slots=True)
class ChatResult:
    response: str
    tool_calls: Optional[list[ToolCallRecord]] = None


@dataclass(slots=True)
class ServerResult:
    """Typed outcome of a lifecycle operation (start, stop, backend selection)."""

    success: bool
    error: Optional[ChatBridgeError] = None

    @classmethod
    def ok(cls) -> "ServerResult":
        return cls(success=True)

    @classmethod
    def failed(cls, error: ChatBridgeError) -> "ServerResult":
        return cls(success=False, error=error)

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error


def new_call_id() -> str:
    return f"call_{uuid.uuid4().hex[:16]}"


def stringify_result(result: Any) -> str:
    if isinstance(result, str):
        return result
    try:
        return json.dumps(result, indent=2, default=str)
    except (TypeError, ValueError):
        return str(result)
