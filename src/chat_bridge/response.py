from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from chat_bridge.types import ToolCallRequest


@dataclass
class ChatResponse:
    """Unified single-turn response from any backend."""

    content: str
    tool_calls: list[ToolCallRequest] | None = None
    raw: Any = None

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)
