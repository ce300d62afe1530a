"""
Backend capability interface.

Every backend variant (remote providers and the local llama-server) exposes
the same five operations so the orchestrator never branches on the kind.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional, Sequence

from chat_bridge.provider import Provider
from chat_bridge.tool_run import ToolRun
from chat_bridge.types import ChatMessage, ServerResult


class ChatBackend(ABC):
    """
    Abstract base class for chat backends.
    """

    provider: Provider

    def __init__(
        self,
        model: str,
        *,
        logger: Optional[logging.Logger] = None,
        name: Optional[str] = None,
    ) -> None:
        self.model = model
        self.logger = logger or logging.getLogger(__name__)
        self.name = name or self.__class__.__name__

    @property
    def kind(self) -> Provider:
        return self.provider

    @abstractmethod
    async def initialize(self) -> ServerResult:
        """Acquire whatever the backend needs before the first call."""
        ...

    @property
    @abstractmethod
    def is_ready(self) -> bool:
        ...

    @abstractmethod
    async def complete(self, messages: Sequence[ChatMessage], run: ToolRun) -> str:
        """
        Answer the conversation, executing tool calls through ``run``.

        Args:
            messages: The conversation so far, last entry being the new user turn.
            run: Tool bookkeeping for this invocation.

        Returns:
            The assistant text to append to the conversation.
        """
        ...

    @abstractmethod
    async def stream_complete(
        self,
        messages: Sequence[ChatMessage],
        run: ToolRun,
        on_text: Callable[[str], None],
    ) -> str:
        """Like ``complete`` but reports text through ``on_text`` as it is produced."""
        ...

    @abstractmethod
    async def teardown(self) -> None:
        """Release the backend's resources. Safe to call more than once."""
        ...

    def _log(self, message: str, level: int = logging.INFO) -> None:
        self.logger.log(level, f"[{self.name}] {message}")
