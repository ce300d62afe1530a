"""
Local llama-server backend.

One non-interactive completion per user turn: tool calls the model returns
are executed once and summarized, never fed back to the model. Streaming is
simulated by slicing the finished text.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Callable, Optional, Sequence

from chat_bridge.backends.base import ChatBackend
from chat_bridge.config import STREAM_CHUNK_DELAY, STREAM_CHUNK_SIZE
from chat_bridge.decider import ToolInvocationDecider
from chat_bridge.local_server import LocalInferenceSupervisor
from chat_bridge.provider import DEFAULT_MODELS, Provider
from chat_bridge.stream_utils import iter_chunks
from chat_bridge.tool_run import ToolRun, summarize_tool_calls
from chat_bridge.types import ChatMessage, ServerResult


class LocalBackend(ChatBackend):
    provider = Provider.LOCAL

    def __init__(
        self,
        supervisor: Optional[LocalInferenceSupervisor] = None,
        *,
        model_path: Optional[str | Path] = None,
        decider: Optional[ToolInvocationDecider] = None,
        chunk_size: int = STREAM_CHUNK_SIZE,
        chunk_delay: float = STREAM_CHUNK_DELAY,
        logger: Optional[logging.Logger] = None,
        name: Optional[str] = None,
    ) -> None:
        super().__init__(
            str(model_path) if model_path else DEFAULT_MODELS[Provider.LOCAL],
            logger=logger,
            name=name,
        )
        self.supervisor = supervisor or LocalInferenceSupervisor(logger=logger)
        self.model_path = model_path
        self.decider = decider or ToolInvocationDecider()
        self.chunk_size = chunk_size
        self.chunk_delay = chunk_delay

    async def initialize(self) -> ServerResult:
        result = await self.supervisor.start(self.model_path)
        if result.success:
            self._log(f"Local model ready: {self.supervisor.model_path}")
        else:
            self._log(f"Local server failed to start: {result.error}", logging.ERROR)
        return result

    @property
    def is_ready(self) -> bool:
        return self.supervisor.is_ready

    async def complete(self, messages: Sequence[ChatMessage], run: ToolRun) -> str:
        text, _ = await self._respond(messages, run)
        return text

    async def stream_complete(
        self,
        messages: Sequence[ChatMessage],
        run: ToolRun,
        on_text: Callable[[str], None],
    ) -> str:
        text, used_tools = await self._respond(messages, run)
        if used_tools:
            return text
        for index, chunk in enumerate(iter_chunks(text, self.chunk_size)):
            if index and self.chunk_delay > 0:
                await asyncio.sleep(self.chunk_delay)
            on_text(chunk)
        return text

    async def teardown(self) -> None:
        await self.supervisor.stop()

    async def _respond(self, messages: Sequence[ChatMessage], run: ToolRun) -> tuple[str, bool]:
        """Returns the assistant text and whether the model asked for tools."""
        tools: Optional[list[dict[str, Any]]] = None
        if self.decider.should_offer_tools(_last_user_text(messages)):
            await run.load_catalog()
            tools = run.function_tools or None
            self._log(f"Offering {len(tools or [])} tools", logging.DEBUG)

        response = await self.supervisor.chat_completion(messages, tools)
        if not response.has_tool_calls:
            return response.content, False

        executed = await run.run_batch(response.tool_calls or [])
        self._log(f"Executed {len(executed)} of {len(response.tool_calls or [])} tool calls")
        return summarize_tool_calls(len(executed)), True


def _last_user_text(messages: Sequence[ChatMessage]) -> str:
    for message in reversed(messages):
        if message.get("role") == "user" and isinstance(message.get("content"), str):
            return message["content"]
    return ""
