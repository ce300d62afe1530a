"""
Remote hosted-model backends.

All remote variants share one step loop: call the model, execute the tool
calls it asks for concurrently, feed the results back, and repeat until the
model answers without tools or the step bound is reached.
"""

from __future__ import annotations

import asyncio
import logging
from abc import abstractmethod
from typing import Any, Callable, Optional, Protocol, Self, Sequence

from anthropic import AsyncAnthropic
from openai import AsyncOpenAI
from openai.types.chat import ChatCompletion

from chat_bridge.adapters import (
    AnthropicRequestAdapter,
    GeminiRequestAdapter,
    OpenAIRequestAdapter,
)
from chat_bridge.backends.base import ChatBackend
from chat_bridge.config import MAX_TOOL_STEPS
from chat_bridge.errors import ToolArgumentParseError, ToolExecutionError
from chat_bridge.params import normalize_params
from chat_bridge.provider import Provider
from chat_bridge.response import ChatResponse
from chat_bridge.stream_utils import aggregate_openai_stream
from chat_bridge.tool_run import ToolRun
from chat_bridge.types import ChatMessage, ServerResult, ToolCallRequest, ToolCallResult

__all__ = [
    "RequestAdapter",
    "RemoteBackend",
    "OpenAIBackend",
    "GeminiBackend",
    "AnthropicBackend",
    "GEMINI_BASE_URL",
]

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"


class RequestAdapter(Protocol):
    """Protocol for adapting between generic chat format and provider-specific format."""

    def to_provider(
        self, messages: Sequence[ChatMessage], params: dict[str, Any]
    ) -> dict[str, Any]:
        ...

    def from_provider(self, raw: Any) -> ChatResponse:
        ...

    def stream_text(self, raw_chunk: Any) -> str:
        ...

    def assistant_message_from(self, response: ChatResponse) -> ChatMessage:
        ...

    def tool_result_message(self, result: ToolCallResult) -> ChatMessage:
        ...


class RemoteBackend(ChatBackend):
    """
    Shared step loop for hosted providers.

    Subclasses only implement the two generation calls.
    """

    def __init__(
        self,
        model: str,
        *,
        max_steps: int = MAX_TOOL_STEPS,
        params: Optional[dict[str, Any]] = None,
        logger: Optional[logging.Logger] = None,
        name: Optional[str] = None,
    ) -> None:
        super().__init__(model, logger=logger, name=name)
        if max_steps < 1:
            raise ValueError("max_steps must be at least 1")
        self.max_steps = max_steps
        self.params = dict(params or {})
        self._ready = False
        self._owns_client = True

    @property
    @abstractmethod
    def adapter(self) -> RequestAdapter:
        ...

    @abstractmethod
    async def _generate(self, messages: Sequence[ChatMessage], tools: list[dict[str, Any]]) -> ChatResponse:
        ...

    @abstractmethod
    async def _generate_stream(
        self,
        messages: Sequence[ChatMessage],
        tools: list[dict[str, Any]],
        on_text: Callable[[str], None],
    ) -> ChatResponse:
        ...

    # --- ChatBackend -------------------------------------------------------
    async def initialize(self) -> ServerResult:
        self._ready = True
        self._log(f"Ready with model {self.model}")
        return ServerResult.ok()

    @property
    def is_ready(self) -> bool:
        return self._ready

    async def complete(self, messages: Sequence[ChatMessage], run: ToolRun) -> str:
        return await self._run_steps(messages, run, None)

    async def stream_complete(
        self,
        messages: Sequence[ChatMessage],
        run: ToolRun,
        on_text: Callable[[str], None],
    ) -> str:
        return await self._run_steps(messages, run, on_text)

    async def teardown(self) -> None:
        self._ready = False
        client = getattr(self, "_client", None)
        if client is not None and self._owns_client:
            await client.close()

    # --- step loop ---------------------------------------------------------
    async def _run_steps(
        self,
        messages: Sequence[ChatMessage],
        run: ToolRun,
        on_text: Optional[Callable[[str], None]],
    ) -> str:
        await run.load_catalog()
        tools = run.function_tools
        conversation = list(messages)
        streamed: list[str] = []

        def forward(delta: str) -> None:
            streamed.append(delta)
            on_text(delta)

        response = ChatResponse(content="")
        for step in range(1, self.max_steps + 1):
            self._log(f"Step {step}/{self.max_steps} with {len(tools)} tools", logging.DEBUG)
            if on_text is None:
                response = await self._generate(conversation, tools)
            else:
                response = await self._generate_stream(conversation, tools, forward)

            if not response.has_tool_calls:
                break

            conversation.append(self.adapter.assistant_message_from(response))
            results = await asyncio.gather(
                *(self._execute_tool_call(run, call) for call in response.tool_calls or [])
            )
            conversation.extend(self.adapter.tool_result_message(r) for r in results)
        else:
            self._log(f"Stopped after {self.max_steps} steps", logging.WARNING)

        if on_text is not None:
            return "".join(streamed)
        return response.content

    async def _execute_tool_call(self, run: ToolRun, call: ToolCallRequest) -> ToolCallResult:
        try:
            arguments = run.parse(call)
        except ToolArgumentParseError as exc:
            self._log(str(exc), logging.WARNING)
            return ToolCallResult(id=call.id, content=f"Error: {exc}", is_error=True)
        try:
            content = await run.invoke(call.name, arguments)
        except ToolExecutionError as exc:
            return ToolCallResult(id=call.id, content=f"Error: {exc}", is_error=True)
        return ToolCallResult(id=call.id, content=content)


class _OpenAICompatibleBackend(RemoteBackend):
    """Chat Completions API, used by OpenAI and Gemini's compatible endpoint."""

    _client: AsyncOpenAI
    _adapter: OpenAIRequestAdapter

    @property
    def adapter(self) -> RequestAdapter:
        return self._adapter

    def _request(self, messages: Sequence[ChatMessage], tools: list[dict[str, Any]]) -> dict[str, Any]:
        request_data = self._adapter.to_provider(messages, normalize_params(self.params, tools=tools))
        return {"model": self.model, **request_data}

    async def _generate(self, messages: Sequence[ChatMessage], tools: list[dict[str, Any]]) -> ChatResponse:
        self._log(f"Sending request to {self.model} (Stream: False)")
        raw: ChatCompletion = await self._client.chat.completions.create(
            **self._request(messages, tools), stream=False
        )
        return self._adapter.from_provider(raw)

    async def _generate_stream(
        self,
        messages: Sequence[ChatMessage],
        tools: list[dict[str, Any]],
        on_text: Callable[[str], None],
    ) -> ChatResponse:
        self._log(f"Sending request to {self.model} (Stream: True)")
        stream = await self._client.chat.completions.create(**self._request(messages, tools), stream=True)
        return await aggregate_openai_stream(stream, on_text)


class OpenAIBackend(_OpenAICompatibleBackend):
    """
    OpenAI backend.

    Use ``OpenAIBackend.from_client`` when you already have an ``AsyncOpenAI`` instance.
    """

    provider = Provider.OPENAI

    def __init__(
        self,
        model: str,
        *,
        api_key: str,
        timeout: float = 60.0,
        max_retries: int = 2,
        base_url: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(model, **kwargs)
        self._client = AsyncOpenAI(api_key=api_key, timeout=timeout, max_retries=max_retries, base_url=base_url)
        self._adapter = OpenAIRequestAdapter()

    @classmethod
    def from_client(cls, model: str, client: AsyncOpenAI, **kwargs: Any) -> Self:
        """
        Build an ``OpenAIBackend`` around an already-configured ``AsyncOpenAI`` client.
        The client stays owned by the caller.
        """
        if not isinstance(client, AsyncOpenAI):
            raise TypeError(f"{cls.__name__}.from_client expects AsyncOpenAI; got {type(client).__name__}")
        self = cls.__new__(cls)  # bypass __init__
        RemoteBackend.__init__(self, model, **kwargs)
        self._client = client
        self._adapter = OpenAIRequestAdapter()
        self._owns_client = False
        return self


class GeminiBackend(_OpenAICompatibleBackend):
    """
    Gemini backend via the OpenAI-compatible endpoint.
    """

    provider = Provider.GEMINI

    def __init__(
        self,
        model: str,
        *,
        api_key: str,
        timeout: float = 60.0,
        max_retries: int = 2,
        base_url: str = GEMINI_BASE_URL,
        **kwargs: Any,
    ) -> None:
        super().__init__(model, **kwargs)
        self._client = AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout, max_retries=max_retries)
        self._adapter = GeminiRequestAdapter()

    @classmethod
    def from_client(cls, model: str, client: AsyncOpenAI, **kwargs: Any) -> Self:
        """
        Wrap an ``AsyncOpenAI`` client already configured with Gemini's base URL.
        """
        if not isinstance(client, AsyncOpenAI):
            raise TypeError(f"{cls.__name__}.from_client expects AsyncOpenAI; got {type(client).__name__}")
        self = cls.__new__(cls)  # bypass __init__
        RemoteBackend.__init__(self, model, **kwargs)
        self._client = client
        self._adapter = GeminiRequestAdapter()
        self._owns_client = False
        return self


class AnthropicBackend(RemoteBackend):
    """
    Anthropic backend (Messages API).
    """

    provider = Provider.ANTHROPIC

    def __init__(
        self,
        model: str,
        *,
        api_key: str,
        timeout: float = 60.0,
        max_retries: int = 2,
        base_url: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(model, **kwargs)
        self._client = AsyncAnthropic(api_key=api_key, timeout=timeout, max_retries=max_retries, base_url=base_url)
        self._adapter = AnthropicRequestAdapter()

    @classmethod
    def from_client(cls, model: str, client: AsyncAnthropic, **kwargs: Any) -> Self:
        """
        Wrap an existing ``AsyncAnthropic`` client.
        """
        if not isinstance(client, AsyncAnthropic):
            raise TypeError(f"{cls.__name__}.from_client expects AsyncAnthropic; got {type(client).__name__}")
        self = cls.__new__(cls)  # bypass __init__
        RemoteBackend.__init__(self, model, **kwargs)
        self._client = client
        self._adapter = AnthropicRequestAdapter()
        self._owns_client = False
        return self

    @property
    def adapter(self) -> RequestAdapter:
        return self._adapter

    def _request(self, messages: Sequence[ChatMessage], tools: list[dict[str, Any]]) -> dict[str, Any]:
        request_data = self._adapter.to_provider(messages, normalize_params(self.params, tools=tools))
        return {"model": self.model, **request_data}

    async def _generate(self, messages: Sequence[ChatMessage], tools: list[dict[str, Any]]) -> ChatResponse:
        self._log(f"Sending request to {self.model} (Stream: False)")
        raw = await self._client.messages.create(**self._request(messages, tools))
        return self._adapter.from_provider(raw)

    async def _generate_stream(
        self,
        messages: Sequence[ChatMessage],
        tools: list[dict[str, Any]],
        on_text: Callable[[str], None],
    ) -> ChatResponse:
        self._log(f"Sending request to {self.model} (Stream: True)")
        async with self._client.messages.stream(**self._request(messages, tools)) as stream:
            async for text in stream.text_stream:
                if text:
                    on_text(text)
            final = await stream.get_final_message()
        return self._adapter.from_provider(final)
