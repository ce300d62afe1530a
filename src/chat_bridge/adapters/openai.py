"""OpenAI adapter for pure request/response transformations."""

from __future__ import annotations

from typing import Any, Sequence

from openai.types.chat import ChatCompletion, ChatCompletionChunk

from chat_bridge.response import ChatResponse
from chat_bridge.types import ChatMessage, ToolCallRequest, ToolCallResult


class OpenAIRequestAdapter:
    """Adapter for converting between generic format and OpenAI format."""

    def to_provider(
        self, messages: Sequence[ChatMessage], params: dict[str, Any]
    ) -> dict[str, Any]:
        """Convert generic messages and params to OpenAI request format."""
        openai_messages: list[dict[str, Any]] = []
        for msg in messages:
            openai_msg: dict[str, Any] = {"role": msg["role"]}

            if msg.get("content") is not None:
                openai_msg["content"] = msg["content"]

            if msg.get("tool_calls"):
                openai_msg["tool_calls"] = msg["tool_calls"]
                # content must be null when tool_calls is present
                if "content" not in openai_msg:
                    openai_msg["content"] = None

            if msg.get("tool_call_id"):
                openai_msg["tool_call_id"] = msg["tool_call_id"]

            if "content" not in openai_msg and not openai_msg.get("tool_calls"):
                openai_msg["content"] = ""

            openai_messages.append(openai_msg)

        base_params = {k: v for k, v in params.items() if v is not None}
        base_params.pop("stream", None)
        if not base_params.get("tools"):
            base_params.pop("tools", None)

        # provider-specific keys are not part of the SDK signature
        extras = base_params.pop("extra", {})
        if extras:
            base_params["extra_body"] = dict(extras)

        return {"messages": openai_messages, **base_params}

    def from_provider(self, raw: ChatCompletion) -> ChatResponse:
        """Convert OpenAI response to unified ChatResponse."""
        content = ""
        tool_calls = None

        if raw.choices and raw.choices[0].message:
            message = raw.choices[0].message
            content = message.content or ""

            if message.tool_calls:
                tool_calls = []
                for tc in message.tool_calls:
                    function = getattr(tc, "function", None)
                    if function is None:
                        continue
                    tool_calls.append(
                        ToolCallRequest(
                            id=tc.id,
                            name=function.name,
                            arguments=function.arguments or "",
                        )
                    )

        return ChatResponse(content=content, tool_calls=tool_calls or None, raw=raw)

    def stream_text(self, raw_chunk: ChatCompletionChunk) -> str:
        """Extract the text delta from a streaming chunk."""
        if raw_chunk.choices and raw_chunk.choices[0].delta:
            return raw_chunk.choices[0].delta.content or ""
        return ""

    def assistant_message_from(self, response: ChatResponse) -> ChatMessage:
        """Replay a model turn, tool calls included, as an assistant message."""
        chat_message: ChatMessage = {"role": "assistant", "content": response.content or None}

        if response.tool_calls:
            chat_message["tool_calls"] = [
                {
                    "id": tc.id,
                    "type": "function",
                    "function": {"name": tc.name, "arguments": tc.arguments or "{}"},
                }
                for tc in response.tool_calls
            ]
        elif chat_message["content"] is None:
            chat_message["content"] = ""

        return chat_message

    def tool_result_message(self, result: ToolCallResult) -> ChatMessage:
        """Convert ToolCallResult to OpenAI ChatMessage."""
        return {
            "role": "tool",
            "tool_call_id": result.id,
            "content": result.content,
        }
