"""Anthropic adapter for pure request/response transformations."""

from __future__ import annotations

import json
from typing import Any, Sequence

from anthropic.types import Message

from chat_bridge.response import ChatResponse
from chat_bridge.types import ChatMessage, ToolCallRequest, ToolCallResult

DEFAULT_MAX_TOKENS = 4096


class AnthropicRequestAdapter:
    """Adapter for converting between generic format and Anthropic format."""

    def to_provider(
        self, messages: Sequence[ChatMessage], params: dict[str, Any]
    ) -> dict[str, Any]:
        """Convert generic messages and params to Anthropic request format."""
        anthropic_messages: list[dict[str, Any]] = []
        system_prompt = ""

        for msg in messages:
            if msg["role"] == "system":
                system_prompt = str(msg.get("content") or "")
                continue

            content = msg.get("content")
            # Anthropic rejects empty assistant turns
            if msg["role"] == "assistant" and not content:
                continue

            anthropic_msg: dict[str, Any] = {
                "role": msg["role"],
                "content": content if isinstance(content, (str, list)) else str(content or ""),
            }

            # Tool results for one model turn belong in a single user message
            if (
                anthropic_messages
                and anthropic_msg["role"] == "user"
                and isinstance(anthropic_msg["content"], list)
                and anthropic_messages[-1]["role"] == "user"
                and isinstance(anthropic_messages[-1]["content"], list)
            ):
                anthropic_messages[-1]["content"].extend(anthropic_msg["content"])
                continue

            if isinstance(anthropic_msg["content"], list):
                anthropic_msg["content"] = list(anthropic_msg["content"])
            anthropic_messages.append(anthropic_msg)

        base_params = {k: v for k, v in params.items() if v is not None}
        base_params.pop("stream", None)
        extras = base_params.pop("extra", {})

        if "max_tokens" not in base_params:
            base_params["max_tokens"] = DEFAULT_MAX_TOKENS

        if "stop" in base_params:
            stop = base_params.pop("stop")
            base_params["stop_sequences"] = stop if isinstance(stop, list) else [stop]

        if base_params.get("tools"):
            anthropic_tools = []
            for tool in base_params["tools"]:
                if tool.get("type") == "function":
                    func = tool["function"]
                    anthropic_tools.append(
                        {
                            "name": func["name"],
                            "description": func.get("description", ""),
                            "input_schema": func.get("parameters") or {"type": "object", "properties": {}},
                        }
                    )
                else:
                    anthropic_tools.append(tool)
            base_params["tools"] = anthropic_tools
        else:
            base_params.pop("tools", None)

        if extras:
            base_params["extra_body"] = dict(extras)

        request: dict[str, Any] = {"messages": anthropic_messages, **base_params}
        if system_prompt:
            request["system"] = system_prompt
        return request

    def from_provider(self, raw: Message) -> ChatResponse:
        """Convert Anthropic response to unified ChatResponse."""
        text_parts = []
        tool_calls = []

        for block in raw.content or []:
            if block.type == "text":
                text_parts.append(block.text)
            elif block.type == "tool_use":
                arguments = dict(block.input) if hasattr(block.input, "items") else {}
                tool_calls.append(
                    ToolCallRequest(id=block.id, name=block.name, arguments=json.dumps(arguments))
                )

        return ChatResponse(content="".join(text_parts), tool_calls=tool_calls or None, raw=raw)

    def stream_text(self, raw_event: Any) -> str:
        """Extract text from an Anthropic streaming event."""
        if getattr(raw_event, "type", None) == "content_block_delta":
            delta = getattr(raw_event, "delta", None)
            if getattr(delta, "type", None) == "text_delta":
                return delta.text
        elif getattr(raw_event, "type", None) == "text":
            return getattr(raw_event, "text", "")
        return ""

    def assistant_message_from(self, response: ChatResponse) -> ChatMessage:
        """Replay a model turn as an assistant message with tool_use blocks."""
        if not response.tool_calls:
            return {"role": "assistant", "content": response.content}

        blocks: list[dict[str, Any]] = []
        if response.content:
            blocks.append({"type": "text", "text": response.content})
        for tc in response.tool_calls:
            try:
                arguments = json.loads(tc.arguments) if tc.arguments else {}
            except json.JSONDecodeError:
                arguments = {}
            blocks.append({"type": "tool_use", "id": tc.id, "name": tc.name, "input": arguments})
        return {"role": "assistant", "content": blocks}

    def tool_result_message(self, result: ToolCallResult) -> ChatMessage:
        """Convert ToolCallResult to Anthropic ChatMessage."""
        block: dict[str, Any] = {
            "type": "tool_result",
            "tool_use_id": result.id,
            "content": result.content,
        }
        if result.is_error:
            block["is_error"] = True
        return {"role": "user", "content": [block]}
