"""Shared streaming utilities for chat backends."""
from __future__ import annotations

from typing import Any, AsyncIterator, Callable, Dict, Iterator, List, Optional

from openai.types.chat import ChatCompletionChunk

from chat_bridge.response import ChatResponse
from chat_bridge.types import ToolCallRequest

__all__ = ["aggregate_openai_stream", "iter_chunks"]


async def aggregate_openai_stream(
    chunks: AsyncIterator[ChatCompletionChunk],
    on_text: Optional[Callable[[str], None]] = None,
) -> ChatResponse:
    """
    Aggregate a stream of ChatCompletionChunks into a single ChatResponse.

    Text deltas are forwarded to ``on_text`` as they arrive; tool-call
    fragments are stitched together by their index.

    Args:
        chunks: Async iterator of ChatCompletionChunk objects
        on_text: Optional callback receiving each non-empty text delta

    Returns:
        A ChatResponse with the full text and any complete tool calls
    """
    full_content = ""
    tool_calls_agg: List[Dict[str, Any]] = []
    finish_reason: Optional[str] = None

    async for chunk in chunks:
        if not chunk.choices:
            continue

        choice = chunk.choices[0]
        delta = choice.delta
        if delta.content:
            full_content += delta.content
            if on_text is not None:
                on_text(delta.content)

        if delta.tool_calls:
            for tc_chunk in delta.tool_calls:
                while len(tool_calls_agg) <= tc_chunk.index:
                    tool_calls_agg.append({"id": "", "name": "", "arguments": ""})

                agg_tc = tool_calls_agg[tc_chunk.index]
                if tc_chunk.id:
                    agg_tc["id"] = tc_chunk.id
                if tc_chunk.function:
                    if tc_chunk.function.name:
                        agg_tc["name"] += tc_chunk.function.name
                    if tc_chunk.function.arguments:
                        agg_tc["arguments"] += tc_chunk.function.arguments

        if choice.finish_reason:
            finish_reason = choice.finish_reason

    tool_calls = [
        ToolCallRequest(id=tc["id"], name=tc["name"], arguments=tc["arguments"])
        for tc in tool_calls_agg
        if tc["id"] and tc["name"]
    ]

    return ChatResponse(
        content=full_content,
        tool_calls=tool_calls or None,
        raw={"finish_reason": finish_reason},
    )


def iter_chunks(text: str, size: int) -> Iterator[str]:
    """Split text into consecutive slices of at most ``size`` characters."""
    if size < 1:
        raise ValueError("chunk size must be positive")
    for start in range(0, len(text), size):
        yield text[start:start + size]
