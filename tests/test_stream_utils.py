"""Tests for streaming helpers."""

import pytest
from openai.types.chat import ChatCompletionChunk

from chat_bridge.stream_utils import aggregate_openai_stream, iter_chunks

from fakes import chunk


async def _chunks(raw):
    for item in raw:
        yield ChatCompletionChunk.model_validate(item)


class TestAggregateOpenAIStream:
    """Test folding streamed chunks into one response."""

    @pytest.mark.asyncio
    async def test_text_deltas_in_order(self):
        """Text deltas are forwarded and joined in order."""
        seen = []
        response = await aggregate_openai_stream(
            _chunks(
                [
                    chunk({"role": "assistant", "content": "Hel"}),
                    chunk({"content": "lo"}),
                    chunk({"content": "!"}, finish_reason="stop"),
                ]
            ),
            seen.append,
        )
        assert seen == ["Hel", "lo", "!"]
        assert response.content == "Hello!"
        assert response.tool_calls is None

    @pytest.mark.asyncio
    async def test_tool_call_fragments_are_stitched(self):
        """Tool-call fragments are merged by index."""
        response = await aggregate_openai_stream(
            _chunks(
                [
                    chunk(
                        {
                            "tool_calls": [
                                {
                                    "index": 0,
                                    "id": "call_a",
                                    "type": "function",
                                    "function": {"name": "list_staff", "arguments": '{"ro'},
                                }
                            ]
                        }
                    ),
                    chunk({"tool_calls": [{"index": 0, "function": {"arguments": 'le": "nurse"}'}}]}),
                    chunk(
                        {
                            "tool_calls": [
                                {
                                    "index": 1,
                                    "id": "call_b",
                                    "type": "function",
                                    "function": {"name": "create_task", "arguments": "{}"},
                                }
                            ]
                        }
                    ),
                    chunk({}, finish_reason="tool_calls"),
                ]
            )
        )
        assert [(tc.id, tc.name, tc.arguments) for tc in response.tool_calls] == [
            ("call_a", "list_staff", '{"role": "nurse"}'),
            ("call_b", "create_task", "{}"),
        ]
        assert response.raw == {"finish_reason": "tool_calls"}


class TestIterChunks:
    """Test slicing text into streaming chunks."""

    def test_slices_concatenate_to_text(self):
        """Slices have the given size and join back to the text."""
        text = "Hello there, nice to meet you"
        parts = list(iter_chunks(text, 5))
        assert all(len(p) <= 5 for p in parts)
        assert "".join(parts) == text

    def test_empty_text(self):
        """Empty text yields no chunks."""
        assert list(iter_chunks("", 5)) == []

    def test_invalid_size(self):
        """A chunk size below one is rejected."""
        with pytest.raises(ValueError):
            list(iter_chunks("abc", 0))
