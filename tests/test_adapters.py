"""Tests for parameter normalization and the provider adapters."""

import json

import pytest
from anthropic.types import Message as AnthropicMessage
from openai.types.chat import ChatCompletion

from chat_bridge.adapters import AnthropicRequestAdapter, GeminiRequestAdapter, OpenAIRequestAdapter
from chat_bridge.params import normalize_params
from chat_bridge.response import ChatResponse
from chat_bridge.types import ToolCallRequest, ToolCallResult, ToolSpec

from fakes import anthropic_message, completion, tool_call

TOOLS = [ToolSpec("list_staff", "List staff", {"type": "object", "properties": {}}).as_function_tool()]


class TestParamsNormalization:
    """Test parameter normalization functionality."""

    def test_standard_and_extra_keys(self):
        """Standard keys stay top level and unknown keys move under extra."""
        params = normalize_params({"temperature": 0.2, "reasoning_effort": "low"}, tools=[])

        assert params == {
            "temperature": 0.2,
            "tools": [],
            "stream": False,
            "extra": {"reasoning_effort": "low"},
        }

    def test_overrides_win(self):
        """Keyword overrides replace values from the params dict."""
        params = normalize_params({"temperature": 0.2, "tools": ["old"]}, tools=["new"])
        assert params["tools"] == ["new"]

    def test_explicit_extra_is_merged_last(self):
        """An explicit extra dict wins over loose unknown keys."""
        params = normalize_params({"verbosity": "low", "extra": {"verbosity": "high", "custom": 1}})
        assert params["extra"] == {"verbosity": "high", "custom": 1}

    def test_none(self):
        """No params still yields the stream default and an empty extra."""
        assert normalize_params(None) == {"stream": False, "extra": {}}

    def test_rejects_non_dict(self):
        """Params and extra must both be dicts."""
        with pytest.raises(TypeError):
            normalize_params(["temperature"])  # type: ignore[arg-type]
        with pytest.raises(TypeError):
            normalize_params({"extra": "nope"})


class TestOpenAIRequestAdapter:
    """Test OpenAI request adapter functionality."""

    @pytest.fixture
    def adapter(self):
        return OpenAIRequestAdapter()

    def test_to_provider_basic_functionality(self, adapter):
        """Messages and sampling params are copied; stream is left to the caller."""
        messages = [{"role": "user", "content": "Hello"}]
        result = adapter.to_provider(messages, normalize_params({"temperature": 0.7, "max_tokens": 100}))

        assert result["messages"] == [{"role": "user", "content": "Hello"}]
        assert result["temperature"] == 0.7
        assert result["max_tokens"] == 100
        assert "stream" not in result
        assert "extra_body" not in result

    def test_empty_tools_are_dropped(self, adapter):
        """An empty tool list is not sent."""
        result = adapter.to_provider([{"role": "user", "content": "hi"}], normalize_params({}, tools=[]))
        assert "tools" not in result

    def test_tools_pass_through(self, adapter):
        """Function tools are sent unchanged."""
        result = adapter.to_provider([{"role": "user", "content": "hi"}], normalize_params({}, tools=TOOLS))
        assert result["tools"] == TOOLS

    def test_extras_go_to_extra_body(self, adapter):
        """Provider-specific keys travel in extra_body."""
        result = adapter.to_provider([], normalize_params({"reasoning_effort": "low"}))
        assert result["extra_body"] == {"reasoning_effort": "low"}
        assert "reasoning_effort" not in result

    def test_tool_call_messages(self, adapter):
        """Assistant tool calls and tool replies keep their wire shape."""
        messages = [
            {"role": "user", "content": "Who is on shift?"},
            {"role": "assistant", "content": None, "tool_calls": [tool_call("call_1", "list_staff", "{}")]},
            {"role": "tool", "tool_call_id": "call_1", "content": "alice"},
        ]
        result = adapter.to_provider(messages, normalize_params({}))

        assert result["messages"][1]["content"] is None
        assert result["messages"][1]["tool_calls"][0]["id"] == "call_1"
        assert result["messages"][2] == {"role": "tool", "tool_call_id": "call_1", "content": "alice"}

    def test_from_provider_keeps_raw_argument_text(self, adapter):
        """Malformed argument text is kept for the caller to judge."""
        raw = ChatCompletion.model_validate(
            completion(tool_calls=[tool_call("call_1", "list_staff", "{broken")])
        )
        response = adapter.from_provider(raw)

        assert response.content == ""
        assert response.tool_calls == [ToolCallRequest("call_1", "list_staff", "{broken")]

    def test_from_provider_text(self, adapter):
        """A plain reply has content and no tool calls."""
        response = adapter.from_provider(ChatCompletion.model_validate(completion("Hi there")))
        assert response.content == "Hi there"
        assert response.tool_calls is None

    def test_assistant_message_from(self, adapter):
        """Tool-call turns replay with null content and default arguments."""
        response = ChatResponse(content="", tool_calls=[ToolCallRequest("call_1", "list_staff", "")])
        message = adapter.assistant_message_from(response)

        assert message["role"] == "assistant"
        assert message["content"] is None
        assert message["tool_calls"][0]["function"] == {"name": "list_staff", "arguments": "{}"}

    def test_assistant_message_without_tools(self, adapter):
        """An empty turn without tools keeps an empty string."""
        assert adapter.assistant_message_from(ChatResponse(content="")) == {"role": "assistant", "content": ""}

    def test_tool_result_message(self, adapter):
        """Tool results become role tool messages."""
        message = adapter.tool_result_message(ToolCallResult("call_1", "Error: nope", is_error=True))
        assert message == {"role": "tool", "tool_call_id": "call_1", "content": "Error: nope"}

    def test_gemini_uses_openai_shapes(self):
        """Gemini shares the OpenAI adapter."""
        assert GeminiRequestAdapter is OpenAIRequestAdapter


class TestAnthropicRequestAdapter:
    """Test translation of requests into the Anthropic message format."""

    @pytest.fixture
    def adapter(self):
        return AnthropicRequestAdapter()

    def test_system_and_defaults(self, adapter):
        """System text is lifted out and max_tokens and stop get defaults."""
        result = adapter.to_provider(
            [{"role": "system", "content": "Be brief"}, {"role": "user", "content": "hi"}],
            normalize_params({"stop": "END"}),
        )
        assert result["system"] == "Be brief"
        assert result["messages"] == [{"role": "user", "content": "hi"}]
        assert result["max_tokens"] == 4096
        assert result["stop_sequences"] == ["END"]

    def test_tools_are_translated(self, adapter):
        """Function tools become Anthropic tool definitions."""
        result = adapter.to_provider([{"role": "user", "content": "hi"}], normalize_params({}, tools=TOOLS))
        assert result["tools"] == [
            {"name": "list_staff", "description": "List staff", "input_schema": {"type": "object", "properties": {}}}
        ]

    def test_empty_assistant_turns_are_skipped(self, adapter):
        """Empty assistant turns are not sent."""
        result = adapter.to_provider(
            [
                {"role": "user", "content": "hi"},
                {"role": "assistant", "content": ""},
                {"role": "user", "content": "again"},
            ],
            normalize_params({}),
        )
        assert [m["content"] for m in result["messages"]] == ["hi", "again"]

    def test_tool_results_are_grouped(self, adapter):
        """Consecutive tool results merge into one user turn."""
        response = ChatResponse(
            content="Checking",
            tool_calls=[
                ToolCallRequest("toolu_1", "list_staff", '{"role": "nurse"}'),
                ToolCallRequest("toolu_2", "list_staff", "{}"),
            ],
        )
        messages = [
            {"role": "user", "content": "who?"},
            adapter.assistant_message_from(response),
            adapter.tool_result_message(ToolCallResult("toolu_1", "alice")),
            adapter.tool_result_message(ToolCallResult("toolu_2", "failed", is_error=True)),
        ]
        result = adapter.to_provider(messages, normalize_params({}))

        assert len(result["messages"]) == 3
        assistant = result["messages"][1]["content"]
        assert assistant[0] == {"type": "text", "text": "Checking"}
        assert assistant[1]["input"] == {"role": "nurse"}
        grouped = result["messages"][2]["content"]
        assert [b["tool_use_id"] for b in grouped] == ["toolu_1", "toolu_2"]
        assert grouped[1]["is_error"] is True
        # the caller's message list is not mutated by grouping
        assert len(messages[2]["content"]) == 1

    def test_from_provider(self, adapter):
        """Text blocks join into content and tool_use input becomes JSON text."""
        raw = AnthropicMessage.model_validate(
            anthropic_message(
                [
                    {"type": "text", "text": "Let me look."},
                    {"type": "tool_use", "id": "toolu_1", "name": "list_staff", "input": {"role": "nurse"}},
                ],
                stop_reason="tool_use",
            )
        )
        response = adapter.from_provider(raw)

        assert response.content == "Let me look."
        (call,) = response.tool_calls
        assert call.id == "toolu_1"
        assert json.loads(call.arguments) == {"role": "nurse"}
