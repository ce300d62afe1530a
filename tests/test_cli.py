import pytest

from chat_bridge.cli import build_parser, config_from_args, main, repl
from chat_bridge.config import ProviderConfig, save_config
from chat_bridge.orchestrator import ChatOrchestrator
from chat_bridge.provider import Provider
from chat_bridge.response import ChatResponse
from chat_bridge.tool_gateway import ToolGateway
from chat_bridge.types import ToolCallRequest

from fakes import STAFF_TOOL, FakeSupervisor, FakeToolProvider


class Terminal:
    """Scripted input lines and captured output for the REPL."""

    def __init__(self, *lines):
        self.lines = list(lines)
        self.output = []

    async def read(self, prompt):
        if not self.lines:
            return None
        return self.lines.pop(0)

    def write(self, text):
        self.output.append(text)

    @property
    def text(self):
        return "".join(self.output)


async def local_orchestrator(*replies):
    orchestrator = ChatOrchestrator(
        gateway=ToolGateway(FakeToolProvider([STAFF_TOOL], {"list_staff": lambda args: "alice"})),
        supervisor=FakeSupervisor(list(replies)),
        chunk_delay=0,
    )
    await orchestrator.select_backend(Provider.LOCAL)
    return orchestrator


class TestArguments:
    """Test command line parsing and config selection."""

    def test_defaults(self):
        """Defaults use saved config, five steps and streaming."""
        args = build_parser().parse_args([])
        assert args.provider is None
        assert args.mcp_server == []
        assert args.max_steps == 5
        assert not args.no_stream

    def test_repeatable_servers(self):
        """--mcp-server can be given more than once."""
        args = build_parser().parse_args(["--mcp-server", "a.py", "--mcp-server", "b.js"])
        assert args.mcp_server == ["a.py", "b.js"]

    def test_unknown_provider_rejected(self):
        """Unknown providers are rejected by argparse."""
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--provider", "mistral"])

    def test_explicit_provider_reads_env_key(self, monkeypatch):
        """An explicit remote provider takes its key from the environment."""
        monkeypatch.setenv("ANTHROPIC_API_KEY", "a-key")
        args = build_parser().parse_args(["--provider", "anthropic", "--model", "claude-3-7-sonnet-latest"])

        config = config_from_args(args)

        assert config == ProviderConfig(Provider.ANTHROPIC, api_key="a-key", selected_model="claude-3-7-sonnet-latest")

    def test_local_provider(self):
        """The local provider needs no key and keeps the model path."""
        args = build_parser().parse_args(["--provider", "local", "--model-path", "llama3.2-3b-q4"])
        config = config_from_args(args)
        assert config.provider is Provider.LOCAL
        assert config.api_key is None
        assert config.model_path == "llama3.2-3b-q4"

    def test_falls_back_to_saved_config(self, tmp_path):
        """Without --provider the saved config is used."""
        path = tmp_path / "cfg.json"
        save_config(ProviderConfig(Provider.OPENAI, api_key="saved"), path)

        config = config_from_args(build_parser().parse_args(["--config", str(path)]))

        assert config.provider is Provider.OPENAI
        assert config.api_key == "saved"


class TestRepl:
    """Test the interactive loop against scripted input."""

    @pytest.mark.asyncio
    async def test_streamed_reply(self):
        """Streamed text is printed and /quit stops reading."""
        orchestrator = await local_orchestrator(ChatResponse(content="Hello there, friend"))
        terminal = Terminal("hi", "/quit", "never read")

        await repl(orchestrator, read=terminal.read, write=terminal.write)

        assert "Hello there, friend\n" in terminal.text
        assert terminal.lines == ["never read"]

    @pytest.mark.asyncio
    async def test_tool_calls_are_rendered(self):
        """Tool calls and results are printed before the summary."""
        orchestrator = await local_orchestrator(
            ChatResponse(content="", tool_calls=[ToolCallRequest("local_1", "list_staff", "{}")])
        )
        terminal = Terminal("list staff")

        await repl(orchestrator, read=terminal.read, write=terminal.write)

        assert "[tool list_staff {}]\n" in terminal.output
        assert "[success] alice\n" in terminal.output
        assert terminal.output[-1] == "Executed 1 tool call(s)\n"

    @pytest.mark.asyncio
    async def test_non_streaming(self):
        """--no-stream prints tool statuses and the whole reply."""
        orchestrator = await local_orchestrator(
            ChatResponse(content="", tool_calls=[ToolCallRequest("local_1", "list_staff", "{}")])
        )
        terminal = Terminal("show all staff")

        await repl(orchestrator, stream=False, read=terminal.read, write=terminal.write)

        assert terminal.output[-2:] == ["[tool list_staff: success]\n", "Executed 1 tool call(s)\n"]

    @pytest.mark.asyncio
    async def test_commands(self):
        """/status and /clear are handled without calling the model."""
        orchestrator = await local_orchestrator(ChatResponse(content="one"))
        terminal = Terminal("hello", "", "/status", "/clear")

        await repl(orchestrator, read=terminal.read, write=terminal.write)

        assert "provider: local\n" in terminal.output
        assert "initialized: True\n" in terminal.output
        assert "(conversation cleared)\n" in terminal.output
        assert orchestrator.history() == []

    @pytest.mark.asyncio
    async def test_errors_are_printed(self):
        """Chat errors are printed and the loop keeps going."""
        orchestrator = ChatOrchestrator(supervisor=FakeSupervisor())
        terminal = Terminal("hello")

        await repl(orchestrator, stream=False, read=terminal.read, write=terminal.write)

        assert terminal.output[-1].startswith("error: Chat is not initialized")


class TestMain:
    """Test the console entry point exit codes."""

    def test_unconfigured_exits_with_error(self, capsys):
        """With nothing configured the CLI exits with status 1."""
        assert main([]) == 1
        assert "No provider configured" in capsys.readouterr().err

    def test_missing_local_model(self, capsys):
        """A missing local model is reported and exits with status 1."""
        assert main(["--provider", "local"]) == 1
        assert "Model not found" in capsys.readouterr().err
