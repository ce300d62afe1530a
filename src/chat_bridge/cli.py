"""
Terminal front end.

    chat-bridge --provider openai --mcp-server ./tools/server.py
    chat-bridge --provider local --model-path llama3.2-3b-q4

Without ``--provider`` the saved config is used, then the environment.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Awaitable, Callable, Optional, Sequence

from chat_bridge.config import MAX_TOOL_STEPS, ProviderConfig, resolve_startup_config, save_config
from chat_bridge.errors import ChatBridgeError
from chat_bridge.mcp_provider import MCPToolProvider
from chat_bridge.orchestrator import ChatOrchestrator
from chat_bridge.provider import ENV_VARS, Provider
from chat_bridge.tool_gateway import ToolGateway

logger = logging.getLogger(__name__)

Reader = Callable[[str], Awaitable[Optional[str]]]
Writer = Callable[[str], None]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="chat-bridge", description="Chat with a model that can call MCP tools.")
    parser.add_argument(
        "--provider",
        choices=[p.value for p in Provider],
        help="Backend to use (default: saved config, then environment)",
    )
    parser.add_argument("--model", help="Model identifier for remote providers")
    parser.add_argument("--model-path", help="GGUF path or local model id for the local provider")
    parser.add_argument(
        "--mcp-server",
        action="append",
        default=[],
        metavar="SCRIPT",
        help="MCP server script to connect (.py or .js); repeatable",
    )
    parser.add_argument("--config", type=Path, help="Provider config file (default: ~/.chat-bridge/api-config.json)")
    parser.add_argument("--save", action="store_true", help="Persist the selected provider config")
    parser.add_argument("--max-steps", type=int, default=MAX_TOOL_STEPS, help="Model steps per remote reply")
    parser.add_argument("--no-stream", action="store_true", help="Print whole replies instead of streaming")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    return parser


def config_from_args(args: argparse.Namespace) -> Optional[ProviderConfig]:
    if args.provider is None:
        return resolve_startup_config(args.config)
    provider = Provider(args.provider)
    api_key = os.getenv(ENV_VARS[provider]) if provider.is_remote else None
    return ProviderConfig(
        provider=provider,
        api_key=api_key,
        selected_model=args.model,
        model_path=args.model_path,
    )


async def _read_line(prompt: str) -> Optional[str]:
    try:
        return await asyncio.to_thread(input, prompt)
    except EOFError:
        return None


def _write(text: str) -> None:
    sys.stdout.write(text)
    sys.stdout.flush()


async def repl(
    orchestrator: ChatOrchestrator,
    *,
    stream: bool = True,
    read: Reader = _read_line,
    write: Writer = _write,
) -> None:
    """Read-eval-print loop; ``/clear``, ``/status`` and ``/quit`` are handled locally."""
    write("Type /quit to exit, /clear to reset the conversation.\n")
    while True:
        line = await read("> ")
        if line is None:
            break
        line = line.strip()
        if not line:
            continue
        if line == "/quit":
            break
        if line == "/clear":
            orchestrator.clear_history()
            write("(conversation cleared)\n")
            continue
        if line == "/status":
            for key, value in orchestrator.status().items():
                write(f"{key}: {value}\n")
            continue

        if stream:
            await _render_stream(orchestrator, line, write)
        else:
            try:
                result = await orchestrator.chat(line)
            except ChatBridgeError as exc:
                write(f"error: {exc}\n")
                continue
            for record in result.tool_calls or []:
                write(f"[tool {record.name}: {record.status}]\n")
            write(f"{result.response}\n")


async def _render_stream(orchestrator: ChatOrchestrator, line: str, write: Writer) -> None:
    streamed_text = False
    async for event in orchestrator.stream(line):
        if event.type == "text":
            streamed_text = True
            write(event.data)
        elif event.type == "tool-call":
            write(f"[tool {event.data['name']} {event.data['arguments']}]\n")
        elif event.type == "tool-result":
            write(f"[{event.data['status']}] {event.data['result']}\n")
        elif event.type == "complete":
            write("\n" if streamed_text else f"{event.data}\n")
        elif event.type == "error":
            write(f"error: {event.data}\n")


async def run(args: argparse.Namespace) -> int:
    tools = MCPToolProvider()
    orchestrator = ChatOrchestrator(gateway=ToolGateway(tools), max_steps=args.max_steps)
    try:
        for script in args.mcp_server:
            try:
                server = await orchestrator.gateway.connect(script)
            except ChatBridgeError as exc:
                print(f"warning: {exc}", file=sys.stderr)
                continue
            print(f"Connected {server.name}: {', '.join(t.name for t in server.tools) or 'no tools'}")

        config = config_from_args(args)
        if config is None:
            print("No provider configured. Pass --provider or set an API key.", file=sys.stderr)
            return 1

        result = await orchestrator.configure(config)
        if not result.success:
            print(f"error: {result.error}", file=sys.stderr)
            return 1
        if args.save:
            save_config(config, args.config)

        print(f"Using {config.provider} ({orchestrator.status()['model']})")
        await repl(orchestrator, stream=not args.no_stream)
        return 0
    finally:
        await orchestrator.shutdown()
        await tools.close()


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(levelname)s %(name)s: %(message)s")
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
