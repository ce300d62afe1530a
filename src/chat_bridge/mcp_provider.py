"""
MCP tool provider.

Connects to Model Context Protocol servers over stdio (one child process per
server script) and exposes their tools through the ``ToolProvider`` contract.
"""

from __future__ import annotations

import logging
import sys
import uuid
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client

from chat_bridge.errors import ToolProviderError
from chat_bridge.types import ToolResult, ToolServerDescriptor, ToolSpec

__all__ = ["MCPToolProvider", "server_parameters"]


def server_parameters(script_path: str) -> StdioServerParameters:
    """Pick the interpreter for an MCP server script by extension."""
    path = Path(script_path).expanduser()
    suffix = path.suffix.lower()
    if suffix == ".py":
        command = sys.executable
    elif suffix in (".js", ".mjs", ".cjs"):
        command = "node"
    else:
        raise ToolProviderError(f"Unsupported MCP server script: {script_path} (expected .py or .js)")
    return StdioServerParameters(command=command, args=[str(path)], cwd=str(path.parent))


@dataclass
class _Connection:
    descriptor: ToolServerDescriptor
    session: ClientSession
    stack: AsyncExitStack
    tool_names: set[str] = field(default_factory=set)


class MCPToolProvider:
    """Aggregates tools across connected MCP stdio servers."""

    def __init__(self, *, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self._connections: dict[str, _Connection] = {}

    @property
    def servers(self) -> list[ToolServerDescriptor]:
        return [c.descriptor for c in self._connections.values()]

    async def connect(self, endpoint: str) -> ToolServerDescriptor:
        for conn in self._connections.values():
            if conn.descriptor.endpoint == endpoint:
                self.logger.info("MCP server already connected: %s", endpoint)
                return conn.descriptor

        params = server_parameters(endpoint)
        if not Path(params.args[0]).is_file():
            raise ToolProviderError(f"MCP server script not found: {endpoint}")

        stack = AsyncExitStack()
        try:
            read, write = await stack.enter_async_context(stdio_client(params))
            session = await stack.enter_async_context(ClientSession(read, write))
            init = await session.initialize()
            listed = await session.list_tools()
        except Exception as exc:
            await stack.aclose()
            raise ToolProviderError(f"Failed to connect to MCP server {endpoint}: {exc}", exc) from exc

        tools = [_tool_spec(t) for t in listed.tools]
        server_name = getattr(getattr(init, "serverInfo", None), "name", None) or Path(endpoint).stem
        descriptor = ToolServerDescriptor(
            id=f"mcp_{uuid.uuid4().hex[:12]}",
            name=server_name,
            endpoint=endpoint,
            tools=tools,
        )
        self._connections[descriptor.id] = _Connection(
            descriptor=descriptor,
            session=session,
            stack=stack,
            tool_names={t.name for t in tools},
        )
        self.logger.info("Connected MCP server %s (%d tools)", server_name, len(tools))
        return descriptor

    async def disconnect(self, server_id: str) -> None:
        conn = self._connections.pop(server_id, None)
        if conn is None:
            raise ToolProviderError(f"Unknown MCP server: {server_id}")
        try:
            await conn.stack.aclose()
        except Exception as exc:
            raise ToolProviderError(f"Error while disconnecting {conn.descriptor.name}: {exc}", exc) from exc
        self.logger.info("Disconnected MCP server %s", conn.descriptor.name)

    async def close(self) -> None:
        for server_id in list(self._connections):
            try:
                await self.disconnect(server_id)
            except ToolProviderError as exc:
                self.logger.warning("%s", exc)

    async def list_tools(self) -> list[ToolSpec]:
        tools: list[ToolSpec] = []
        for conn in self._connections.values():
            listed = await conn.session.list_tools()
            specs = [_tool_spec(t) for t in listed.tools]
            conn.descriptor.tools = specs
            conn.tool_names = {s.name for s in specs}
            tools.extend(specs)
        return tools

    async def execute_tool(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        conn = next((c for c in self._connections.values() if name in c.tool_names), None)
        if conn is None:
            return ToolResult.failed(f"Tool not found: {name}")

        result = await conn.session.call_tool(name, arguments)
        text = _content_text(result.content)
        if result.isError:
            return ToolResult.failed(text or f"Tool {name} reported an error")
        structured = getattr(result, "structuredContent", None)
        return ToolResult.ok(structured if structured is not None and not text else text)


def _tool_spec(tool: Any) -> ToolSpec:
    return ToolSpec(
        name=tool.name,
        description=tool.description or "",
        input_schema=dict(tool.inputSchema or {}),
    )


def _content_text(content: list[Any]) -> str:
    parts = []
    for block in content or []:
        text = getattr(block, "text", None)
        if text is not None:
            parts.append(text)
    return "\n".join(parts)
