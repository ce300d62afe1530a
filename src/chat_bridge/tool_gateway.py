"""Thin façade over the external tool provider."""

from __future__ import annotations

import logging
from typing import Any, Optional, Protocol, runtime_checkable

from chat_bridge.types import ToolResult, ToolServerDescriptor, ToolSpec

__all__ = ["ToolProvider", "ToolGateway"]


@runtime_checkable
class ToolProvider(Protocol):
    """What the orchestrator needs from a tool provider."""

    async def connect(self, endpoint: str) -> ToolServerDescriptor:
        ...

    async def disconnect(self, server_id: str) -> None:
        ...

    async def list_tools(self) -> list[ToolSpec]:
        """Tools aggregated across every connected server."""
        ...

    async def execute_tool(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        ...


class ToolGateway:
    """Provider-agnostic access to tools.

    Nothing is cached: every ``list_tools`` call re-queries the provider, so
    tools from servers connected mid-conversation show up on the next turn.
    """

    def __init__(
        self,
        provider: Optional[ToolProvider] = None,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.provider = provider
        self.logger = logger or logging.getLogger(__name__)

    async def connect(self, endpoint: str) -> ToolServerDescriptor:
        if self.provider is None:
            raise RuntimeError("No tool provider configured")
        server = await self.provider.connect(endpoint)
        self.logger.info("Connected tool server %s with %d tools", server.name, len(server.tools))
        return server

    async def disconnect(self, server_id: str) -> None:
        if self.provider is None:
            return
        await self.provider.disconnect(server_id)

    async def list_tools(self) -> list[ToolSpec]:
        if self.provider is None:
            return []
        return list(await self.provider.list_tools())

    async def execute(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        if self.provider is None:
            return ToolResult.failed("No tool provider configured")
        try:
            return await self.provider.execute_tool(name, arguments)
        except Exception as exc:
            self.logger.exception("Tool %s raised", name)
            return ToolResult.failed(str(exc) or exc.__class__.__name__)

    async def function_tools(self) -> list[dict[str, Any]]:
        """The live catalog rendered as OpenAI-style function tools."""
        return [spec.as_function_tool() for spec in await self.list_tools()]
