"""
Per-invocation tool bookkeeping.

A ``ToolRun`` lives for exactly one ``chat``/``chat_stream`` call. It turns
tool requests coming back from a backend into ``ToolCallRecord``s, executes
them through the gateway, and fires the streaming callbacks around each
execution.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Iterable, Optional

from pydantic import BaseModel

from chat_bridge.errors import ToolArgumentParseError, ToolExecutionError
from chat_bridge.events import StreamCallbacks
from chat_bridge.schema import schema_to_model, validate_arguments
from chat_bridge.tool_gateway import ToolGateway
from chat_bridge.types import (
    ToolCallRecord,
    ToolCallRequest,
    ToolSpec,
    new_call_id,
    stringify_result,
)

__all__ = ["ToolRun", "summarize_tool_calls"]


def summarize_tool_calls(count: int) -> str:
    return f"Executed {count} tool call(s)"


class ToolRun:
    def __init__(
        self,
        gateway: ToolGateway,
        specs: Iterable[ToolSpec] = (),
        *,
        callbacks: Optional[StreamCallbacks] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.gateway = gateway
        self.specs = {spec.name: spec for spec in specs}
        self.callbacks = callbacks
        self.logger = logger or logging.getLogger(__name__)
        self.records: list[ToolCallRecord] = []
        self._models: dict[str, type[BaseModel]] = {}

    async def load_catalog(self) -> list[ToolSpec]:
        """Refresh the tool specs from the gateway's live catalog."""
        specs = await self.gateway.list_tools()
        self.specs = {spec.name: spec for spec in specs}
        self._models.clear()
        self.logger.debug("Loaded %d tools", len(specs))
        return specs

    @property
    def function_tools(self) -> list[dict[str, Any]]:
        return [spec.as_function_tool() for spec in self.specs.values()]

    @property
    def pending(self) -> list[ToolCallRecord]:
        return [r for r in self.records if r.is_pending]

    def parse(self, call: ToolCallRequest) -> dict[str, Any]:
        """JSON-decode and type-check a backend's tool arguments.

        Raises ToolArgumentParseError, which the remote step loop reports
        back to the model as a tool error.
        """
        arguments = call.parse_arguments()
        spec = self.specs.get(call.name)
        if spec is None:
            return arguments
        model = self._models.get(call.name)
        if model is None:
            model = self._models[call.name] = schema_to_model(spec.name, spec.input_schema)
        return validate_arguments(model, call.name, arguments)

    async def invoke(self, name: str, arguments: dict[str, Any], call_id: Optional[str] = None) -> str:
        """Execute one tool call and record its outcome.

        Returns the stringified result; raises ToolExecutionError on failure
        after the record has been moved to ``error``.
        """
        record = ToolCallRecord(
            id=call_id or new_call_id(),
            name=name,
            arguments=json.dumps(arguments, indent=2, default=str),
        )
        self.records.append(record)
        if self.callbacks:
            self.callbacks.on_tool_call(record)

        self.logger.info("Executing tool %s", name)
        result = await self.gateway.execute(name, arguments)

        if result.success:
            text = stringify_result(result.result)
            self._settle(record, text, success=True)
            self.logger.debug("Tool %s result: %s", name, text[:200])
            return text

        error = result.error or "Tool execution failed"
        self._settle(record, error, success=False)
        self.logger.error("Tool %s failed: %s", name, error)
        raise ToolExecutionError(error)

    async def run_batch(self, calls: Iterable[ToolCallRequest]) -> list[ToolCallRecord]:
        """Execute calls one after another, skipping unparseable ones.

        Only malformed JSON skips a call; well-formed arguments go to the
        provider as decoded, without type checks. A failed tool never aborts
        the batch; its record simply ends in ``error``.
        """
        executed: list[ToolCallRecord] = []
        for call in calls:
            try:
                arguments = call.parse_arguments()
            except ToolArgumentParseError as exc:
                self.logger.error("Skipping tool call %s: %s", call.id, exc)
                continue
            try:
                await self.invoke(call.name, arguments, call_id=call.id)
            except ToolExecutionError:
                pass
            executed.append(self.records[-1])
        return executed

    def fail_pending(self, message: str) -> list[ToolCallRecord]:
        """Force every still-pending record to ``error``."""
        message = message or "Invocation failed"
        failed = []
        for record in self.pending:
            if record.fail(message):
                failed.append(record)
                if self.callbacks:
                    self.callbacks.on_tool_result(record.id, message, record.status)
        return failed

    def _settle(self, record: ToolCallRecord, text: str, *, success: bool) -> None:
        changed = record.succeed(text) if success else record.fail(text)
        if changed and self.callbacks:
            self.callbacks.on_tool_result(record.id, record.result or "", record.status)
