"""
Chat orchestrator.

The top-level component: owns the conversation log and the active backend,
and turns one user message into one assistant message, with tool calls
recorded along the way. One invocation at a time per orchestrator.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, AsyncIterator, Optional

from anthropic import AsyncAnthropic
from openai import AsyncOpenAI

from chat_bridge.backends import ChatBackend, LocalBackend, create_backend
from chat_bridge.config import MAX_TOOL_STEPS, STREAM_CHUNK_DELAY, STREAM_CHUNK_SIZE, ProviderConfig
from chat_bridge.decider import ToolInvocationDecider
from chat_bridge.errors import BackendError, NotInitializedError, classify_error
from chat_bridge.events import CallbackGuard, StreamCallbacks, StreamEvent
from chat_bridge.history import ConversationStore
from chat_bridge.local_server import LocalInferenceSupervisor
from chat_bridge.provider import Provider
from chat_bridge.tool_gateway import ToolGateway
from chat_bridge.tool_run import ToolRun
from chat_bridge.types import ChatResult, Message, ServerResult

__all__ = ["ChatOrchestrator"]


class ChatOrchestrator:
    """
    Compose backends, conversation state and tools behind ``chat``/``chat_stream``.

    Everything is injected; nothing here is a process-wide singleton.
    """

    name = "ChatOrchestrator"

    def __init__(
        self,
        *,
        gateway: Optional[ToolGateway] = None,
        history: Optional[ConversationStore] = None,
        supervisor: Optional[LocalInferenceSupervisor] = None,
        decider: Optional[ToolInvocationDecider] = None,
        max_steps: int = MAX_TOOL_STEPS,
        chunk_size: int = STREAM_CHUNK_SIZE,
        chunk_delay: float = STREAM_CHUNK_DELAY,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self.gateway = gateway or ToolGateway(logger=self.logger)
        self.conversation = history or ConversationStore()
        self.decider = decider or ToolInvocationDecider()
        self.max_steps = max_steps
        self.chunk_size = chunk_size
        self.chunk_delay = chunk_delay
        self.backend: Optional[ChatBackend] = None
        self.config: Optional[ProviderConfig] = None
        self._supervisor = supervisor

    # ------------------------------------------------------------------ #
    # Backend selection
    # ------------------------------------------------------------------ #
    @property
    def supervisor(self) -> LocalInferenceSupervisor:
        if self._supervisor is None:
            self._supervisor = LocalInferenceSupervisor(logger=self.logger)
        return self._supervisor

    @property
    def is_initialized(self) -> bool:
        return self.backend is not None and self.backend.is_ready

    async def select_backend(
        self,
        provider: Provider | str,
        *,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        model_path: Optional[str | Path] = None,
        client: AsyncOpenAI | AsyncAnthropic | None = None,
    ) -> ServerResult:
        """Switch the active backend.

        The previous backend is torn down first (leaving ``local`` stops the
        server; a remote re-selection replaces the client). Re-selecting
        ``local`` for the same model keeps the running server. A local
        backend whose server failed to start stays selected so ``shutdown``
        can still reap a timed-out process.
        """
        provider = Provider(provider)
        if self._keeps_local_server(provider, model_path or model):
            self._log("Local backend re-selected, keeping the running server", logging.DEBUG)
            self.backend = None
        elif self.backend is not None:
            await self._teardown_backend()

        try:
            backend = create_backend(
                provider,
                model,
                api_key=api_key,
                client=client,
                model_path=model_path,
                supervisor=self.supervisor if provider is Provider.LOCAL else None,
                logger=self.logger,
                **self._backend_options(provider),
            )
        except (RuntimeError, ValueError, TypeError) as exc:
            self._log(f"Cannot create {provider} backend: {exc}", logging.ERROR)
            return ServerResult.failed(BackendError(f"Cannot create {provider} backend: {exc}", exc))

        self.backend = backend
        result = await backend.initialize()
        if result.success:
            self._log(f"Switched to {provider} ({backend.model})")
        else:
            self._log(f"{provider} backend selected but not ready: {result.error}", logging.WARNING)
        return result

    async def configure(self, config: ProviderConfig) -> ServerResult:
        """Apply a saved or freshly entered provider configuration."""
        result = await self.select_backend(
            config.provider,
            api_key=config.api_key,
            model=config.selected_model,
            model_path=config.model_path,
        )
        if result.success:
            self.config = config
        return result

    def _backend_options(self, provider: Provider) -> dict[str, Any]:
        if provider is Provider.LOCAL:
            return {"decider": self.decider, "chunk_size": self.chunk_size, "chunk_delay": self.chunk_delay}
        return {"max_steps": self.max_steps}

    def _keeps_local_server(self, provider: Provider, model_path: Optional[str | Path]) -> bool:
        backend = self.backend
        return (
            provider is Provider.LOCAL
            and isinstance(backend, LocalBackend)
            and str(backend.model_path or "") == str(model_path or "")
        )

    async def _teardown_backend(self) -> None:
        backend, self.backend = self.backend, None
        if backend is None:
            return
        self._log(f"Tearing down {backend.kind} backend")
        try:
            await backend.teardown()
        except Exception:
            self.logger.exception("Backend teardown failed")

    # ------------------------------------------------------------------ #
    # Chat
    # ------------------------------------------------------------------ #
    async def chat(self, message: str) -> ChatResult:
        """
        Send one user message and return the assistant's reply.

        Raises:
            NotInitializedError: No backend is active and ready.
            ChatBridgeError: The backend failed; pending tool records are
                forced to ``error`` first.
        """
        backend = self._require_backend()
        self.conversation.add_user(message)
        run = ToolRun(self.gateway, logger=self.logger)

        try:
            text = await backend.complete(self.conversation.as_chat_messages(), run)
        except asyncio.CancelledError:
            run.fail_pending("Cancelled")
            raise
        except Exception as exc:
            error = classify_error(exc, self.logger)
            run.fail_pending(str(error))
            if error is exc:
                raise
            raise error from exc

        self.conversation.add_assistant(text)
        self._log(f"Reply: {text[:100]}", logging.DEBUG)
        return ChatResult(response=text, tool_calls=list(run.records) or None)

    async def chat_stream(self, message: str, callbacks: StreamCallbacks) -> Optional[ChatResult]:
        """
        Streaming variant of ``chat``. Never raises; failures go to ``on_error``.

        ``on_complete`` fires exactly once on success. ``on_error`` fires at
        most once and only if ``on_complete`` has not.
        """
        guard = CallbackGuard(callbacks)
        run = ToolRun(self.gateway, callbacks=callbacks, logger=self.logger)
        try:
            backend = self._require_backend()
            self.conversation.add_user(message)
            text = await backend.stream_complete(self.conversation.as_chat_messages(), run, guard.text)
            self.conversation.add_assistant(text)
            guard.complete(text)
            return ChatResult(response=text, tool_calls=list(run.records) or None)
        except asyncio.CancelledError:
            run.fail_pending("Cancelled")
            raise
        except Exception as exc:
            error = classify_error(exc, self.logger)
            self._log(f"Streaming chat failed: {error}", logging.ERROR)
            run.fail_pending(str(error))
            guard.error(error)
            return None

    async def stream(self, message: str) -> AsyncIterator[StreamEvent]:
        """Yield ``StreamEvent``s for one message; ends after ``complete`` or ``error``."""
        queue: asyncio.Queue[Optional[StreamEvent]] = asyncio.Queue()

        async def produce() -> None:
            try:
                await self.chat_stream(message, StreamCallbacks.from_sink(queue.put_nowait))
            finally:
                queue.put_nowait(None)

        task = asyncio.create_task(produce())
        try:
            while True:
                event = await queue.get()
                if event is None:
                    break
                yield event
        finally:
            if not task.done():
                task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    def _require_backend(self) -> ChatBackend:
        if self.backend is None or not self.backend.is_ready:
            raise NotInitializedError("Chat is not initialized. Select a provider first.")
        return self.backend

    # ------------------------------------------------------------------ #
    # State
    # ------------------------------------------------------------------ #
    def clear_history(self) -> None:
        self.conversation.clear()
        self._log("Conversation cleared")

    def history(self) -> list[Message]:
        return self.conversation.snapshot()

    def status(self) -> dict[str, Any]:
        status: dict[str, Any] = {
            "provider": self.backend.kind.value if self.backend else None,
            "model": self.backend.model if self.backend else None,
            "initialized": self.is_initialized,
        }
        if isinstance(self.backend, LocalBackend):
            status["server"] = self.backend.supervisor.status()
        return status

    async def shutdown(self) -> None:
        """Tear down the active backend and stop any local server."""
        await self._teardown_backend()
        if self._supervisor is not None:
            await self._supervisor.shutdown()

    def _log(self, message: str, level: int = logging.INFO) -> None:
        self.logger.log(level, f"[{self.name}] {message}")
