"""
Local inference supervisor.

Owns a single llama-server child process and proxies chat completions to it
over loopback HTTP.

State machine::

    NOT_STARTED -> STARTING -> READY
    STARTING | READY -> CRASHED     (unexpected exit)
    any -> STOPPED                  (stop)

Readiness, the process handle and the state are only mutated on the event
loop, by the supervisor's public methods and its own observer tasks.
"""

from __future__ import annotations

import asyncio
import json
import logging
from enum import StrEnum
from pathlib import Path
from typing import Any, Optional, Sequence

import httpx

from chat_bridge.config import LocalServerConfig
from chat_bridge.errors import (
    BackendError,
    ExecutableNotFoundError,
    ModelNotFoundError,
    NotReadyError,
    StartupTimeoutError,
)
from chat_bridge.response import ChatResponse
from chat_bridge.types import ChatMessage, ServerResult, ToolCallRequest, new_call_id

__all__ = ["ServerState", "LocalInferenceSupervisor", "CONVERSATIONAL_PROMPT"]

# Overrides the model's function-calling chat template when no tools are offered.
CONVERSATIONAL_PROMPT = (
    "You are a helpful AI assistant. Respond naturally in plain conversational text. "
    "Do not use JSON format or function calls."
)


class ServerState(StrEnum):
    NOT_STARTED = "not_started"
    STARTING = "starting"
    READY = "ready"
    CRASHED = "crashed"
    STOPPED = "stopped"


class LocalInferenceSupervisor:
    """Start, health-poll, stop and talk to one llama-server process."""

    name = "llama-server"

    def __init__(
        self,
        config: Optional[LocalServerConfig] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.config = config or LocalServerConfig.from_env()
        self.logger = logger or logging.getLogger(__name__)
        self.state = ServerState.NOT_STARTED
        self._transport = transport
        self._http: Optional[httpx.AsyncClient] = None
        self._process: Optional[asyncio.subprocess.Process] = None
        self._model_path: Optional[Path] = None
        self._ready = asyncio.Event()
        self._exit_task: Optional[asyncio.Task[int]] = None
        self._background: set[asyncio.Task[Any]] = set()

    # ------------------------------------------------------------------ #
    # State
    # ------------------------------------------------------------------ #
    @property
    def running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    @property
    def is_ready(self) -> bool:
        return self.running and self.state is ServerState.READY

    @property
    def model_path(self) -> Optional[Path]:
        return self._model_path

    def status(self) -> dict[str, Any]:
        return {
            "running": self.running,
            "ready": self.is_ready,
            "model_path": str(self._model_path) if self._model_path else None,
            "state": self.state.value,
            "pid": self._process.pid if self.running else None,
            "server_url": self.config.server_url,
        }

    def list_local_models(self) -> list[str]:
        return self.config.list_models()

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #
    async def start(self, model_path: Optional[str | Path] = None) -> ServerResult:
        """Spawn llama-server and wait until it is ready.

        Never raises for lifecycle problems; they come back in the result.
        On timeout the process is left running so ``stop`` can still reap it.
        """
        path = self.config.resolve_model_path(model_path)
        if not path.is_file():
            self._log(f"Model not found at {path}", logging.ERROR)
            return ServerResult.failed(ModelNotFoundError(f"Model not found at: {path}"))

        if self.running and self._process is not None:
            if self.state is ServerState.READY:
                self._log("Server already running")
                return ServerResult.ok()
            self._log("Server already starting, waiting for readiness")
            return await self._wait_until_ready(self._process)

        executable = self.config.executable_path()
        if not executable.is_file():
            self._log(f"Executable not found at {executable}", logging.ERROR)
            return ServerResult.failed(
                ExecutableNotFoundError(f"llama-server executable not found at: {executable}")
            )

        cmd = self.config.command(path)
        self._log(f"Starting: {' '.join(cmd)}")
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            self._log(f"Failed to spawn: {exc}", logging.ERROR)
            return ServerResult.failed(BackendError(f"Failed to start llama-server: {exc}", exc))

        self._process = process
        self._model_path = path
        self._ready = asyncio.Event()
        self.state = ServerState.STARTING
        self._log(f"Spawned PID {process.pid}")

        self._spawn(self._watch_output(process, process.stdout, "stdout"))
        self._spawn(self._watch_output(process, process.stderr, "stderr"))
        self._exit_task = self._spawn(self._watch_exit(process))

        return await self._wait_until_ready(process)

    async def stop(self) -> ServerResult:
        """SIGTERM the process and forget it at once, without waiting for exit."""
        process = self._process
        if process is None:
            return ServerResult.ok()

        self._log(f"Stopping PID {process.pid}")
        self._process = None
        self._model_path = None
        self._ready.clear()
        self.state = ServerState.STOPPED
        try:
            process.terminate()
        except ProcessLookupError:
            pass
        return ServerResult.ok()

    async def shutdown(self, grace: float = 5.0) -> None:
        """Stop the server and release the HTTP client; used on process exit."""
        await self.stop()
        if self._background:
            await asyncio.wait(set(self._background), timeout=grace)
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    # ------------------------------------------------------------------ #
    # Chat
    # ------------------------------------------------------------------ #
    async def chat_completion(
        self,
        messages: Sequence[ChatMessage],
        tools: Optional[Sequence[dict[str, Any]]] = None,
    ) -> ChatResponse:
        if not self.is_ready:
            raise NotReadyError("Llama server is not ready")

        payload: dict[str, Any] = {
            "messages": list(messages),
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
            "stream": False,
        }
        if tools:
            payload["tools"] = list(tools)
            self._log(f"Function-calling mode, {len(tools)} tools", logging.DEBUG)
        else:
            payload["messages"] = [{"role": "system", "content": CONVERSATIONAL_PROMPT}, *messages]
            self._log("Conversational mode", logging.DEBUG)

        request = asyncio.ensure_future(self._client.post("/v1/chat/completions", json=payload))
        watchers: set[asyncio.Future[Any]] = {request}
        if self._exit_task is not None:
            watchers.add(self._exit_task)
        try:
            done, _ = await asyncio.wait(watchers, return_when=asyncio.FIRST_COMPLETED)
        finally:
            if not request.done():
                request.cancel()

        if request not in done:
            raise BackendError("llama-server exited while a request was in flight")
        try:
            response = request.result()
        except httpx.TransportError as exc:
            raise BackendError(f"Request to llama-server failed: {exc}", exc) from exc

        if not response.is_success:
            raise BackendError(f"Server responded with {response.status_code}: {response.text[:200]}")
        try:
            data = response.json()
        except ValueError as exc:
            raise BackendError("llama-server returned invalid JSON", exc) from exc
        return self._parse_completion(data)

    def _parse_completion(self, data: dict[str, Any]) -> ChatResponse:
        try:
            message = data["choices"][0]["message"]
        except (KeyError, IndexError, TypeError) as exc:
            raise BackendError(f"Unexpected completion payload: {str(data)[:200]}", exc) from exc

        tool_calls = []
        for tc in message.get("tool_calls") or []:
            function = tc.get("function") or {}
            arguments = function.get("arguments", "")
            if not isinstance(arguments, str):
                arguments = json.dumps(arguments)
            tool_calls.append(
                ToolCallRequest(id=tc.get("id") or new_call_id(), name=function.get("name", ""), arguments=arguments)
            )
        return ChatResponse(content=message.get("content") or "", tool_calls=tool_calls or None, raw=data)

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    @property
    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(
                base_url=self.config.server_url,
                transport=self._transport,
                timeout=self.config.request_timeout,
            )
        return self._http

    def _spawn(self, coro: Any) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def _wait_until_ready(self, process: asyncio.subprocess.Process) -> ServerResult:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.startup_timeout
        ready_wait = asyncio.create_task(self._ready.wait())
        last_status: Optional[int] = None
        try:
            while True:
                if self._process is not process:
                    error = BackendError("llama-server exited during startup")
                    if process.returncode is not None:
                        error = BackendError(f"llama-server exited during startup (code {process.returncode})")
                    return ServerResult.failed(error)
                if self._ready.is_set():
                    return ServerResult.ok()

                status = await self._health_status()
                if status == 200:
                    self._mark_ready(process)
                    return ServerResult.ok()
                if status == 503:
                    if last_status != 503:
                        self._log("Server responded with 503, model is still loading")
                elif status is not None:
                    self._log(f"Unexpected health status {status}", logging.WARNING)
                last_status = status

                remaining = deadline - loop.time()
                if remaining <= 0:
                    self._log(
                        f"Not ready after {self.config.startup_timeout:.0f}s, leaving process running",
                        logging.ERROR,
                    )
                    return ServerResult.failed(
                        StartupTimeoutError(
                            f"llama-server did not become ready within {self.config.startup_timeout:.0f}s"
                        )
                    )
                waiters: set[asyncio.Future[Any]] = {ready_wait}
                if self._exit_task is not None:
                    waiters.add(self._exit_task)
                await asyncio.wait(waiters, timeout=min(self.config.poll_interval, remaining))
        finally:
            ready_wait.cancel()

    async def _health_status(self) -> Optional[int]:
        try:
            response = await self._client.get("/health", timeout=self.config.health_timeout)
        except httpx.TransportError:
            return None
        return response.status_code

    def _mark_ready(self, process: asyncio.subprocess.Process) -> None:
        if process is not self._process or self.state is not ServerState.STARTING:
            return
        self.state = ServerState.READY
        self._ready.set()
        self._log("Server is ready")

    async def _watch_output(
        self,
        process: asyncio.subprocess.Process,
        stream: Optional[asyncio.StreamReader],
        label: str,
    ) -> None:
        if stream is None:
            return
        async for raw in stream:
            line = raw.decode(errors="replace").rstrip()
            if not line:
                continue
            self.logger.debug("[%s %s] %s", self.name, label, line)
            if any(marker in line for marker in self.config.ready_markers):
                self._mark_ready(process)

    async def _watch_exit(self, process: asyncio.subprocess.Process) -> int:
        code = await process.wait()
        if process is self._process:
            self._log(f"Process exited unexpectedly with code {code}", logging.WARNING)
            self._process = None
            self._model_path = None
            self._ready.clear()
            self.state = ServerState.CRASHED
        else:
            self._log(f"Process exited with code {code}", logging.DEBUG)
        return code

    def _log(self, message: str, level: int = logging.INFO) -> None:
        self.logger.log(level, f"[{self.name}] {message}")
