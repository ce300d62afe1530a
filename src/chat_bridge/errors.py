"""
Error taxonomy for chat-bridge.

Provider tracebacks are translated into a unified `BackendError`, while the
original exception is preserved for full tracebacks.
"""

from __future__ import annotations

import logging
from typing import Final, Optional, Type

import anthropic
import httpx
import openai

__all__: tuple[str, ...] = (
    "ChatBridgeError",
    "ModelNotFoundError",
    "ExecutableNotFoundError",
    "StartupTimeoutError",
    "NotReadyError",
    "BackendError",
    "NotInitializedError",
    "ToolExecutionError",
    "ToolArgumentParseError",
    "ToolProviderError",
    "classify_error",
)


class ChatBridgeError(RuntimeError):
    """Base exception for everything raised by chat-bridge.

    Attributes:
        original_exc: The underlying exception, if any.
    """

    original_exc: Optional[Exception]

    def __init__(self, message: str, original_exc: Optional[Exception] = None) -> None:
        super().__init__(message)
        self.original_exc = original_exc
        if original_exc is not None:
            self.__cause__ = original_exc


class ModelNotFoundError(ChatBridgeError):
    """The local model file does not exist."""


class ExecutableNotFoundError(ChatBridgeError):
    """The llama-server executable does not exist."""


class StartupTimeoutError(ChatBridgeError):
    """The local server did not become ready in time. The process is left running."""


class NotReadyError(ChatBridgeError):
    """The local server is not ready to serve requests."""


class BackendError(ChatBridgeError):
    """A backend call failed (non-2xx response, transport failure, SDK error)."""


class NotInitializedError(ChatBridgeError):
    """No backend is active and ready."""


class ToolExecutionError(ChatBridgeError):
    """A tool ran and failed; the message is the provider's own error string."""


class ToolArgumentParseError(ChatBridgeError):
    """A backend produced tool arguments that are not valid for the tool."""


class ToolProviderError(ChatBridgeError):
    """Connecting to or disconnecting from a tool server failed."""


RATE_LIMIT_ERRORS: Final[tuple[Type[Exception], ...]] = (
    openai.RateLimitError,
    anthropic.RateLimitError,
)

CONN_ERRORS: Final[tuple[Type[Exception], ...]] = (
    openai.APIConnectionError,
    anthropic.APIConnectionError,
    httpx.TransportError,
    TimeoutError,
    ConnectionError,
)

API_ERRORS: Final[tuple[Type[Exception], ...]] = (
    openai.APIError,
    anthropic.APIError,
    httpx.HTTPStatusError,
)


def classify_error(
    exc: Exception,
    logger: Optional[logging.Logger] = None,
) -> ChatBridgeError:
    """Wrap an SDK or transport exception in a BackendError with a concise message.

    Bridge errors pass through untouched.
    """
    if isinstance(exc, ChatBridgeError):
        return exc

    log = logger or logging.getLogger("chat_bridge.errors")

    if isinstance(exc, RATE_LIMIT_ERRORS):
        msg = "Rate limit exceeded, please retry later"
    elif isinstance(exc, CONN_ERRORS):
        msg = "Connection problem, unable to reach the model backend"
    elif isinstance(exc, API_ERRORS):
        status = getattr(exc, "status_code", None)
        msg = f"Backend reported an error ({status})" if status else "Backend reported an error"
    else:
        msg = exc.__class__.__name__
        log.exception("Unexpected backend exception")
        return BackendError(f"{msg}: {exc}", exc)

    log.warning("Wrapping backend exception: %s", exc)
    return BackendError(f"{msg}: {exc}", exc)
