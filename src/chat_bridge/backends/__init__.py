"""Backend variants and the factory that builds them."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

from anthropic import AsyncAnthropic
from openai import AsyncOpenAI

from chat_bridge.backends.base import ChatBackend
from chat_bridge.backends.local import LocalBackend
from chat_bridge.backends.remote import (
    AnthropicBackend,
    GeminiBackend,
    OpenAIBackend,
    RemoteBackend,
)
from chat_bridge.local_server import LocalInferenceSupervisor
from chat_bridge.provider import DEFAULT_MODELS, Provider, get_api_key

__all__ = [
    "ChatBackend",
    "RemoteBackend",
    "OpenAIBackend",
    "GeminiBackend",
    "AnthropicBackend",
    "LocalBackend",
    "create_backend",
]

_REMOTE_REGISTRY: dict[Provider, type[RemoteBackend]] = {
    Provider.OPENAI: OpenAIBackend,
    Provider.GEMINI: GeminiBackend,
    Provider.ANTHROPIC: AnthropicBackend,
}


def create_backend(
    provider: Provider | str,
    model: Optional[str] = None,
    *,
    api_key: Optional[str] = None,
    client: AsyncOpenAI | AsyncAnthropic | None = None,
    model_path: Optional[str | Path] = None,
    supervisor: Optional[LocalInferenceSupervisor] = None,
    logger: Optional[logging.Logger] = None,
    **backend_kwargs: Any,
) -> ChatBackend:
    """
    Factory for every supported backend.

    Args:
        provider: Which backend to build (openai, gemini, anthropic, local).
        model: Model identifier; defaults to the provider's default model.
        api_key: Overrides the environment lookup for remote providers.
        client: Pre-configured SDK client for remote providers
            (AsyncOpenAI for openai/gemini, AsyncAnthropic for anthropic).
        model_path: Local model override (path or known local model id).
        supervisor: Local server supervisor to reuse.
        logger: Optional custom logger.
        **backend_kwargs: Passed through (max_steps, params, timeout, chunk_size...).
    """
    provider = Provider(provider)

    if provider is Provider.LOCAL:
        return LocalBackend(
            supervisor,
            model_path=model_path or model,
            logger=logger,
            **backend_kwargs,
        )

    backend_cls = _REMOTE_REGISTRY[provider]
    model = model or DEFAULT_MODELS[provider]
    if client is not None:
        return backend_cls.from_client(model, client, logger=logger, **backend_kwargs)

    key = api_key or get_api_key(provider)
    return backend_cls(model, api_key=key, logger=logger, **backend_kwargs)
