from __future__ import annotations

import os
from enum import StrEnum
from typing import Final

from dotenv import load_dotenv

__all__ = ["Provider", "DEFAULT_MODELS", "ENV_VARS", "get_api_key"]


class Provider(StrEnum):
    OPENAI = "openai"
    GEMINI = "gemini"
    ANTHROPIC = "anthropic"
    LOCAL = "local"

    @property
    def is_remote(self) -> bool:
        return self is not Provider.LOCAL


DEFAULT_MODELS: Final[dict[Provider, str]] = {
    Provider.OPENAI: "gpt-4o-mini",
    Provider.GEMINI: "gemini-2.5-flash-lite",
    Provider.ANTHROPIC: "claude-3-5-haiku-20241022",
    Provider.LOCAL: "llama3.2-3b-q4",
}

# Lookup order matters: the first key found wins when no saved config exists.
ENV_VARS: Final[dict[Provider, str]] = {
    Provider.OPENAI: "OPENAI_API_KEY",
    Provider.GEMINI: "GEMINI_API_KEY",
    Provider.ANTHROPIC: "ANTHROPIC_API_KEY",
}


def get_api_key(provider: Provider) -> str:
    """Return the API key for *provider* from the environment or raise RuntimeError."""
    load_dotenv()
    try:
        env_var = ENV_VARS[provider]
    except KeyError:
        raise RuntimeError(f"No API key needed or configured for {provider!s}") from None

    key = os.getenv(env_var)
    if not key:
        raise RuntimeError(f"{env_var} missing")
    return key
