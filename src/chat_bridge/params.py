"""
Sampling parameters for the remote backends.

Backends accept a ``params`` dict at construction (``temperature``,
``max_tokens``...). Before every request it is merged with the live tool
list and normalized to one shape: standard keys at the top level, anything
provider specific under ``extra``, forwarded unchanged.
"""

from __future__ import annotations

from typing import Any, Optional

__all__ = ["STANDARD_KEYS", "normalize_params"]

STANDARD_KEYS = frozenset(
    {
        "temperature",
        "max_tokens",
        "top_p",
        "stream",
        "tools",
        "tool_choice",
        "parallel_tool_calls",
        "stop",
        "seed",
        "user",
    }
)


def normalize_params(params: Optional[dict[str, Any]], **overrides: Any) -> dict[str, Any]:
    """
    Split ``params`` into standard keys and an ``extra`` dict.

    ``overrides`` win over ``params``; an explicit ``extra`` dict is merged
    last. None values are kept so adapters can decide to drop them.

    >>> normalize_params({"temperature": 0.2, "reasoning_effort": "low"}, tools=[])
    {'temperature': 0.2, 'tools': [], 'stream': False, 'extra': {'reasoning_effort': 'low'}}
    """
    if params is not None and not isinstance(params, dict):
        raise TypeError(f"params must be a dict, got {type(params).__name__}")
    merged = {**(params or {}), **overrides}

    user_extra = merged.pop("extra", None) or {}
    if not isinstance(user_extra, dict):
        raise TypeError("params['extra'] must be a dict")

    std: dict[str, Any] = {}
    extra: dict[str, Any] = {}
    for key, value in merged.items():
        (std if key in STANDARD_KEYS else extra)[key] = value

    std.setdefault("stream", False)
    std["extra"] = {**extra, **user_extra}
    return std
