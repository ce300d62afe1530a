"""
Tool-offering policy for the local backend.

Small local models answer plain chat noticeably worse when tool schemas are
attached, so tools are only offered for utterances that are unambiguously
action requests. Missing an action request is preferred over attaching tools
to ordinary conversation.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable, Optional, Pattern, Sequence

__all__ = ["DEFAULT_ACTION_PATTERNS", "ToolInvocationDecider"]

logger = logging.getLogger(__name__)

DEFAULT_ACTION_PATTERNS: tuple[str, ...] = (
    r"^(list|show|get|find|display)\s+(all\s+)?(staff|tasks?|calls?|active)",
    r"^call\s+(staff|someone|[\w\s]+)(\s+named|\s+called)?\s+",
    r"^(create|add|make)\s+(new\s+)?(staff|task)",
    r"^(update|change|modify)\s+(staff|task)",
    r"^assign\s+task",
    r"^complete\s+task",
    r"^get\s+(staff|task|call)\s+(profile|status|result)",
)


class ToolInvocationDecider:
    """Decides whether a user message should be answered with tools attached."""

    def __init__(self, patterns: Optional[Iterable[str | Pattern[str]]] = None) -> None:
        source = DEFAULT_ACTION_PATTERNS if patterns is None else patterns
        self._patterns: Sequence[Pattern[str]] = tuple(
            p if isinstance(p, re.Pattern) else re.compile(p, re.IGNORECASE) for p in source
        )

    def should_offer_tools(self, message: str) -> bool:
        text = (message or "").strip().lower()
        is_action = any(p.search(text) for p in self._patterns)
        logger.debug("Tool detection: %r -> %s", text[:50], "ACTION" if is_action else "CHAT")
        return is_action
