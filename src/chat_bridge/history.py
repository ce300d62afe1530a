from __future__ import annotations

from typing import Iterator

from chat_bridge.types import ChatMessage, Message

__all__ = ["ConversationStore"]

_ROLES = ("user", "assistant")


class ConversationStore:
    """Ordered, append-only conversation log.

    Not safe for concurrent mutation: one chat invocation at a time per store.
    """

    def __init__(self) -> None:
        self._messages: list[Message] = []

    def append(self, message: Message) -> None:
        if message.role not in _ROLES:
            raise ValueError(f"Unsupported role: {message.role!r}")
        if message.content is None:
            raise ValueError("Message content must not be None")
        self._messages.append(message)

    def add_user(self, content: str) -> None:
        self.append(Message("user", content))

    def add_assistant(self, content: str) -> None:
        self.append(Message("assistant", content))

    def snapshot(self) -> list[Message]:
        return list(self._messages)

    def as_chat_messages(self) -> list[ChatMessage]:
        return [m.as_chat_message() for m in self._messages]

    def clear(self) -> None:
        self._messages = []

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(self.snapshot())
