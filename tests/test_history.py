"""Tests for the conversation log."""

import dataclasses

import pytest

from chat_bridge.history import ConversationStore
from chat_bridge.types import Message


class TestConversationStore:
    """Test conversation history storage."""

    def test_append_preserves_order(self):
        """Messages come back in the order they were added."""
        store = ConversationStore()
        store.add_user("hi")
        store.add_assistant("hello")
        store.add_user("list staff")

        assert [m.role for m in store.snapshot()] == ["user", "assistant", "user"]
        assert [m.content for m in store] == ["hi", "hello", "list staff"]
        assert len(store) == 3

    def test_snapshot_is_a_copy(self):
        """Mutating a snapshot leaves the store alone."""
        """Mutating a snapshot never touches the store."""
        store = ConversationStore()
        store.add_user("hi")

        snapshot = store.snapshot()
        snapshot.append(Message("assistant", "injected"))
        snapshot.clear()

        assert len(store) == 1

    def test_messages_are_immutable(self):
        """Stored messages cannot be edited in place."""
        message = Message("user", "hi")
        with pytest.raises(dataclasses.FrozenInstanceError):
            message.content = "changed"  # type: ignore[misc]

    def test_rejects_unknown_role(self):
        """Only user and assistant roles are accepted."""
        store = ConversationStore()
        with pytest.raises(ValueError):
            store.append(Message("system", "nope"))  # type: ignore[arg-type]
        assert len(store) == 0

    def test_rejects_none_content(self):
        """Content must not be None."""
        store = ConversationStore()
        with pytest.raises(ValueError):
            store.append(Message("user", None))  # type: ignore[arg-type]

    def test_empty_assistant_text_is_allowed(self):
        """An empty assistant reply is still recorded."""
        store = ConversationStore()
        store.add_assistant("")
        assert store.snapshot() == [Message("assistant", "")]

    def test_clear(self):
        """clear removes every message."""
        store = ConversationStore()
        store.add_user("a")
        store.add_assistant("b")
        store.clear()
        assert len(store) == 0
        assert store.as_chat_messages() == []

    def test_as_chat_messages(self):
        """Messages render as provider chat dicts."""
        store = ConversationStore()
        store.add_user("hi")
        assert store.as_chat_messages() == [{"role": "user", "content": "hi"}]
