"""Unit tests for chat models and the client-side message store."""
import pytest
from hypothesis import given
from hypothesis import strategies as st

from clydra.chat import (
    ChatRequest,
    CompletionState,
    Message,
    MessageStore,
    Role,
    is_temporary_id,
    validate_message_text,
)
from clydra.config import MAX_MESSAGE_LENGTH
from clydra.errors import MessageValidationError
from clydra.storage import current_thread_key, messages_key


class TestMessage:
    """Tests for the Message model."""

    def test_defaults(self):
        """Test that new messages get a temporary id."""
        message = Message(role=Role.USER, content="Hello")

        assert is_temporary_id(message.id)
        assert not message.durable
        assert message.completion is CompletionState.COMPLETE

    def test_ids_are_unique(self):
        """Test that temporary ids never collide."""
        ids = {Message(role=Role.USER).id for _ in range(100)}
        assert len(ids) == 100

    def test_is_immutable(self):
        """Test that records cannot be mutated in place."""
        message = Message(role=Role.USER, content="Hello")
        with pytest.raises(ValueError):
            message.content = "changed"  # type: ignore

    def test_from_backend(self):
        """Test building a message from a backend row with a numeric id."""
        message = Message.from_backend({"id": 42, "role": "assistant", "content": None, "model": "sarvam-m"})

        assert message.id == "42"
        assert message.role is Role.ASSISTANT
        assert message.content == ""
        assert message.durable


class TestValidation:
    """Tests for outgoing text validation."""

    def test_strips_whitespace(self):
        """Test that surrounding whitespace is removed."""
        assert validate_message_text("  hi \n") == "hi"

    @given(st.text(alphabet=" \t\n\r"))
    def test_blank_rejected(self, text: str):
        """Property test: whitespace-only text is never sent."""
        with pytest.raises(MessageValidationError):
            validate_message_text(text)

    def test_length_limit(self):
        """Test the maximum message length."""
        assert validate_message_text("x" * MAX_MESSAGE_LENGTH)
        with pytest.raises(MessageValidationError, match="too long"):
            validate_message_text("x" * (MAX_MESSAGE_LENGTH + 1))


class TestChatRequest:
    """Tests for the chat proxy payload."""

    def test_payload_uses_wire_names(self):
        """Test camelCase field names and plain role strings."""
        request = ChatRequest(
            messages=[Message(role=Role.USER, content="Hi").to_turn()],
            model="openai/gpt-4o",
            thread_id="T1",
            enable_web_search=True,
        )

        assert request.to_payload() == {
            "messages": [{"role": "user", "content": "Hi"}],
            "model": "openai/gpt-4o",
            "threadId": "T1",
            "stream": True,
            "enableWebSearch": True,
        }


class TestMessageStore:
    """Tests for MessageStore."""

    @pytest.mark.asyncio
    async def test_append_keeps_order(self, local_store):
        """Test that insertion order is conversation order."""
        store = MessageStore(local_store)
        first = await store.append(Message(role=Role.USER, content="a"))
        second = await store.append(Message(role=Role.ASSISTANT, content="b"))

        assert [m.id for m in store.messages] == [first.id, second.id]
        assert len(store) == 2

    @pytest.mark.asyncio
    async def test_duplicate_id_rejected(self, local_store):
        """Test that ids are unique within the store."""
        store = MessageStore(local_store)
        message = await store.append(Message(role=Role.USER, content="a"))

        with pytest.raises(ValueError):
            await store.append(message)

    @pytest.mark.asyncio
    async def test_update_by_id(self, local_store):
        """Test that updates find their record by id, not position."""
        store = MessageStore(local_store)
        target = await store.append(Message(role=Role.ASSISTANT, completion=CompletionState.STREAMING))
        await store.append(Message(role=Role.USER, content="later"))

        updated = await store.update_content(target.id, "partial")

        assert updated.content == "partial"
        assert store.messages[0].content == "partial"
        assert store.messages[1].content == "later"
        assert await store.update_content("tmp-missing", "x") is None

    @pytest.mark.asyncio
    async def test_swap_id(self, local_store):
        """Test replacing a temporary id with a durable one."""
        store = MessageStore(local_store)
        placeholder = await store.append(Message(role=Role.ASSISTANT))

        assert await store.swap_id(placeholder.id, "M9")
        assert store.get(placeholder.id) is None
        assert store.get("M9").durable

    @pytest.mark.asyncio
    async def test_swap_refuses_existing_id(self, local_store):
        """Test that a swap never creates duplicate ids."""
        store = MessageStore(local_store)
        await store.append(Message(id="M1", role=Role.USER, content="a"))
        placeholder = await store.append(Message(role=Role.ASSISTANT))

        assert not await store.swap_id(placeholder.id, "M1")
        assert [m.id for m in store.messages] == ["M1", placeholder.id]

    @pytest.mark.asyncio
    async def test_bind_mirrors_to_local_store(self, local_store):
        """Test the write-through cache and current-thread pointer."""
        store = MessageStore(local_store)
        await store.append(Message(role=Role.USER, content="typed before thread"))
        await store.bind("T1")
        await store.append(Message(role=Role.ASSISTANT, content="answer"))

        cached = await local_store.get(messages_key("T1"))
        assert [item["content"] for item in cached.value] == ["typed before thread", "answer"]
        assert (await local_store.get(current_thread_key())).value == "T1"

    @pytest.mark.asyncio
    async def test_load_cached(self, local_store):
        """Test reading a thread back from the local cache."""
        store = MessageStore(local_store)
        await store.bind("T1", [Message(id="M1", role=Role.USER, content="hi", durable=True)])

        fresh = MessageStore(local_store)
        assert await fresh.current_thread() == "T1"
        cached = await fresh.load_cached("T1")
        assert cached[0].id == "M1"
        assert await fresh.load_cached("T404") == []

    @pytest.mark.asyncio
    async def test_concurrent_writer_does_not_block(self, local_store):
        """Test that a cache written by another client is overwritten, not fatal."""
        store = MessageStore(local_store)
        await store.bind("T1")
        await local_store.set(messages_key("T1"), [])

        await store.append(Message(role=Role.USER, content="mine"))

        cached = await local_store.get(messages_key("T1"))
        assert [item["content"] for item in cached.value] == ["mine"]

    @pytest.mark.asyncio
    async def test_forget_thread(self, local_store):
        """Test dropping the active thread's cache."""
        store = MessageStore(local_store)
        await store.bind("T1", [Message(role=Role.USER, content="x")])

        await store.forget_thread("T1")

        assert store.thread_id is None
        assert store.messages == ()
        assert await local_store.get(messages_key("T1")) is None
        assert await store.current_thread() is None
