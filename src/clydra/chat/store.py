"""Client-side message store with a write-through local cache.

The in-memory sequence is what the UI renders. Every mutation is mirrored to
the local key/value store under the bound thread so a crashed or restarted
client can show the conversation again before the backend answers.
"""

import logging

from ..errors import VersionConflictError
from ..storage import KeyValueStore, current_thread_key, messages_key
from .models import Message

logger = logging.getLogger(__name__)


class MessageStore:
    """Ordered messages of the active thread.

    Insertion order is conversation order. Messages are looked up by id,
    never by position, so concurrent updates cannot hit the wrong record.
    """

    def __init__(self, local_store: KeyValueStore):
        self._local = local_store
        self._thread_id: str | None = None
        self._messages: list[Message] = []
        self._mirror_version: int | None = None

    @property
    def thread_id(self) -> str | None:
        return self._thread_id

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def get(self, message_id: str) -> Message | None:
        index = self._index_of(message_id)
        return None if index is None else self._messages[index]

    def _index_of(self, message_id: str) -> int | None:
        for index, message in enumerate(self._messages):
            if message.id == message_id:
                return index
        return None

    async def bind(self, thread_id: str | None, messages: list[Message] | None = None) -> None:
        """Attach the store to a thread, optionally replacing its messages.

        Messages already in memory are kept when ``messages`` is None, which
        is how a conversation started before its thread existed gets adopted.
        """
        self._thread_id = thread_id
        self._mirror_version = None
        if messages is not None:
            self._messages = list(messages)

        if thread_id is None:
            await self._local.delete(current_thread_key())
            return

        await self._local.set(current_thread_key(), thread_id)
        cached = await self._local.get(messages_key(thread_id))
        self._mirror_version = cached.version if cached else 0
        await self._mirror()

    async def clear(self) -> None:
        """Start an empty conversation with no thread."""
        await self.bind(None, [])

    async def append(self, message: Message) -> Message:
        if self._index_of(message.id) is not None:
            raise ValueError(f"Message {message.id} is already in the store")
        self._messages.append(message)
        await self._mirror()
        return message

    async def update(self, message_id: str, **changes: object) -> Message | None:
        """Replace a message with a copy carrying ``changes``.

        Returns the new record, or None if the id is unknown.
        """
        index = self._index_of(message_id)
        if index is None:
            return None
        updated = self._messages[index].model_copy(update=changes)
        self._messages[index] = updated
        await self._mirror()
        return updated

    async def update_content(self, message_id: str, content: str) -> Message | None:
        return await self.update(message_id, content=content)

    async def swap_id(self, old_id: str, new_id: str) -> bool:
        """Give a message its durable id, matching it by its current id."""
        if old_id == new_id:
            return await self.update(old_id, durable=True) is not None
        if self._index_of(new_id) is not None:
            logger.warning("Refusing to reuse message id %s already in thread %s", new_id, self._thread_id)
            return False
        return await self.update(old_id, id=new_id, durable=True) is not None

    async def remove(self, message_id: str) -> bool:
        index = self._index_of(message_id)
        if index is None:
            return False
        del self._messages[index]
        await self._mirror()
        return True

    async def load_cached(self, thread_id: str) -> list[Message]:
        """Read the locally cached messages of a thread (empty if none)."""
        cached = await self._local.get(messages_key(thread_id))
        if cached is None:
            return []
        return [Message.model_validate(item) for item in cached.value]

    async def current_thread(self) -> str | None:
        """Thread the client last had open, for reload recovery."""
        pointer = await self._local.get(current_thread_key())
        return pointer.value if pointer else None

    async def forget_thread(self, thread_id: str) -> None:
        """Drop the local cache of a thread, unbinding it if active."""
        await self._local.delete(messages_key(thread_id))
        if self._thread_id == thread_id:
            await self.clear()
        elif await self.current_thread() == thread_id:
            await self._local.delete(current_thread_key())

    async def _mirror(self) -> None:
        if self._thread_id is None:
            return

        key = messages_key(self._thread_id)
        payload = [message.model_dump(mode="json") for message in self._messages]
        try:
            self._mirror_version = await self._local.set(
                key, payload, expected_version=self._mirror_version
            )
        except VersionConflictError as e:
            # Another client wrote this thread's cache; this one's view wins
            logger.warning("Overwriting cache written elsewhere: %s", e)
            self._mirror_version = await self._local.set(key, payload)
