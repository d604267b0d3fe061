"""Chat session: the composition root of the chat client.

A ChatSession wires the message store, thread lifecycle, persistence,
backup sweeper and stream reconciler together and exposes the operations a
front end needs. Failures are reported through ChatCallbacks and the
returned SubmitOutcome; nothing network-related is raised to the caller.
"""

import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .api import ChatBackendClient, is_quota_message
from .catalog import (
    get_model_alias,
    is_model_available,
    model_supports_web_search,
    resolve_plan,
)
from .catalog.models import Plan
from .chat.callbacks import ChatCallbacks
from .chat.models import (
    ChatRequest,
    CompletionState,
    Message,
    Role,
    ThreadSummary,
    validate_message_text,
)
from .chat.store import MessageStore
from .config import (
    BACKUP_SWEEP_INTERVAL_SECONDS,
    CHECKPOINT_INTERVAL_SECONDS,
    DEFAULT_MODEL,
    PERSIST_ATTEMPTS,
    PERSIST_BACKOFF_SECONDS,
    STREAM_TIMEOUT_SECONDS,
    THREAD_CREATE_ATTEMPTS,
    THREAD_CREATE_BACKOFF,
    UNREACHABLE_SERVICE_MESSAGE,
)
from .errors import (
    BackendError,
    ClydraError,
    MessageValidationError,
    NetworkError,
    QuotaExceededError,
    StreamTimeoutError,
    ThreadCreationError,
    ThreadNotFoundError,
)
from .persistence import BackupStore, BackupSweeper, PersistenceLayer, SweepReport, UnsavedMessage
from .storage import KeyValueStore
from .streaming import StreamOutcome, StreamReconciler
from .threads import ThreadLifecycleManager

logger = logging.getLogger(__name__)

GENERATION_FAILED_MESSAGE = "Something went wrong while generating the response."
TIMEOUT_MESSAGE = "The model took too long to respond. Please try again."
UNSAVED_RESPONSE_MESSAGE = "The response could not be saved yet. It will be retried automatically."
UNSAVED_PROMPT_MESSAGE = "Your message could not be saved yet. It will be retried automatically."


class SubmitStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REJECTED = "rejected"
    UPGRADE_REQUIRED = "upgrade_required"
    THREAD_UNAVAILABLE = "thread_unavailable"


@dataclass(frozen=True)
class SubmitOutcome:
    """Result of one submission."""

    status: SubmitStatus
    user_message: Message | None = None
    assistant_message: Message | None = None
    error: str | None = None
    stream: StreamOutcome | None = None


class ChatSession:
    """One client's conversation state and the operations on it.

    Only one submission runs at a time; a second one while a response is
    streaming is rejected rather than queued.

    Usage:
        async with ChatSession(client, store, callbacks) as session:
            outcome = await session.submit("Hello")
    """

    def __init__(
        self,
        client: ChatBackendClient,
        local_store: KeyValueStore,
        callbacks: ChatCallbacks | None = None,
        plan: Plan | str = Plan.FREE,
        model: str = DEFAULT_MODEL,
        web_search: bool = False,
        stream_timeout: float | None = STREAM_TIMEOUT_SECONDS,
        checkpoint_interval: float = CHECKPOINT_INTERVAL_SECONDS,
        persist_attempts: int = PERSIST_ATTEMPTS,
        persist_backoff: float = PERSIST_BACKOFF_SECONDS,
        thread_attempts: int = THREAD_CREATE_ATTEMPTS,
        thread_backoff: tuple[float, ...] = THREAD_CREATE_BACKOFF,
        sweep_interval: float = BACKUP_SWEEP_INTERVAL_SECONDS
    ):
        self._client = client
        self._callbacks = callbacks or ChatCallbacks()
        self._plan = resolve_plan(plan)
        self._model = model
        self._web_search = web_search
        self._busy = False

        self._store = MessageStore(local_store)
        self._backups = BackupStore(local_store)
        self._persistence = PersistenceLayer(
            client,
            self._backups,
            max_attempts=persist_attempts,
            backoff_seconds=persist_backoff,
        )
        self._threads = ThreadLifecycleManager(
            client,
            on_activated=self._thread_activated,
            max_attempts=thread_attempts,
            backoff=thread_backoff,
        )
        self._reconciler = StreamReconciler(
            self._store,
            self._persistence,
            self._callbacks,
            timeout=stream_timeout,
            checkpoint_interval=checkpoint_interval,
        )
        self._sweeper = BackupSweeper(
            self._persistence,
            interval=sweep_interval,
            on_replayed=self._message_replayed,
        )

    @property
    def messages(self) -> tuple[Message, ...]:
        return self._store.messages

    @property
    def thread_id(self) -> str | None:
        return self._threads.thread_id

    @property
    def model(self) -> str:
        return self._model

    @property
    def plan(self) -> Plan:
        return self._plan

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def backups(self) -> BackupStore:
        return self._backups

    async def start(self) -> None:
        """Begin the periodic backup sweep."""
        self._sweeper.start()

    async def close(self) -> None:
        await self._sweeper.stop()

    async def __aenter__(self) -> "ChatSession":
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def select_model(self, model: str) -> None:
        """Choose the model for the next response. Past messages keep theirs."""
        if model != self._model:
            self._model = model
            self._callbacks.on_model_changed(model)

    def set_web_search(self, enabled: bool) -> None:
        self._web_search = enabled

    def on_input_focus(self) -> None:
        """Create the thread ahead of the first message."""
        self._threads.prepare()

    def abort(self) -> None:
        """Stop the streaming response, keeping what has arrived so far."""
        self._reconciler.abort()

    async def submit(self, text: str) -> SubmitOutcome:
        """Send a user message and stream the assistant's reply."""
        if self._busy:
            return SubmitOutcome(SubmitStatus.REJECTED, error="A response is still in progress")

        try:
            content = validate_message_text(text)
        except MessageValidationError as e:
            if text.strip():
                self._callbacks.notify_error(str(e))
            return SubmitOutcome(SubmitStatus.REJECTED, error=str(e))

        if not is_model_available(self._model, self._plan):
            error = f"{get_model_alias(self._model)} is not included in the {self._plan.value} plan"
            self._callbacks.on_upgrade_required(error)
            return SubmitOutcome(SubmitStatus.UPGRADE_REQUIRED, error=error)

        self._reconciler.reset()
        self._set_busy(True)
        try:
            return await self._submit(content, self._model)
        finally:
            self._set_busy(False)

    async def _submit(self, content: str, model: str) -> SubmitOutcome:
        try:
            thread_id = await self._threads.ensure_thread()
        except ThreadCreationError as e:
            logger.error("Cannot send message: %s", e)
            self._callbacks.notify_error(UNREACHABLE_SERVICE_MESSAGE)
            return SubmitOutcome(SubmitStatus.THREAD_UNAVAILABLE, error=UNREACHABLE_SERVICE_MESSAGE)

        user_message = await self._add(Message(role=Role.USER, content=content))
        saved = await self._persistence.persist(
            thread_id, Role.USER, content, client_id=user_message.id
        )
        if saved.durable_id is not None:
            if await self._store.swap_id(user_message.id, saved.durable_id):
                user_message = self._store.get(saved.durable_id)
                self._callbacks.on_message_updated(user_message)
        else:
            self._callbacks.notify_error(UNSAVED_PROMPT_MESSAGE)

        if self._reconciler.aborted:
            logger.info("Submission stopped before the response was requested")
            return SubmitOutcome(SubmitStatus.CANCELLED, user_message)

        placeholder = await self._add(
            Message(role=Role.ASSISTANT, model=model, completion=CompletionState.STREAMING)
        )
        request = ChatRequest(
            messages=[
                message.to_turn()
                for message in self._store.messages
                if message.id != placeholder.id and message.content
            ],
            model=model,
            thread_id=thread_id,
            enable_web_search=self._web_search and model_supports_web_search(model),
        )

        outcome = await self._reconciler.run(
            self._open_stream(request), placeholder.id, thread_id, model
        )
        return self._finish(outcome, user_message)

    async def _open_stream(self, request: ChatRequest) -> AsyncIterator[bytes]:
        # Opened lazily inside the reconciler, so waiting for headers is timed too
        async with self._client.stream_chat(request) as chunks:
            async for chunk in chunks:
                yield chunk

    def _request_failed(self, error: ClydraError, user_message: Message) -> SubmitOutcome:
        if isinstance(error, QuotaExceededError):
            self._callbacks.on_upgrade_required(error.detail)
            return SubmitOutcome(SubmitStatus.UPGRADE_REQUIRED, user_message, error=error.detail)

        logger.error("Chat request failed: %s", error)
        self._callbacks.notify_error(GENERATION_FAILED_MESSAGE)
        return SubmitOutcome(SubmitStatus.FAILED, user_message, error=str(error))

    def _finish(self, outcome: StreamOutcome, user_message: Message) -> SubmitOutcome:
        if outcome.state is CompletionState.COMPLETE:
            if outcome.persist is not None and not outcome.persist.ok:
                self._callbacks.notify_error(UNSAVED_RESPONSE_MESSAGE)
            return SubmitOutcome(SubmitStatus.COMPLETED, user_message, outcome.message, stream=outcome)

        if outcome.state is CompletionState.CANCELLED:
            return SubmitOutcome(SubmitStatus.CANCELLED, user_message, outcome.message, stream=outcome)

        if isinstance(outcome.error, (BackendError, NetworkError)):
            return self._request_failed(outcome.error, user_message)

        error = str(outcome.error) if outcome.error else GENERATION_FAILED_MESSAGE
        if is_quota_message(error):
            self._callbacks.on_upgrade_required(error)
            return SubmitOutcome(SubmitStatus.UPGRADE_REQUIRED, user_message, error=error, stream=outcome)

        if isinstance(outcome.error, StreamTimeoutError):
            self._callbacks.notify_error(TIMEOUT_MESSAGE)
        else:
            self._callbacks.notify_error(GENERATION_FAILED_MESSAGE)
        return SubmitOutcome(SubmitStatus.FAILED, user_message, error=error, stream=outcome)

    async def load_thread(self, thread_id: str) -> bool:
        """Open an existing thread.

        Falls back to the local cache when the backend cannot be reached.
        The selected model follows the newest assistant message that
        recorded one; without such a message the selection is left alone.

        Returns:
            True if the thread is now open
        """
        try:
            messages = await self._client.get_messages(thread_id)
        except ThreadNotFoundError:
            await self._store.forget_thread(thread_id)
            if self._threads.thread_id == thread_id:
                self._threads.reset()
            self._callbacks.notify_error("This conversation no longer exists.")
            return False
        except ClydraError as e:
            messages = await self._store.load_cached(thread_id)
            if not messages:
                logger.error("Cannot open thread %s: %s", thread_id, e)
                self._callbacks.notify_error(UNREACHABLE_SERVICE_MESSAGE)
                return False
            logger.warning("Showing cached copy of thread %s: %s", thread_id, e)

        await self._store.bind(thread_id, messages)
        await self._threads.adopt(thread_id)
        self._restore_model(messages)
        return True

    async def resume(self) -> bool:
        """Reopen the thread that was active when the client last ran."""
        thread_id = await self._store.current_thread()
        if thread_id is None:
            return False
        return await self.load_thread(thread_id)

    async def new_thread(self) -> None:
        """Start an empty conversation; its thread is created on first use."""
        self._threads.reset()
        await self._store.clear()
        self._callbacks.on_thread_changed(None)

    async def list_threads(self) -> list[ThreadSummary]:
        try:
            return await self._client.list_threads()
        except ClydraError as e:
            logger.error("Cannot list threads: %s", e)
            self._callbacks.notify_error(UNREACHABLE_SERVICE_MESSAGE)
            return []

    async def delete_thread(self, thread_id: str) -> bool:
        """Delete a thread server-side together with its local state."""
        try:
            await self._client.delete_thread(thread_id)
        except ThreadNotFoundError:
            logger.info("Thread %s was already gone", thread_id)
        except ClydraError as e:
            logger.error("Cannot delete thread %s: %s", thread_id, e)
            self._callbacks.notify_error("The conversation could not be deleted.")
            return False

        await self._backups.discard(thread_id)
        if self._threads.thread_id == thread_id:
            await self.new_thread()
        await self._store.forget_thread(thread_id)
        return True

    async def recover(self) -> SweepReport:
        """Replay unsaved messages now instead of waiting for the next sweep."""
        return await self._sweeper.sweep_once()

    def _restore_model(self, messages: list[Message]) -> None:
        for message in reversed(messages):
            if message.role is Role.ASSISTANT and message.model:
                self.select_model(message.model)
                return

    def _set_busy(self, busy: bool) -> None:
        self._busy = busy
        self._callbacks.on_busy_changed(busy)

    async def _add(self, message: Message) -> Message:
        await self._store.append(message)
        self._callbacks.on_message_added(message)
        return message

    async def _thread_activated(self, thread_id: str) -> None:
        previous = self._store.thread_id
        if previous != thread_id:
            # Messages typed before the thread existed move to it
            await self._store.bind(thread_id)
            if previous is not None:
                await self._store.forget_thread(previous)
        await self._backups.adopt_pending(thread_id)
        self._callbacks.on_thread_changed(thread_id)

    async def _message_replayed(self, thread_id: str, unsaved: UnsavedMessage, durable_id: str) -> None:
        if thread_id != self._store.thread_id or unsaved.durable_id is not None:
            return
        if await self._store.swap_id(unsaved.client_id, durable_id):
            self._callbacks.on_message_updated(self._store.get(durable_id))
