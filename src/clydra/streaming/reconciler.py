"""Streaming response reconciler.

Consumes one chat proxy stream and turns it into mutations of exactly one
assistant message in the MessageStore:

1. content deltas are accumulated and the message content replaced with the
   running total, with throttled background checkpoints to the backend;
2. the first server-issued message id replaces the placeholder's temporary
   id, matched by id rather than position;
3. on completion the full content is persisted (falling back to a local
   backup), on failure or timeout the placeholder is removed, on abort the
   partial content stays and the message is marked cancelled.
"""

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field

from pydantic import ValidationError

from ..chat.callbacks import ChatCallbacks
from ..chat.models import Annotation, CompletionState, Message, Role
from ..chat.store import MessageStore
from ..config import CHECKPOINT_INTERVAL_SECONDS, STREAM_TIMEOUT_SECONDS
from ..errors import StreamError, StreamTimeoutError
from ..persistence import PersistenceLayer, PersistResult
from .sse import StreamEvent, iter_events

logger = logging.getLogger(__name__)


@dataclass
class StreamOutcome:
    """Final state of one reconciled stream."""

    state: CompletionState
    content: str
    message: Message | None = None
    durable_id: str | None = None
    persist: PersistResult | None = None
    error: Exception | None = None


@dataclass
class _Progress:
    message_id: str
    content: str = ""
    durable_id: str | None = None
    last_checkpoint: float = 0.0
    checkpoint: asyncio.Task | None = None
    events: int = 0
    annotations: list[Annotation] = field(default_factory=list)


class StreamReconciler:
    """Reconciles a chat stream with the in-memory conversation.

    One reconciler serves one stream at a time. ``abort()`` stops the
    running stream from outside (e.g. a stop button).
    """

    def __init__(
        self,
        store: MessageStore,
        persistence: PersistenceLayer,
        callbacks: ChatCallbacks | None = None,
        timeout: float | None = STREAM_TIMEOUT_SECONDS,
        checkpoint_interval: float = CHECKPOINT_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic
    ):
        self._store = store
        self._persistence = persistence
        self._callbacks = callbacks or ChatCallbacks()
        self._timeout = timeout
        self._checkpoint_interval = checkpoint_interval
        self._clock = clock
        self._abort = asyncio.Event()

    @property
    def aborted(self) -> bool:
        return self._abort.is_set()

    def abort(self) -> None:
        """Stop the running stream, keeping whatever content already arrived.

        An abort that arrives before ``run`` starts stops that run at once.
        """
        self._abort.set()

    def reset(self) -> None:
        """Forget an abort that no stream consumed."""
        self._abort.clear()

    async def run(
        self,
        chunks: AsyncIterator[bytes],
        placeholder_id: str,
        thread_id: str | None,
        model: str | None = None
    ) -> StreamOutcome:
        """Reconcile a stream into the placeholder message.

        Args:
            chunks: Raw response body of the chat proxy call. Time spent
                waiting for the first chunk counts toward the timeout.
            placeholder_id: Temporary id of the assistant placeholder
            thread_id: Thread the message belongs to
            model: Model that produces the response

        Returns:
            StreamOutcome describing how the stream ended. Never raises for
            stream or network failures.
        """
        progress = _Progress(message_id=placeholder_id, last_checkpoint=self._clock())

        try:
            return await self._run(chunks, progress, thread_id, model)
        finally:
            self._abort.clear()

    async def _run(
        self,
        chunks: AsyncIterator[bytes],
        progress: _Progress,
        thread_id: str | None,
        model: str | None
    ) -> StreamOutcome:
        consume = asyncio.create_task(self._consume(chunks, progress, thread_id))
        aborted = asyncio.create_task(self._abort.wait())
        try:
            done, _ = await asyncio.wait(
                {consume, aborted},
                timeout=self._timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            # Owner went away mid-stream
            await self._stop(consume, aborted, progress)
            await self._mark(progress, CompletionState.CANCELLED)
            raise
        await self._stop(consume, aborted, progress, keep_checkpoint=consume in done)

        if consume in done:
            error = consume.exception()
            if error is None:
                return await self._complete(progress, thread_id, model)
            return await self._fail(progress, error)

        if aborted in done:
            logger.info("Stream for message %s aborted after %d event(s)", progress.message_id, progress.events)
            message = await self._mark(progress, CompletionState.CANCELLED)
            return StreamOutcome(
                state=CompletionState.CANCELLED,
                content=progress.content,
                message=message,
                durable_id=progress.durable_id,
            )

        return await self._fail(progress, StreamTimeoutError(self._timeout))

    async def _consume(
        self,
        chunks: AsyncIterator[bytes],
        progress: _Progress,
        thread_id: str | None
    ) -> None:
        events = iter_events(chunks)
        try:
            async for event in events:
                progress.events += 1
                if event.done:
                    break
                await self._apply(event, progress, thread_id)
        finally:
            await events.aclose()
            aclose = getattr(chunks, "aclose", None)
            if aclose is not None:
                await aclose()

    async def _apply(self, event: StreamEvent, progress: _Progress, thread_id: str | None) -> None:
        if event.error:
            raise StreamError(event.error)

        if event.message_id is not None and progress.durable_id is None:
            if await self._store.swap_id(progress.message_id, event.message_id):
                progress.message_id = event.message_id
                self._announce(progress)
            progress.durable_id = event.message_id

        if event.annotations:
            for item in event.annotations:
                try:
                    progress.annotations.append(Annotation.model_validate(item))
                except ValidationError:
                    logger.debug("Skipping malformed annotation: %r", item)
            message = await self._store.update(
                progress.message_id, annotations=tuple(progress.annotations)
            )
            if message is not None:
                self._callbacks.on_message_updated(message)

        if event.content:
            progress.content += event.content
            message = await self._store.update_content(progress.message_id, progress.content)
            if message is not None:
                self._callbacks.on_message_updated(message)
            self._maybe_checkpoint(progress, thread_id)
            if self._callbacks.is_near_bottom():
                self._callbacks.scroll_to_bottom()

    def _announce(self, progress: _Progress) -> None:
        message = self._store.get(progress.message_id)
        if message is not None:
            self._callbacks.on_message_updated(message)

    def _maybe_checkpoint(self, progress: _Progress, thread_id: str | None) -> None:
        if progress.durable_id is None or thread_id is None:
            return
        if progress.checkpoint is not None and not progress.checkpoint.done():
            return
        now = self._clock()
        if now - progress.last_checkpoint < self._checkpoint_interval:
            return

        progress.last_checkpoint = now
        progress.checkpoint = asyncio.create_task(
            self._persistence.checkpoint(thread_id, progress.durable_id, progress.content)
        )

    async def _stop(
        self,
        consume: asyncio.Task,
        aborted: asyncio.Task,
        progress: _Progress,
        keep_checkpoint: bool = False
    ) -> None:
        tasks = [consume, aborted]
        if progress.checkpoint is not None and not keep_checkpoint:
            tasks.append(progress.checkpoint)
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _mark(self, progress: _Progress, state: CompletionState) -> Message | None:
        message = await self._store.update(progress.message_id, completion=state)
        if message is not None:
            self._callbacks.on_message_updated(message)
        return message

    async def _complete(
        self,
        progress: _Progress,
        thread_id: str | None,
        model: str | None
    ) -> StreamOutcome:
        if progress.checkpoint is not None:
            # The final write must land after any checkpoint of the same message
            await progress.checkpoint

        if not progress.content:
            return await self._fail(progress, StreamError("The model returned an empty response"))

        message = await self._mark(progress, CompletionState.COMPLETE)
        persist = await self._persistence.persist(
            thread_id,
            Role.ASSISTANT,
            progress.content,
            durable_id=progress.durable_id,
            model=model,
            client_id=progress.message_id,
        )
        if persist.durable_id is not None and progress.durable_id is None:
            if await self._store.swap_id(progress.message_id, persist.durable_id):
                progress.message_id = persist.durable_id
                message = self._store.get(progress.message_id)
                self._announce(progress)
            progress.durable_id = persist.durable_id

        return StreamOutcome(
            state=CompletionState.COMPLETE,
            content=progress.content,
            message=message,
            durable_id=progress.durable_id,
            persist=persist,
        )

    async def _fail(self, progress: _Progress, error: BaseException) -> StreamOutcome:
        if progress.checkpoint is not None and not progress.checkpoint.done():
            progress.checkpoint.cancel()
        logger.warning("Stream for message %s failed: %s", progress.message_id, error)
        if await self._store.remove(progress.message_id):
            self._callbacks.on_message_removed(progress.message_id)
        return StreamOutcome(
            state=CompletionState.FAILED,
            content=progress.content,
            durable_id=progress.durable_id,
            error=error if isinstance(error, Exception) else StreamError(str(error)),
        )
