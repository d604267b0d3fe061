"""Thread lifecycle: lazy creation, verification and silent recreation.

States per client: NONE -> PENDING (create call in flight) -> ACTIVE.
A failed creation returns to NONE; a 404 while verifying an ACTIVE thread
also returns to NONE and a new thread is created.

Creation is attempted a fixed number of times with a fixed backoff
schedule. Concurrent callers share one in-flight creation.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from enum import Enum

from ..api import ChatBackendClient
from ..config import THREAD_CREATE_ATTEMPTS, THREAD_CREATE_BACKOFF
from ..errors import ClydraError, ThreadCreationError, ThreadNotFoundError

logger = logging.getLogger(__name__)

ActivationHandler = Callable[[str], Awaitable[None]]


class ThreadState(str, Enum):
    NONE = "none"
    PENDING = "pending"
    ACTIVE = "active"


class ThreadLifecycleManager:
    """Owns the identity of the client's current thread."""

    def __init__(
        self,
        client: ChatBackendClient,
        on_activated: ActivationHandler | None = None,
        max_attempts: int = THREAD_CREATE_ATTEMPTS,
        backoff: Sequence[float] = THREAD_CREATE_BACKOFF
    ):
        """Initialize the manager.

        Args:
            client: Backend client
            on_activated: Awaited with the thread id whenever a thread
                becomes active (creation, recreation or adoption)
            max_attempts: Creation attempts before giving up
            backoff: Delays between attempts; the last value repeats if
                there are more gaps than entries
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._client = client
        self._on_activated = on_activated
        self._max_attempts = max_attempts
        self._backoff = tuple(backoff) or (0.0,)
        self._thread_id: str | None = None
        self._creating: asyncio.Task | None = None

    @property
    def state(self) -> ThreadState:
        if self._creating is not None and not self._creating.done():
            return ThreadState.PENDING
        if self._thread_id is not None:
            return ThreadState.ACTIVE
        return ThreadState.NONE

    @property
    def thread_id(self) -> str | None:
        return self._thread_id

    async def adopt(self, thread_id: str) -> None:
        """Make an existing thread (e.g. one reopened by the user) current."""
        self._thread_id = thread_id
        await self._activated(thread_id)

    def reset(self) -> None:
        """Forget the current thread; the next submission creates a new one."""
        self._thread_id = None

    def prepare(self) -> asyncio.Task | None:
        """Start creating a thread in the background if there is none.

        Called when the user focuses the input, so the thread usually exists
        by the time the first message is sent. Failures are left for the
        next ``ensure_thread`` to retry.
        """
        if self.state is not ThreadState.NONE:
            return self._creating
        task = self._start_creation()
        task.add_done_callback(_log_background_failure)
        return task

    async def ensure_thread(self) -> str:
        """Return the id of a thread that exists server-side.

        Creates a thread when there is none. An active thread is re-verified
        first; if the backend no longer knows it, a new one is created.

        Raises:
            ThreadCreationError: If creation fails after all attempts
        """
        if self.state is ThreadState.PENDING:
            return await asyncio.shield(self._creating)

        if self._thread_id is not None:
            if await self.verify():
                return self._thread_id
            logger.info("Thread %s disappeared server-side, creating a new one", self._thread_id)
            self._thread_id = None

        return await self._start_creation()

    async def verify(self) -> bool:
        """Check the current thread still exists.

        Only a definite "not found" counts as missing; other failures are
        treated as transient and the thread is assumed to exist.
        """
        if self._thread_id is None:
            return False
        try:
            await self._client.get_messages(self._thread_id)
        except ThreadNotFoundError:
            return False
        except ClydraError as e:
            logger.debug("Could not verify thread %s: %s", self._thread_id, e)
        return True

    def _start_creation(self) -> asyncio.Task:
        if self._creating is None or self._creating.done():
            self._creating = asyncio.create_task(self._create())
        return self._creating

    async def _create(self) -> str:
        last_error: Exception | None = None
        for attempt in range(1, self._max_attempts + 1):
            try:
                thread_id = await self._client.create_thread()
            except ClydraError as e:
                last_error = e
                logger.warning("Thread creation attempt %d/%d failed: %s", attempt, self._max_attempts, e)
                if attempt < self._max_attempts:
                    await asyncio.sleep(self._backoff[min(attempt - 1, len(self._backoff) - 1)])
                continue

            self._thread_id = thread_id
            await self._activated(thread_id)
            return thread_id

        raise ThreadCreationError(self._max_attempts, last_error)

    async def _activated(self, thread_id: str) -> None:
        logger.info("Thread %s is active", thread_id)
        if self._on_activated is not None:
            await self._on_activated(thread_id)


def _log_background_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.warning("Background thread creation failed: %s", error)
