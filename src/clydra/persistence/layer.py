"""Best-effort message persistence with bounded retry.

Writes never raise to the caller: after the last failed attempt the message
is written to a local backup record and the caller gets that record back.
"""

import asyncio
import logging

from ..api import ChatBackendClient
from ..chat.models import Role, new_temporary_id
from ..config import PERSIST_ATTEMPTS, PERSIST_BACKOFF_SECONDS
from ..errors import ClydraError
from .backup import BackupStore
from .models import PersistResult, UnsavedMessage

logger = logging.getLogger(__name__)


class PersistenceLayer:
    """Writes messages to the backend, falling back to local backups.

    New messages are POSTed; messages that already have a durable id are
    updated with PUT. Attempts are spaced linearly (backoff x attempt) and
    stop early on errors that another attempt cannot fix.
    """

    def __init__(
        self,
        client: ChatBackendClient,
        backups: BackupStore,
        max_attempts: int = PERSIST_ATTEMPTS,
        backoff_seconds: float = PERSIST_BACKOFF_SECONDS
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._client = client
        self._backups = backups
        self._max_attempts = max_attempts
        self._backoff = backoff_seconds

    @property
    def backups(self) -> BackupStore:
        return self._backups

    async def persist(
        self,
        thread_id: str | None,
        role: Role,
        content: str,
        durable_id: str | None = None,
        model: str | None = None,
        client_id: str | None = None
    ) -> PersistResult:
        """Store a message, returning its durable id or the backup written.

        Args:
            thread_id: Owning thread (None backs up under the pending key)
            role: Message role
            content: Full message content
            durable_id: Existing backend id; turns the write into an update
            model: Model that produced an assistant message
            client_id: Id the message has in the client, kept in backups so
                a later replay can be matched back to it
        """
        unsaved = UnsavedMessage(
            client_id=client_id or durable_id or new_temporary_id(),
            durable_id=durable_id,
            role=role,
            content=content,
            model=model,
        )

        if thread_id is None:
            backup = await self._backups.add(None, [unsaved])
            return PersistResult(backup=backup)

        try:
            saved_id = await self._write_with_retry(thread_id, unsaved)
        except ClydraError as e:
            logger.error("Giving up on %s message in thread %s: %s", role, thread_id, e)
            backup = await self._backups.add(thread_id, [unsaved])
            return PersistResult(backup=backup, error=e)

        return PersistResult(durable_id=saved_id)

    async def checkpoint(self, thread_id: str, durable_id: str, content: str) -> bool:
        """Single best-effort update of partial content. No retry, no backup."""
        try:
            await self._client.update_message(thread_id, durable_id, content)
        except ClydraError as e:
            logger.debug("Checkpoint of message %s failed: %s", durable_id, e)
            return False
        return True

    async def replay(self, thread_id: str, unsaved: UnsavedMessage) -> str:
        """Write a backed-up message once, reusing its idempotency key.

        Raises:
            ClydraError: If the write fails
        """
        return await self._write(thread_id, unsaved)

    async def _write_with_retry(self, thread_id: str, unsaved: UnsavedMessage) -> str:
        attempt = 1
        while True:
            try:
                return await self._write(thread_id, unsaved)
            except ClydraError as e:
                if not e.is_retryable() or attempt >= self._max_attempts:
                    raise
                delay = self._backoff * attempt
                logger.info(
                    "Persist attempt %d/%d failed (%s), retrying in %.1fs",
                    attempt, self._max_attempts, e, delay
                )
                await asyncio.sleep(delay)
                attempt += 1

    async def _write(self, thread_id: str, unsaved: UnsavedMessage) -> str:
        if unsaved.durable_id is not None:
            await self._client.update_message(
                thread_id,
                unsaved.durable_id,
                unsaved.content,
                idempotency_key=unsaved.idempotency_key,
            )
            return unsaved.durable_id

        return await self._client.create_message(
            thread_id,
            unsaved.role,
            unsaved.content,
            model=unsaved.model,
            idempotency_key=unsaved.idempotency_key,
        )
