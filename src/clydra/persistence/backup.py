"""Unsaved-message backup records kept in the local store.

Records are read-modify-written with the store's version check, so an
add racing a sweep (or another client sharing the store) retries on fresh
data instead of dropping messages.
"""

import logging
from collections.abc import Callable, Iterable

from pydantic import ValidationError

from ..errors import VersionConflictError
from ..storage import KeyValueStore, StoredValue, backup_key
from ..storage.keys import BACKUP_NAMESPACE, thread_from_backup_key
from .models import BackupRecord, UnsavedMessage

logger = logging.getLogger(__name__)

MAX_CONFLICT_RETRIES = 5


def _parse(key: str, stored: StoredValue) -> BackupRecord | None:
    """Read a stored record; an unreadable one counts as absent and is replaced by the next write."""
    try:
        return BackupRecord.model_validate(stored.value)
    except ValidationError as e:
        logger.error("Ignoring unreadable backup record %s: %s", key, e)
        return None


class BackupStore:
    """Backup records keyed by thread id (or the pending-thread sentinel)."""

    def __init__(self, local_store: KeyValueStore):
        self._local = local_store

    async def get(self, thread_id: str | None) -> tuple[BackupRecord, int] | None:
        """Read a record and the version it was read at."""
        key = backup_key(thread_id)
        stored = await self._local.get(key)
        if stored is None:
            return None
        record = _parse(key, stored)
        if record is None:
            return None
        return record, stored.version

    async def thread_ids(self) -> list[str | None]:
        """Threads that currently have a backup record."""
        return [thread_from_backup_key(key) for key in await self._local.keys(BACKUP_NAMESPACE)]

    async def add(self, thread_id: str | None, unsaved: list[UnsavedMessage]) -> BackupRecord:
        """Merge messages into the thread's record, creating it if needed."""
        def merge(current: BackupRecord | None) -> BackupRecord:
            base = current or BackupRecord(thread_id=thread_id)
            return base.merged_with(unsaved)

        record = await self._update(thread_id, merge)
        logger.warning(
            "Backed up %d unsaved message(s) for thread %s",
            len(unsaved), thread_id or "<pending>"
        )
        return record

    async def remove_messages(self, thread_id: str | None, idempotency_keys: Iterable[str]) -> BackupRecord | None:
        """Drop replayed messages; deletes the record once it is empty.

        Returns what is left of the record, or None if nothing is.
        """
        done = set(idempotency_keys)

        def prune(current: BackupRecord | None) -> BackupRecord | None:
            if current is None:
                return None
            remaining = [m for m in current.messages if m.idempotency_key not in done]
            if not remaining:
                return None
            return current.model_copy(update={"messages": remaining})

        return await self._update(thread_id, prune)

    async def discard(self, thread_id: str | None) -> bool:
        return await self._local.delete(backup_key(thread_id))

    async def adopt_pending(self, thread_id: str) -> BackupRecord | None:
        """Move messages saved before a thread existed under that thread."""
        pending = await self.get(None)
        if pending is None:
            return None

        record, version = pending
        adopted = await self.add(thread_id, record.messages)
        try:
            await self._local.delete(backup_key(None), expected_version=version)
        except VersionConflictError:
            # Something was added meanwhile; only drop what was just moved
            await self.remove_messages(None, [m.idempotency_key for m in record.messages])
        return adopted

    async def _update(
        self,
        thread_id: str | None,
        change: Callable[[BackupRecord | None], BackupRecord | None]
    ) -> BackupRecord | None:
        key = backup_key(thread_id)
        for _ in range(MAX_CONFLICT_RETRIES):
            stored = await self._local.get(key)
            current = _parse(key, stored) if stored else None
            version = stored.version if stored else 0

            updated = change(current)
            try:
                if updated is None:
                    if stored is not None:
                        await self._local.delete(key, expected_version=version)
                else:
                    await self._local.set(key, updated.model_dump(mode="json"), expected_version=version)
                return updated
            except VersionConflictError:
                logger.debug("Backup record %s changed while updating, retrying", key)
        raise VersionConflictError(key, None, None)
