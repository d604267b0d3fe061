"""Periodic replay of unsaved-message backups."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from ..config import BACKUP_SWEEP_INTERVAL_SECONDS
from ..errors import ClydraError, NotFoundError
from .backup import BackupStore
from .layer import PersistenceLayer
from .models import SweepReport, UnsavedMessage

logger = logging.getLogger(__name__)

ReplayHandler = Callable[[str, UnsavedMessage, str], Awaitable[None]]


class BackupSweeper:
    """Replays backup records until they are empty.

    Each message that reaches the backend is removed from its record; the
    record is deleted once nothing is left. Messages that still fail stay
    for the next pass, so running a sweep again is always safe.
    """

    def __init__(
        self,
        persistence: PersistenceLayer,
        interval: float = BACKUP_SWEEP_INTERVAL_SECONDS,
        on_replayed: ReplayHandler | None = None
    ):
        self._persistence = persistence
        self._backups: BackupStore = persistence.backups
        self._interval = interval
        self._on_replayed = on_replayed
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def sweep_once(self) -> SweepReport:
        """Try to replay every backup record once."""
        report = SweepReport()

        for thread_id in await self._backups.thread_ids():
            if thread_id is None:
                # Adopted by the thread lifecycle once a thread exists
                report.records_skipped += 1
                continue

            entry = await self._backups.get(thread_id)
            if entry is None:
                # Removed meanwhile, or unreadable
                report.records_skipped += 1
                continue
            record, _ = entry

            finished: list[str] = []
            for message in record.messages:
                try:
                    durable_id = await self._persistence.replay(thread_id, message)
                except NotFoundError as e:
                    # Thread or message is gone; replaying can never succeed
                    logger.warning("Dropping unsaved message %s: %s", message.client_id, e)
                    finished.append(message.idempotency_key)
                    report.failed += 1
                    continue
                except ClydraError as e:
                    logger.info("Replay of message %s still failing: %s", message.client_id, e)
                    report.failed += 1
                    continue

                finished.append(message.idempotency_key)
                report.replayed += 1
                report.replayed_ids[message.client_id] = durable_id
                if self._on_replayed is not None:
                    await self._on_replayed(thread_id, message, durable_id)

            if finished:
                remaining = await self._backups.remove_messages(thread_id, finished)
                if remaining is None:
                    report.records_removed += 1

        if report.replayed or report.failed:
            logger.info(
                "Backup sweep: %d replayed, %d failed, %d record(s) cleared",
                report.replayed, report.failed, report.records_removed
            )
        return report

    def start(self) -> None:
        """Start sweeping in the background on the running event loop."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="clydra-backup-sweeper")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.sweep_once()
            except Exception:
                # One failed pass never ends the periodic sweep
                logger.exception("Backup sweep failed")

    async def __aenter__(self) -> "BackupSweeper":
        self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.stop()
