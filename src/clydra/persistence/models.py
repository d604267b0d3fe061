"""Data models for best-effort message persistence."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import uuid4

from pydantic import BaseModel, Field

from ..chat.models import Role


def new_idempotency_key() -> str:
    return uuid4().hex


class UnsavedMessage(BaseModel):
    """A message write that could not reach the backend.

    ``durable_id`` set means the write is an update of an existing message;
    otherwise replaying it creates the message.
    """

    client_id: str = Field(description="Id the message had in the client when the write failed")
    durable_id: str | None = None
    role: Role
    content: str
    model: str | None = None
    idempotency_key: str = Field(default_factory=new_idempotency_key)


class BackupRecord(BaseModel):
    """Local recovery record holding a thread's unsaved messages."""

    thread_id: str | None = Field(
        default=None,
        description="Owning thread, None while the thread is still pending"
    )
    messages: list[UnsavedMessage] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def merged_with(self, unsaved: list[UnsavedMessage]) -> "BackupRecord":
        """Return a copy with ``unsaved`` added.

        A newer write for the same client message replaces the older one,
        since only the latest content matters.
        """
        replaced = {message.client_id for message in unsaved}
        kept = [message for message in self.messages if message.client_id not in replaced]
        return BackupRecord(
            thread_id=self.thread_id,
            messages=kept + list(unsaved),
            timestamp=datetime.now(timezone.utc),
        )


@dataclass(frozen=True)
class PersistResult:
    """Outcome of a persist call: a durable id, or the backup written instead."""

    durable_id: str | None = None
    backup: BackupRecord | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.backup is None and self.error is None


@dataclass
class SweepReport:
    """Summary of one pass over the backup records."""

    replayed: int = 0
    failed: int = 0
    records_removed: int = 0
    records_skipped: int = 0
    replayed_ids: dict[str, str] = field(default_factory=dict)  # client id -> durable id
