"""Best-effort message persistence with local backup and recovery."""

from .backup import BackupStore
from .layer import PersistenceLayer
from .models import BackupRecord, PersistResult, SweepReport, UnsavedMessage
from .sweeper import BackupSweeper

__all__ = [
    "BackupRecord",
    "BackupStore",
    "BackupSweeper",
    "PersistResult",
    "PersistenceLayer",
    "SweepReport",
    "UnsavedMessage",
]
