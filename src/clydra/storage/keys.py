"""Key layout for the local store. All keys share one application prefix."""

from ..config import PENDING_THREAD_KEY, STORAGE_PREFIX

MESSAGES_NAMESPACE = f"{STORAGE_PREFIX}messages:"
BACKUP_NAMESPACE = f"{STORAGE_PREFIX}unsaved:"


def messages_key(thread_id: str) -> str:
    return f"{MESSAGES_NAMESPACE}{thread_id}"


def current_thread_key() -> str:
    return f"{STORAGE_PREFIX}current-thread"


def backup_key(thread_id: str | None) -> str:
    """Key of the unsaved-message backup for a thread.

    Messages written before any thread exists are kept under a sentinel key.
    """
    return f"{BACKUP_NAMESPACE}{thread_id or PENDING_THREAD_KEY}"


def thread_from_backup_key(key: str) -> str | None:
    """Inverse of backup_key; returns None for the pending sentinel."""
    thread_id = key[len(BACKUP_NAMESPACE):]
    return None if thread_id == PENDING_THREAD_KEY else thread_id
