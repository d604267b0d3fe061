"""Local persistent key/value storage.

Stands in for the browser's origin-scoped storage: per-thread message caches,
the current-thread pointer and unsaved-message backups all live here.
"""

from .base import KeyValueStore, StoredValue
from .factory import create_local_store
from .keys import backup_key, current_thread_key, messages_key

__all__ = [
    "KeyValueStore",
    "StoredValue",
    "backup_key",
    "create_local_store",
    "current_thread_key",
    "messages_key",
]
