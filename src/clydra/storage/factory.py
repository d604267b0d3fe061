"""Factory for creating local key/value stores."""

from typing import Any

from .base import KeyValueStore


def create_local_store(backend: str = "memory", **kwargs: Any) -> KeyValueStore:
    """Create a local key/value store.

    Args:
        backend: Backend type ("memory" or "sqlite")
        **kwargs: Backend-specific configuration
            For sqlite:
                - path: str | Path (default: '~/.clydra/local.db')

    Returns:
        KeyValueStore instance (not yet connected)

    Raises:
        ValueError: If backend type is not supported

    Example:
        >>> store = create_local_store("sqlite", path="/tmp/clydra.db")
        >>> await store.connect()
    """
    if backend == "memory":
        from .in_memory import InMemoryKeyValueStore
        return InMemoryKeyValueStore(**kwargs)

    elif backend == "sqlite":
        from .sqlite import SQLiteKeyValueStore
        return SQLiteKeyValueStore(**kwargs)

    raise ValueError(
        f"Unsupported local store backend: {backend}. "
        f"Supported backends: memory, sqlite"
    )
