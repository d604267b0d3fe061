"""In-memory key/value store.

Simple dict-based storage. Data is lost when the process exits.
"""

import copy
from typing import Any

from ..errors import VersionConflictError
from .base import KeyValueStore, StoredValue


class InMemoryKeyValueStore(KeyValueStore):
    """Dict-backed store, suitable for single-session use or testing."""

    def __init__(self) -> None:
        self._entries: dict[str, StoredValue] = {}

    async def connect(self) -> None:
        """Initialize store (no-op for in-memory)."""
        pass

    async def disconnect(self) -> None:
        """Close store (no-op for in-memory)."""
        pass

    def _check_version(self, key: str, expected_version: int | None) -> int:
        current = self._entries.get(key)
        actual = current.version if current else 0
        if expected_version is not None and expected_version != actual:
            raise VersionConflictError(key, expected_version, actual or None)
        return actual

    async def get(self, key: str) -> StoredValue | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        # Callers must not be able to mutate stored state through the result
        return StoredValue(copy.deepcopy(entry.value), entry.version)

    async def set(
        self,
        key: str,
        value: Any,
        expected_version: int | None = None
    ) -> int:
        version = self._check_version(key, expected_version) + 1
        self._entries[key] = StoredValue(copy.deepcopy(value), version)
        return version

    async def delete(self, key: str, expected_version: int | None = None) -> bool:
        if key not in self._entries:
            if expected_version:
                raise VersionConflictError(key, expected_version, None)
            return False
        self._check_version(key, expected_version)
        del self._entries[key]
        return True

    async def keys(self, prefix: str = "") -> list[str]:
        return sorted(key for key in self._entries if key.startswith(prefix))

    @property
    def backend_type(self) -> str:
        return "memory"
