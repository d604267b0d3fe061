"""Abstract base class for local key/value stores.

The abstraction hides:
- Storage format (dict, SQLite rows)
- Persistence mechanism (process memory, file)
- Connection management
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class StoredValue:
    """A JSON-compatible value together with its write version."""

    value: Any
    version: int


class KeyValueStore(ABC):
    """Abstract local key/value store with versioned entries.

    Versions start at 1 and grow by one on every write. Passing
    ``expected_version`` to ``set`` turns the write into a compare-and-set,
    so two writers sharing a store cannot silently clobber each other.
    ``expected_version=0`` means "the key must not exist yet".
    """

    @abstractmethod
    async def connect(self) -> None:
        """Initialize the store."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the store gracefully."""

    @abstractmethod
    async def get(self, key: str) -> StoredValue | None:
        """Read an entry, or None if absent."""

    @abstractmethod
    async def set(
        self,
        key: str,
        value: Any,
        expected_version: int | None = None
    ) -> int:
        """Write an entry and return its new version.

        Raises:
            VersionConflictError: If expected_version does not match
        """

    @abstractmethod
    async def delete(self, key: str, expected_version: int | None = None) -> bool:
        """Remove an entry. Returns False if it did not exist.

        Raises:
            VersionConflictError: If expected_version does not match
        """

    @abstractmethod
    async def keys(self, prefix: str = "") -> list[str]:
        """List keys starting with prefix, in sorted order."""

    @property
    @abstractmethod
    def backend_type(self) -> str:
        """Get the backend type identifier."""

    async def __aenter__(self) -> "KeyValueStore":
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.disconnect()
