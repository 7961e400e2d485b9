"""Schema introspection cache.

Adapters memoize the raw metadata rows of introspection queries per table,
under keys such as ``tables/columns/<table>``. Entries never expire; every
alteration touching a table invalidates its entries explicitly.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class SchemaCache(ABC):
    """Abstract base class for introspection cache storage."""

    @abstractmethod
    def get(self, key: str) -> Any | None:
        """Return the cached value, or None if absent."""
        ...

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Store a value under key."""
        ...

    @abstractmethod
    def expire(self, key: str) -> bool:
        """Remove a key, return True if it was present."""
        ...

    @abstractmethod
    def clear(self) -> None:
        """Remove every entry."""
        ...


class MemoryCache(SchemaCache):
    """Adapter-local in-memory cache."""

    def __init__(self) -> None:
        self._entries: dict[str, Any] = {}

    def get(self, key: str) -> Any | None:
        return self._entries.get(key)

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = value

    def expire(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
