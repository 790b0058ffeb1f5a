"""Abstract base class for async key-value stores.

Credentials, cached read payloads and the offline queue all live in
stores implementing this interface.  Values are always UTF-8 strings
(typically JSON).

Classes
-------
- KeyValueStore  — abstract base for all stores
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, Sequence


class KeyValueStore(ABC):
    """Protocol for async get/set/remove of string values by string key.

    All methods are coroutines (``async def``).  Implementations should use
    ``asyncio.Lock`` for in-process safety where needed.
    """

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the value stored under ``key``, or None if absent.

        Parameters
        ----------
        key:
            Storage key.

        Returns
        -------
        str | None
        """

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Persist ``value`` under ``key``, overwriting any existing value.

        Parameters
        ----------
        key:
            Storage key.
        value:
            UTF-8 string to persist.
        """

    @abstractmethod
    async def remove(self, key: str) -> None:
        """Remove ``key``.  Removing an absent key is a no-op."""

    @abstractmethod
    async def keys(self, prefix: str = "") -> Sequence[str]:
        """Return all stored keys starting with ``prefix``.

        Order is implementation-defined.
        """

    async def set_many(self, items: Iterable[tuple[str, str]]) -> None:
        """Persist several key/value pairs.

        Backends that can write atomically should override this.
        """
        for key, value in items:
            await self.set(key, value)

    async def remove_many(self, keys: Iterable[str]) -> None:
        """Remove every key in ``keys``.  Absent keys are ignored."""
        for key in keys:
            await self.remove(key)

    async def aclose(self) -> None:
        """Release any held connections.  Default is a no-op."""


__all__ = ["KeyValueStore"]
