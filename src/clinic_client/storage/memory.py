"""Async in-memory key-value store.

Stores values in a plain Python dict guarded by ``asyncio.Lock``.
All data is lost when the process exits.  This store is primarily
useful for tests and local prototyping.

Classes
-------
- InMemoryStore  — dict-backed ephemeral async storage
"""

from __future__ import annotations

import asyncio
from typing import Iterable, Sequence

from clinic_client.storage.base import KeyValueStore


class InMemoryStore(KeyValueStore):
    """Ephemeral async in-process store backed by a Python dict.

    Parameters
    ----------
    initial_data:
        Optional pre-populated mapping of keys to values.
        A shallow copy is taken so the caller's dict is not mutated.
    """

    def __init__(self, initial_data: dict[str, str] | None = None) -> None:
        self._store: dict[str, str] = dict(initial_data or {})
        self._lock: asyncio.Lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # KeyValueStore interface
    # ------------------------------------------------------------------

    async def get(self, key: str) -> str | None:
        async with self._lock:
            return self._store.get(key)

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            self._store[key] = value

    async def remove(self, key: str) -> None:
        async with self._lock:
            self._store.pop(key, None)

    async def keys(self, prefix: str = "") -> Sequence[str]:
        """Return matching keys in insertion order."""
        async with self._lock:
            return [key for key in self._store if key.startswith(prefix)]

    async def set_many(self, items: Iterable[tuple[str, str]]) -> None:
        """Write all pairs under a single lock acquisition."""
        async with self._lock:
            self._store.update(dict(items))

    async def remove_many(self, keys: Iterable[str]) -> None:
        async with self._lock:
            for key in keys:
                self._store.pop(key, None)

    # ------------------------------------------------------------------
    # Extras
    # ------------------------------------------------------------------

    async def clear(self) -> None:
        """Remove all stored values."""
        async with self._lock:
            self._store.clear()

    def snapshot(self) -> dict[str, str]:
        """Return a copy of the raw contents."""
        return dict(self._store)

    def __len__(self) -> int:
        return len(self._store)

    def __repr__(self) -> str:
        return f"InMemoryStore(keys={len(self._store)})"


__all__ = ["InMemoryStore"]
