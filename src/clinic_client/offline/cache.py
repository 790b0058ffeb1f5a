"""Read-through cache for connectivity fallback.

The cache is written after every successful live read of a cache-eligible
operation and consulted only after that live read failed for lack of a
response.  It is never a primary source.

Classes
-------
- CacheEntry        — last-known-good payload for one logical read
- ReadThroughCache  — prefixed cache entries over a KeyValueStore
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from clinic_client.storage.base import KeyValueStore

logger = logging.getLogger(__name__)


class CacheEntry(BaseModel):
    """The last successful result of one cache-eligible read."""

    key: str
    value: Any = None
    written_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"frozen": True}


class ReadThroughCache:
    """Store and look up last-known-good read results.

    Parameters
    ----------
    store:
        Backing store.  Entries live under ``<prefix><key>``.
    prefix:
        Namespace prefix separating cache keys from other data.
    """

    def __init__(self, store: KeyValueStore, prefix: str = "cache_") -> None:
        self._store = store
        self._prefix = prefix

    @property
    def store(self) -> KeyValueStore:
        return self._store

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def write(self, key: str, value: Any) -> CacheEntry:
        """Overwrite the entry for ``key`` with ``value`` stamped now."""
        entry = CacheEntry(key=key, value=value)
        await self._store.set(self._key(key), entry.model_dump_json())
        logger.debug("ReadThroughCache: wrote %r", key)
        return entry

    async def read(self, key: str) -> CacheEntry | None:
        """Return the entry for ``key``, or None on a miss.

        An unreadable entry counts as a miss.
        """
        raw = await self._store.get(self._key(key))
        if raw is None:
            return None
        try:
            return CacheEntry.model_validate_json(raw)
        except ValidationError:
            logger.warning("ReadThroughCache: ignoring unreadable entry %r", key)
            return None

    async def keys(self) -> list[str]:
        """Return the logical keys currently cached."""
        strip = len(self._prefix)
        return [key[strip:] for key in await self._store.keys(self._prefix)]

    def __repr__(self) -> str:
        return f"ReadThroughCache(prefix={self._prefix!r})"


__all__ = ["CacheEntry", "ReadThroughCache"]
