"""Durable FIFO queue of mutations accepted while offline.

Entries are appended when a queue-eligible write fails for lack of a
response.  Nothing drains the queue automatically; ``replay`` is an
explicit pass the application decides when to run.

Classes
-------
- QueuedMutation  — one recorded write intent
- OfflineQueue    — ordered list of mutations under a single store key
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from clinic_client.storage.base import KeyValueStore

logger = logging.getLogger(__name__)


class QueuedMutation(BaseModel):
    """A write intent recorded while the backend was unreachable."""

    payload: dict[str, Any]
    enqueued_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"frozen": True}


_ENTRIES = TypeAdapter(list[QueuedMutation])

ReplayHandler = Callable[[dict[str, Any]], Awaitable[Any]]


class OfflineQueue:
    """Append-only FIFO list of ``QueuedMutation`` persisted as one value.

    An ``asyncio.Lock`` serialises the read-modify-write cycles so
    concurrent enqueues cannot drop each other's entries.

    Parameters
    ----------
    store:
        Backing store.
    key:
        Store key holding the JSON list.
    """

    def __init__(self, store: KeyValueStore, key: str = "queue_bookings") -> None:
        self._store = store
        self._key = key
        self._lock = asyncio.Lock()

    @property
    def key(self) -> str:
        return self._key

    @property
    def store(self) -> KeyValueStore:
        return self._store

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _load(self) -> list[QueuedMutation]:
        raw = await self._store.get(self._key)
        if raw is None:
            return []
        try:
            return _ENTRIES.validate_json(raw)
        except ValidationError as exc:
            raise ValueError(f"Offline queue {self._key!r} holds an unreadable payload.") from exc

    async def _save(self, entries: list[QueuedMutation]) -> None:
        if not entries:
            await self._store.remove(self._key)
            return
        await self._store.set(self._key, _ENTRIES.dump_json(entries).decode("utf-8"))

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def enqueue(self, payload: dict[str, Any]) -> QueuedMutation:
        """Append ``payload`` to the end of the queue and persist it."""
        entry = QueuedMutation(payload=dict(payload))
        async with self._lock:
            entries = await self._load()
            entries.append(entry)
            await self._save(entries)
        logger.warning("OfflineQueue: queued mutation on %r (%d pending)", self._key, len(entries))
        return entry

    async def entries(self) -> list[QueuedMutation]:
        """Return all pending entries, oldest first."""
        async with self._lock:
            return await self._load()

    async def size(self) -> int:
        return len(await self.entries())

    async def clear(self) -> None:
        async with self._lock:
            await self._store.remove(self._key)

    async def replay(
        self,
        handler: ReplayHandler,
        *,
        discard: Callable[[Exception], bool] | None = None,
    ) -> int:
        """Hand each pending entry, oldest first, to ``handler``.

        An entry is removed only after ``handler`` returns.  The pass stops
        at the first exception, which propagates; that entry and every
        later one stay queued in their original order.  An entry the
        backend will never accept therefore blocks the queue until it is
        discarded or the queue is cleared.

        Parameters
        ----------
        handler:
            Coroutine function delivering one payload.
        discard:
            Optional predicate.  When it returns True for the exception
            ``handler`` raised, that entry is dropped and the pass goes on.

        Returns
        -------
        int
            Number of entries delivered and removed.  Discarded entries are
            not counted.
        """
        delivered = 0
        changed = False
        async with self._lock:
            entries = await self._load()
            try:
                while entries:
                    try:
                        await handler(entries[0].payload)
                    except Exception as exc:
                        if discard is None or not discard(exc):
                            raise
                        logger.warning(
                            "OfflineQueue: discarding rejected entry from %r: %s", self._key, exc
                        )
                    else:
                        delivered += 1
                    entries.pop(0)
                    changed = True
            finally:
                if changed:
                    await self._save(entries)
                    logger.debug("OfflineQueue: replayed %d entries from %r", delivered, self._key)
        return delivered

    def __repr__(self) -> str:
        return f"OfflineQueue(key={self._key!r})"


__all__ = ["OfflineQueue", "QueuedMutation", "ReplayHandler"]
