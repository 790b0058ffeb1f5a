"""Key-value store subpackage.

All stores implement the ``KeyValueStore`` ABC.
Optional stores guard their third-party imports so that the package
remains importable without those extras.

Public surface
--------------
- KeyValueStore  — abstract base class
- InMemoryStore  — async dict with asyncio.Lock (useful for testing)
- SQLiteStore    — durable aiosqlite store (requires aiosqlite)
- RedisStore     — redis.asyncio store (requires redis>=5)
"""
from __future__ import annotations

from clinic_client.storage.base import KeyValueStore
from clinic_client.storage.memory import InMemoryStore

__all__ = [
    "InMemoryStore",
    "KeyValueStore",
]

# SQLiteStore: guarded by the aiosqlite dependency
try:
    from clinic_client.storage.sqlite import SQLiteStore

    __all__ = [*__all__, "SQLiteStore"]
except ImportError:
    pass

# RedisStore: guarded by the redis[asyncio] dependency
try:
    from clinic_client.storage.redis import RedisStore

    __all__ = [*__all__, "RedisStore"]
except ImportError:
    pass
