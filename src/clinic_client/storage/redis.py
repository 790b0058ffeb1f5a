"""Async Redis key-value store — requires redis[asyncio] (guarded import).

Classes
-------
- RedisStore  — redis.asyncio-backed key-value storage
"""

from __future__ import annotations

from typing import Iterable, Sequence

from clinic_client.storage.base import KeyValueStore

_REDIS_IMPORT_ERROR = (
    "RedisStore requires the 'redis' package with asyncio support. "
    "Install it with: pip install redis  or  "
    "pip install 'clinic-client[redis]'"
)


class RedisStore(KeyValueStore):
    """Persists values in a Redis instance using ``redis.asyncio``.

    Each value is stored as a Redis string under ``<namespace><key>``.

    Parameters
    ----------
    host:
        Redis server hostname.  Defaults to ``"localhost"``.
    port:
        Redis server port.  Defaults to ``6379``.
    db:
        Redis logical database index.  Defaults to ``0``.
    password:
        Optional authentication password.
    namespace:
        String prepended to all keys.  Defaults to ``"clinic_client:"``.
    url:
        If supplied, overrides host/port/db/password and is used as a
        Redis connection URL (e.g. ``"redis://localhost:6379/0"``).
    client:
        Optional pre-built ``redis.asyncio.Redis`` (must decode responses).
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: str | None = None,
        namespace: str = "clinic_client:",
        url: str | None = None,
        client: object | None = None,
    ) -> None:
        try:
            import redis.asyncio as redis_asyncio
        except ImportError as exc:
            raise ImportError(_REDIS_IMPORT_ERROR) from exc

        if client is not None:
            self._client = client
        elif url is not None:
            self._client = redis_asyncio.Redis.from_url(url, decode_responses=True)
        else:
            self._client = redis_asyncio.Redis(
                host=host,
                port=port,
                db=db,
                password=password,
                decode_responses=True,
            )
        self._namespace = namespace

    def _key(self, key: str) -> str:
        return f"{self._namespace}{key}"

    # ------------------------------------------------------------------
    # KeyValueStore interface
    # ------------------------------------------------------------------

    async def get(self, key: str) -> str | None:
        value = await self._client.get(self._key(key))
        return None if value is None else str(value)

    async def set(self, key: str, value: str) -> None:
        await self._client.set(self._key(key), value)

    async def set_many(self, items: Iterable[tuple[str, str]]) -> None:
        """Write all pairs with a single MSET."""
        mapping = {self._key(key): value for key, value in items}
        if mapping:
            await self._client.mset(mapping)

    async def remove(self, key: str) -> None:
        await self._client.delete(self._key(key))

    async def remove_many(self, keys: Iterable[str]) -> None:
        full_keys = [self._key(key) for key in keys]
        if full_keys:
            await self._client.delete(*full_keys)

    async def keys(self, prefix: str = "") -> Sequence[str]:
        """Return keys under the namespace starting with ``prefix``.

        Uses Redis SCAN to avoid blocking the server.
        """
        strip = len(self._namespace)
        found: list[str] = []
        cursor: int = 0
        while True:
            cursor, batch = await self._client.scan(
                cursor=cursor, match=f"{self._namespace}{prefix}*", count=100
            )
            found.extend(str(key)[strip:] for key in batch)
            if cursor == 0:
                break
        return found

    async def aclose(self) -> None:
        await self._client.aclose()

    def __repr__(self) -> str:
        return f"RedisStore(namespace={self._namespace!r})"


__all__ = ["RedisStore"]
