"""Async SQLite key-value store — requires aiosqlite (guarded import).

Values survive process restarts, which is what the offline queue and the
stored credentials rely on.

Classes
-------
- SQLiteStore  — aiosqlite-backed durable key-value storage
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Sequence

from clinic_client.storage.base import KeyValueStore

_AIOSQLITE_IMPORT_ERROR = (
    "SQLiteStore requires the 'aiosqlite' package. "
    "Install it with: pip install aiosqlite  or  reinstall clinic-client"
)

_DEFAULT_DB_PATH: Path = Path.home() / ".clinic-client" / "store.db"

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS kv (
    key        TEXT PRIMARY KEY,
    value      TEXT NOT NULL,
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
)
"""

_UPSERT_SQL = """
INSERT INTO kv (key, value, updated_at)
VALUES (?, ?, datetime('now'))
ON CONFLICT(key) DO UPDATE SET
    value      = excluded.value,
    updated_at = excluded.updated_at
"""


class SQLiteStore(KeyValueStore):
    """Persists values in a local SQLite database using aiosqlite.

    Parameters
    ----------
    db_path:
        Path to the SQLite file.  Defaults to
        ``~/.clinic-client/store.db``.  The parent directory and table
        are created automatically on first use.
    """

    def __init__(self, db_path: str | Path | None = None) -> None:
        try:
            import aiosqlite as _aiosqlite  # noqa: F401
        except ImportError as exc:
            raise ImportError(_AIOSQLITE_IMPORT_ERROR) from exc

        self._db_path: Path = (
            Path(db_path) if db_path is not None else _DEFAULT_DB_PATH
        )
        self._schema_initialised = False

    @property
    def db_path(self) -> Path:
        return self._db_path

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _ensure_schema(self) -> None:
        """Create the kv table on first use."""
        if self._schema_initialised:
            return
        import aiosqlite

        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as conn:
            await conn.execute("PRAGMA journal_mode=WAL")
            await conn.execute(_CREATE_TABLE_SQL)
            await conn.commit()
        self._schema_initialised = True

    # ------------------------------------------------------------------
    # KeyValueStore interface
    # ------------------------------------------------------------------

    async def get(self, key: str) -> str | None:
        import aiosqlite

        await self._ensure_schema()
        async with aiosqlite.connect(str(self._db_path)) as conn:
            async with conn.execute("SELECT value FROM kv WHERE key = ?", (key,)) as cursor:
                row = await cursor.fetchone()
        return None if row is None else str(row[0])

    async def set(self, key: str, value: str) -> None:
        """Upsert ``value`` for ``key``."""
        await self.set_many([(key, value)])

    async def set_many(self, items: Iterable[tuple[str, str]]) -> None:
        """Upsert all pairs in one transaction."""
        import aiosqlite

        await self._ensure_schema()
        async with aiosqlite.connect(str(self._db_path)) as conn:
            await conn.executemany(_UPSERT_SQL, list(items))
            await conn.commit()

    async def remove(self, key: str) -> None:
        await self.remove_many([key])

    async def remove_many(self, keys: Iterable[str]) -> None:
        """Delete all rows for ``keys`` in one transaction."""
        import aiosqlite

        await self._ensure_schema()
        async with aiosqlite.connect(str(self._db_path)) as conn:
            await conn.executemany("DELETE FROM kv WHERE key = ?", [(key,) for key in keys])
            await conn.commit()

    async def keys(self, prefix: str = "") -> Sequence[str]:
        """Return keys starting with ``prefix``, oldest write first."""
        import aiosqlite

        await self._ensure_schema()
        async with aiosqlite.connect(str(self._db_path)) as conn:
            async with conn.execute(
                "SELECT key FROM kv WHERE substr(key, 1, ?) = ? ORDER BY updated_at, key",
                (len(prefix), prefix),
            ) as cursor:
                rows = await cursor.fetchall()
        return [str(row[0]) for row in rows]

    def __repr__(self) -> str:
        return f"SQLiteStore(db_path={str(self._db_path)!r})"


__all__ = ["SQLiteStore"]
