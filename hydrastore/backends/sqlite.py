"""SQLite storage backend."""

import asyncio
import re
import sqlite3
from typing import Any, Callable, List, Optional

from .base import DEFAULT_NAMESPACE, StorageBackend, Value

_NAMESPACE_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class SQLiteBackend(StorageBackend):
    """SQLite storage backend.

    Stores each namespace as a table of (key, value) rows in a SQLite
    database file. Zero configuration required; good for desktop apps
    and single-process services.

    All statements run in a worker thread via asyncio.to_thread and are
    serialized by a lock, so one shared connection can serve any number
    of concurrent stores.

    Example:
        backend = SQLiteBackend("state.db")
        await backend.put("settings", '{"theme": "dark"}')

        # Or in-memory
        backend = SQLiteBackend(":memory:")
    """

    def __init__(self, path: str = ":memory:", namespace: str = DEFAULT_NAMESPACE):
        if not _NAMESPACE_RE.match(namespace):
            raise ValueError(f"Invalid SQLite namespace name: {namespace!r}")
        super().__init__(namespace)
        self.path = path
        self._lock: Optional[asyncio.Lock] = None

    async def _run(self, fn: Callable[..., Any], *args: Any) -> Any:
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            return await asyncio.to_thread(fn, *args)

    async def _connect(self) -> sqlite3.Connection:
        """Connect to the database and create the namespace table."""
        return await self._run(self._connect_sync)

    def _connect_sync(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.path, check_same_thread=False)
        try:
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {self.namespace} (
                    key TEXT PRIMARY KEY,
                    value BLOB NOT NULL
                )
                """
            )
            conn.commit()
        except sqlite3.Error:
            conn.close()
            raise
        return conn

    async def _disconnect(self, handle: sqlite3.Connection) -> None:
        """Close the database connection."""
        await self._run(handle.close)

    async def get(self, key: str) -> Optional[Value]:
        """Retrieve entry by key."""
        conn = await self.open()

        def read():
            row = conn.execute(
                f"SELECT value FROM {self.namespace} WHERE key = ?", (key,)
            ).fetchone()
            return row[0] if row is not None else None

        return await self._run(read)

    async def put(self, key: str, value: Value) -> None:
        """Store or update entry."""
        conn = await self.open()

        def write():
            conn.execute(
                f"INSERT OR REPLACE INTO {self.namespace} (key, value) VALUES (?, ?)",
                (key, value),
            )
            conn.commit()

        await self._run(write)

    async def delete(self, key: str) -> bool:
        """Delete entry by key."""
        conn = await self.open()

        def remove():
            cursor = conn.execute(
                f"DELETE FROM {self.namespace} WHERE key = ?", (key,)
            )
            conn.commit()
            return cursor.rowcount > 0

        return await self._run(remove)

    async def clear(self) -> None:
        """Remove every entry in the namespace."""
        conn = await self.open()

        def truncate():
            conn.execute(f"DELETE FROM {self.namespace}")
            conn.commit()

        await self._run(truncate)

    async def keys(self) -> List[str]:
        """List keys in the namespace."""
        conn = await self.open()

        def list_keys():
            cursor = conn.execute(f"SELECT key FROM {self.namespace} ORDER BY key")
            return [row[0] for row in cursor]

        return await self._run(list_keys)

    def __repr__(self) -> str:
        return f"SQLiteBackend(path={self.path!r}, namespace={self.namespace!r})"
