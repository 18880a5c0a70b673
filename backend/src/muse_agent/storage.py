"""Durable key-value storage partitioned by namespace.

Each conversation actor and the session directory get their own partition;
values are JSON documents.
"""

from __future__ import annotations

import asyncio
import copy
import json
import sqlite3
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class KeyValueStore(ABC):
    """Async key-value interface for one storage partition."""

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        ...

    @abstractmethod
    async def put(self, key: str, value: Any) -> None:
        ...

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete one key; returns False if it did not exist."""
        ...

    @abstractmethod
    async def delete_many(self, keys: list[str]) -> int:
        ...

    @abstractmethod
    async def list(self, prefix: str = "") -> dict[str, Any]:
        """All entries whose key starts with `prefix`, ordered by key."""
        ...

    async def clear(self) -> int:
        entries = await self.list()
        return await self.delete_many(list(entries))


# ---------------------------------------------------------------------------
# SQLite
# ---------------------------------------------------------------------------


class SQLiteStorage:
    """SQLite-backed storage shared by all partitions.

    One `kv` table keyed by (namespace, key). Calls are synchronous and
    guarded by a lock; partitions run them in a worker thread.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = str(db_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)

        self._lock = threading.Lock()
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.execute("PRAGMA synchronous=NORMAL;")
        self._create_schema()

    def _create_schema(self) -> None:
        with self._lock:
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv (
                    namespace   TEXT NOT NULL,
                    key         TEXT NOT NULL,
                    value_json  TEXT NOT NULL,
                    updated_at  TEXT NOT NULL,
                    PRIMARY KEY (namespace, key)
                )
                """
            )
            self._conn.commit()

    def partition(self, namespace: str) -> SQLitePartition:
        return SQLitePartition(self, namespace)

    def get(self, namespace: str, key: str) -> Any | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT value_json FROM kv WHERE namespace = ? AND key = ?",
                (namespace, key),
            ).fetchone()
        if not row:
            return None
        return json.loads(row[0])

    def put(self, namespace: str, key: str, value: Any) -> None:
        value_json = json.dumps(value)
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO kv (namespace, key, value_json, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(namespace, key) DO UPDATE SET
                    value_json = excluded.value_json,
                    updated_at = excluded.updated_at
                """,
                (namespace, key, value_json, _iso_now()),
            )
            self._conn.commit()

    def delete_many(self, namespace: str, keys: list[str]) -> int:
        if not keys:
            return 0
        deleted = 0
        with self._lock:
            for key in keys:
                cur = self._conn.execute(
                    "DELETE FROM kv WHERE namespace = ? AND key = ?",
                    (namespace, key),
                )
                deleted += cur.rowcount
            self._conn.commit()
        return deleted

    def list(self, namespace: str, prefix: str = "") -> dict[str, Any]:
        # Prefix match done in Python so LIKE wildcards in keys need no escaping.
        with self._lock:
            rows = self._conn.execute(
                "SELECT key, value_json FROM kv WHERE namespace = ? AND key >= ? ORDER BY key",
                (namespace, prefix),
            ).fetchall()
        out: dict[str, Any] = {}
        for key, value_json in rows:
            if not key.startswith(prefix):
                break
            out[key] = json.loads(value_json)
        return out

    def close(self) -> None:
        with self._lock:
            self._conn.close()


class SQLitePartition(KeyValueStore):
    """One namespace of a SQLiteStorage."""

    def __init__(self, storage: SQLiteStorage, namespace: str) -> None:
        self._storage = storage
        self.namespace = namespace

    async def get(self, key: str) -> Any | None:
        return await asyncio.to_thread(self._storage.get, self.namespace, key)

    async def put(self, key: str, value: Any) -> None:
        await asyncio.to_thread(self._storage.put, self.namespace, key, value)

    async def delete(self, key: str) -> bool:
        deleted = await asyncio.to_thread(self._storage.delete_many, self.namespace, [key])
        return deleted > 0

    async def delete_many(self, keys: list[str]) -> int:
        return await asyncio.to_thread(self._storage.delete_many, self.namespace, list(keys))

    async def list(self, prefix: str = "") -> dict[str, Any]:
        return await asyncio.to_thread(self._storage.list, self.namespace, prefix)


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------


class InMemoryStore(KeyValueStore):
    """Process-local store. Values are deep-copied in and out like a real backend."""

    def __init__(self, data: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = copy.deepcopy(data) if data else {}

    async def get(self, key: str) -> Any | None:
        return copy.deepcopy(self._data.get(key))

    async def put(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    async def delete(self, key: str) -> bool:
        if key not in self._data:
            return False
        del self._data[key]
        return True

    async def delete_many(self, keys: list[str]) -> int:
        return sum([await self.delete(key) for key in keys])

    async def list(self, prefix: str = "") -> dict[str, Any]:
        return {
            key: copy.deepcopy(self._data[key])
            for key in sorted(self._data)
            if key.startswith(prefix)
        }


class InMemoryStorage:
    """Partition factory for InMemoryStore, mirroring SQLiteStorage."""

    def __init__(self) -> None:
        self._partitions: dict[str, InMemoryStore] = {}

    def partition(self, namespace: str) -> InMemoryStore:
        return self._partitions.setdefault(namespace, InMemoryStore())

    def close(self) -> None:
        self._partitions.clear()
