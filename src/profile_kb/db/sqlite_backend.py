"""SQLite implementation of the Database and KnowledgeBackend protocols.

Thin wrapper around aiosqlite.Connection: no SQL translation needed
since application code already uses SQLite-flavored SQL. Cosine distance
comes from sqlite-vec's ``vec_distance_cosine``; trigram similarity from the
``similarity()`` function registered at connect time.
"""

from __future__ import annotations

import asyncio
import logging
import struct
import weakref
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from profile_kb.config import get_scope_lock_timeout
from profile_kb.errors import StoreUnavailable

if TYPE_CHECKING:
    import aiosqlite

    from profile_kb.db.backend import Cursor, Row
    from profile_kb.models.item import KnowledgeItem

logger = logging.getLogger(__name__)


def _serialize_f32(vec: list[float]) -> bytes:
    """Serialize a list of floats to a compact binary format for sqlite-vec."""
    return struct.pack(f"{len(vec)}f", *vec)


def _deserialize_f32(blob: bytes) -> list[float]:
    """Inverse of ``_serialize_f32``."""
    return list(struct.unpack(f"{len(blob) // 4}f", blob))


def _in_clause(column: str, values: list[str]) -> str:
    placeholders = ",".join("?" for _ in values)
    return f" AND {column} IN ({placeholders})"


class SQLiteCursor:
    """Wraps aiosqlite.Cursor to satisfy the Cursor protocol."""

    def __init__(self, cursor: aiosqlite.Cursor) -> None:
        """Initialize with an aiosqlite cursor."""
        self._cursor = cursor

    @property
    def rowcount(self) -> int:
        """Number of rows affected by the last operation."""
        rc = self._cursor.rowcount
        return rc if rc is not None else -1

    async def fetchone(self) -> Row | None:
        """Fetch the next row, or None if exhausted."""
        return await self._cursor.fetchone()

    async def fetchall(self) -> list[Row]:
        """Fetch all remaining rows."""
        return list(await self._cursor.fetchall())


class SQLiteBackend:
    """SQLite implementation of the KnowledgeBackend protocol.

    Passes all calls through to the underlying aiosqlite.Connection.
    The raw connection is exposed as ``_conn`` for SQLite-specific
    operations (extension loading, PRAGMA, etc.) that only run during
    connection setup.

    Scope locks are in-process: one connection, one event loop.
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        """Initialize with an aiosqlite connection."""
        self._conn = conn
        self._scope_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    async def execute(self, sql: str, params: tuple[Any, ...] | list[Any] = ()) -> Cursor:
        """Execute a single SQL statement and return a cursor."""
        cursor = await self._conn.execute(sql, params)
        return SQLiteCursor(cursor)

    async def executemany(self, sql: str, params_seq: list[tuple[Any, ...] | list[Any]]) -> None:
        """Execute a SQL statement for each set of parameters."""
        await self._conn.executemany(sql, params_seq)

    async def executescript(self, sql: str) -> None:
        """Execute multiple SQL statements (DDL, migrations)."""
        await self._conn.executescript(sql)

    async def commit(self) -> None:
        """Commit the current transaction."""
        await self._conn.commit()

    async def close(self) -> None:
        """Close the database connection."""
        await self._conn.close()

    # -- Items --

    async def insert_item(self, item: KnowledgeItem) -> None:
        """Insert an item row carrying both text and embedding."""
        if not item.vector:
            raise ValueError(f"Item {item.id} has no vector")
        await self._conn.execute(
            """INSERT INTO knowledge_items
            (id, owner_id, content_type, source_ref, scope_key, text, embedding, source,
             created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                item.id,
                item.owner_id,
                item.content_type.value,
                item.source_ref,
                item.scope_key,
                item.text,
                _serialize_f32(item.vector),
                item.source.value if item.source else None,
                (item.created_at or datetime.now(UTC)).isoformat(),
            ),
        )
        await self._conn.commit()

    # -- Vector search (sqlite-vec) --

    async def nearest_by_vector(
        self,
        owner_id: str,
        embedding: list[float],
        *,
        limit: int = 10,
        content_types: list[str] | None = None,
        scope_key: str | None = None,
    ) -> list[tuple[str, float]]:
        """Exact KNN over an owner's items. Returns (item_id, cosine_distance) pairs."""
        sql = """
            SELECT id, vec_distance_cosine(embedding, ?) AS distance
            FROM knowledge_items
            WHERE owner_id = ?
        """
        params: list[Any] = [_serialize_f32(embedding), owner_id]
        if content_types:
            sql += _in_clause("content_type", content_types)
            params.extend(content_types)
        if scope_key is not None:
            sql += " AND scope_key = ?"
            params.append(scope_key)
        # id as secondary key keeps equal distances in a stable order
        sql += " ORDER BY distance, id LIMIT ?"
        params.append(limit)

        cursor = await self._conn.execute(sql, params)
        rows = await cursor.fetchall()
        return [(row[0], float(row[1])) for row in rows]

    async def item_vectors(self, owner_id: str, content_type: str) -> list[tuple[str, list[float]]]:
        """(item_id, embedding) for every item of one type, oldest first."""
        cursor = await self._conn.execute(
            """SELECT id, embedding FROM knowledge_items
            WHERE owner_id = ? AND content_type = ?
            ORDER BY created_at, id""",
            (owner_id, content_type),
        )
        rows = await cursor.fetchall()
        return [(row[0], _deserialize_f32(row[1])) for row in rows]

    # -- Fuzzy text search (trigram) --

    async def fuzzy_text_search(
        self,
        owner_id: str,
        query: str,
        *,
        limit: int = 10,
        floor: float = 0.1,
        content_types: list[str] | None = None,
    ) -> list[tuple[str, float]]:
        """Trigram similarity over an owner's items. Returns (item_id, similarity) pairs."""
        inner = """
            SELECT id, similarity(text, ?) AS score
            FROM knowledge_items
            WHERE owner_id = ?
        """
        params: list[Any] = [query, owner_id]
        if content_types:
            inner += _in_clause("content_type", content_types)
            params.extend(content_types)
        sql = f"SELECT id, score FROM ({inner}) WHERE score >= ? ORDER BY score DESC, id LIMIT ?"  # noqa: S608
        params.extend([floor, limit])

        cursor = await self._conn.execute(sql, params)
        rows = await cursor.fetchall()
        return [(row[0], float(row[1])) for row in rows]

    # -- Locking --

    @asynccontextmanager
    async def scope_lock(self, key: str, timeout: float | None = None) -> AsyncIterator[None]:
        """Hold an in-process lock for one dedup scope key.

        Raises StoreUnavailable if the lock isn't taken within ``timeout``
        seconds.
        """
        lock = self._scope_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._scope_locks[key] = lock
        limit = get_scope_lock_timeout() if timeout is None else timeout
        try:
            await asyncio.wait_for(lock.acquire(), limit)
        except TimeoutError as e:
            raise StoreUnavailable(f"scope lock {key} not acquired within {limit}s") from e
        try:
            yield
        finally:
            lock.release()

    # -- Schema --

    async def apply_schema(self, *, embedding_dim: int = 1536) -> None:
        """Apply all SQLite DDL.

        ``embedding_dim`` is accepted for parity with the Postgres backend;
        SQLite stores vectors as float32 blobs of any length.
        """
        from profile_kb.db.schema import apply_schema

        await apply_schema(self)
