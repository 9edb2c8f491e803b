"""PostgreSQL implementation of the Database and KnowledgeBackend protocols.

Uses asyncpg for async access, pgvector for embeddings (``<=>`` cosine
distance) and pg_trgm for fuzzy text (``similarity()``). All application SQL
uses ``?`` placeholders: this backend translates them to ``$N`` at execute
time.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from profile_kb.config import get_scope_lock_timeout
from profile_kb.errors import StoreUnavailable

if TYPE_CHECKING:
    import asyncpg

    from profile_kb.db.backend import Cursor, Row
    from profile_kb.models.item import KnowledgeItem

logger = logging.getLogger(__name__)

# Pause between pg_try_advisory_lock attempts
_LOCK_RETRY_INTERVAL = 0.05

# Pre-compiled regex for placeholder translation
_PLACEHOLDER_RE = re.compile(r"\?")


def _translate_placeholders(sql: str) -> str:
    """Convert ``?`` placeholders to ``$1, $2, ...`` for asyncpg."""
    counter = 0

    def _replace(_match: re.Match[str]) -> str:
        nonlocal counter
        counter += 1
        return f"${counter}"

    return _PLACEHOLDER_RE.sub(_replace, sql)


def _vector_literal(vec: list[float]) -> str:
    """Render a vector in pgvector's text input format."""
    return "[" + ",".join(str(v) for v in vec) + "]"


class PostgresRow:
    """Wraps asyncpg.Record to satisfy the Row protocol."""

    def __init__(self, record: asyncpg.Record) -> None:
        """Initialize with an asyncpg Record."""
        self._record = record

    def __getitem__(self, key: str | int) -> Any:
        """Get a column value by name or position."""
        return self._record[key]

    def keys(self) -> list[str]:
        """Return column names."""
        return list(self._record.keys())


class PostgresCursor:
    """Wraps a list of asyncpg.Record as a Cursor.

    asyncpg returns results eagerly: there's no server-side cursor for
    simple queries. This wraps the result list to match the Cursor protocol.
    """

    def __init__(self, rows: list[asyncpg.Record], status: str | None = None) -> None:
        """Initialize with result rows and optional status string."""
        self._rows = rows
        self._index = 0
        self._rowcount = self._parse_rowcount(status)

    @property
    def rowcount(self) -> int:
        """Number of rows affected by the last operation."""
        return self._rowcount

    async def fetchone(self) -> Row | None:
        """Fetch the next row, or None if exhausted."""
        if self._index >= len(self._rows):
            return None
        row = PostgresRow(self._rows[self._index])
        self._index += 1
        return row

    async def fetchall(self) -> list[Row]:
        """Fetch all remaining rows."""
        remaining: list[Row] = [PostgresRow(r) for r in self._rows[self._index :]]
        self._index = len(self._rows)
        return remaining

    @staticmethod
    def _parse_rowcount(status: str | None) -> int:
        """Parse affected row count from asyncpg status string.

        Examples: "INSERT 0 1" → 1, "UPDATE 3" → 3, "DELETE 0" → 0.
        """
        if not status:
            return -1
        parts = status.split()
        if len(parts) >= 2:
            try:
                return int(parts[-1])
            except ValueError:
                pass
        return -1


class PostgresBackend:
    """PostgreSQL implementation of the KnowledgeBackend protocol.

    Each ``execute()`` call acquires a connection from the pool, translates
    ``?`` → ``$N`` placeholders, and releases the connection after.
    ``commit()`` is a no-op: asyncpg auto-commits each statement.
    """

    def __init__(self, pool: asyncpg.Pool) -> None:
        """Initialize with an asyncpg connection pool."""
        self._pool = pool

    @classmethod
    async def create(cls, url: str) -> PostgresBackend:
        """Create a PostgresBackend from a connection URL."""
        import asyncpg as _asyncpg

        pool = await _asyncpg.create_pool(url, min_size=2, max_size=10)
        return cls(pool)

    async def execute(self, sql: str, params: tuple[Any, ...] | list[Any] = ()) -> Cursor:
        """Execute a single SQL statement and return a cursor."""
        pg_sql = _translate_placeholders(sql)
        async with self._pool.acquire() as conn:
            stmt = await conn.prepare(pg_sql)
            if stmt.get_attributes():
                rows = await conn.fetch(pg_sql, *params)
                return PostgresCursor(rows)
            status = await conn.execute(pg_sql, *params)
            return PostgresCursor([], status=status)

    async def executemany(self, sql: str, params_seq: list[tuple[Any, ...] | list[Any]]) -> None:
        """Execute a SQL statement for each set of parameters."""
        pg_sql = _translate_placeholders(sql)
        async with self._pool.acquire() as conn:
            await conn.executemany(pg_sql, params_seq)

    async def executescript(self, sql: str) -> None:
        """Execute multiple SQL statements."""
        async with self._pool.acquire() as conn:
            await conn.execute(sql)

    async def commit(self) -> None:
        """No-op: asyncpg auto-commits each statement."""

    async def close(self) -> None:
        """Close the connection pool."""
        await self._pool.close()

    # -- Items --

    async def insert_item(self, item: KnowledgeItem) -> None:
        """Insert an item row carrying both text and embedding."""
        if not item.vector:
            raise ValueError(f"Item {item.id} has no vector")
        async with self._pool.acquire() as conn:
            await conn.execute(
                """INSERT INTO knowledge_items
                   (id, owner_id, content_type, source_ref, scope_key, text, embedding,
                    source, created_at)
                   VALUES ($1, $2, $3, $4, $5, $6, $7::vector, $8, $9)""",
                item.id,
                item.owner_id,
                item.content_type.value,
                item.source_ref,
                item.scope_key,
                item.text,
                _vector_literal(item.vector),
                item.source.value if item.source else None,
                (item.created_at or datetime.now(UTC)).isoformat(),
            )

    # -- Vector search (pgvector) --

    async def nearest_by_vector(
        self,
        owner_id: str,
        embedding: list[float],
        *,
        limit: int = 10,
        content_types: list[str] | None = None,
        scope_key: str | None = None,
    ) -> list[tuple[str, float]]:
        """KNN via pgvector cosine distance. Returns (item_id, distance) pairs."""
        sql = """
            SELECT id, embedding <=> $1::vector AS distance
            FROM knowledge_items
            WHERE owner_id = $2
        """
        params: list[Any] = [_vector_literal(embedding), owner_id]
        if content_types:
            params.append(content_types)
            sql += f" AND content_type = ANY(${len(params)}::text[])"
        if scope_key is not None:
            params.append(scope_key)
            sql += f" AND scope_key = ${len(params)}"
        params.append(limit)
        sql += f" ORDER BY distance, id LIMIT ${len(params)}"

        async with self._pool.acquire() as conn:
            rows = await conn.fetch(sql, *params)
            return [(row["id"], float(row["distance"])) for row in rows]

    async def item_vectors(self, owner_id: str, content_type: str) -> list[tuple[str, list[float]]]:
        """(item_id, embedding) for every item of one type, oldest first."""
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(
                """SELECT id, embedding::text AS embedding FROM knowledge_items
                WHERE owner_id = $1 AND content_type = $2
                ORDER BY created_at, id""",
                owner_id,
                content_type,
            )
            return [(row["id"], json.loads(row["embedding"])) for row in rows]

    # -- Fuzzy text search (pg_trgm) --

    async def fuzzy_text_search(
        self,
        owner_id: str,
        query: str,
        *,
        limit: int = 10,
        floor: float = 0.1,
        content_types: list[str] | None = None,
    ) -> list[tuple[str, float]]:
        """Trigram similarity via pg_trgm. Returns (item_id, similarity) pairs."""
        sql = """
            SELECT id, similarity(text, $1) AS score
            FROM knowledge_items
            WHERE owner_id = $2
              AND similarity(text, $1) >= $3
        """
        params: list[Any] = [query, owner_id, floor]
        if content_types:
            params.append(content_types)
            sql += f" AND content_type = ANY(${len(params)}::text[])"
        params.append(limit)
        sql += f" ORDER BY score DESC, id LIMIT ${len(params)}"

        async with self._pool.acquire() as conn:
            rows = await conn.fetch(sql, *params)
            return [(row["id"], float(row["score"])) for row in rows]

    # -- Locking --

    @asynccontextmanager
    async def scope_lock(self, key: str, timeout: float | None = None) -> AsyncIterator[None]:
        """Hold a session-level advisory lock for one dedup scope key.

        Waiting is done with ``pg_try_advisory_lock`` and the connection is
        returned to the pool between tries, so queued writers never starve
        the lock holder of connections. Raises StoreUnavailable if the lock
        isn't taken within ``timeout`` seconds.
        """
        limit = get_scope_lock_timeout() if timeout is None else timeout
        deadline = time.monotonic() + limit
        while True:
            remaining = max(deadline - time.monotonic(), 0.01)
            try:
                conn = await self._pool.acquire(timeout=remaining)
            except TimeoutError as e:
                raise StoreUnavailable(f"scope lock {key}: no connection within {limit}s") from e
            try:
                got = await conn.fetchval("SELECT pg_try_advisory_lock(hashtext($1))", key)
            except BaseException:
                await self._pool.release(conn)
                raise
            if got:
                break
            await self._pool.release(conn)
            if time.monotonic() >= deadline:
                raise StoreUnavailable(f"scope lock {key} not acquired within {limit}s")
            await asyncio.sleep(_LOCK_RETRY_INTERVAL)

        try:
            yield
        finally:
            try:
                await conn.execute("SELECT pg_advisory_unlock(hashtext($1))", key)
            finally:
                await self._pool.release(conn)

    # -- Schema --

    async def apply_schema(self, *, embedding_dim: int = 1536) -> None:
        """Apply all PostgreSQL DDL."""
        async with self._pool.acquire() as conn:
            await conn.execute("CREATE EXTENSION IF NOT EXISTS vector")
            await conn.execute("CREATE EXTENSION IF NOT EXISTS pg_trgm")

            await conn.execute("""
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER NOT NULL
                )
            """)

            await conn.execute("""
                CREATE TABLE IF NOT EXISTS profile_entities (
                    id TEXT PRIMARY KEY,
                    owner_id TEXT NOT NULL,
                    content_type TEXT NOT NULL,
                    fields TEXT NOT NULL DEFAULT '{}',
                    source TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)

            await conn.execute(f"""
                CREATE TABLE IF NOT EXISTS knowledge_items (
                    id TEXT PRIMARY KEY,
                    owner_id TEXT NOT NULL,
                    content_type TEXT NOT NULL,
                    source_ref TEXT REFERENCES profile_entities(id) ON DELETE CASCADE,
                    scope_key TEXT,
                    text TEXT NOT NULL,
                    embedding vector({embedding_dim}) NOT NULL,
                    source TEXT,
                    created_at TEXT NOT NULL
                )
            """)

            for idx_sql in [
                "CREATE INDEX IF NOT EXISTS idx_entities_owner_type"
                " ON profile_entities(owner_id, content_type)",
                "CREATE INDEX IF NOT EXISTS idx_items_owner_type"
                " ON knowledge_items(owner_id, content_type)",
                "CREATE INDEX IF NOT EXISTS idx_items_scope"
                " ON knowledge_items(owner_id, content_type, scope_key)",
                "CREATE INDEX IF NOT EXISTS idx_items_source_ref ON knowledge_items(source_ref)",
                "CREATE INDEX IF NOT EXISTS idx_items_text_trgm"
                " ON knowledge_items USING gin(text gin_trgm_ops)",
                "CREATE INDEX IF NOT EXISTS idx_items_embedding"
                " ON knowledge_items USING hnsw(embedding vector_cosine_ops)",
            ]:
                await conn.execute(idx_sql)

            row = await conn.fetchrow("SELECT version FROM schema_version")
            if row is None:
                await conn.execute("INSERT INTO schema_version (version) VALUES ($1)", 1)
