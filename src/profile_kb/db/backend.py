"""Database backend protocol: thin abstraction over async DB connections.

Application code programs against these protocols. Each backend (SQLite,
Postgres, ...) provides a concrete implementation. SQL dialect differences
are handled inside the backend, not in application code.

The retrieval engine only needs two read primitives on top of plain SQL:
nearest-by-cosine-distance and fuzzy-text similarity, both scoped to one
owner. They live on ``KnowledgeBackend`` so the engine stays storage-agnostic.
"""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from profile_kb.models.item import KnowledgeItem


@runtime_checkable
class Row(Protocol):
    """A database row supporting both named and positional access."""

    def __getitem__(self, key: str | int) -> Any:
        """Get a column value by name or position."""
        ...

    def keys(self) -> Any:
        """Return column names."""
        ...


@runtime_checkable
class Cursor(Protocol):
    """Async cursor returned by Database.execute()."""

    @property
    def rowcount(self) -> int:
        """Number of rows affected by the last operation."""
        ...

    async def fetchone(self) -> Row | None:
        """Fetch the next row, or None if exhausted."""
        ...

    async def fetchall(self) -> list[Row]:
        """Fetch all remaining rows."""
        ...


@runtime_checkable
class Database(Protocol):
    """Async database backend.

    All application SQL uses ``?`` placeholders and SQLite-flavored syntax.
    Non-SQLite backends translate at execute time (``?`` → ``$N``).
    """

    async def execute(self, sql: str, params: tuple[Any, ...] | list[Any] = ()) -> Cursor:
        """Execute a single SQL statement and return a cursor."""
        ...

    async def executemany(self, sql: str, params_seq: list[tuple[Any, ...] | list[Any]]) -> None:
        """Execute a SQL statement for each set of parameters."""
        ...

    async def executescript(self, sql: str) -> None:
        """Execute multiple SQL statements (DDL, migrations)."""
        ...

    async def commit(self) -> None:
        """Commit the current transaction."""
        ...

    async def close(self) -> None:
        """Close the database connection."""
        ...


@runtime_checkable
class KnowledgeBackend(Database, Protocol):
    """Database plus the vector and fuzzy-text primitives the engine relies on."""

    async def insert_item(self, item: KnowledgeItem) -> None:
        """Insert an item with its text and vector in a single statement."""
        ...

    async def nearest_by_vector(
        self,
        owner_id: str,
        embedding: list[float],
        *,
        limit: int = 10,
        content_types: list[str] | None = None,
        scope_key: str | None = None,
    ) -> list[tuple[str, float]]:
        """Return (item_id, cosine_distance) pairs, most similar first."""
        ...

    async def item_vectors(self, owner_id: str, content_type: str) -> list[tuple[str, list[float]]]:
        """Return (item_id, embedding) for every item of one type, oldest first."""
        ...

    async def fuzzy_text_search(
        self,
        owner_id: str,
        query: str,
        *,
        limit: int = 10,
        floor: float = 0.1,
        content_types: list[str] | None = None,
    ) -> list[tuple[str, float]]:
        """Return (item_id, trigram_similarity) pairs at or above ``floor``, best first."""
        ...

    def scope_lock(
        self, key: str, timeout: float | None = None
    ) -> AbstractAsyncContextManager[None]:
        """Serialize dedup-check-then-write for one (owner, content type, scope) key."""
        ...
