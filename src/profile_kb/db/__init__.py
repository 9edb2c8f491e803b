"""Database connection and schema management."""

from profile_kb.db.backend import Cursor, Database, KnowledgeBackend, Row
from profile_kb.db.postgres_backend import PostgresBackend
from profile_kb.db.sqlite_backend import SQLiteBackend

__all__ = ["Cursor", "Database", "KnowledgeBackend", "PostgresBackend", "Row", "SQLiteBackend"]
