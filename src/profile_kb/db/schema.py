"""DDL and migrations for the knowledge database (SQLite)."""

from profile_kb.db.backend import Database

SCHEMA_VERSION = 1

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS profile_entities (
    id TEXT PRIMARY KEY,
    owner_id TEXT NOT NULL,
    content_type TEXT NOT NULL,
    fields TEXT NOT NULL DEFAULT '{}',
    source TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_entities_owner_type ON profile_entities(owner_id, content_type);

-- One row per item: text and vector are written by the same INSERT
CREATE TABLE IF NOT EXISTS knowledge_items (
    id TEXT PRIMARY KEY,
    owner_id TEXT NOT NULL,
    content_type TEXT NOT NULL,
    source_ref TEXT REFERENCES profile_entities(id) ON DELETE CASCADE,
    scope_key TEXT,
    text TEXT NOT NULL,
    embedding BLOB NOT NULL,
    source TEXT,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_items_owner_type ON knowledge_items(owner_id, content_type);
CREATE INDEX IF NOT EXISTS idx_items_scope ON knowledge_items(owner_id, content_type, scope_key);
CREATE INDEX IF NOT EXISTS idx_items_source_ref ON knowledge_items(source_ref);
"""


async def apply_schema(db: Database) -> None:
    """Apply the database schema."""
    await db.executescript(SCHEMA_SQL)

    cursor = await db.execute("SELECT version FROM schema_version")
    row = await cursor.fetchone()
    if row is None:
        await db.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))

    await db.commit()
