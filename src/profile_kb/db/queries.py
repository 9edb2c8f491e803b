"""Query helpers for common database operations."""

import json
import uuid
from datetime import UTC, datetime

from profile_kb.db.backend import Database, Row
from profile_kb.models.entities import ProfileEntity
from profile_kb.models.item import ContentType, IngestSource, KnowledgeItem

_ITEM_COLUMNS = (
    "id, owner_id, content_type, source_ref, scope_key, text, source, created_at"
)


def new_id(prefix: str) -> str:
    """Generate an opaque identifier, e.g. ``item_3f2a...``."""
    return f"{prefix}_{uuid.uuid4().hex[:16]}"


def row_to_item(row: Row) -> KnowledgeItem:
    """Convert a database row to a KnowledgeItem (without its vector)."""
    return KnowledgeItem(
        id=row["id"],
        owner_id=row["owner_id"],
        content_type=ContentType(row["content_type"]),
        source_ref=row["source_ref"],
        scope_key=row["scope_key"],
        text=row["text"],
        source=IngestSource(row["source"]) if row["source"] else None,
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def row_to_entity(row: Row) -> ProfileEntity:
    """Convert a database row to a ProfileEntity."""
    return ProfileEntity(
        id=row["id"],
        owner_id=row["owner_id"],
        content_type=ContentType(row["content_type"]),
        fields=json.loads(row["fields"]),
        source=IngestSource(row["source"]) if row["source"] else None,
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


async def insert_entity(db: Database, entity: ProfileEntity) -> None:
    """Insert a structured profile entity."""
    await db.execute(
        """INSERT INTO profile_entities
        (id, owner_id, content_type, fields, source, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?)""",
        (
            entity.id,
            entity.owner_id,
            entity.content_type.value,
            json.dumps(entity.fields),
            entity.source.value if entity.source else None,
            entity.created_at.isoformat() if entity.created_at else _now_iso(),
            entity.updated_at.isoformat() if entity.updated_at else _now_iso(),
        ),
    )
    await db.commit()


async def update_entity_fields(db: Database, entity_id: str, fields: dict[str, object]) -> None:
    """Overwrite an entity's fields and bump its timestamp."""
    await db.execute(
        "UPDATE profile_entities SET fields = ?, updated_at = ? WHERE id = ?",
        (json.dumps(fields), _now_iso(), entity_id),
    )
    await db.commit()


async def get_entity(db: Database, owner_id: str, entity_id: str) -> ProfileEntity | None:
    """Get a single entity by ID, scoped to its owner."""
    cursor = await db.execute(
        "SELECT * FROM profile_entities WHERE id = ? AND owner_id = ?",
        (entity_id, owner_id),
    )
    row = await cursor.fetchone()
    return row_to_entity(row) if row else None


async def get_item(db: Database, owner_id: str, item_id: str) -> KnowledgeItem | None:
    """Get a single knowledge item by ID, scoped to its owner."""
    cursor = await db.execute(
        f"SELECT {_ITEM_COLUMNS} FROM knowledge_items WHERE id = ? AND owner_id = ?",  # noqa: S608
        (item_id, owner_id),
    )
    row = await cursor.fetchone()
    return row_to_item(row) if row else None


async def get_items(db: Database, owner_id: str, item_ids: list[str]) -> dict[str, KnowledgeItem]:
    """Batch-load items by ID. Missing IDs are simply absent from the result."""
    if not item_ids:
        return {}
    placeholders = ",".join("?" for _ in item_ids)
    cursor = await db.execute(
        f"SELECT {_ITEM_COLUMNS} FROM knowledge_items"  # noqa: S608
        f" WHERE owner_id = ? AND id IN ({placeholders})",
        [owner_id, *item_ids],
    )
    rows = await cursor.fetchall()
    items = [row_to_item(row) for row in rows]
    return {item.id: item for item in items}


async def items_for_entity(db: Database, owner_id: str, entity_id: str) -> list[KnowledgeItem]:
    """All items derived from one entity."""
    cursor = await db.execute(
        f"SELECT {_ITEM_COLUMNS} FROM knowledge_items"  # noqa: S608
        " WHERE owner_id = ? AND source_ref = ? ORDER BY created_at, id",
        (owner_id, entity_id),
    )
    return [row_to_item(row) for row in await cursor.fetchall()]


async def delete_items_for_entity(db: Database, owner_id: str, entity_id: str) -> int:
    """Delete every item derived from an entity. Returns the number removed."""
    cursor = await db.execute(
        "DELETE FROM knowledge_items WHERE owner_id = ? AND source_ref = ?",
        (owner_id, entity_id),
    )
    await db.commit()
    return max(cursor.rowcount, 0)


async def delete_entity_cascade(db: Database, owner_id: str, entity_id: str) -> bool:
    """Hard-delete an entity and its items. Returns False if it did not exist."""
    await db.execute(
        "DELETE FROM knowledge_items WHERE owner_id = ? AND source_ref = ?",
        (owner_id, entity_id),
    )
    cursor = await db.execute(
        "DELETE FROM profile_entities WHERE owner_id = ? AND id = ?",
        (owner_id, entity_id),
    )
    await db.commit()
    return cursor.rowcount > 0


async def entities_without_items(
    db: Database, owner_id: str | None = None, limit: int = 100
) -> list[ProfileEntity]:
    """Entities whose knowledge item is still pending (embedding was unavailable)."""
    sql = """
        SELECT e.* FROM profile_entities e
        WHERE NOT EXISTS (SELECT 1 FROM knowledge_items k WHERE k.source_ref = e.id)
    """
    params: list[str | int] = []
    if owner_id:
        sql += " AND e.owner_id = ?"
        params.append(owner_id)
    sql += " ORDER BY e.created_at, e.id LIMIT ?"
    params.append(limit)
    cursor = await db.execute(sql, params)
    return [row_to_entity(row) for row in await cursor.fetchall()]


async def count_items(db: Database, owner_id: str, content_type: ContentType | None = None) -> int:
    """Count an owner's knowledge items, optionally for one content type."""
    sql = "SELECT COUNT(*) AS cnt FROM knowledge_items WHERE owner_id = ?"
    params: list[str] = [owner_id]
    if content_type is not None:
        sql += " AND content_type = ?"
        params.append(content_type.value)
    cursor = await db.execute(sql, params)
    row = await cursor.fetchone()
    if row is None:
        raise RuntimeError("COUNT query returned no rows")
    return int(row["cnt"])


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()
