"""CRUD operations for profile entities and their knowledge items."""

import logging
from contextlib import AbstractAsyncContextManager
from datetime import UTC, datetime

from profile_kb.db.backend import KnowledgeBackend
from profile_kb.db.queries import (
    count_items,
    delete_entity_cascade,
    delete_items_for_entity,
    entities_without_items,
    get_entity,
    get_item,
    insert_entity,
    items_for_entity,
    new_id,
    update_entity_fields,
)
from profile_kb.guards import store_call
from profile_kb.models.entities import ProfileEntity, ProfileFact
from profile_kb.models.item import ContentType, IngestSource, KnowledgeItem

logger = logging.getLogger(__name__)


class KnowledgeStore:
    """Entity and item persistence over a KnowledgeBackend.

    Every call runs under the store timeout and raises StoreUnavailable
    on failure. Items are written with their vector in one statement, so a
    reader never sees an item without one.
    """

    def __init__(self, db: KnowledgeBackend):
        """Initialize with a backend handle owned by the caller."""
        self.db = db

    def scope_lock(self, key: str) -> AbstractAsyncContextManager[None]:
        """Serialize check-then-write for one (owner, content type, scope) key."""
        return self.db.scope_lock(key)

    async def create_entity(
        self, owner_id: str, fact: ProfileFact, source: IngestSource | None = None
    ) -> ProfileEntity:
        """Persist a structured fact as a new entity."""
        now = datetime.now(UTC)
        entity = ProfileEntity(
            id=new_id(fact.content_type.value),
            owner_id=owner_id,
            content_type=fact.content_type,
            fields=fact.model_dump(mode="json"),
            source=source,
            created_at=now,
            updated_at=now,
        )
        await store_call(insert_entity(self.db, entity), operation="entity insert")
        logger.info("Created %s entity %s: %s", fact.content_type, entity.id, fact.title())
        return entity

    async def get_entity(self, owner_id: str, entity_id: str) -> ProfileEntity | None:
        """Get an entity by ID, or None."""
        return await store_call(get_entity(self.db, owner_id, entity_id), operation="entity lookup")

    async def update_entity_fields(self, entity: ProfileEntity, fact: ProfileFact) -> ProfileEntity:
        """Overwrite an entity's fields with a new version of its fact."""
        if fact.content_type != entity.content_type:
            raise ValueError(
                f"Cannot store a {fact.content_type} fact on {entity.content_type} entity {entity.id}"
            )
        fields = fact.model_dump(mode="json")
        await store_call(
            update_entity_fields(self.db, entity.id, fields), operation="entity update"
        )
        return entity.model_copy(update={"fields": fields, "updated_at": datetime.now(UTC)})

    async def add_item(
        self,
        entity: ProfileEntity,
        text: str,
        vector: list[float],
    ) -> KnowledgeItem:
        """Write the searchable item for an entity, text and vector together."""
        fact = entity.as_fact()
        item = KnowledgeItem(
            id=new_id("item"),
            owner_id=entity.owner_id,
            content_type=entity.content_type,
            source_ref=entity.id,
            scope_key=fact.scope_key(),
            text=text,
            vector=vector,
            source=entity.source,
            created_at=datetime.now(UTC),
        )
        await store_call(self.db.insert_item(item), operation="item insert")
        logger.debug("Added item %s for entity %s", item.id, entity.id)
        return item

    async def get_item(self, owner_id: str, item_id: str) -> KnowledgeItem | None:
        """Get an item by ID, or None. The vector is not loaded."""
        return await store_call(get_item(self.db, owner_id, item_id), operation="item lookup")

    async def items_for_entity(self, owner_id: str, entity_id: str) -> list[KnowledgeItem]:
        """All items derived from one entity."""
        return await store_call(
            items_for_entity(self.db, owner_id, entity_id), operation="item listing"
        )

    async def delete_items_for_entity(self, owner_id: str, entity_id: str) -> int:
        """Remove an entity's items, keeping the entity. Returns the count removed."""
        return await store_call(
            delete_items_for_entity(self.db, owner_id, entity_id), operation="item delete"
        )

    async def delete_entity(self, owner_id: str, entity_id: str) -> bool:
        """Delete an entity and, by cascade, its items."""
        deleted = await store_call(
            delete_entity_cascade(self.db, owner_id, entity_id), operation="entity delete"
        )
        if deleted:
            logger.info("Deleted entity %s", entity_id)
        return deleted

    async def entities_without_items(
        self, owner_id: str | None = None, limit: int = 100
    ) -> list[ProfileEntity]:
        """Entities still waiting for their item (embedding was unavailable at write time)."""
        return await store_call(
            entities_without_items(self.db, owner_id, limit), operation="pending lookup"
        )

    async def count_items(self, owner_id: str, content_type: ContentType | None = None) -> int:
        """Count an owner's items."""
        return await store_call(
            count_items(self.db, owner_id, content_type), operation="item count"
        )
