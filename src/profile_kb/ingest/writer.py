"""Check-then-write sequence shared by every ingestion pipeline."""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from profile_kb.dedup.gate import DeduplicationGate, to_fact
from profile_kb.errors import EmbeddingUnavailable, StoreUnavailable
from profile_kb.guards import Embedder, embed_text
from profile_kb.models.dedup import DedupDecision, DedupStatus
from profile_kb.models.entities import ProfileEntity, ProfileFact
from profile_kb.models.item import ContentType, IngestSource, KnowledgeItem
from profile_kb.store.knowledge_store import KnowledgeStore

logger = logging.getLogger(__name__)


@dataclass
class WriteResult:
    """Outcome of writing one fact."""

    action: str  # "created", "skipped", "pending", "updated"
    decision: DedupDecision | None = None
    entity: ProfileEntity | None = None
    item: KnowledgeItem | None = None

    @property
    def matched_id(self) -> str | None:
        """The existing entity a skipped fact duplicated."""
        if self.decision is None or not self.decision.is_duplicate:
            return None
        return self.decision.matched_entity_id or self.decision.matched_item_id


@dataclass
class BackfillReport:
    """Outcome of one backfill pass over pending entities."""

    filled: list[str] = field(default_factory=list)
    duplicates_removed: list[str] = field(default_factory=list)
    stopped: str | None = None  # why the pass ended early, if it did


def scope_lock_key(owner_id: str, fact: ProfileFact) -> str:
    """Lock key for one (owner, content type, scope key) fingerprint."""
    return f"{owner_id}:{fact.content_type.value}:{fact.scope_key() or '*'}"


class FactWriter:
    """Gate, then persist: entity first, then its item with text and vector together.

    The dedup check and the write run under one scope lock, so two pipelines
    writing the same fact at the same time cannot both pass the gate.
    """

    def __init__(self, store: KnowledgeStore, gate: DeduplicationGate, embedder: Embedder):
        """Initialize with the store, the gate and the embedder items are written with."""
        self.store = store
        self.gate = gate
        self.embedder = embedder

    async def write(
        self,
        owner_id: str,
        content_type: ContentType | str,
        fields: Mapping[str, Any] | ProfileFact,
        source: IngestSource | None = None,
    ) -> WriteResult:
        """Write a fact unless an equivalent one exists.

        Duplicates are skipped, not raised. If the dedup check fails it
        fails open and the fact is created. If the fact can't be embedded
        the entity is still created and its item is left pending for
        ``backfill_missing_items``. If the item insert itself fails, the new
        entity is removed again and StoreUnavailable propagates, so a failed
        fact leaves nothing behind.
        """
        fact = to_fact(content_type, fields)
        async with self.store.scope_lock(scope_lock_key(owner_id, fact)):
            decision = await self.gate.check(owner_id, fact.content_type, fact)
            if decision.is_duplicate:
                logger.info(
                    "Skipped duplicate %s: %s (matches %s)",
                    fact.content_type,
                    fact.title(),
                    decision.matched_entity_id,
                )
                return WriteResult(action="skipped", decision=decision)

            entity = await self.store.create_entity(owner_id, fact, source)
            try:
                item = await self._add_item(entity, fact, decision.embedding)
            except StoreUnavailable:
                await self._discard(entity)
                raise
        return WriteResult(
            action="created" if item else "pending", decision=decision, entity=entity, item=item
        )

    async def replace(
        self,
        owner_id: str,
        entity_id: str,
        fields: Mapping[str, Any] | ProfileFact,
    ) -> WriteResult:
        """Update an entity's fact; its item is deleted and recreated if the text changed."""
        entity = await self.store.get_entity(owner_id, entity_id)
        if entity is None:
            raise ValueError(f"Entity {entity_id} not found")
        fact = to_fact(entity.content_type, fields)
        old_text = entity.as_fact().render_text()

        async with self.store.scope_lock(scope_lock_key(owner_id, fact)):
            entity = await self.store.update_entity_fields(entity, fact)
            existing = await self.store.items_for_entity(owner_id, entity_id)
            if existing and fact.render_text() == old_text:
                return WriteResult(action="updated", entity=entity, item=existing[0])

            await self.store.delete_items_for_entity(owner_id, entity_id)
            item = await self._add_item(entity, fact, None)
        logger.info("Replaced %s entity %s", entity.content_type, entity_id)
        return WriteResult(action="updated" if item else "pending", entity=entity, item=item)

    async def delete(self, owner_id: str, entity_id: str) -> bool:
        """Delete an entity and its items."""
        return await self.store.delete_entity(owner_id, entity_id)

    async def backfill_missing_items(
        self, owner_id: str | None = None, limit: int = 100
    ) -> BackfillReport:
        """Write the items of entities that were left pending.

        Each pending fact goes back through the gate under its scope lock, so
        an equivalent fact written while it was pending wins and the pending
        entity is removed instead of becoming a second copy. Stops at the
        first embedding failure since the service is evidently still
        unavailable.
        """
        report = BackfillReport()
        for entity in await self.store.entities_without_items(owner_id, limit):
            fact = entity.as_fact()
            async with self.store.scope_lock(scope_lock_key(entity.owner_id, fact)):
                decision = await self.gate.check(entity.owner_id, fact.content_type, fact)
                if decision.is_duplicate:
                    await self.store.delete_entity(entity.owner_id, entity.id)
                    logger.info(
                        "Removed pending %s %s: duplicates %s",
                        fact.content_type,
                        entity.id,
                        decision.matched_entity_id,
                    )
                    report.duplicates_removed.append(entity.id)
                    continue
                if decision.status == DedupStatus.FAILED and decision.embedding is None:
                    report.stopped = decision.error
                    break
                item = await self._add_item(entity, fact, decision.embedding)
                if item is None:
                    report.stopped = "embedding unavailable"
                    break
                report.filled.append(entity.id)

        if report.stopped:
            logger.warning(
                "Backfill stopped after %d items: %s", len(report.filled), report.stopped
            )
        if report.filled:
            logger.info("Backfilled %d pending items", len(report.filled))
        return report

    async def _discard(self, entity: ProfileEntity) -> None:
        """Remove an entity whose item could not be written."""
        try:
            await self.store.delete_entity(entity.owner_id, entity.id)
        except StoreUnavailable:
            logger.warning(
                "Could not remove entity %s after its item failed; it stays pending",
                entity.id,
                exc_info=True,
            )

    async def _add_item(
        self, entity: ProfileEntity, fact: ProfileFact, embedding: list[float] | None
    ) -> KnowledgeItem | None:
        text = fact.render_text()
        if embedding is None:
            try:
                embedding = await embed_text(self.embedder, text)
            except EmbeddingUnavailable as e:
                logger.warning("Item for %s left pending, embedding unavailable: %s", entity.id, e)
                return None
        return await self.store.add_item(entity, text, embedding)
