"""Deduplication gate: is this fact already in the knowledge base?

Runs once per candidate, synchronously, before the write. The candidate is
rendered with the same template as stored items, embedded, and compared
against existing items of the same owner and content type, narrowed to the
same scope key when the type has one. A match at or above the content
type's threshold means skip.

Failures fail open: the caller creates the fact, and the decision says why
it could not be checked.
"""

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from profile_kb.config import get_dedup_candidate_limit, get_dedup_thresholds
from profile_kb.db.backend import KnowledgeBackend
from profile_kb.db.queries import get_item, get_items
from profile_kb.errors import EmbeddingUnavailable, InvalidInput, StoreUnavailable
from profile_kb.guards import Embedder, embed_text, store_call
from profile_kb.models.dedup import (
    DedupDecision,
    DedupStatus,
    DuplicateCandidate,
    DuplicatePair,
)
from profile_kb.models.entities import ProfileFact, fact_from_fields
from profile_kb.models.item import ContentType
from profile_kb.search.vector import vector_search

logger = logging.getLogger(__name__)


def to_fact(
    content_type: ContentType | str, fields: Mapping[str, Any] | ProfileFact
) -> ProfileFact:
    """Coerce raw candidate fields into the typed fact for a content type."""
    try:
        ct = ContentType(content_type)
    except ValueError as e:
        raise InvalidInput(f"Unknown content type: {content_type!r}") from e
    if isinstance(fields, ProfileFact):
        if fields.content_type != ct:
            raise InvalidInput(f"Expected a {ct} fact, got {fields.content_type}")
        return fields
    try:
        return fact_from_fields(ct, fields)
    except ValidationError as e:
        raise InvalidInput(f"Invalid {ct} fields: {e.error_count()} error(s)") from e


class DeduplicationGate:
    """Skip-or-create decisions for newly extracted facts."""

    def __init__(
        self,
        db: KnowledgeBackend,
        embedder: Embedder,
        thresholds: Mapping[ContentType, float] | None = None,
    ):
        """Initialize with a store handle, an embedder and optional threshold overrides."""
        self.db = db
        self.embedder = embedder
        self.thresholds = dict(thresholds) if thresholds is not None else get_dedup_thresholds()

    def threshold_for(self, content_type: ContentType) -> float | None:
        """The similarity a candidate must reach to count as a duplicate, if gated."""
        return self.thresholds.get(content_type)

    async def check(
        self,
        owner_id: str,
        content_type: ContentType | str,
        fields: Mapping[str, Any] | ProfileFact,
    ) -> DedupDecision:
        """Decide whether a candidate duplicates an existing fact.

        Raises InvalidInput for malformed candidates. Embedding and store
        failures never raise: they produce a FAILED decision, which callers
        treat as "create".
        """
        if not owner_id:
            raise InvalidInput("owner_id must not be empty")
        fact = to_fact(content_type, fields)
        candidate = DuplicateCandidate.from_fact(owner_id, fact)
        threshold = self.threshold_for(candidate.content_type)
        if threshold is None:
            return DedupDecision(status=DedupStatus.NOT_GATED, candidate=candidate)

        embedding: list[float] | None = None
        try:
            embedding = await embed_text(self.embedder, candidate.comparison_text)
            neighbours = await vector_search(
                self.db,
                embedding,
                owner_id,
                limit=get_dedup_candidate_limit(),
                content_types=[candidate.content_type.value],
                scope_key=candidate.scope_key,
            )
            best = neighbours[0] if neighbours else None
            is_match = best is not None and best[1] >= threshold
            matched_entity_id = None
            if is_match:
                item = await store_call(
                    get_item(self.db, owner_id, best[0]), operation="matched item lookup"
                )
                matched_entity_id = item.source_ref if item else None
        except (EmbeddingUnavailable, StoreUnavailable) as e:
            logger.warning(
                "Dedup check FAILED for %s %r (creating anyway): %s",
                candidate.content_type,
                candidate.comparison_text,
                e,
                exc_info=True,
            )
            return DedupDecision(
                status=DedupStatus.FAILED,
                candidate=candidate,
                threshold=threshold,
                error=f"{type(e).__name__}: {e}",
                embedding=embedding,
            )

        similarity = best[1] if best else None
        if is_match:
            logger.info(
                "Duplicate %s found: %r matches %s (similarity %.3f >= %.2f)",
                candidate.content_type,
                candidate.comparison_text,
                best[0],
                best[1],
                threshold,
            )
            return DedupDecision(
                status=DedupStatus.MATCHED,
                candidate=candidate,
                threshold=threshold,
                similarity=similarity,
                matched_item_id=best[0],
                matched_entity_id=matched_entity_id,
                embedding=embedding,
            )

        logger.debug(
            "No duplicate for %s %r (best %s, threshold %.2f)",
            candidate.content_type,
            candidate.comparison_text,
            f"{similarity:.3f}" if similarity is not None else "none",
            threshold,
        )
        return DedupDecision(
            status=DedupStatus.NO_MATCH,
            candidate=candidate,
            threshold=threshold,
            similarity=similarity,
            embedding=embedding,
        )

    async def check_duplicate(
        self,
        owner_id: str,
        content_type: ContentType | str,
        fields: Mapping[str, Any] | ProfileFact,
    ) -> str | None:
        """Return the matched source-entity id, or None to proceed with creation."""
        decision = await self.check(owner_id, content_type, fields)
        if not decision.is_duplicate:
            return None
        return decision.matched_entity_id or decision.matched_item_id

    async def find_existing_duplicates(
        self, owner_id: str, content_type: ContentType | str
    ) -> list[DuplicatePair]:
        """Audit stored items of one type for pairs the gate would have blocked.

        Items are visited oldest first and each is compared, within its scope
        key, against the items written before it. An item is reported once,
        paired with its most similar older item at or above the threshold.
        Types without a threshold are never reported. Store failures raise
        StoreUnavailable.
        """
        if not owner_id:
            raise InvalidInput("owner_id must not be empty")
        try:
            ct = ContentType(content_type)
        except ValueError as e:
            raise InvalidInput(f"Unknown content type: {content_type!r}") from e
        threshold = self.threshold_for(ct)
        if threshold is None:
            return []

        vectors = await store_call(
            self.db.item_vectors(owner_id, ct.value), operation="item vector scan"
        )
        if len(vectors) < 2:
            return []
        position = {item_id: i for i, (item_id, _) in enumerate(vectors)}
        items = await store_call(
            get_items(self.db, owner_id, list(position)), operation="item lookup"
        )

        pairs: list[DuplicatePair] = []
        for i, (item_id, embedding) in enumerate(vectors):
            item = items.get(item_id)
            if item is None:
                continue
            neighbours = await vector_search(
                self.db,
                embedding,
                owner_id,
                limit=len(vectors),
                content_types=[ct.value],
                scope_key=item.scope_key,
            )
            for other_id, score in neighbours:
                if score < threshold:
                    break
                if position.get(other_id, i) >= i or other_id not in items:
                    continue
                kept = items[other_id]
                pairs.append(
                    DuplicatePair(
                        content_type=ct,
                        kept_item_id=kept.id,
                        duplicate_item_id=item.id,
                        kept_entity_id=kept.source_ref,
                        duplicate_entity_id=item.source_ref,
                        kept_text=kept.text,
                        duplicate_text=item.text,
                        similarity=score,
                    )
                )
                break

        if pairs:
            logger.info("Found %d existing %s duplicates for %s", len(pairs), ct, owner_id)
        return pairs
