"""Resolve ranked items back to the structured entity they came from."""

import asyncio
import logging

from pydantic import ValidationError

from profile_kb.db.backend import KnowledgeBackend
from profile_kb.db.queries import get_entity
from profile_kb.errors import EnrichmentFailed, StoreUnavailable
from profile_kb.guards import store_call
from profile_kb.models.search import SearchResult, SourceEntity

logger = logging.getLogger(__name__)


async def resolve_source_entity(
    db: KnowledgeBackend, owner_id: str, result: SearchResult
) -> SourceEntity | None:
    """Look up the entity behind a result.

    Returns None when the item has no source reference or the entity is gone
    or belongs to another content type. Raises EnrichmentFailed when the
    lookup itself fails.
    """
    if not result.source_ref:
        return None
    try:
        entity = await store_call(
            get_entity(db, owner_id, result.source_ref), operation="entity lookup"
        )
    except StoreUnavailable as e:
        raise EnrichmentFailed(str(e)) from e
    if entity is None or entity.content_type != result.content_type:
        return None
    try:
        fact = entity.as_fact()
    except ValidationError as e:
        raise EnrichmentFailed(f"Entity {entity.id} has unreadable fields") from e
    return SourceEntity(id=entity.id, title=fact.title(), body=fact.body(), fields=entity.fields)


async def _enrich_one(db: KnowledgeBackend, owner_id: str, result: SearchResult) -> SearchResult:
    try:
        source = await resolve_source_entity(db, owner_id, result)
    except EnrichmentFailed as e:
        logger.warning("Enrichment failed for %s: %s", result.item_id, e, exc_info=True)
        return result.model_copy(update={"enrichment_error": str(e)})
    if source is None:
        return result
    return result.model_copy(update={"source_entity": source})


async def enrich_results(
    db: KnowledgeBackend, owner_id: str, results: list[SearchResult]
) -> list[SearchResult]:
    """Attach source entities to every result, in parallel, keeping order.

    A failed lookup never drops the result; it keeps its stored text and
    records the failure in ``enrichment_error``.
    """
    if not results:
        return []
    return list(await asyncio.gather(*(_enrich_one(db, owner_id, r) for r in results)))
