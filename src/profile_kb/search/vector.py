"""KNN vector search via cosine distance."""

import logging

from profile_kb.db.backend import KnowledgeBackend
from profile_kb.guards import store_call
from profile_kb.search.scoring import semantic_score

logger = logging.getLogger(__name__)


async def vector_search(
    db: KnowledgeBackend,
    embedding: list[float],
    owner_id: str,
    *,
    limit: int = 10,
    content_types: list[str] | None = None,
    scope_key: str | None = None,
) -> list[tuple[str, float]]:
    """Search an owner's items by cosine distance.

    Returns (item_id, semantic_score) pairs, most similar first. Store
    failures raise StoreUnavailable.
    """
    rows = await store_call(
        db.nearest_by_vector(
            owner_id,
            embedding,
            limit=limit,
            content_types=content_types,
            scope_key=scope_key,
        ),
        operation="vector search",
    )
    return [(item_id, semantic_score(distance)) for item_id, distance in rows]
