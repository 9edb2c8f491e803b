"""Trigram fuzzy-text search."""

import logging

from profile_kb.config import get_lexical_floor
from profile_kb.db.backend import KnowledgeBackend
from profile_kb.guards import store_call

logger = logging.getLogger(__name__)


async def fuzzy_search(
    db: KnowledgeBackend,
    query: str,
    owner_id: str,
    *,
    limit: int = 10,
    floor: float | None = None,
    content_types: list[str] | None = None,
) -> list[tuple[str, float]]:
    """Search an owner's items by trigram similarity.

    Returns (item_id, lexical_score) pairs, best first. Items below the
    floor are never returned: very low trigram overlap is noise.
    """
    min_score = get_lexical_floor() if floor is None else floor
    rows = await store_call(
        db.fuzzy_text_search(
            owner_id,
            query,
            limit=limit,
            floor=min_score,
            content_types=content_types,
        ),
        operation="fuzzy text search",
    )
    # Enforce the floor even if a backend is looser than asked
    return [(item_id, min(score, 1.0)) for item_id, score in rows if score >= min_score]
