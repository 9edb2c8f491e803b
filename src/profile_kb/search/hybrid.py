"""Retrieval ranker: semantic, lexical and weighted hybrid search.

All three entry points share the same pipeline: validate, fetch candidates,
fuse, load the surviving items, enrich. Only the scores that drive the
ranking differ.
"""

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any, TypeVar

from pydantic import ValidationError

from profile_kb.config import get_candidate_limit, get_merge_limit, get_semantic_weight
from profile_kb.db.backend import KnowledgeBackend
from profile_kb.db.queries import get_items
from profile_kb.errors import EmbeddingUnavailable, InvalidInput
from profile_kb.guards import Embedder, embed_text, store_call
from profile_kb.models.item import ContentType, KnowledgeItem
from profile_kb.models.search import (
    SearchMode,
    SearchQuery,
    SearchResponse,
    SearchResult,
    SearchWeights,
)
from profile_kb.search.enrich import enrich_results
from profile_kb.search.lexical import fuzzy_search
from profile_kb.search.scoring import FusedCandidate, fuse
from profile_kb.search.vector import vector_search

logger = logging.getLogger(__name__)

A = TypeVar("A")
B = TypeVar("B")

DEGRADED_NOTE = "Semantic search unavailable; results are ranked by text similarity only."


def build_query(
    owner_id: str,
    query: str,
    *,
    limit: int | None = None,
    content_types: list[ContentType] | list[str] | None = None,
    semantic_weight: float | None = None,
) -> SearchQuery:
    """Validate raw search arguments. Raises InvalidInput before any external call."""
    try:
        return SearchQuery(
            owner_id=owner_id,
            query=query,
            limit=limit if limit is not None else get_merge_limit(),
            content_types=content_types,
            semantic_weight=(
                semantic_weight if semantic_weight is not None else get_semantic_weight()
            ),
        )
    except ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise InvalidInput(f"Invalid search request: {details}") from e


async def semantic_search(
    db: KnowledgeBackend,
    embedder: Embedder | None,
    *,
    owner_id: str,
    query: str,
    limit: int | None = None,
    content_types: list[ContentType] | list[str] | None = None,
) -> SearchResponse:
    """Rank by cosine similarity alone.

    Falls back to lexical ranking (``degraded=True``) when the query can't
    be embedded.
    """
    q = build_query(owner_id, query, limit=limit, content_types=content_types)
    fetch = max(get_candidate_limit(), q.limit)

    semantic = await _semantic_candidates(db, embedder, q, fetch)
    if semantic is None:
        lexical = await _lexical_candidates(db, q, fetch)
        ranked = fuse([], lexical, 0.0)
    else:
        ranked = fuse(semantic, [], 1.0)

    results = await _materialize(db, q, ranked, SearchMode.SEMANTIC, degraded=semantic is None)
    return _response(SearchMode.SEMANTIC, results, degraded=semantic is None)


async def lexical_search(
    db: KnowledgeBackend,
    embedder: Embedder | None,
    *,
    owner_id: str,
    query: str,
    limit: int | None = None,
    content_types: list[ContentType] | list[str] | None = None,
) -> SearchResponse:
    """Rank by trigram similarity alone. Never touches the embedding service."""
    q = build_query(owner_id, query, limit=limit, content_types=content_types)
    fetch = max(get_candidate_limit(), q.limit)

    lexical = await _lexical_candidates(db, q, fetch)
    results = await _materialize(db, q, fuse([], lexical, 0.0), SearchMode.LEXICAL)
    return _response(SearchMode.LEXICAL, results)


async def hybrid_search(
    db: KnowledgeBackend,
    embedder: Embedder | None,
    *,
    owner_id: str,
    query: str,
    limit: int | None = None,
    content_types: list[ContentType] | list[str] | None = None,
    semantic_weight: float | None = None,
) -> SearchResponse:
    """Blend semantic and lexical similarity: w * semantic + (1 - w) * lexical.

    Both candidate searches run concurrently. An item found by only one of
    them scores 0 on the other and still competes. When the embedding is
    unavailable the response is lexical-only, flagged as degraded, and
    reports the effective weights (0 semantic, 1 lexical). Store failures
    raise StoreUnavailable rather than returning an empty list.
    """
    q = build_query(
        owner_id,
        query,
        limit=limit,
        content_types=content_types,
        semantic_weight=semantic_weight,
    )
    # N per method; only widen when the caller asks for more than the merge budget
    fetch = get_candidate_limit() if q.limit <= get_merge_limit() else q.limit

    semantic, lexical = await _both(
        _semantic_candidates(db, embedder, q, fetch),
        _lexical_candidates(db, q, fetch),
    )
    degraded = semantic is None
    weight = 0.0 if degraded else q.semantic_weight

    ranked = fuse(semantic or [], lexical, weight)
    logger.debug(
        "Hybrid search for %s: %d semantic, %d lexical, %d merged (w=%.2f)",
        q.owner_id,
        len(semantic or []),
        len(lexical),
        len(ranked),
        weight,
    )
    results = await _materialize(db, q, ranked, SearchMode.HYBRID, degraded=degraded)
    return _response(
        SearchMode.HYBRID,
        results,
        degraded=degraded,
        weights=SearchWeights(semantic=weight, lexical=1.0 - weight),
    )


async def _both(first: Coroutine[Any, Any, A], second: Coroutine[Any, Any, B]) -> tuple[A, B]:
    """Run two searches concurrently. If one fails, the other is cancelled before re-raising."""
    tasks = (asyncio.ensure_future(first), asyncio.ensure_future(second))
    try:
        a, b = await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
    return a, b


def _type_filter(q: SearchQuery) -> list[str] | None:
    return [ct.value for ct in q.content_types] if q.content_types else None


async def _semantic_candidates(
    db: KnowledgeBackend, embedder: Embedder | None, q: SearchQuery, limit: int
) -> list[tuple[str, float]] | None:
    """Nearest items by cosine distance, or None if the query can't be embedded."""
    if embedder is None:
        return None
    try:
        embedding = await embed_text(embedder, q.query)
    except EmbeddingUnavailable as e:
        logger.warning("Semantic search skipped, falling back to lexical: %s", e)
        return None
    return await vector_search(
        db, embedding, q.owner_id, limit=limit, content_types=_type_filter(q)
    )


async def _lexical_candidates(
    db: KnowledgeBackend, q: SearchQuery, limit: int
) -> list[tuple[str, float]]:
    return await fuzzy_search(
        db, q.query, q.owner_id, limit=limit, content_types=_type_filter(q)
    )


async def _materialize(
    db: KnowledgeBackend,
    q: SearchQuery,
    ranked: list[FusedCandidate],
    mode: SearchMode,
    *,
    degraded: bool = False,
) -> list[SearchResult]:
    """Truncate to the result budget, load items in rank order, enrich."""
    ranked = ranked[: q.limit]
    items = await store_call(
        get_items(db, q.owner_id, [c.item_id for c in ranked]), operation="item load"
    )
    results: list[SearchResult] = []
    for candidate in ranked:
        item = items.get(candidate.item_id)
        if item is None:
            # Deleted between candidate search and load
            continue
        results.append(_to_result(item, candidate, mode, degraded))
    return await enrich_results(db, q.owner_id, results)


def _to_result(
    item: KnowledgeItem, candidate: FusedCandidate, mode: SearchMode, degraded: bool
) -> SearchResult:
    semantic: float | None = None
    lexical: float | None = None
    hybrid: float | None = None
    if mode is SearchMode.HYBRID:
        semantic = None if degraded else candidate.semantic
        lexical = candidate.lexical
        hybrid = candidate.hybrid
        relevance = candidate.hybrid
    elif mode is SearchMode.SEMANTIC and not degraded:
        semantic = candidate.semantic
        relevance = candidate.semantic
    else:
        lexical = candidate.lexical
        relevance = candidate.lexical

    return SearchResult(
        item_id=item.id,
        content_type=item.content_type,
        text=item.text,
        source_ref=item.source_ref,
        semantic_score=semantic,
        lexical_score=lexical,
        hybrid_score=hybrid,
        relevance_score=min(1.0, max(0.0, relevance)),
    )


def _response(
    mode: SearchMode,
    results: list[SearchResult],
    *,
    degraded: bool = False,
    weights: SearchWeights | None = None,
) -> SearchResponse:
    if degraded:
        logger.warning("Returning degraded %s results (lexical only)", mode.value)
    return SearchResponse(
        mode=mode,
        results=results,
        weights=weights,
        degraded=degraded,
        note=DEGRADED_NOTE if degraded else None,
    )
