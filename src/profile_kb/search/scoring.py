"""Similarity scoring: semantic, lexical, and weighted hybrid fusion."""

from dataclasses import dataclass


def semantic_score(cosine_distance: float) -> float:
    """Convert cosine distance to similarity, clamped to [0, 1].

    Cosine similarity can dip below zero for unrelated vectors; anything
    under zero carries no useful signal for ranking, so it becomes 0.
    """
    return min(1.0, max(0.0, 1.0 - cosine_distance))


def hybrid_score(semantic: float, lexical: float, semantic_weight: float) -> float:
    """Weighted blend: w * semantic + (1 - w) * lexical."""
    return semantic_weight * semantic + (1.0 - semantic_weight) * lexical


@dataclass
class FusedCandidate:
    """One item's scores after merging both candidate lists."""

    item_id: str
    semantic: float = 0.0
    lexical: float = 0.0
    hybrid: float = 0.0


def fuse(
    semantic: list[tuple[str, float]],
    lexical: list[tuple[str, float]],
    semantic_weight: float,
) -> list[FusedCandidate]:
    """Merge two (item_id, score) lists by id and rank by hybrid score.

    Inclusive: an item found by only one method keeps 0 for the other
    component. Semantic candidates are inserted first, and the sort is
    stable, so ties go to semantic order, then lexical-only insertions.
    """
    merged: dict[str, FusedCandidate] = {}
    for item_id, score in semantic:
        merged.setdefault(item_id, FusedCandidate(item_id)).semantic = score
    for item_id, score in lexical:
        merged.setdefault(item_id, FusedCandidate(item_id)).lexical = score

    for candidate in merged.values():
        candidate.hybrid = hybrid_score(candidate.semantic, candidate.lexical, semantic_weight)

    return sorted(merged.values(), key=lambda c: c.hybrid, reverse=True)
