"""Prompt context and citations for the answer-composition step.

The model call that writes the answer is not part of this package; these
helpers sit on either side of it.
"""

import logging

from pydantic import BaseModel

from profile_kb.config import get_context_limit
from profile_kb.models.item import ContentType
from profile_kb.models.search import SearchResult

logger = logging.getLogger(__name__)

EXCERPT_LENGTH = 150
MAX_CITATIONS = 5
FALLBACK_CITATIONS = 3


class Citation(BaseModel):
    """A retrieved fact the answer appears to draw on."""

    id: str
    content_type: ContentType
    title: str
    excerpt: str


def build_context(results: list[SearchResult], limit: int | None = None) -> str:
    """Render the top results as a prompt block grouped by content type.

    Results are assumed ranked; only the first ``limit`` are used.
    """
    budget = limit if limit is not None else get_context_limit()
    grouped: dict[ContentType, list[SearchResult]] = {}
    for result in results[:budget]:
        grouped.setdefault(result.content_type, []).append(result)

    lines: list[str] = []
    if experiences := grouped.get(ContentType.EXPERIENCE):
        lines.append("PROFESSIONAL EXPERIENCES:")
        for idx, r in enumerate(experiences, 1):
            lines.extend([f"{idx}. {r.title}", f"   {r.body}", ""])

    if education := grouped.get(ContentType.EDUCATION):
        lines.append("EDUCATION:")
        for idx, r in enumerate(education, 1):
            lines.append(f"{idx}. {r.title}")
            if r.body and r.body != r.title:
                lines.append(f"   {r.body}")
            lines.append("")

    if skills := grouped.get(ContentType.SKILL):
        lines.append("SKILLS:")
        lines.append(", ".join(r.title for r in skills))
        lines.append("")

    if projects := grouped.get(ContentType.PROJECT):
        lines.append("PROJECTS:")
        for idx, r in enumerate(projects, 1):
            lines.extend([f"{idx}. {r.title}", f"   {r.body}", ""])

    if testimonials := grouped.get(ContentType.TESTIMONIAL):
        lines.append("TESTIMONIALS:")
        for idx, r in enumerate(testimonials, 1):
            lines.extend([f"{idx}. {r.title}", f'   "{r.body}"', ""])

    return "\n".join(lines)


def key_terms(title: str, content_type: ContentType) -> list[str]:
    """Distinctive terms from a result title that an answer would mention."""
    terms: list[str] = []
    if content_type == ContentType.EXPERIENCE:
        position, sep, company = title.partition(" at ")
        if sep:
            terms.extend([position.strip(), company.strip()])
    elif content_type == ContentType.EDUCATION:
        degree, sep, institution = title.partition(" from ")
        if sep:
            terms.extend([degree.strip(), institution.strip()])
    elif content_type == ContentType.TESTIMONIAL:
        name = title.removeprefix("Recommendation from ").split(",")[0]
        terms.append(name.strip())
    terms.append(title)
    return [t for t in terms if t]


def _excerpt(text: str) -> str:
    if len(text) <= EXCERPT_LENGTH:
        return text
    return text[: EXCERPT_LENGTH - 3] + "..."


def _citation(result: SearchResult) -> Citation:
    return Citation(
        id=result.source_entity.id if result.source_entity else result.item_id,
        content_type=result.content_type,
        title=result.title,
        excerpt=_excerpt(result.body),
    )


def extract_citations(answer: str, results: list[SearchResult]) -> list[Citation]:
    """Cite the results whose key terms appear in the answer.

    Falls back to the three most relevant results when nothing matches.
    De-duplicated by id and capped at five.
    """
    answer_lower = answer.lower()
    cited = [
        _citation(r)
        for r in results
        if any(term.lower() in answer_lower for term in key_terms(r.title, r.content_type))
    ]
    if not cited and results:
        top = sorted(results, key=lambda r: r.relevance_score, reverse=True)
        cited = [_citation(r) for r in top[:FALLBACK_CITATIONS]]

    unique: dict[str, Citation] = {}
    for citation in cited:
        unique.setdefault(citation.id, citation)
    return list(unique.values())[:MAX_CITATIONS]
