"""Deduplication gate models."""

from enum import StrEnum

from pydantic import BaseModel, Field

from profile_kb.models.entities import ProfileFact
from profile_kb.models.item import ContentType


class DedupStatus(StrEnum):
    """Outcome of a duplicate check."""

    MATCHED = "matched"
    NO_MATCH = "no_match"
    FAILED = "failed"  # embedding or store unavailable; fails open
    NOT_GATED = "not_gated"  # no threshold configured for the content type


class DuplicateCandidate(BaseModel):
    """A fact about to be written, rendered for comparison."""

    owner_id: str
    content_type: ContentType
    comparison_text: str
    scope_key: str | None = None

    @classmethod
    def from_fact(cls, owner_id: str, fact: ProfileFact) -> "DuplicateCandidate":
        """Render a fact with the same template used for stored items."""
        return cls(
            owner_id=owner_id,
            content_type=fact.content_type,
            comparison_text=fact.render_text(),
            scope_key=fact.scope_key(),
        )


class DedupDecision(BaseModel):
    """Skip-or-create decision for one candidate."""

    status: DedupStatus
    candidate: DuplicateCandidate
    threshold: float | None = None
    similarity: float | None = None
    matched_item_id: str | None = None
    matched_entity_id: str | None = None
    error: str | None = None
    embedding: list[float] | None = Field(default=None, repr=False)

    @property
    def is_duplicate(self) -> bool:
        """True only for a genuine match; failures never block a write."""
        return self.status == DedupStatus.MATCHED


class DuplicatePair(BaseModel):
    """Two stored items of the same type and scope that the gate would call duplicates.

    ``kept`` is the older of the two, ``duplicate`` the one that should not
    have been written.
    """

    content_type: ContentType
    kept_item_id: str
    duplicate_item_id: str
    kept_entity_id: str | None = None
    duplicate_entity_id: str | None = None
    kept_text: str
    duplicate_text: str
    similarity: float
