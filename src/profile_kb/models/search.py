"""Search-related models."""

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from profile_kb.models.item import ContentType


class SearchMode(StrEnum):
    """Which similarity signal(s) rank the results."""

    SEMANTIC = "semantic"
    LEXICAL = "lexical"
    HYBRID = "hybrid"


class SearchQuery(BaseModel):
    """Validated parameters for a retrieval call."""

    owner_id: str = Field(min_length=1)
    query: str
    limit: int = Field(default=10, ge=1, le=100)
    content_types: list[ContentType] | None = None
    semantic_weight: float = Field(default=0.7, ge=0.0, le=1.0)

    @field_validator("query")
    @classmethod
    def _query_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("query must not be empty")
        return value

    @field_validator("content_types")
    @classmethod
    def _dedupe_content_types(cls, value: list[ContentType] | None) -> list[ContentType] | None:
        if not value:
            return None
        return list(dict.fromkeys(value))


class SourceEntity(BaseModel):
    """The structured entity a result was derived from, resolved after ranking."""

    id: str
    title: str
    body: str
    fields: dict[str, Any] = Field(default_factory=dict)


class SearchResult(BaseModel):
    """A single ranked knowledge item."""

    item_id: str
    content_type: ContentType
    text: str
    source_ref: str | None = None
    semantic_score: float | None = None
    lexical_score: float | None = None
    hybrid_score: float | None = None
    relevance_score: float = Field(ge=0.0, le=1.0)
    source_entity: SourceEntity | None = None
    enrichment_error: str | None = None

    @property
    def title(self) -> str:
        """Entity title when enrichment succeeded, else the stored text."""
        return self.source_entity.title if self.source_entity else self.text

    @property
    def body(self) -> str:
        """Entity body when enrichment succeeded, else the stored text."""
        return self.source_entity.body if self.source_entity else self.text


class SearchWeights(BaseModel):
    """Effective fusion weights for a hybrid call."""

    semantic: float
    lexical: float


class SearchResponse(BaseModel):
    """Ranked results plus how they were produced."""

    mode: SearchMode
    results: list[SearchResult] = Field(default_factory=list)
    weights: SearchWeights | None = None
    degraded: bool = False  # True when semantic search was skipped
    note: str | None = None
