"""Knowledge item models."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field


class ContentType(StrEnum):
    """Kind of fact a knowledge item was derived from."""

    EXPERIENCE = "experience"
    EDUCATION = "education"
    SKILL = "skill"
    TESTIMONIAL = "testimonial"
    PROJECT = "project"


class IngestSource(StrEnum):
    """Pipeline that produced a fact."""

    RESUME = "resume"
    PROFILE_TEXT = "profile_text"
    REPOSITORY = "repository"
    MANUAL = "manual"


class KnowledgeItem(BaseModel):
    """A unit of searchable text derived from one fact.

    ``vector`` is only populated on the write path; reads leave it unset
    since search scores come back from the store directly.
    """

    id: str
    owner_id: str
    content_type: ContentType
    source_ref: str | None = None
    scope_key: str | None = None
    text: str
    vector: list[float] | None = Field(default=None, repr=False)
    source: IngestSource | None = None
    created_at: datetime | None = None
