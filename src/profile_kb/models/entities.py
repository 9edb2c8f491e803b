"""Structured profile facts and their canonical text renderings.

The rendered text is what gets embedded, what the trigram metric scores
against, and what the dedup gate compares. Stored items and dedup
candidates must go through the same ``render_text`` for a content type.
"""

from collections.abc import Mapping
from datetime import datetime
from typing import Any, ClassVar

from pydantic import BaseModel, Field

from profile_kb.models.item import ContentType, IngestSource


class ProfileFact(BaseModel):
    """Base class for a structured fact produced by an ingestion pipeline."""

    content_type: ClassVar[ContentType]

    def render_text(self) -> str:
        """Canonical natural-language rendering, embedded and searched."""
        raise NotImplementedError

    def title(self) -> str:
        """Short human title used when presenting results."""
        raise NotImplementedError

    def body(self) -> str:
        """Richest available text for answer context."""
        return self.render_text()

    def scope_key(self) -> str | None:
        """Exact-match key that narrows duplicate search, if the type has one."""
        return None


class Experience(ProfileFact):
    """A job or role held at an organization."""

    content_type: ClassVar[ContentType] = ContentType.EXPERIENCE

    company: str
    position: str
    start_date: str | None = None
    end_date: str | None = None
    description: str = ""

    def render_text(self) -> str:
        """Format: {position} at {company}: {description}."""
        text = self.title()
        if self.description.strip():
            text += f": {self.description.strip()}"
        return text

    def title(self) -> str:
        """Format: {position} at {company}."""
        return f"{self.position.strip()} at {self.company.strip()}"

    def body(self) -> str:
        """Full description, falling back to the rendered text."""
        return self.description.strip() or self.render_text()

    def scope_key(self) -> str | None:
        """Two roles are only comparable when they started on the same date."""
        return (self.start_date or "").strip() or None


class Education(ProfileFact):
    """A degree or course of study."""

    content_type: ClassVar[ContentType] = ContentType.EDUCATION

    institution: str
    degree: str
    field_of_study: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    description: str | None = None

    def render_text(self) -> str:
        """Format: {degree} in {field} from {institution}: {description}."""
        field_of_study = (self.field_of_study or "").strip() or "general studies"
        text = f"{self.degree.strip()} in {field_of_study} from {self.institution.strip()}"
        if self.description and self.description.strip():
            text += f": {self.description.strip()}"
        return text

    def title(self) -> str:
        """Format: {degree} from {institution}."""
        return f"{self.degree.strip()} from {self.institution.strip()}"

    def body(self) -> str:
        """Description when present, else the rendered text."""
        if self.description and self.description.strip():
            return self.description.strip()
        return self.render_text()


class Skill(ProfileFact):
    """A named skill with optional proficiency."""

    content_type: ClassVar[ContentType] = ContentType.SKILL

    name: str
    level: str | None = None
    years_used: int | None = Field(default=None, ge=0)
    category: str | None = None

    def render_text(self) -> str:
        """Format: {name} ({level}) - {years} years."""
        text = self.name.strip()
        if self.level:
            text += f" ({self.level})"
        if self.years_used:
            text += f" - {self.years_used} years"
        return text

    def title(self) -> str:
        """The skill name."""
        return self.name.strip()

    def scope_key(self) -> str | None:
        """Skills are compared by case-folded name."""
        return self.name.strip().casefold()


class Testimonial(ProfileFact):
    """A recommendation written by someone else."""

    content_type: ClassVar[ContentType] = ContentType.TESTIMONIAL

    recommender_name: str
    recommender_title: str | None = None
    content: str

    def render_text(self) -> str:
        """Format: Recommendation from {name}, {title}: {content}."""
        return f"{self.title()}: {self.content.strip()}"

    def title(self) -> str:
        """Format: Recommendation from {name}, {title}."""
        title = f"Recommendation from {self.recommender_name.strip()}"
        if self.recommender_title:
            title += f", {self.recommender_title.strip()}"
        return title

    def body(self) -> str:
        """The recommendation text."""
        return self.content.strip()


class Project(ProfileFact):
    """A repository or side project."""

    content_type: ClassVar[ContentType] = ContentType.PROJECT

    name: str
    description: str = ""
    url: str | None = None
    tech_stack: list[str] = Field(default_factory=list)
    key_features: list[str] = Field(default_factory=list)

    def render_text(self) -> str:
        """Format: {name}: {description}. Tech stack: ... Key features: ..."""
        text = self.name.strip()
        if self.description.strip():
            text += f": {self.description.strip()}"
        if self.tech_stack:
            text += f". Tech stack: {', '.join(self.tech_stack)}"
        if self.key_features:
            text += f". Key features: {', '.join(self.key_features)}"
        return text

    def title(self) -> str:
        """The project name."""
        return self.name.strip()

    def body(self) -> str:
        """Description plus bulleted key features."""
        body = self.description.strip() or self.render_text()
        if self.key_features:
            body += "\n\nKey features:\n" + "\n".join(f"- {f}" for f in self.key_features)
        return body

    def scope_key(self) -> str | None:
        """Repository URL, when known."""
        return self.url.strip().rstrip("/").lower() if self.url else None


FACT_TYPES: dict[ContentType, type[ProfileFact]] = {
    ContentType.EXPERIENCE: Experience,
    ContentType.EDUCATION: Education,
    ContentType.SKILL: Skill,
    ContentType.TESTIMONIAL: Testimonial,
    ContentType.PROJECT: Project,
}


def fact_from_fields(content_type: ContentType | str, fields: Mapping[str, Any]) -> ProfileFact:
    """Build the typed fact for a content type from raw candidate fields.

    Raises pydantic.ValidationError when required fields are missing.
    """
    model = FACT_TYPES[ContentType(content_type)]
    return model.model_validate(dict(fields))


class ProfileEntity(BaseModel):
    """A persisted structured fact that knowledge items point at via ``source_ref``."""

    id: str
    owner_id: str
    content_type: ContentType
    fields: dict[str, Any] = Field(default_factory=dict)
    source: IngestSource | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def as_fact(self) -> ProfileFact:
        """Rehydrate the typed fact from the stored fields."""
        return fact_from_fields(self.content_type, self.fields)
