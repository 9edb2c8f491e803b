"""Profile import: write a batch of extracted facts through the dedup gate.

Used by the resume, profile-text and repository pipelines once their
upstream extraction has produced structured facts. Every fact gets an
outcome in the report; duplicates are counted and surfaced, never dropped
silently.
"""

import logging
from dataclasses import dataclass, field

from pydantic import BaseModel, Field

from profile_kb.errors import InvalidInput, StoreUnavailable
from profile_kb.ingest.writer import FactWriter
from profile_kb.models.dedup import DedupStatus
from profile_kb.models.entities import (
    Education,
    Experience,
    ProfileFact,
    Project,
    Skill,
    Testimonial,
)
from profile_kb.models.item import ContentType, IngestSource

logger = logging.getLogger(__name__)


class ExtractedProfile(BaseModel):
    """Structured facts extracted from one source document."""

    experiences: list[Experience] = Field(default_factory=list)
    education: list[Education] = Field(default_factory=list)
    skills: list[Skill] = Field(default_factory=list)
    testimonials: list[Testimonial] = Field(default_factory=list)
    projects: list[Project] = Field(default_factory=list)

    def facts(self) -> list[ProfileFact]:
        """All facts in write order."""
        return [
            *self.experiences,
            *self.education,
            *self.skills,
            *self.testimonials,
            *self.projects,
        ]


@dataclass
class SkippedFact:
    """A fact not written because an equivalent one exists."""

    content_type: ContentType
    title: str
    matched_id: str | None
    similarity: float | None = None


@dataclass
class FailedFact:
    """A fact that could not be written."""

    content_type: ContentType
    title: str
    error: str


@dataclass
class ImportReport:
    """Per-fact outcomes of one import."""

    source: IngestSource
    created: list[str] = field(default_factory=list)
    skipped: list[SkippedFact] = field(default_factory=list)
    failed: list[FailedFact] = field(default_factory=list)
    pending: list[str] = field(default_factory=list)
    unchecked: int = 0  # created without a dedup check (gate failed open)

    @property
    def total(self) -> int:
        """Number of facts processed."""
        return len(self.created) + len(self.pending) + len(self.skipped) + len(self.failed)

    def summary(self) -> str:
        """User-visible one-line summary."""
        added = len(self.created) + len(self.pending)
        details = [f"{len(self.skipped)} duplicates skipped"]
        if self.failed:
            details.append(f"{len(self.failed)} failed")
        if self.pending:
            details.append(f"{len(self.pending)} awaiting embedding")
        if self.unchecked:
            details.append(f"{self.unchecked} not checked for duplicates")
        return (
            f"Imported {added} of {self.total} facts from {self.source.value}"
            f" ({', '.join(details)})"
        )


class ProfileImporter:
    """Writes an extracted profile fact by fact and reports each outcome."""

    def __init__(self, writer: FactWriter) -> None:
        """Initialize with the shared fact writer."""
        self.writer = writer

    async def import_profile(
        self, owner_id: str, profile: ExtractedProfile, source: IngestSource
    ) -> ImportReport:
        """Import every fact, continuing past individual failures."""
        if not owner_id:
            raise InvalidInput("owner_id must not be empty")
        report = ImportReport(source=source)

        for fact in profile.facts():
            try:
                result = await self.writer.write(owner_id, fact.content_type, fact, source)
            except (InvalidInput, StoreUnavailable) as e:
                logger.warning("Failed to import %s %r: %s", fact.content_type, fact.title(), e)
                report.failed.append(FailedFact(fact.content_type, fact.title(), str(e)))
                continue

            if result.action == "skipped":
                report.skipped.append(
                    SkippedFact(
                        content_type=fact.content_type,
                        title=fact.title(),
                        matched_id=result.matched_id,
                        similarity=result.decision.similarity if result.decision else None,
                    )
                )
                continue

            if result.decision is not None and result.decision.status == DedupStatus.FAILED:
                report.unchecked += 1
            if result.entity is not None:
                if result.action == "pending":
                    report.pending.append(result.entity.id)
                else:
                    report.created.append(result.entity.id)

        logger.info("Import for %s: %s", owner_id, report.summary())
        return report
