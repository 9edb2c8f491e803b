"""Tests for fact rendering and scope keys."""

import pytest
from pydantic import ValidationError

from profile_kb.models.entities import (
    Education,
    Experience,
    ProfileEntity,
    Project,
    Skill,
    Testimonial,
    fact_from_fields,
)
from profile_kb.models.item import ContentType


class TestRenderText:
    def test_experience(self):
        fact = Experience(company=" IHG ", position="Technical Lead", description="Led teams")
        assert fact.render_text() == "Technical Lead at IHG: Led teams"
        assert fact.title() == "Technical Lead at IHG"

    def test_experience_without_description(self):
        assert Experience(company="IHG", position="Lead").render_text() == "Lead at IHG"

    def test_education_defaults_field(self):
        fact = Education(institution="MIT", degree="BS")
        assert fact.render_text() == "BS in general studies from MIT"
        assert fact.title() == "BS from MIT"

    def test_skill(self):
        assert Skill(name="Python", level="expert", years_used=8).render_text() == (
            "Python (expert) - 8 years"
        )
        assert Skill(name="Go").render_text() == "Go"

    def test_testimonial(self):
        fact = Testimonial(recommender_name="Ada", recommender_title="CTO", content=" Great. ")
        assert fact.render_text() == "Recommendation from Ada, CTO: Great."
        assert fact.body() == "Great."

    def test_project(self):
        fact = Project(
            name="Atlas",
            description="Maps",
            tech_stack=["Python", "Postgres"],
            key_features=["Offline tiles"],
        )
        assert fact.render_text() == (
            "Atlas: Maps. Tech stack: Python, Postgres. Key features: Offline tiles"
        )
        assert fact.body() == "Maps\n\nKey features:\n- Offline tiles"


class TestScopeKey:
    def test_experience_start_date(self):
        assert Experience(company="IHG", position="Lead", start_date=" 2019-03").scope_key() == (
            "2019-03"
        )
        assert Experience(company="IHG", position="Lead").scope_key() is None

    def test_experience_blank_start_date_is_unscoped(self):
        assert Experience(company="IHG", position="Lead", start_date="  ").scope_key() is None
        assert Experience(company="IHG", position="Lead", start_date="").scope_key() is None

    def test_skill_casefolds(self):
        assert Skill(name=" PyTorch ").scope_key() == "pytorch"

    def test_project_url_normalized(self):
        fact = Project(name="Atlas", url="https://GitHub.com/me/atlas/")
        assert fact.scope_key() == "https://github.com/me/atlas"

    def test_unscoped_types(self):
        assert Education(institution="MIT", degree="BS").scope_key() is None
        assert Testimonial(recommender_name="Ada", content="Great").scope_key() is None


def test_fact_from_fields_validates():
    with pytest.raises(ValidationError):
        fact_from_fields(ContentType.SKILL, {"level": "expert"})
    with pytest.raises(ValidationError):
        fact_from_fields("skill", {"name": "Go", "years_used": -1})


def test_entity_as_fact_round_trip():
    fact = Skill(name="Python", level="expert")
    entity = ProfileEntity(
        id="skill_1",
        owner_id="u1",
        content_type=ContentType.SKILL,
        fields=fact.model_dump(mode="json"),
    )
    assert entity.as_fact() == fact
