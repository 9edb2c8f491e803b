"""Tests for environment-variable configuration."""

from pathlib import Path
from unittest.mock import patch

import pytest

from profile_kb.config import (
    get_candidate_limit,
    get_database_url,
    get_db_path,
    get_dedup_thresholds,
    get_embedding_provider,
    get_embedding_url,
    get_lexical_floor,
    get_log_level,
    get_merge_limit,
    get_semantic_weight,
)
from profile_kb.models.item import ContentType


def test_defaults():
    with patch.dict("os.environ", {}, clear=True):
        assert get_semantic_weight() == 0.7
        assert get_lexical_floor() == 0.1
        assert get_candidate_limit() == 10
        assert get_merge_limit() == 15
        assert get_database_url() is None
        assert get_embedding_provider() == "openai"
        assert get_embedding_url() == "https://api.openai.com"
        assert get_log_level() == "WARNING"


def test_default_dedup_thresholds():
    with patch.dict("os.environ", {}, clear=True):
        assert get_dedup_thresholds() == {
            ContentType.EXPERIENCE: 0.90,
            ContentType.EDUCATION: 0.85,
            ContentType.PROJECT: 0.90,
            ContentType.SKILL: 0.95,
        }


def test_dedup_thresholds_from_env():
    with patch.dict("os.environ", {"PKB_DEDUP_THRESHOLDS": "skill=0.9, testimonial=0.99,"}):
        assert get_dedup_thresholds() == {
            ContentType.SKILL: 0.9,
            ContentType.TESTIMONIAL: 0.99,
        }


@pytest.mark.parametrize("raw", ["skill", "skill=1.5", "hobby=0.9"])
def test_malformed_dedup_thresholds(raw):
    with patch.dict("os.environ", {"PKB_DEDUP_THRESHOLDS": raw}):
        with pytest.raises(ValueError):
            get_dedup_thresholds()


def test_semantic_weight_out_of_range():
    with patch.dict("os.environ", {"PKB_SEMANTIC_WEIGHT": "1.2"}):
        with pytest.raises(ValueError, match="PKB_SEMANTIC_WEIGHT"):
            get_semantic_weight()


def test_ollama_provider_url():
    with patch.dict("os.environ", {"PKB_EMBEDDING_PROVIDER": "Ollama"}, clear=True):
        assert get_embedding_provider() == "ollama"
        assert get_embedding_url() == "http://localhost:11434"


def test_unknown_provider():
    with patch.dict("os.environ", {"PKB_EMBEDDING_PROVIDER": "cohere"}):
        with pytest.raises(ValueError, match="Unknown embedding provider"):
            get_embedding_provider()


def test_db_path_expands_user():
    with patch.dict("os.environ", {"PKB_DB_PATH": "~/kb/test.db"}):
        assert get_db_path() == Path("~/kb/test.db").expanduser()
