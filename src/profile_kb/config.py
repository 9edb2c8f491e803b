"""Environment-variable-based configuration."""

import os
from pathlib import Path

from profile_kb.models.item import ContentType

_DEFAULT_DEDUP_THRESHOLDS = "experience=0.90,education=0.85,project=0.90,skill=0.95"

_PROVIDER_URLS = {
    "openai": "https://api.openai.com",
    "ollama": "http://localhost:11434",
}


def get_db_path() -> Path:
    """Return the database file path from PKB_DB_PATH."""
    raw = os.environ.get("PKB_DB_PATH", "~/.local/share/profile_kb/knowledge.db")
    return Path(raw).expanduser()


def get_database_url() -> str | None:
    """Return the PostgreSQL URL from PKB_DATABASE_URL, if set."""
    return os.environ.get("PKB_DATABASE_URL") or None


def get_embedding_provider() -> str:
    """Return the embedding provider name from PKB_EMBEDDING_PROVIDER."""
    provider = os.environ.get("PKB_EMBEDDING_PROVIDER", "openai").lower()
    if provider not in _PROVIDER_URLS:
        raise ValueError(f"Unknown embedding provider: {provider}")
    return provider


def get_embedding_url() -> str:
    """Return the embedding API base URL from PKB_EMBEDDING_URL."""
    default = _PROVIDER_URLS[get_embedding_provider()]
    return os.environ.get("PKB_EMBEDDING_URL", default).rstrip("/")


def get_embedding_model() -> str:
    """Return the embedding model name from PKB_EMBEDDING_MODEL."""
    return os.environ.get("PKB_EMBEDDING_MODEL", "text-embedding-3-small")


def get_embedding_dim() -> int:
    """Return the embedding vector dimensions from PKB_EMBEDDING_DIM."""
    return int(os.environ.get("PKB_EMBEDDING_DIM", "1536"))


def get_embedding_timeout() -> float:
    """Return the embedding call timeout in seconds from PKB_EMBEDDING_TIMEOUT."""
    return float(os.environ.get("PKB_EMBEDDING_TIMEOUT", "10.0"))


def get_openai_api_key() -> str | None:
    """Return the OpenAI API key from OPENAI_API_KEY."""
    return os.environ.get("OPENAI_API_KEY") or None


def get_store_timeout() -> float:
    """Return the per-call store timeout in seconds from PKB_STORE_TIMEOUT."""
    return float(os.environ.get("PKB_STORE_TIMEOUT", "5.0"))


def get_scope_lock_timeout() -> float:
    """Return how long a writer waits for a dedup scope lock from PKB_SCOPE_LOCK_TIMEOUT."""
    return float(os.environ.get("PKB_SCOPE_LOCK_TIMEOUT", "30.0"))


def get_semantic_weight() -> float:
    """Return the default hybrid semantic weight from PKB_SEMANTIC_WEIGHT."""
    weight = float(os.environ.get("PKB_SEMANTIC_WEIGHT", "0.7"))
    if not 0.0 <= weight <= 1.0:
        raise ValueError(f"PKB_SEMANTIC_WEIGHT must be within [0, 1], got {weight}")
    return weight


def get_lexical_floor() -> float:
    """Return the minimum trigram similarity for lexical candidates from PKB_LEXICAL_FLOOR."""
    floor = float(os.environ.get("PKB_LEXICAL_FLOOR", "0.1"))
    if not 0.0 <= floor <= 1.0:
        raise ValueError(f"PKB_LEXICAL_FLOOR must be within [0, 1], got {floor}")
    return floor


def get_candidate_limit() -> int:
    """Return the per-method candidate fetch size from PKB_CANDIDATE_LIMIT."""
    return int(os.environ.get("PKB_CANDIDATE_LIMIT", "10"))


def get_merge_limit() -> int:
    """Return the hybrid result budget after merging from PKB_MERGE_LIMIT."""
    return int(os.environ.get("PKB_MERGE_LIMIT", "15"))


def get_context_limit() -> int:
    """Return the final answer-context budget from PKB_CONTEXT_LIMIT."""
    return int(os.environ.get("PKB_CONTEXT_LIMIT", "8"))


def get_dedup_thresholds() -> dict[ContentType, float]:
    """Return per-content-type dedup thresholds from PKB_DEDUP_THRESHOLDS.

    Format: ``experience=0.90,education=0.85``. Content types not listed are not gated.
    """
    raw = os.environ.get("PKB_DEDUP_THRESHOLDS", _DEFAULT_DEDUP_THRESHOLDS)
    thresholds: dict[ContentType, float] = {}
    for pair in raw.split(","):
        pair = pair.strip()
        if not pair:
            continue
        name, sep, value = pair.partition("=")
        if not sep:
            raise ValueError(f"Malformed dedup threshold: {pair!r}")
        threshold = float(value)
        if not 0.0 <= threshold <= 1.0:
            raise ValueError(f"Dedup threshold for {name} must be within [0, 1]")
        thresholds[ContentType(name.strip())] = threshold
    return thresholds


def get_dedup_candidate_limit() -> int:
    """Return how many scoped neighbours the dedup gate examines."""
    return int(os.environ.get("PKB_DEDUP_CANDIDATE_LIMIT", "5"))


def get_log_level() -> str:
    """Return the logging level from PKB_LOG_LEVEL."""
    return os.environ.get("PKB_LOG_LEVEL", "WARNING").upper()
