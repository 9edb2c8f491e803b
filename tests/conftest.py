"""Shared test fixtures."""

import asyncio
import hashlib
import math

import pytest_asyncio

from profile_kb.db.connection import create_connection
from profile_kb.dedup.gate import DeduplicationGate
from profile_kb.errors import EmbeddingUnavailable
from profile_kb.ingest.writer import FactWriter
from profile_kb.models.item import ContentType
from profile_kb.store.knowledge_store import KnowledgeStore

DIM = 64

DEFAULT_THRESHOLDS = {
    ContentType.EXPERIENCE: 0.90,
    ContentType.EDUCATION: 0.85,
    ContentType.PROJECT: 0.90,
    ContentType.SKILL: 0.95,
}


def basis(i: int, dim: int = DIM) -> list[float]:
    """Unit vector along axis i."""
    vec = [0.0] * dim
    vec[i] = 1.0
    return vec


def blend(a: int, b: int, similarity: float, dim: int = DIM) -> list[float]:
    """Unit vector whose cosine similarity to basis(a) is exactly ``similarity``."""
    vec = [0.0] * dim
    vec[a] = similarity
    vec[b] = math.sqrt(1.0 - similarity * similarity)
    return vec


def hashed_vector(text: str, dim: int = DIM) -> list[float]:
    """Deterministic pseudo-random unit vector for texts without an explicit one."""
    raw = hashlib.shake_256(text.encode()).digest(dim)
    vec = [b / 127.5 - 1.0 for b in raw]
    norm = math.sqrt(sum(v * v for v in vec))
    return [v / norm for v in vec]


class FakeEmbedder:
    """Deterministic fake embedder for testing.

    Texts registered in ``vectors`` get exactly that vector, so tests control
    cosine similarities precisely; anything else gets a hashed vector.
    """

    def __init__(self, vectors: dict[str, list[float]] | None = None, dim: int = DIM):
        self.vectors = dict(vectors or {})
        self.dim = dim
        self.available = True
        self.delay: float | None = None
        self.calls: list[str] = []

    async def is_available(self) -> bool:
        return self.available

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.delay:
            await asyncio.sleep(self.delay)
        if not self.available:
            raise EmbeddingUnavailable("fake embedder offline")
        if text in self.vectors:
            return list(self.vectors[text])
        return hashed_vector(text, self.dim)

    async def close(self) -> None:
        pass


class FlakyBackend:
    """Delegates to a real backend, failing or stalling selected operations.

    Operations: ``nearest_by_vector``, ``fuzzy_text_search``,
    ``entity_lookup``, ``entity_insert``, ``item_insert``.
    """

    def __init__(self, inner):
        self._inner = inner
        self.failing: set[str] = set()
        self.slow: set[str] = set()

    def __getattr__(self, name):
        return getattr(self._inner, name)

    async def _hook(self, op: str) -> None:
        if op in self.slow:
            await asyncio.sleep(1.0)
        if op in self.failing:
            raise RuntimeError(f"{op} exploded")

    async def execute(self, sql, params=()):
        if "INSERT INTO profile_entities" in sql:
            await self._hook("entity_insert")
        elif "FROM profile_entities" in sql:
            await self._hook("entity_lookup")
        return await self._inner.execute(sql, params)

    async def insert_item(self, item):
        await self._hook("item_insert")
        return await self._inner.insert_item(item)

    async def nearest_by_vector(self, *args, **kwargs):
        await self._hook("nearest_by_vector")
        return await self._inner.nearest_by_vector(*args, **kwargs)

    async def fuzzy_text_search(self, *args, **kwargs):
        await self._hook("fuzzy_text_search")
        return await self._inner.fuzzy_text_search(*args, **kwargs)


@pytest_asyncio.fixture
async def db():
    """In-memory database with full schema, sqlite-vec and similarity()."""
    conn = await create_connection(":memory:", embedding_dim=DIM)
    yield conn
    await conn.close()


@pytest_asyncio.fixture
async def store(db):
    """Knowledge store backed by in-memory DB."""
    return KnowledgeStore(db)


@pytest_asyncio.fixture
async def fake_embedder():
    """Controllable fake embedding client."""
    return FakeEmbedder()


@pytest_asyncio.fixture
async def gate(db, fake_embedder):
    """Dedup gate with the default thresholds."""
    return DeduplicationGate(db, fake_embedder, thresholds=DEFAULT_THRESHOLDS)


@pytest_asyncio.fixture
async def writer(store, gate, fake_embedder):
    """Fact writer over the in-memory store."""
    return FactWriter(store, gate, fake_embedder)


@pytest_asyncio.fixture
async def flaky(db):
    """The in-memory backend wrapped for failure injection."""
    return FlakyBackend(db)
