"""Timeouts and error translation around the engine's suspension points.

Every store call and every embedding call goes through one of these, so a
hung or failing dependency surfaces as StoreUnavailable / EmbeddingUnavailable
with the original exception chained, never as an empty result.
"""

import asyncio
import logging
from collections.abc import Awaitable
from typing import Protocol, TypeVar

from profile_kb.config import get_embedding_timeout, get_store_timeout
from profile_kb.errors import EmbeddingUnavailable, StoreUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Embedder(Protocol):
    """Anything that turns text into a fixed-length vector."""

    async def embed(self, text: str) -> list[float]:
        """Return the embedding or raise EmbeddingUnavailable."""
        ...


async def store_call(awaitable: Awaitable[T], *, operation: str, timeout: float | None = None) -> T:
    """Await a store call under its own timeout; failures become StoreUnavailable."""
    limit = timeout if timeout is not None else get_store_timeout()
    try:
        return await asyncio.wait_for(awaitable, timeout=limit)
    except TimeoutError as e:
        raise StoreUnavailable(f"{operation} timed out after {limit:.1f}s") from e
    except StoreUnavailable:
        raise
    except Exception as e:
        raise StoreUnavailable(f"{operation} failed: {e}") from e


async def embed_text(embedder: Embedder, text: str, *, timeout: float | None = None) -> list[float]:
    """Embed text under its own timeout; failures become EmbeddingUnavailable."""
    limit = timeout if timeout is not None else get_embedding_timeout()
    try:
        embedding = await asyncio.wait_for(embedder.embed(text), timeout=limit)
    except TimeoutError as e:
        raise EmbeddingUnavailable(f"Embedding timed out after {limit:.1f}s") from e
    except EmbeddingUnavailable:
        raise
    except Exception as e:
        raise EmbeddingUnavailable(f"Embedding failed: {e}") from e
    if not embedding:
        raise EmbeddingUnavailable("Embedding service returned an empty vector")
    return embedding
