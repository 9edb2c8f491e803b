"""Embedding gateway over HTTP (OpenAI-compatible or Ollama)."""

import logging

import httpx

from profile_kb.config import (
    get_embedding_dim,
    get_embedding_model,
    get_embedding_provider,
    get_embedding_timeout,
    get_embedding_url,
    get_openai_api_key,
)
from profile_kb.errors import EmbeddingUnavailable

logger = logging.getLogger(__name__)


class EmbeddingClient:
    """Turns text into a fixed-length vector.

    ``embed`` either returns a vector of exactly ``dim`` floats or raises
    EmbeddingUnavailable; it never returns a partial or empty result.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        *,
        provider: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        dim: int | None = None,
        timeout: float | None = None,
        api_key: str | None = None,
    ):
        """Initialize with optional HTTP client and overrides for the env config."""
        self.provider = provider or get_embedding_provider()
        self.base_url = (base_url or get_embedding_url()).rstrip("/")
        self.model = model or get_embedding_model()
        self.dim = dim or get_embedding_dim()
        self.timeout = timeout if timeout is not None else get_embedding_timeout()
        self._api_key = api_key if api_key is not None else get_openai_api_key()
        self._http = http_client
        self._owns_http = http_client is None
        self._available: bool | None = None

    async def is_available(self) -> bool:
        """Check the embedding service is reachable. Only caches success: retries on failure."""
        if self._available is True:
            return True
        try:
            await self.embed("ping")
            self._available = True
        except EmbeddingUnavailable:
            logger.warning("Embedding service not available: semantic search disabled")
            self._available = None
        return self._available is True

    async def embed(self, text: str) -> list[float]:
        """Generate an embedding vector for the given text."""
        try:
            client = self._get_client()
            if self.provider == "ollama":
                resp = await client.post(
                    f"{self.base_url}/api/embed",
                    json={"model": self.model, "input": text},
                    timeout=self.timeout,
                )
                resp.raise_for_status()
                # Ollama /api/embed returns {"embeddings": [[...]]}
                embedding: list[float] = resp.json()["embeddings"][0]
            else:
                resp = await client.post(
                    f"{self.base_url}/v1/embeddings",
                    json={"model": self.model, "input": text, "dimensions": self.dim},
                    headers=self._headers(),
                    timeout=self.timeout,
                )
                resp.raise_for_status()
                embedding = resp.json()["data"][0]["embedding"]
        except httpx.TimeoutException as e:
            self._available = None
            raise EmbeddingUnavailable(f"Embedding request timed out after {self.timeout}s") from e
        except httpx.HTTPStatusError as e:
            self._available = None
            raise EmbeddingUnavailable(
                f"Embedding request failed with HTTP {e.response.status_code}"
            ) from e
        except (httpx.HTTPError, KeyError, IndexError, TypeError, ValueError) as e:
            self._available = None
            raise EmbeddingUnavailable(f"Embedding request failed: {e}") from e

        if len(embedding) != self.dim:
            raise EmbeddingUnavailable(
                f"Expected {self.dim}-dimensional embedding, got {len(embedding)}"
            )
        return [float(v) for v in embedding]

    def _headers(self) -> dict[str, str]:
        if self._api_key:
            return {"Authorization": f"Bearer {self._api_key}"}
        return {}

    def _get_client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient()
            self._owns_http = True
        return self._http

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._http is not None and self._owns_http:
            await self._http.aclose()
        self._http = None
