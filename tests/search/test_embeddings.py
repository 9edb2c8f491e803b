"""Tests for the HTTP embedding gateway."""

import json

import httpx
import pytest

from profile_kb.errors import EmbeddingUnavailable
from profile_kb.search.embeddings import EmbeddingClient


def _client(handler, *, provider="openai", dim=3, api_key="sk-test"):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    embedder = EmbeddingClient(
        http,
        provider=provider,
        base_url="http://embeddings.test/",
        model="test-model",
        dim=dim,
        timeout=1.0,
        api_key=api_key,
    )
    return embedder, http


@pytest.mark.asyncio
async def test_openai_embed():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"data": [{"embedding": [0.1, 0.2, 0.3]}]})

    embedder, http = _client(handler)
    vec = await embedder.embed("Technical Lead at IHG")

    assert vec == [0.1, 0.2, 0.3]
    assert seen["url"] == "http://embeddings.test/v1/embeddings"
    assert seen["auth"] == "Bearer sk-test"
    assert seen["body"] == {"model": "test-model", "input": "Technical Lead at IHG", "dimensions": 3}
    await http.aclose()


@pytest.mark.asyncio
async def test_ollama_embed():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/embed"
        assert "authorization" not in request.headers
        return httpx.Response(200, json={"embeddings": [[1, 0, 0]]})

    embedder, http = _client(handler, provider="ollama", api_key="")
    assert await embedder.embed("hello") == [1.0, 0.0, 0.0]
    await http.aclose()


@pytest.mark.asyncio
async def test_http_error_raises_unavailable():
    embedder, http = _client(lambda request: httpx.Response(503, json={"error": "down"}))
    with pytest.raises(EmbeddingUnavailable, match="HTTP 503"):
        await embedder.embed("x")
    await http.aclose()


@pytest.mark.asyncio
async def test_timeout_raises_unavailable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    embedder, http = _client(handler)
    with pytest.raises(EmbeddingUnavailable, match="timed out"):
        await embedder.embed("x")
    await http.aclose()


@pytest.mark.asyncio
async def test_connection_error_raises_unavailable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    embedder, http = _client(handler)
    with pytest.raises(EmbeddingUnavailable):
        await embedder.embed("x")
    await http.aclose()


@pytest.mark.asyncio
async def test_malformed_payload_raises_unavailable():
    embedder, http = _client(lambda request: httpx.Response(200, json={"data": []}))
    with pytest.raises(EmbeddingUnavailable):
        await embedder.embed("x")
    await http.aclose()


@pytest.mark.asyncio
async def test_wrong_dimension_raises_unavailable():
    embedder, http = _client(
        lambda request: httpx.Response(200, json={"data": [{"embedding": [0.1, 0.2]}]})
    )
    with pytest.raises(EmbeddingUnavailable, match="3-dimensional"):
        await embedder.embed("x")
    await http.aclose()


@pytest.mark.asyncio
async def test_is_available_caches_success_only():
    calls = {"n": 0, "fail": True}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        if calls["fail"]:
            return httpx.Response(500)
        return httpx.Response(200, json={"data": [{"embedding": [0.0, 0.0, 1.0]}]})

    embedder, http = _client(handler)
    assert await embedder.is_available() is False
    calls["fail"] = False
    assert await embedder.is_available() is True
    assert await embedder.is_available() is True
    assert calls["n"] == 2
    await http.aclose()


@pytest.mark.asyncio
async def test_close_leaves_injected_client_open():
    embedder, http = _client(lambda request: httpx.Response(200))
    await embedder.close()
    assert not http.is_closed
    await http.aclose()
