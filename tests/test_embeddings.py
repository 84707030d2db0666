from __future__ import annotations

import json

import httpx
import pytest

from websynth.services.embeddings import OllamaEmbeddingService


def _service(handler, batch_size: int = 32) -> OllamaEmbeddingService:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return OllamaEmbeddingService(
        base_url="http://ollama:11434/",
        model_name="embeddinggemma:300m-qat-q4_0",
        batch_size=batch_size,
        http_client=client,
    )


@pytest.mark.asyncio
async def test_embed_texts_batches_and_keeps_order():
    requests: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        requests.append(body)
        return httpx.Response(200, json={"embeddings": [[float(len(t))] for t in body["input"]]})

    vectors = await _service(handler, batch_size=2).embed_texts(["a", "bb", "ccc"])

    assert vectors == [[1.0], [2.0], [3.0]]
    assert [r["input"] for r in requests] == [["a", "bb"], ["ccc"]]
    assert requests[0]["model"] == "embeddinggemma:300m-qat-q4_0"


@pytest.mark.asyncio
async def test_embed_text_posts_to_embed_endpoint():
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200, json={"embeddings": [[0.1, 0.2]]})

    assert await _service(handler).embed_text("hello") == [0.1, 0.2]
    assert seen == ["http://ollama:11434/api/embed"]


@pytest.mark.asyncio
async def test_vector_count_mismatch_raises():
    service = _service(lambda request: httpx.Response(200, json={"embeddings": [[0.1]]}))

    with pytest.raises(ValueError):
        await service.embed_texts(["a", "b"])


@pytest.mark.asyncio
async def test_backend_error_propagates():
    service = _service(lambda request: httpx.Response(500, json={"error": "model not found"}))

    with pytest.raises(httpx.HTTPStatusError):
        await service.embed_texts(["a"])


@pytest.mark.asyncio
async def test_empty_input_makes_no_request():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    assert await _service(handler).embed_texts([]) == []
