from __future__ import annotations

import asyncio
import math
import threading
import time

import pytest
from chromadb.errors import NotFoundError

from websynth.services.vector_index import (
    ChromaEphemeralIndex,
    ephemeral_collection,
    new_collection_name,
)


class _FakeEmbedder:
    def __init__(self):
        self.calls: list[list[str]] = []

    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        return [_vector_for(text) for text in texts]

    async def embed_text(self, text: str) -> list[float]:
        vectors = await self.embed_texts([text])
        return vectors[0]


def _vector_for(text: str) -> list[float]:
    lowered = text.lower()
    return [float(lowered.count("learn")), float(lowered.count("cook")), 1.0]


class _FakeCollection:
    def __init__(self, name: str, metadata: dict | None):
        self.name = name
        self.metadata = metadata or {}
        self.rows: dict[str, tuple[list[float], str, dict]] = {}

    def add(self, ids, embeddings, documents, metadatas):
        for id_, vector, doc, meta in zip(ids, embeddings, documents, metadatas):
            if id_ in self.rows:
                raise ValueError(f"duplicate id {id_}")
            self.rows[id_] = (vector, doc, meta)

    def count(self) -> int:
        return len(self.rows)

    def query(self, query_embeddings, n_results, include):
        if n_results > len(self.rows):
            raise ValueError("n_results exceeds collection size")
        query_vector = query_embeddings[0]
        scored = sorted(
            self.rows.items(),
            key=lambda item: _cosine_distance(query_vector, item[1][0]),
        )[:n_results]
        return {
            "ids": [[id_ for id_, _ in scored]],
            "documents": [[row[1] for _, row in scored]],
            "metadatas": [[row[2] for _, row in scored]],
            "distances": [[_cosine_distance(query_vector, row[0]) for _, row in scored]],
        }


def _cosine_distance(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return 1.0 - (dot / norm if norm else 0.0)


class _FakeChromaClient:
    def __init__(self):
        self.collections: dict[str, _FakeCollection] = {}
        self.delete_calls: list[str] = []

    def create_collection(self, name, metadata=None, embedding_function=None):
        if name in self.collections:
            raise ValueError(f"Collection {name} already exists")
        self.collections[name] = _FakeCollection(name, metadata)
        return self.collections[name]

    def get_collection(self, name):
        if name not in self.collections:
            raise NotFoundError(f"Collection {name} does not exist.")
        return self.collections[name]

    def delete_collection(self, name):
        self.delete_calls.append(name)
        if name not in self.collections:
            raise NotFoundError(f"Collection {name} does not exist.")
        del self.collections[name]


def _index() -> tuple[ChromaEphemeralIndex, _FakeChromaClient, _FakeEmbedder]:
    client = _FakeChromaClient()
    embedder = _FakeEmbedder()
    return ChromaEphemeralIndex(embedder=embedder, client=client), client, embedder


def test_collection_names_are_unique_and_chroma_safe():
    names = {new_collection_name() for _ in range(1000)}

    assert len(names) == 1000
    for name in names:
        assert name.startswith("context_")
        assert name.replace("_", "").isalnum()
        assert 3 <= len(name) <= 63


@pytest.mark.asyncio
async def test_insert_generates_unique_ids_and_query_ranks_by_similarity():
    index, client, embedder = _index()
    await index.create("context_test")
    texts = ["cooking pasta at home", "machine learning basics", "how models learn"]
    vectors = await embedder.embed_texts(texts)
    metadatas = [{"url": f"https://e.com/{i}", "title": f"T{i}"} for i in range(3)]

    ids = await index.insert("context_test", texts, vectors, metadatas)
    hits = await index.query("context_test", "learn learn", top_k=2)

    assert len(set(ids)) == 3
    assert client.collections["context_test"].metadata["hnsw:space"] == "cosine"
    assert [hit.text for hit in hits] == ["machine learning basics", "how models learn"]
    assert hits[0].score >= hits[1].score
    assert hits[0].metadata["url"] == "https://e.com/1"


@pytest.mark.asyncio
async def test_query_embeds_query_text_through_same_embedder():
    index, _, embedder = _index()
    await index.create("context_q")
    await index.insert("context_q", ["learn"], [[1.0, 0.0, 1.0]], [{"url": "u", "title": "t"}])

    await index.query("context_q", "what is learning", top_k=5)

    assert embedder.calls[-1] == ["what is learning"]


@pytest.mark.asyncio
async def test_query_clamps_top_k_to_collection_size():
    index, _, _ = _index()
    await index.create("context_small")
    await index.insert("context_small", ["a learn"], [[1.0, 0.0, 1.0]], [{"url": "u", "title": "t"}])

    hits = await index.query("context_small", "learn", top_k=10)

    assert len(hits) == 1


@pytest.mark.asyncio
async def test_insert_rejects_mismatched_lengths():
    index, _, _ = _index()
    await index.create("context_bad")

    with pytest.raises(ValueError):
        await index.insert("context_bad", ["a", "b"], [[1.0]], [{}, {}])


@pytest.mark.asyncio
async def test_delete_is_idempotent():
    index, client, _ = _index()
    await index.create("context_gone")

    await index.delete("context_gone")
    await index.delete("context_gone")

    assert "context_gone" not in client.collections
    assert client.delete_calls == ["context_gone", "context_gone"]


@pytest.mark.asyncio
async def test_ephemeral_collection_deletes_on_success_and_error():
    index, client, _ = _index()

    async with ephemeral_collection(index) as name:
        assert name in client.collections
    assert name not in client.collections

    with pytest.raises(RuntimeError, match="boom"):
        async with ephemeral_collection(index) as failing_name:
            raise RuntimeError("boom")
    assert failing_name not in client.collections


@pytest.mark.asyncio
async def test_ephemeral_collection_keeps_collection_when_cleanup_disabled():
    index, client, _ = _index()

    async with ephemeral_collection(index, "context_kept", cleanup=False) as name:
        pass

    assert name in client.collections
    assert client.delete_calls == []


@pytest.mark.asyncio
async def test_ephemeral_collection_cleanup_error_does_not_mask_body_error():
    index, client, _ = _index()

    def broken_delete(name):
        raise ConnectionError("chroma unreachable")

    client.delete_collection = broken_delete

    with pytest.raises(RuntimeError, match="original"):
        async with ephemeral_collection(index):
            raise RuntimeError("original")


@pytest.mark.asyncio
async def test_ephemeral_collection_deletes_on_cancellation():
    index, client, _ = _index()
    entered = asyncio.Event()
    names: list[str] = []

    async def body():
        async with ephemeral_collection(index) as name:
            names.append(name)
            entered.set()
            await asyncio.sleep(3600)

    task = asyncio.create_task(body())
    await entered.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert names[0] not in client.collections
    assert client.delete_calls == names


@pytest.mark.asyncio
async def test_ephemeral_collection_drops_collection_when_create_fails():
    index, client, _ = _index()

    def half_applied_create(name, metadata=None, embedding_function=None):
        client.collections[name] = _FakeCollection(name, metadata)
        raise ConnectionError("connection reset after write")

    client.create_collection = half_applied_create

    with pytest.raises(ConnectionError):
        async with ephemeral_collection(index, "context_half"):
            pytest.fail("body must not run when create fails")

    assert "context_half" not in client.collections
    assert client.delete_calls == ["context_half"]


@pytest.mark.asyncio
async def test_ephemeral_collection_drops_collection_created_after_cancellation():
    index, client, _ = _index()
    started = threading.Event()
    real_create = client.create_collection

    def slow_create(name, metadata=None, embedding_function=None):
        started.set()
        time.sleep(0.05)
        return real_create(name, metadata=metadata, embedding_function=embedding_function)

    client.create_collection = slow_create

    async def body():
        async with ephemeral_collection(index, "context_slow"):
            pytest.fail("body must not run after cancellation")

    task = asyncio.create_task(body())
    while not started.is_set():
        await asyncio.sleep(0.001)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert "context_slow" not in client.collections
    assert client.delete_calls == ["context_slow"]
