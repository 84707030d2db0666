from __future__ import annotations

import asyncio
from typing import Any, Protocol

import httpx

from websynth.config import settings


class Embedder(Protocol):
    async def embed_texts(self, texts: list[str]) -> list[list[float]]: ...
    async def embed_text(self, text: str) -> list[float]: ...


class OllamaEmbeddingService:
    """Embeddings from an Ollama server's batch ``/api/embed`` endpoint.

    One vector per input string, in input order. Transport and response-shape
    errors propagate; the caller decides how to fail.
    """

    def __init__(
        self,
        base_url: str | None = None,
        model_name: str | None = None,
        batch_size: int | None = None,
        timeout: float | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.base_url = (base_url or settings.ollama_base_url).rstrip("/")
        self.model_name = model_name or settings.ollama_embed_model
        self.batch_size = max(int(batch_size or settings.embed_batch_size), 1)
        self.timeout = float(timeout or settings.embed_timeout_seconds)
        self._http_client = http_client

    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        vectors: list[list[float]] = []
        for offset in range(0, len(texts), self.batch_size):
            batch = texts[offset : offset + self.batch_size]
            vectors.extend(await self._embed_batch(batch))
        return vectors

    async def embed_text(self, text: str) -> list[float]:
        vectors = await self.embed_texts([text])
        return vectors[0]

    async def _embed_batch(self, batch: list[str]) -> list[list[float]]:
        payload = {"model": self.model_name, "input": batch}
        if self._http_client is not None:
            response = await self._http_client.post(f"{self.base_url}/api/embed", json=payload)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(f"{self.base_url}/api/embed", json=payload)
        response.raise_for_status()
        embeddings = response.json().get("embeddings")
        if not isinstance(embeddings, list) or len(embeddings) != len(batch):
            raise ValueError(
                f"Embedding backend returned {len(embeddings) if isinstance(embeddings, list) else 'no'} "
                f"vectors for {len(batch)} inputs"
            )
        return [list(map(float, row)) for row in embeddings]


class LocalEmbeddingService:
    """In-process sentence-transformers embeddings."""

    def __init__(self, model_name: str | None = None, batch_size: int | None = None):
        self.model_name = model_name or settings.local_embed_model
        self.batch_size = batch_size or int(settings.embed_batch_size)
        self._model: Any | None = None
        self._lock = asyncio.Lock()

    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        async with self._lock:
            if self._model is None:
                await asyncio.to_thread(self._load_model)
        return await asyncio.to_thread(self._embed_sync, texts)

    async def embed_text(self, text: str) -> list[float]:
        vectors = await self.embed_texts([text])
        return vectors[0]

    def _load_model(self) -> None:
        from sentence_transformers import SentenceTransformer

        self._model = SentenceTransformer(self.model_name)

    def _embed_sync(self, texts: list[str]) -> list[list[float]]:
        vectors = self._model.encode(
            texts,
            batch_size=self.batch_size,
            normalize_embeddings=True,
            show_progress_bar=False,
        )
        return [list(map(float, row)) for row in vectors]


_embedder: Embedder | None = None


def get_embedder() -> Embedder:
    global _embedder
    if _embedder is None:
        backend = settings.embedding_backend.lower().strip()
        if backend == "ollama":
            _embedder = OllamaEmbeddingService()
        elif backend == "local":
            _embedder = LocalEmbeddingService()
        else:
            raise ValueError(f"Unsupported EMBEDDING_BACKEND: {settings.embedding_backend}")
    return _embedder
