from __future__ import annotations

import asyncio
import itertools
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from chromadb.errors import NotFoundError
from loguru import logger

from websynth.config import settings
from websynth.models.context import IndexHit
from websynth.services.embeddings import Embedder, get_embedder

_name_counter = itertools.count()


def new_collection_name(prefix: str = "context") -> str:
    """Collection name unique across concurrent runs and processes.

    Monotonic nanosecond clock, a per-process counter and a random suffix.
    Matches Chroma's naming rules (alphanumeric ends, ``[a-zA-Z0-9_-]``).
    """
    return f"{prefix}_{time.monotonic_ns()}_{next(_name_counter)}_{uuid.uuid4().hex[:8]}"


class ChromaEphemeralIndex:
    """Short-lived Chroma collections for one pipeline run each.

    Vectors are always supplied by the caller on insert; ``query`` embeds the
    query text through the same embedder, the collection never embeds on its
    own.
    """

    def __init__(self, embedder: Embedder, client: Any | None = None):
        self.embedder = embedder
        self._client = client
        self._client_lock = asyncio.Lock()

    async def create(self, name: str) -> None:
        client = await self._get_client()

        def _sync_create() -> None:
            client.create_collection(
                name=name,
                metadata={"hnsw:space": "cosine", "source": "web_search"},
                embedding_function=None,
            )

        await asyncio.to_thread(_sync_create)
        logger.debug(f"Created collection '{name}'")

    async def insert(
        self,
        name: str,
        texts: list[str],
        vectors: list[list[float]],
        metadatas: list[dict[str, Any]],
    ) -> list[str]:
        if not (len(texts) == len(vectors) == len(metadatas)):
            raise ValueError(
                f"insert needs equal lengths, got texts={len(texts)} "
                f"vectors={len(vectors)} metadatas={len(metadatas)}"
            )
        if not texts:
            return []

        batch_id = uuid.uuid4().hex[:12]
        ids = [f"doc_{batch_id}_{index}" for index in range(len(texts))]
        client = await self._get_client()

        def _sync_insert() -> None:
            collection = client.get_collection(name=name)
            collection.add(ids=ids, embeddings=vectors, documents=texts, metadatas=metadatas)

        await asyncio.to_thread(_sync_insert)
        logger.debug(f"Added {len(ids)} documents to collection '{name}'")
        return ids

    async def query(self, name: str, query_text: str, top_k: int = 5) -> list[IndexHit]:
        vector = await self.embedder.embed_text(query_text)
        client = await self._get_client()

        def _sync_query() -> list[IndexHit]:
            collection = client.get_collection(name=name)
            available = collection.count()
            if available == 0:
                return []
            result = collection.query(
                query_embeddings=[vector],
                n_results=min(max(int(top_k), 1), available),
                include=["documents", "metadatas", "distances"],
            )

            docs = (result.get("documents") or [[]])[0]
            metas = (result.get("metadatas") or [[]])[0]
            distances = (result.get("distances") or [[]])[0]
            ids = (result.get("ids") or [[]])[0]
            hits: list[IndexHit] = []
            for idx, doc in enumerate(docs):
                if not isinstance(doc, str):
                    continue
                metadata = metas[idx] if idx < len(metas) and isinstance(metas[idx], dict) else {}
                distance = float(distances[idx]) if idx < len(distances) else 1.0
                score = 1.0 / (1.0 + max(distance, 0.0))
                hit_id = ids[idx] if idx < len(ids) and isinstance(ids[idx], str) else f"hit_{idx}"
                hits.append(IndexHit(id=hit_id, text=doc, score=score, metadata=dict(metadata)))
            return hits

        return await asyncio.to_thread(_sync_query)

    async def delete(self, name: str) -> None:
        """Drop the collection. A missing collection is not an error."""
        client = await self._get_client()

        def _sync_delete() -> None:
            client.delete_collection(name=name)

        try:
            await asyncio.to_thread(_sync_delete)
        except (NotFoundError, ValueError):
            logger.debug(f"Collection '{name}' already absent")
            return
        logger.debug(f"Deleted collection '{name}'")

    async def _get_client(self) -> Any:
        async with self._client_lock:
            if self._client is None:
                self._client = await asyncio.to_thread(_build_chroma_client)
            return self._client


def _build_chroma_client() -> Any:
    import chromadb

    mode = settings.chroma_mode.lower().strip()
    if mode == "http":
        return chromadb.HttpClient(host=settings.chroma_host, port=int(settings.chroma_port))
    if mode == "persistent":
        return chromadb.PersistentClient(path=settings.chroma_persist_dir)
    if mode == "ephemeral":
        return chromadb.EphemeralClient()
    raise ValueError(f"Unsupported CHROMA_MODE: {settings.chroma_mode}")


@asynccontextmanager
async def ephemeral_collection(
    index: ChromaEphemeralIndex,
    name: str | None = None,
    *,
    cleanup: bool = True,
) -> AsyncIterator[str]:
    """Create a collection, hand its name to the body, always drop it after.

    Deletion runs on success, on error and on cancellation; it is shielded
    from a second cancellation. Delete failures are logged and discarded so
    they never replace the body's own outcome.
    """
    name = name or new_collection_name()
    creating = asyncio.ensure_future(index.create(name))
    try:
        await asyncio.shield(creating)
    except BaseException:
        # Failed or cancelled, the server may still end up with the collection.
        if cleanup:
            await _drop_quietly(index, name, after=creating)
        raise
    try:
        yield name
    finally:
        if cleanup:
            await _drop_quietly(index, name)


async def _drop_quietly(
    index: ChromaEphemeralIndex,
    name: str,
    after: asyncio.Future | None = None,
) -> None:
    async def _drop() -> None:
        if after is not None:
            # A cancelled create keeps running in its worker thread.
            await asyncio.wait([after])
            if not after.cancelled() and after.exception() is not None:
                logger.debug(f"Create of collection '{name}' failed: {after.exception()}")
        await index.delete(name)

    try:
        await asyncio.shield(_drop())
    except Exception as exc:
        logger.warning(f"Cleanup of collection '{name}' failed: {exc}")


_index: ChromaEphemeralIndex | None = None


def get_vector_index() -> ChromaEphemeralIndex:
    global _index
    if _index is None:
        _index = ChromaEphemeralIndex(embedder=get_embedder())
    return _index
