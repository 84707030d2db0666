from __future__ import annotations

import time

from loguru import logger

from websynth.models.context import (
    UNTITLED,
    NoContextReason,
    NoContextSignal,
    PipelineOptions,
    PipelineOutcome,
    RetrievedContext,
    RetrievedEntry,
    SearchResult,
)
from websynth.models.errors import PipelineError
from websynth.services import logger as log_service
from websynth.services import streaming
from websynth.services.chunker import build_chunks
from websynth.services.progress import publish
from websynth.services.vector_index import (
    ChromaEphemeralIndex,
    ephemeral_collection,
    get_vector_index,
    new_collection_name,
)
from websynth.tools.search_provider import WebSearcher, get_searcher
from websynth.tools.web_fetcher import PageFetcher, fetch_pages, get_fetcher


class ContextPipeline:
    """Search, scrape, embed and retrieve context for one query.

    Flow:
      1. Search the web; no results ends the run with a no-context signal
      2. Scrape the top urls not already used in this multi-query run
      3. Drop pages with too little text, truncate the rest
      4. Chunk, embed and store each page in a collection owned by this run
      5. Retrieve the chunks nearest to the query
      6. Drop the collection, whatever happened in 4 and 5

    Search and scraping never raise. Embedding and index failures surface as
    ``PipelineError`` once the collection is gone.
    """

    def __init__(
        self,
        searcher: WebSearcher | None = None,
        fetcher: PageFetcher | None = None,
        index: ChromaEphemeralIndex | None = None,
    ):
        self.searcher = searcher or get_searcher()
        self.fetcher = fetcher or get_fetcher()
        self.index = index or get_vector_index()

    async def synthesize(
        self, query: str, options: PipelineOptions | None = None
    ) -> PipelineOutcome:
        options = options or PipelineOptions.from_settings()
        logger.info(f"Searching for: '{query}'")
        results = await self.searcher.search(query)
        return await self.synthesize_from_results(query, results, options)

    async def synthesize_from_results(
        self,
        query: str,
        results: list[SearchResult],
        options: PipelineOptions | None = None,
    ) -> PipelineOutcome:
        options = options or PipelineOptions.from_settings()
        sink = options.progress_sink

        if not results:
            logger.info(f"No search results found for '{query}'")
            return NoContextSignal(reason=NoContextReason.NO_RESULTS, query=query)

        logger.info(f"Found {len(results)} search results for '{query}'")
        await publish(sink, streaming.search_results(query, results))

        seen = options.seen_urls
        candidates = [r for r in results if seen is None or r.url not in seen]
        candidates = candidates[: options.max_results]
        if not candidates:
            logger.info(f"Every result for '{query}' was already scraped earlier in this run")
            return NoContextSignal(
                reason=NoContextReason.NO_NEW_SOURCES, query=query, search_results=results
            )

        urls = [candidate.url for candidate in candidates]
        if seen is not None:
            seen.update(urls)

        await publish(sink, streaming.scraping(urls))
        pages = await fetch_pages(urls, self.fetcher, max_parallel=options.fetch_concurrency)

        valid = [
            (candidate, page.content[: options.max_content_chars])
            for candidate, page in zip(candidates, pages)
            if len(page.content) > options.min_content_chars
        ]
        logger.info(f"Successfully scraped {len(valid)}/{len(pages)} pages")
        if not valid:
            return NoContextSignal(
                reason=NoContextReason.NO_VALID_CONTENT, query=query, search_results=results
            )

        return await self._embed_and_retrieve(query, results, valid, options)

    async def _embed_and_retrieve(
        self,
        query: str,
        results: list[SearchResult],
        documents: list[tuple[SearchResult, str]],
        options: PipelineOptions,
    ) -> RetrievedContext:
        sink = options.progress_sink
        collection_name = new_collection_name()
        stage = "create"
        started = time.monotonic()

        try:
            async with ephemeral_collection(
                self.index, collection_name, cleanup=options.cleanup
            ):
                await publish(sink, streaming.embedding(len(documents)))
                stored = 0
                for doc_index, (source, content) in enumerate(documents):
                    chunks = build_chunks(
                        content,
                        source_url=source.url,
                        source_title=source.title or UNTITLED,
                        size=options.chunk_size,
                        overlap=options.chunk_overlap,
                        original_index=doc_index,
                    )
                    texts = [chunk.text for chunk in chunks]
                    stage = "embed"
                    vectors = await self.index.embedder.embed_texts(texts)
                    stage = "insert"
                    await self.index.insert(
                        collection_name,
                        texts,
                        vectors,
                        [chunk.to_metadata() for chunk in chunks],
                    )
                    stored += len(chunks)
                log_service.log_pipeline_step(
                    collection_name, "embedding", "completed",
                    {"documents": len(documents), "chunks": stored},
                )

                await publish(sink, streaming.retrieving())
                stage = "query"
                hits = await self.index.query(collection_name, query, options.top_k)
        except PipelineError:
            raise
        except Exception as exc:
            log_service.log_pipeline_step(collection_name, stage, "failed", {"error": str(exc)})
            raise PipelineError(
                f"Context pipeline failed during {stage}: {exc}",
                stage=stage,
                collection_name=collection_name,
            ) from exc

        entries = [
            RetrievedEntry(
                rank=rank,
                source_title=str(hit.metadata.get("title") or UNTITLED),
                source_url=str(hit.metadata.get("url") or ""),
                text=hit.text,
                score=hit.score,
            )
            for rank, hit in enumerate(hits, start=1)
        ]
        log_service.log_pipeline_step(
            collection_name, "retrieving", "completed",
            {
                "entries": len(entries),
                "cleanup": options.cleanup,
                "duration_ms": int((time.monotonic() - started) * 1000),
            },
        )
        return RetrievedContext(
            query=query,
            entries=entries,
            collection_name=collection_name,
            search_results=results,
        )


_pipeline: ContextPipeline | None = None


def get_context_pipeline() -> ContextPipeline:
    global _pipeline
    if _pipeline is None:
        _pipeline = ContextPipeline()
    return _pipeline
