from __future__ import annotations

import itertools
import re
import time
from dataclasses import dataclass, field
from typing import Iterator

from loguru import logger

from websynth.config import settings
from websynth.llm_client import client as llm_client, get_model
from websynth.models.context import PipelineOptions, SearchResult
from websynth.models.events import ActionStep
from websynth.services import logger as log_service
from websynth.services import streaming
from websynth.services.context_pipeline import ContextPipeline, get_context_pipeline
from websynth.services.progress import ProgressSink, publish
from websynth.services.prompt_store import render_prompt

_LIST_MARKER = re.compile(r"^\s*(?:[-*•]+|\(?\d+[.):]|#+)\s*")
_PADDING_ANGLES = ("", "explained", "latest developments", "practical examples", "key facts")


@dataclass
class SourceLedger:
    """Sources discovered across sub-queries, unique by url, first-seen order."""

    _by_url: dict[str, SearchResult] = field(default_factory=dict)

    def add(self, results: list[SearchResult]) -> int:
        added = 0
        for result in results:
            if not result.url or result.url in self._by_url:
                continue
            self._by_url[result.url] = result
            added += 1
        return added

    def sources(self) -> list[SearchResult]:
        return list(self._by_url.values())

    def __len__(self) -> int:
        return len(self._by_url)


@dataclass
class OrchestratorResult:
    summary: str
    queries: list[str] = field(default_factory=list)
    contexts: list[str] = field(default_factory=list)
    sources: list[SearchResult] = field(default_factory=list)
    failed_queries: list[str] = field(default_factory=list)


def parse_queries(raw_text: str, *, count: int, user_prompt: str) -> list[str]:
    """One query per line; strip list markers and quotes.

    Returns exactly ``count`` queries, padded from ``user_prompt`` when the
    model returns too few. A blank prompt gets no padding.
    """
    queries: list[str] = []
    seen: set[str] = set()
    for line in raw_text.splitlines():
        cleaned = _LIST_MARKER.sub("", line).strip().strip('"').strip()
        if not cleaned or cleaned.lower() in seen:
            continue
        seen.add(cleaned.lower())
        queries.append(cleaned)
        if len(queries) >= count:
            return queries

    base = " ".join(user_prompt.split())
    if not base:
        return queries
    for candidate in _padding_candidates(base):
        if len(queries) >= count:
            break
        if candidate.lower() in seen:
            continue
        seen.add(candidate.lower())
        queries.append(candidate)
    return queries


def _padding_candidates(base: str) -> Iterator[str]:
    for angle in _PADDING_ANGLES:
        yield f"{base} {angle}".strip()
    for part in itertools.count(2):
        yield f"{base} part {part}"


class MultiQueryOrchestrator:
    """Answers a prompt by fanning it out into several web-backed sub-queries.

    Flow:
      1. Ask the model for ``query_count`` diverse search queries
      2. For each query in turn: search, record sources, run the context pipeline
      3. Ask the model for one answer over all the per-query contexts

    A sub-query whose context run fails gets a placeholder context; the other
    sub-queries carry on.
    """

    def __init__(
        self,
        model: str | None = None,
        pipeline: ContextPipeline | None = None,
        query_count: int | None = None,
        max_results: int | None = None,
        top_k: int | None = None,
    ):
        self.model = model or get_model()
        self.client = None
        self._pipeline = pipeline
        self.query_count = max(int(query_count or settings.multi_query_count), 1)
        self.max_results = max(int(max_results or settings.multi_query_max_results), 1)
        self.top_k = max(int(top_k or settings.multi_query_top_k), 1)

    @property
    def pipeline(self) -> ContextPipeline:
        if self._pipeline is None:
            self._pipeline = get_context_pipeline()
        return self._pipeline

    async def run(self, user_prompt: str, progress_sink: ProgressSink | None = None) -> str:
        result = await self.run_detailed(user_prompt, progress_sink)
        return result.summary

    async def run_detailed(
        self, user_prompt: str, progress_sink: ProgressSink | None = None
    ) -> OrchestratorResult:
        if not user_prompt or not user_prompt.strip():
            raise ValueError("user_prompt must not be blank")
        started = time.monotonic()
        log_service.log_event("multi_query_started", "Multi-query run started", prompt=user_prompt[:100])

        queries = await self._generate_queries(user_prompt, progress_sink)
        contexts, ledger, failed = await self._gather_contexts(queries, progress_sink)
        summary = await self._summarize(user_prompt, queries, contexts, progress_sink)

        sources = ledger.sources()
        runtime_ms = int((time.monotonic() - started) * 1000)
        await publish(
            progress_sink,
            streaming.complete(
                summary,
                queries=queries,
                sources=[source.to_dict() for source in sources],
                failed_queries=failed,
                runtime_ms=runtime_ms,
            ),
        )
        log_service.log_event(
            "multi_query_completed",
            "Multi-query run completed",
            queries=len(queries),
            failed=len(failed),
            sources=len(sources),
            runtime_ms=runtime_ms,
        )
        return OrchestratorResult(
            summary=summary,
            queries=queries,
            contexts=contexts,
            sources=sources,
            failed_queries=failed,
        )

    async def _generate_queries(
        self, user_prompt: str, sink: ProgressSink | None
    ) -> list[str]:
        await publish(
            sink, streaming.action(ActionStep.GENERATE_QUERIES, "Generating search queries...")
        )
        raw = await self._complete(
            "multi_query.generate_queries",
            render_prompt(
                "multi_query.generate_queries",
                count=self.query_count,
                user_prompt=user_prompt,
            ),
            max_tokens=512,
        )
        queries = parse_queries(raw, count=self.query_count, user_prompt=user_prompt)
        logger.info(f"Generated {len(queries)} search queries: {queries}")
        await publish(sink, streaming.queries_generated(queries))
        return queries

    async def _gather_contexts(
        self, queries: list[str], sink: ProgressSink | None
    ) -> tuple[list[str], SourceLedger, list[str]]:
        await publish(
            sink,
            streaming.action(
                ActionStep.FETCHING_CONTEXTS,
                f"Fetching contexts for {len(queries)} queries...",
                total_queries=len(queries),
            ),
        )
        ledger = SourceLedger()
        scraped_urls: set[str] = set()
        contexts: list[str] = []
        failed: list[str] = []

        for index, query in enumerate(queries, start=1):
            await publish(sink, streaming.query_progress(index, len(queries), query))
            try:
                results = await self.pipeline.searcher.search(query)
                ledger.add(results)
                if len(ledger):
                    await publish(
                        sink, streaming.accumulated_sources(ledger.sources(), query_index=index)
                    )
                options = PipelineOptions.from_settings(
                    max_results=self.max_results,
                    top_k=self.top_k,
                    cleanup=True,
                    progress_sink=sink,
                    seen_urls=scraped_urls,
                )
                outcome = await self.pipeline.synthesize_from_results(query, results, options)
                contexts.append(outcome.to_text())
            except Exception as exc:
                logger.error(f"Error fetching context for query '{query}': {exc}")
                failed.append(query)
                contexts.append(render_prompt("multi_query.failed_context", query=query))

        logger.info(f"Retrieved contexts for {len(contexts) - len(failed)}/{len(contexts)} queries")
        return contexts, ledger, failed

    async def _summarize(
        self,
        user_prompt: str,
        queries: list[str],
        contexts: list[str],
        sink: ProgressSink | None,
    ) -> str:
        await publish(
            sink,
            streaming.action(
                ActionStep.SUMMARIZING, "Synthesizing information and generating answer..."
            ),
        )
        blocks = "\n".join(
            render_prompt("multi_query.context_block", index=index, query=query, context=context)
            for index, (query, context) in enumerate(zip(queries, contexts), start=1)
        )
        return await self._complete(
            "multi_query.summarize",
            render_prompt("multi_query.summarize", user_prompt=user_prompt, contexts=blocks),
            max_tokens=4096,
        )

    async def _complete(self, caller: str, prompt: str, *, max_tokens: int) -> str:
        active_client = self.client or llm_client()
        t0 = time.monotonic()
        try:
            response = await active_client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                system=render_prompt("multi_query.system_prompt"),
                messages=[{"role": "user", "content": prompt}],
            )
        except Exception as exc:
            log_service.log_llm_call(
                model=self.model,
                caller=caller,
                duration_ms=int((time.monotonic() - t0) * 1000),
                status="error",
                error=str(exc),
            )
            raise

        usage = getattr(response, "usage", None)
        log_service.log_llm_call(
            model=self.model,
            caller=caller,
            input_tokens=getattr(usage, "input_tokens", 0) or 0,
            output_tokens=getattr(usage, "output_tokens", 0) or 0,
            duration_ms=int((time.monotonic() - t0) * 1000),
        )
        return response.text
