from __future__ import annotations

from dataclasses import dataclass, field

from loguru import logger

from websynth.config import settings
from websynth.models.context import SearchResult
from websynth.tools import brave_search, searxng_search, tavily_search, web_utils

SUPPORTED_PROVIDERS = ("searxng", "brave", "tavily")


@dataclass
class SearchResponse:
    results: list[SearchResult] = field(default_factory=list)
    provider: str | None = None
    fallback_from: str | None = None
    fallback_reason: str | None = None


def _normalize_provider(name: str) -> str:
    provider = (name or "").lower().strip()
    if provider not in SUPPORTED_PROVIDERS:
        raise ValueError(f"Unsupported SEARCH_PROVIDER: {name}")
    return provider


async def _run_provider(provider: str, query: str, max_results: int) -> list[SearchResult]:
    if provider == "searxng":
        return await searxng_search.search(query, max_results=max_results)
    if provider == "brave":
        return await brave_search.search(query, max_results=max_results)
    return await tavily_search.search(query, max_results=max_results)


class WebSearcher:
    """Soft-fail web search over the configured provider.

    ``search`` never raises for transport or payload problems: it returns an
    empty list, so "no results" is the only failure a caller has to handle.
    Results are deduplicated by url and keep the backend's rank order.
    """

    def __init__(
        self,
        provider: str | None = None,
        fallback_provider: str | None = None,
        max_results: int | None = None,
    ):
        self.provider = _normalize_provider(provider or settings.search_provider)
        fallback = fallback_provider if fallback_provider is not None else settings.search_fallback_provider
        self.fallback_provider = _normalize_provider(fallback) if fallback and fallback.strip() else None
        if self.fallback_provider == self.provider:
            self.fallback_provider = None
        self.max_results = max(int(max_results or settings.search_max_results), 1)

    async def search(self, query: str) -> list[SearchResult]:
        response = await self.search_detailed(query)
        return response.results

    async def search_detailed(self, query: str) -> SearchResponse:
        cleaned = " ".join((query or "").split())
        if not cleaned:
            return SearchResponse(provider=self.provider)

        results, reason = await self._attempt(self.provider, cleaned)
        if results or self.fallback_provider is None:
            return SearchResponse(results=results, provider=self.provider)

        fallback_results, _ = await self._attempt(self.fallback_provider, cleaned)
        return SearchResponse(
            results=fallback_results,
            provider=self.fallback_provider,
            fallback_from=self.provider,
            fallback_reason=reason or f"{self.provider} returned zero results",
        )

    async def _attempt(self, provider: str, query: str) -> tuple[list[SearchResult], str | None]:
        try:
            raw = await _run_provider(provider, query, self.max_results)
        except Exception as exc:
            logger.warning(f"Search via {provider} failed for '{query[:80]}': {exc}")
            return [], str(exc)
        results = web_utils.dedupe_by_url(raw)
        logger.info(f"Search via {provider} returned {len(results)} results for '{query[:80]}'")
        return results, None


_searcher: WebSearcher | None = None


def get_searcher() -> WebSearcher:
    global _searcher
    if _searcher is None:
        _searcher = WebSearcher()
    return _searcher
