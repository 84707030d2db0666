from __future__ import annotations

from tavily import AsyncTavilyClient

from websynth.config import settings
from websynth.models.context import SearchResult


async def search(query: str, *, max_results: int = 10) -> list[SearchResult]:
    """Execute a Tavily web search and return title/url pairs."""
    if not settings.tavily_api_key:
        raise RuntimeError("TAVILY_API_KEY is not configured")

    client = AsyncTavilyClient(api_key=settings.tavily_api_key)
    response = await client.search(
        query=query,
        search_depth="basic",
        max_results=max_results,
        topic="general",
        include_raw_content=False,
    )

    return [
        SearchResult(title=r.get("title", "") or "", url=r.get("url", "") or "")
        for r in response.get("results", [])
    ]
