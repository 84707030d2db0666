from __future__ import annotations

import httpx

from websynth.config import settings
from websynth.models.context import SearchResult


async def search(
    query: str,
    *,
    max_results: int = 10,
    base_url: str | None = None,
    timeout: float | None = None,
) -> list[SearchResult]:
    """Query a SearXNG-compatible backend: ``GET /search?q=...&format=json``.

    Expects ``{"results": [{"title", "url"}, ...]}``. Non-200 responses and
    malformed payloads raise; the provider layer turns that into ``[]``.
    """
    root = (base_url or settings.searxng_base_url).rstrip("/")
    async with httpx.AsyncClient(timeout=timeout or settings.search_timeout_seconds) as client:
        response = await client.get(
            f"{root}/search",
            params={"q": query, "format": "json"},
            headers={"Accept": "application/json"},
        )
        response.raise_for_status()
        payload = response.json()

    if not isinstance(payload, dict):
        raise ValueError("search backend returned a non-object payload")
    raw_results = payload.get("results") or []
    if not isinstance(raw_results, list):
        raise ValueError("search backend 'results' is not a list")

    mapped: list[SearchResult] = []
    for item in raw_results:
        if not isinstance(item, dict):
            continue
        url = item.get("url")
        if not isinstance(url, str) or not url:
            continue
        mapped.append(SearchResult(title=str(item.get("title") or ""), url=url))
        if len(mapped) >= max_results:
            break
    return mapped
