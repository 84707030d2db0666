from __future__ import annotations

import re
from urllib.parse import urlparse

from websynth.models.context import SearchResult


def is_valid_url(url: str) -> bool:
    """Basic URL validation."""
    try:
        result = urlparse(url)
        return all([result.scheme in ("http", "https"), result.netloc])
    except Exception:
        return False


def collapse_whitespace(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def dedupe_by_url(results: list[SearchResult]) -> list[SearchResult]:
    """Drop repeated and invalid urls, keeping first occurrence and rank order."""
    seen: set[str] = set()
    deduped: list[SearchResult] = []
    for result in results:
        url = (result.url or "").strip()
        if not url or url in seen or not is_valid_url(url):
            continue
        seen.add(url)
        deduped.append(SearchResult(title=result.title or "", url=url))
    return deduped
