from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from websynth.models.context import SearchResult
from websynth.models.events import ActionStep, EventType, SSEEvent


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _event(event_type: EventType, data: dict[str, Any]) -> SSEEvent:
    return SSEEvent(event=event_type, data={**data, "timestamp": _now_iso()})


def start(message: str, session_id: str) -> SSEEvent:
    return _event(EventType.START, {"message": message, "session_id": session_id})


def search_results(query: str, results: list[SearchResult]) -> SSEEvent:
    """Results of a single search, in backend rank order."""
    return _event(
        EventType.SEARCH_RESULTS,
        {
            "query": query,
            "urls": [result.to_dict() for result in results],
            "total_results": len(results),
        },
    )


def accumulated_sources(sources: list[SearchResult], *, query_index: int) -> SSEEvent:
    """Running, url-deduplicated source set across the sub-queries of one run."""
    return _event(
        EventType.SEARCH_RESULTS,
        {
            "results": [source.to_dict() for source in sources],
            "count": len(sources),
            "is_streaming": True,
            "query_index": query_index,
        },
    )


def action(step: ActionStep, message: str, **kwargs: Any) -> SSEEvent:
    return _event(EventType.ACTION, {"step": step.value, "message": message, **kwargs})


def scraping(urls: list[str]) -> SSEEvent:
    return action(ActionStep.SCRAPING, f"Scraping {len(urls)} web pages...", urls=urls)


def embedding(documents_count: int) -> SSEEvent:
    return action(
        ActionStep.EMBEDDING,
        f"Embedding and storing {documents_count} documents...",
    )


def retrieving() -> SSEEvent:
    return action(ActionStep.RETRIEVING, "Retrieving most relevant information...")


def query_progress(current: int, total: int, query: str) -> SSEEvent:
    return _event(
        EventType.QUERY_PROGRESS,
        {"current_query": current, "total_queries": total, "query": query},
    )


def queries_generated(queries: list[str]) -> SSEEvent:
    return _event(EventType.QUERIES_GENERATED, {"queries": queries, "count": len(queries)})


def complete(response: str, **kwargs: Any) -> SSEEvent:
    return _event(EventType.COMPLETE, {"response": response, **kwargs})


def error(message: str, **kwargs: Any) -> SSEEvent:
    return _event(EventType.ERROR, {"message": message, **kwargs})
