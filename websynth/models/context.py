from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from websynth.services.progress import ProgressSink

UNTITLED = "Untitled"
SOURCE_TAG = "web_search"


@dataclass(slots=True)
class SearchResult:
    title: str
    url: str

    def to_dict(self) -> dict[str, str]:
        return {"title": self.title or UNTITLED, "url": self.url}


@dataclass(slots=True)
class ScrapedPage:
    url: str
    content: str = ""


@dataclass(slots=True)
class Chunk:
    text: str
    source_url: str
    source_title: str
    chunk_index: int
    total_chunks: int
    is_chunked: bool
    original_index: int = 0

    def to_metadata(self) -> dict[str, Any]:
        # Chroma metadata values must be scalars.
        return {
            "url": self.source_url,
            "title": self.source_title,
            "source": SOURCE_TAG,
            "chunk_index": self.chunk_index,
            "total_chunks": self.total_chunks,
            "is_chunked": self.is_chunked,
            "length": len(self.text),
            "original_index": self.original_index,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }


@dataclass(slots=True)
class IndexHit:
    id: str
    text: str
    score: float
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class RetrievedEntry:
    rank: int
    source_title: str
    source_url: str
    text: str
    score: float = 0.0

    def to_text(self) -> str:
        return f"--- Source {self.rank}: {self.source_title} ---\nURL: {self.source_url}\n{self.text}"


@dataclass(slots=True)
class RetrievedContext:
    """Ranked, source-attributed passages for one query."""

    query: str
    entries: list[RetrievedEntry] = field(default_factory=list)
    collection_name: str = ""
    search_results: list[SearchResult] = field(default_factory=list)

    def to_text(self) -> str:
        return "\n\n".join(entry.to_text() for entry in self.entries).strip()

    def __str__(self) -> str:
        return self.to_text()


class NoContextReason(str, Enum):
    NO_RESULTS = "no_results"
    NO_VALID_CONTENT = "no_valid_content"
    NO_NEW_SOURCES = "no_new_sources"


NO_CONTEXT_MESSAGES = {
    NoContextReason.NO_RESULTS: "No relevant context found for the given prompt.",
    NoContextReason.NO_VALID_CONTENT: "Could not retrieve valid content from web sources.",
    NoContextReason.NO_NEW_SOURCES: "All search results for this query were already used.",
}


@dataclass(slots=True)
class NoContextSignal:
    """Terminal outcome with nothing to retrieve. Not an error."""

    reason: NoContextReason
    query: str = ""
    search_results: list[SearchResult] = field(default_factory=list)

    @property
    def message(self) -> str:
        return NO_CONTEXT_MESSAGES[self.reason]

    def to_text(self) -> str:
        return self.message

    def __str__(self) -> str:
        return self.message


PipelineOutcome = RetrievedContext | NoContextSignal


@dataclass
class PipelineOptions:
    max_results: int = 3
    top_k: int = 5
    cleanup: bool = True
    progress_sink: ProgressSink | None = None
    chunk_size: int = 500
    chunk_overlap: int = 50
    min_content_chars: int = 100
    max_content_chars: int = 10000
    fetch_concurrency: int = 1
    # Urls already scraped by earlier runs; updated in place.
    seen_urls: set[str] | None = None

    def __post_init__(self) -> None:
        if self.max_results < 1:
            raise ValueError("max_results must be >= 1")
        if self.top_k < 1:
            raise ValueError("top_k must be >= 1")
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be > 0")
        if not 0 < self.chunk_overlap < self.chunk_size:
            raise ValueError("chunk_overlap must satisfy 0 < overlap < chunk_size")
        if self.min_content_chars < 0:
            raise ValueError("min_content_chars must be >= 0")
        if self.max_content_chars <= self.min_content_chars:
            raise ValueError("max_content_chars must exceed min_content_chars")
        if self.fetch_concurrency < 1:
            raise ValueError("fetch_concurrency must be >= 1")

    @classmethod
    def from_settings(cls, **overrides: Any) -> "PipelineOptions":
        from websynth.config import settings

        values: dict[str, Any] = {
            "max_results": settings.pipeline_max_results,
            "top_k": settings.pipeline_top_k,
            "chunk_size": settings.pipeline_chunk_size,
            "chunk_overlap": settings.pipeline_chunk_overlap,
            "min_content_chars": settings.pipeline_min_content_chars,
            "max_content_chars": settings.pipeline_max_content_chars,
            "fetch_concurrency": settings.fetch_max_parallel,
        }
        values.update(overrides)
        return cls(**values)
