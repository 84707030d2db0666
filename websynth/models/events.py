from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class EventType(str, Enum):
    START = "start"
    SEARCH_RESULTS = "search_results"
    ACTION = "action"
    QUERY_PROGRESS = "query_progress"
    QUERIES_GENERATED = "queries_generated"
    COMPLETE = "complete"
    ERROR = "error"


class ActionStep(str, Enum):
    GENERATE_QUERIES = "generate_queries"
    FETCHING_CONTEXTS = "fetching_contexts"
    SCRAPING = "scraping"
    EMBEDDING = "embedding"
    RETRIEVING = "retrieving"
    SUMMARIZING = "summarizing"


@dataclass
class SSEEvent:
    event: EventType
    data: dict[str, Any] = field(default_factory=dict)

    def format(self) -> str:
        return f"event: {self.event.value}\ndata: {json.dumps(self.data)}\n\n"

    def to_sse(self) -> dict[str, str]:
        """Shape consumed by sse_starlette's EventSourceResponse."""
        return {"event": self.event.value, "data": json.dumps(self.data)}
