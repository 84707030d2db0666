from __future__ import annotations

from pydantic import BaseModel, Field


# --- Requests ---


class ChatRequest(BaseModel):
    prompt: str
    session_id: str | None = None
    model: str | None = None


class ContextRequest(BaseModel):
    query: str
    max_results: int = Field(default=3, ge=1, le=10)
    top_k: int = Field(default=5, ge=1, le=50)


# --- Responses ---


class SourceInfo(BaseModel):
    title: str
    url: str


class ContextEntryResponse(BaseModel):
    rank: int
    source_title: str
    source_url: str
    text: str
    score: float


class ContextResponse(BaseModel):
    query: str
    found: bool
    context: str
    entries: list[ContextEntryResponse] = []
    sources: list[SourceInfo] = []
    reason: str | None = None
