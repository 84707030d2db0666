from __future__ import annotations

import asyncio
import time
import uuid

from fastapi import APIRouter, HTTPException
from loguru import logger
from sse_starlette.sse import EventSourceResponse

from websynth.agents.multi_query import MultiQueryOrchestrator
from websynth.models.context import NoContextSignal, PipelineOptions
from websynth.models.errors import PipelineError
from websynth.models.schemas import (
    ChatRequest,
    ContextEntryResponse,
    ContextRequest,
    ContextResponse,
    SourceInfo,
)
from websynth.services import logger as log_service
from websynth.services import streaming
from websynth.services.context_pipeline import get_context_pipeline
from websynth.services.progress import QueueProgressSink

router = APIRouter(prefix="/api/agent", tags=["agent"])


def _new_session_id() -> str:
    return f"session_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


@router.post("/chat")
async def chat(request: ChatRequest):
    """Run the multi-query agent and stream its progress as server-sent events."""
    prompt = request.prompt.strip()
    if not prompt:
        raise HTTPException(status_code=400, detail="Prompt cannot be empty.")

    session_id = request.session_id or _new_session_id()
    orchestrator = MultiQueryOrchestrator(model=request.model)

    async def event_generator():
        sink = QueueProgressSink()
        log_service.log_event(
            event_type="chat_started",
            message="Agent started processing request",
            session_id=session_id,
            prompt=prompt[:100],
        )

        async def produce() -> None:
            try:
                await orchestrator.run(prompt, sink)
            except Exception as exc:
                logger.exception(f"Agent run failed for session {session_id}")
                await sink.publish(streaming.error(str(exc), session_id=session_id))
            finally:
                await sink.close()

        await sink.publish(
            streaming.start("Agent started processing your request", session_id)
        )
        task = asyncio.create_task(produce())
        try:
            async for event in sink:
                yield event.to_sse()
        finally:
            if not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

    return EventSourceResponse(event_generator())


@router.post("/context", response_model=ContextResponse)
async def get_context(request: ContextRequest):
    """Run the context pipeline once and return the retrieved passages."""
    query = request.query.strip()
    if not query:
        raise HTTPException(status_code=400, detail="Query cannot be empty.")

    options = PipelineOptions.from_settings(max_results=request.max_results, top_k=request.top_k)
    try:
        outcome = await get_context_pipeline().synthesize(query, options)
    except PipelineError as exc:
        raise HTTPException(status_code=503, detail=f"Context retrieval unavailable: {exc}")

    sources = [SourceInfo(**result.to_dict()) for result in outcome.search_results]
    if isinstance(outcome, NoContextSignal):
        return ContextResponse(
            query=query,
            found=False,
            context=outcome.to_text(),
            sources=sources,
            reason=outcome.reason.value,
        )
    return ContextResponse(
        query=query,
        found=True,
        context=outcome.to_text(),
        entries=[
            ContextEntryResponse(
                rank=entry.rank,
                source_title=entry.source_title,
                source_url=entry.source_url,
                text=entry.text,
                score=entry.score,
            )
            for entry in outcome.entries
        ],
        sources=sources,
    )
