from __future__ import annotations

import asyncio
import json

import pytest

from websynth.models.context import SearchResult
from websynth.models.events import EventType
from websynth.services import streaming
from websynth.services.progress import ListProgressSink, QueueProgressSink, publish


def test_search_results_event_carries_urls_and_count():
    event = streaming.search_results(
        "What is machine learning?",
        [SearchResult("Machine learning - Wikipedia", "https://en.wikipedia.org/wiki/Machine_learning")],
    )

    assert event.event is EventType.SEARCH_RESULTS
    assert event.data["query"] == "What is machine learning?"
    assert event.data["total_results"] == 1
    assert event.data["urls"][0]["url"] == "https://en.wikipedia.org/wiki/Machine_learning"
    assert "timestamp" in event.data


def test_untitled_results_are_labelled():
    event = streaming.accumulated_sources([SearchResult("", "https://a.com")], query_index=2)

    assert event.data["results"] == [{"title": "Untitled", "url": "https://a.com"}]
    assert event.data["is_streaming"] is True
    assert event.data["query_index"] == 2


def test_sse_event_wire_format():
    event = streaming.action(streaming.ActionStep.SCRAPING, "Scraping 2 web pages...", urls=["u1", "u2"])

    wire = event.format()
    payload = event.to_sse()

    assert wire.startswith("event: action\ndata: ")
    assert wire.endswith("\n\n")
    assert payload["event"] == "action"
    data = json.loads(payload["data"])
    assert data["step"] == "scraping"
    assert data["urls"] == ["u1", "u2"]


@pytest.mark.asyncio
async def test_queue_sink_streams_until_closed():
    sink = QueueProgressSink()

    async def produce():
        await sink.publish(streaming.start("started", "session_1"))
        await sink.publish(streaming.complete("done"))
        await sink.close()
        await sink.publish(streaming.error("late"))

    producer = asyncio.create_task(produce())
    received = [event.event.value async for event in sink]
    await producer

    assert received == ["start", "complete"]


@pytest.mark.asyncio
async def test_publish_ignores_broken_sink():
    class BrokenSink:
        async def publish(self, event):
            raise RuntimeError("client went away")

    await publish(BrokenSink(), streaming.retrieving())
    await publish(None, streaming.retrieving())


@pytest.mark.asyncio
async def test_list_sink_records_in_order():
    sink = ListProgressSink()

    await publish(sink, streaming.query_progress(1, 5, "q1"))
    await publish(sink, streaming.queries_generated(["q1"]))

    assert sink.names() == ["query_progress", "queries_generated"]
    assert sink.events[0].data["total_queries"] == 5
