"""Progress sinks: where pipeline and orchestrator publish their events.

A sink is passed explicitly down the call chain. Publishing never fails the
caller; a broken sink is logged and ignored.
"""
from __future__ import annotations

import asyncio
from typing import AsyncIterator, Protocol

from loguru import logger

from websynth.models.events import SSEEvent


class ProgressSink(Protocol):
    async def publish(self, event: SSEEvent) -> None: ...


class ListProgressSink:
    """Collects events in memory, in publish order."""

    def __init__(self) -> None:
        self.events: list[SSEEvent] = []

    async def publish(self, event: SSEEvent) -> None:
        self.events.append(event)

    def names(self) -> list[str]:
        return [event.event.value for event in self.events]


class QueueProgressSink:
    """Channel between a producer task and a transport that streams events.

    The producer publishes and finally calls ``close``; the consumer iterates
    with ``async for`` until the channel is closed.
    """

    _CLOSED = object()

    def __init__(self, maxsize: int = 0) -> None:
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    async def publish(self, event: SSEEvent) -> None:
        if self._closed:
            return
        await self._queue.put(event)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._queue.put(self._CLOSED)

    async def __aiter__(self) -> AsyncIterator[SSEEvent]:
        while True:
            item = await self._queue.get()
            if item is self._CLOSED:
                return
            yield item


async def publish(sink: ProgressSink | None, event: SSEEvent) -> None:
    if sink is None:
        return
    try:
        await sink.publish(event)
    except Exception as exc:
        logger.warning(f"Progress sink failed on '{event.event.value}': {exc}")
